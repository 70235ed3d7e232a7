from __future__ import annotations

import logging
from typing import Optional

from .config import ProcessorConfig
from .processing import (
    DocumentProcessor,
    DocumentRepository,
    EncodingLineReader,
    FileLifecycleManager,
    PollingScheduler,
    SqlAlchemyDocumentRepository,
    StoragePaths,
    build_strategy,
)
from .processing.scheduler import CycleReport

logger = logging.getLogger(__name__)


class ProcessorService:
    """
    Process-wide service object. Built once at startup from the configuration,
    it owns the repository, the file lifecycle manager, the processor and the
    scheduler for the lifetime of the process.
    """

    def __init__(
        self,
        config: ProcessorConfig,
        repository: DocumentRepository,
        lifecycle: FileLifecycleManager,
        processor: DocumentProcessor,
        scheduler: PollingScheduler,
    ):
        self.config = config
        self.repo = repository
        self.lifecycle = lifecycle
        self.processor = processor
        self.scheduler = scheduler

    @classmethod
    def from_config(
        cls,
        config: ProcessorConfig,
        repository: Optional[DocumentRepository] = None,
    ) -> "ProcessorService":
        lifecycle = FileLifecycleManager(
            StoragePaths(
                input_dir=config.input_dir,
                output_dir=config.output_dir,
                processed_dir=config.processed_dir,
                error_dir=config.error_dir,
                temp_extension=config.temp_extension,
                final_extension=config.final_extension,
            )
        )
        lifecycle.ensure_dirs()
        repo = repository or SqlAlchemyDocumentRepository(config.database_url)
        reader = EncodingLineReader(config.input_encoding)
        processor = DocumentProcessor(
            repository=repo,
            lifecycle=lifecycle,
            reader=reader,
            strategy=build_strategy(config.marker_strategy, repo, reader, fixed_marker=config.fixed_marker),
            match=config.marker_match,
            output_encoding=config.output_encoding,
            page_separator=config.char_to_insert,
            batch_size=config.page_batch_size,
            input_pattern=config.input_file_pattern,
        )
        scheduler = PollingScheduler(repo, processor, interval_seconds=config.polling_interval_seconds)
        return cls(config, repo, lifecycle, processor, scheduler)

    def run_once(self) -> CycleReport:
        return self.scheduler.run_cycle()

    def start(self) -> None:
        logger.info("Input: %s", self.config.input_dir)
        logger.info("Output: %s", self.config.output_dir)
        logger.info("Processed: %s", self.config.processed_dir)
        logger.info("Error: %s", self.config.error_dir)
        logger.info("Marker strategy: %s (%s match)", self.config.marker_strategy, self.config.marker_match.value)
        self.scheduler.start()

    def run_forever(self) -> None:
        try:
            self.scheduler.run_forever()
        finally:
            self.close()

    def stop(self, timeout: Optional[float] = None) -> None:
        self.scheduler.stop(timeout=timeout)

    def close(self) -> None:
        self.stop()
        dispose = getattr(self.repo, "dispose", None)
        if dispose is not None:
            dispose()

    def __enter__(self) -> "ProcessorService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
