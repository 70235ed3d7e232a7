from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Pattern, Union

from .markers import MarkerResolutionStrategy
from .models import ActivityEntry, DocumentRecord, DocumentStatus, PageRecord
from .reader import EncodingLineReader
from .repository import DocumentRepository
from .splitter import MarkerNotFoundError, MatchMode, SplitPage, marker_matcher, split_pages
from .storage import FileLifecycleManager, ProcessingFiles

logger = logging.getLogger(__name__)

SPLIT_ACTION = "split"


@dataclass
class ProcessingResult:
    document_id: str
    status: DocumentStatus
    page_count: int = 0
    output_name: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == DocumentStatus.FINISHED_OK


class DocumentProcessor:
    """
    Drives one claimed document through marker resolution, splitting, page
    storage and file relocation. Failures are recorded on the document
    (status Error plus an activity entry) instead of being raised, so one bad
    document never stops the caller from moving on to the next.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        lifecycle: FileLifecycleManager,
        reader: EncodingLineReader,
        strategy: MarkerResolutionStrategy,
        match: MatchMode = MatchMode.EXACT,
        output_encoding: str = "UTF-8",
        page_separator: str = "1",
        batch_size: int = 50,
        input_pattern: Union[str, Pattern[str]] = ".*",
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.repo = repository
        self.lifecycle = lifecycle
        self.reader = reader
        self.strategy = strategy
        self.match = MatchMode(match)
        self.output_encoding = output_encoding
        self.page_separator = page_separator
        self.batch_size = batch_size
        self.input_pattern = re.compile(input_pattern) if isinstance(input_pattern, str) else input_pattern

    def process(self, document: DocumentRecord) -> ProcessingResult:
        start = datetime.utcnow()
        files: Optional[ProcessingFiles] = None
        logger.info("Processing file %s (document %s)", document.filename, document.id)
        try:
            source = self.lifecycle.locate_source(document.filename)
            files = self.lifecycle.begin(source)
            self._check_pattern(document.filename)

            marker = self._resolve_marker(document, source)
            page_count = self._split_into_store(document.id, source, files.temp_output, marker)

            self.lifecycle.complete(files)
            self.repo.append_activity(
                document.id,
                ActivityEntry(
                    action=SPLIT_ACTION,
                    start_time=start,
                    end_time=datetime.utcnow(),
                    status=DocumentStatus.FINISHED_OK.value,
                    filename=files.name,
                    occurrences=page_count,
                ),
            )
            # FINISHED_OK is the last store write
            self.repo.update_document(
                document.id,
                status=DocumentStatus.FINISHED_OK,
                occurrence_publication=page_count,
            )
            logger.info("Document %s split into %s pages", document.id, page_count)
            return ProcessingResult(
                document_id=document.id,
                status=DocumentStatus.FINISHED_OK,
                page_count=page_count,
                output_name=files.name,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error processing file: %s", document.filename)
            if files is not None:
                self.lifecycle.fail(files)
            description = str(exc) or type(exc).__name__
            self._record_failure(document, start, files.name if files else None, description)
            return ProcessingResult(
                document_id=document.id,
                status=DocumentStatus.ERROR,
                output_name=files.name if files else None,
                error=description,
            )

    def _check_pattern(self, filename: str) -> None:
        if not self.input_pattern.fullmatch(filename):
            raise ValueError(f"File name {filename!r} does not match input pattern {self.input_pattern.pattern!r}")

    def _resolve_marker(self, document: DocumentRecord, source: Path) -> str:
        marker = self.strategy.resolve(document, source)
        if not marker:
            raise MarkerNotFoundError(f"No page-break marker found for {document.filename}")
        if not document.page_break:
            self.repo.update_document(document.id, page_break=marker)
        logger.debug("Using page-break marker %r for document %s", marker, document.id)
        return marker

    def _split_into_store(self, document_id: str, source: Path, temp_output: Path, marker: str) -> int:
        batch: List[PageRecord] = []
        is_marker = marker_matcher(marker, self.match)

        with temp_output.open("w", encoding=self.output_encoding, newline="\n") as out:

            def copied(lines: Iterable[str]) -> Iterator[str]:
                # every input line reaches the output, a separator line precedes each marker
                for line in lines:
                    if is_marker(line):
                        out.write(self.page_separator + "\n")
                    out.write(line + "\n")
                    yield line

            def emit(page: SplitPage) -> None:
                batch.append(PageRecord(document_id=document_id, number=page.number, lines=list(page.lines)))
                if len(batch) >= self.batch_size:
                    self._flush(batch)

            page_count = split_pages(copied(self.reader.read_lines(source)), marker, emit, match=self.match)
            self._flush(batch)
        return page_count

    def _flush(self, batch: List[PageRecord]) -> None:
        if batch:
            self.repo.insert_pages(list(batch))
            del batch[:]

    def _record_failure(
        self,
        document: DocumentRecord,
        start: datetime,
        name: Optional[str],
        description: str,
    ) -> None:
        try:
            self.repo.set_status(document.id, DocumentStatus.ERROR)
            self.repo.append_activity(
                document.id,
                ActivityEntry(
                    action=SPLIT_ACTION,
                    start_time=start,
                    end_time=datetime.utcnow(),
                    status=DocumentStatus.ERROR.value,
                    filename=name,
                    error_description=description,
                ),
            )
        except Exception:  # noqa: BLE001
            logger.exception("Could not record failure for document %s", document.id)
