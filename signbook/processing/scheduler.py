from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from .pipeline import DocumentProcessor, ProcessingResult
from .repository import DocumentRepository

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    discovered: int = 0
    claimed: int = 0
    skipped: int = 0
    succeeded: int = 0
    failed: int = 0
    ran: bool = True
    results: List[ProcessingResult] = field(default_factory=list)


class PollingScheduler:
    """
    Fixed-delay polling loop. Each cycle queries the repository for pending
    documents and runs every one of them through the processor, one at a
    time, before the cycle ends. The first cycle runs immediately; the next
    one starts `interval_seconds` after the previous one finished, so a long
    cycle delays the next instead of overlapping with it.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        processor: DocumentProcessor,
        interval_seconds: float = 10.0,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.repo = repository
        self.processor = processor
        self.interval_seconds = interval_seconds

        self._stop = threading.Event()
        self._cycle_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def run_cycle(self) -> CycleReport:
        # Only one cycle at a time; a concurrent caller is skipped, not queued.
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Polling cycle already running, skipping")
            return CycleReport(ran=False)
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def _run_cycle(self) -> CycleReport:
        report = CycleReport()
        try:
            pending = self.repo.find_pending()
        except Exception:  # noqa: BLE001
            logger.exception("Could not query pending documents")
            return report

        report.discovered = len(pending)
        if not pending:
            logger.info("No files to process")
            return report

        for document in pending:
            if self._stop.is_set():
                remaining = report.discovered - report.claimed - report.skipped
                logger.info("Stop requested, leaving %s documents for the next run", remaining)
                break
            try:
                if not self.repo.claim_document(document.id):
                    logger.info("Document %s already claimed elsewhere, skipping", document.id)
                    report.skipped += 1
                    continue
                report.claimed += 1
                result = self.processor.process(document)
            except Exception:  # noqa: BLE001
                logger.exception("Unexpected error handling document %s", document.id)
                report.failed += 1
                continue

            report.results.append(result)
            if result.success:
                report.succeeded += 1
            else:
                report.failed += 1

        logger.info(
            "Cycle finished: %s discovered, %s claimed, %s ok, %s failed",
            report.discovered,
            report.claimed,
            report.succeeded,
            report.failed,
        )
        return report

    def _loop(self) -> None:
        logger.debug("Polling loop started")
        while not self._stop.is_set():
            try:
                self.run_cycle()
            except Exception:  # noqa: BLE001
                logger.exception("Polling cycle failed")
            self._stop.wait(self.interval_seconds)
        logger.debug("Polling loop stopped")

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            raise RuntimeError("Scheduler already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="signbook-poller")
        self._thread.start()
        logger.info("Polling every %.1fs", self.interval_seconds)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal stop and wait for the in-flight cycle, if any, to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_forever(self) -> None:
        if not self.running:
            self.start()
        try:
            while self.running:
                self._stop.wait(1.0)
        except KeyboardInterrupt:
            logger.info("Shutting down...")
        finally:
            self.stop()
