"""
Ingestion pipeline exports.
"""

from .markers import (
    DetectedFromCatalog,
    FirstAvailable,
    FixedMarker,
    MarkerResolutionStrategy,
    StoredOnDocument,
    build_strategy,
    detect_marker,
)
from .models import ActivityEntry, BookMarker, DocumentRecord, DocumentStatus, PageRecord
from .pipeline import DocumentProcessor, ProcessingResult
from .reader import EncodingLineReader
from .repository import DocumentRepository, InMemoryDocumentRepository, SqlAlchemyDocumentRepository
from .scheduler import CycleReport, PollingScheduler
from .splitter import MarkerNotFoundError, MatchMode, SplitPage, iter_pages, marker_matcher, split_pages
from .storage import FileLifecycleManager, ProcessingFiles, StoragePaths, timestamped_name

__all__ = [
    "ActivityEntry",
    "BookMarker",
    "CycleReport",
    "DetectedFromCatalog",
    "DocumentProcessor",
    "DocumentRecord",
    "DocumentRepository",
    "DocumentStatus",
    "EncodingLineReader",
    "FileLifecycleManager",
    "FirstAvailable",
    "FixedMarker",
    "InMemoryDocumentRepository",
    "MarkerNotFoundError",
    "MarkerResolutionStrategy",
    "MatchMode",
    "PageRecord",
    "PollingScheduler",
    "ProcessingFiles",
    "ProcessingResult",
    "SplitPage",
    "SqlAlchemyDocumentRepository",
    "StoragePaths",
    "StoredOnDocument",
    "build_strategy",
    "detect_marker",
    "iter_pages",
    "marker_matcher",
    "split_pages",
    "timestamped_name",
]
