from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Protocol, Sequence

from .models import BookMarker, DocumentRecord
from .reader import EncodingLineReader

if TYPE_CHECKING:
    from .repository import DocumentRepository

logger = logging.getLogger(__name__)

DETECTION_HEAD_LINES = 5
DEFAULT_FIXED_MARKER = "1"


def detect_marker(first_lines: Sequence[str], catalog: Iterable[BookMarker]) -> Optional[str]:
    """
    Return the marker of the first catalog entry that occurs as a substring of
    any of `first_lines`, or None when nothing matches.
    """
    for entry in catalog:
        if not entry.page_break:
            continue
        for line in first_lines:
            if entry.page_break in line:
                return entry.page_break
    return None


class MarkerResolutionStrategy(Protocol):
    def resolve(self, document: DocumentRecord, source_path: Path) -> Optional[str]:
        ...


class FixedMarker:
    """Every document uses the same marker."""

    def __init__(self, marker: str = DEFAULT_FIXED_MARKER):
        self.marker = marker

    def resolve(self, document: DocumentRecord, source_path: Path) -> Optional[str]:
        return self.marker


class StoredOnDocument:
    def resolve(self, document: DocumentRecord, source_path: Path) -> Optional[str]:
        return document.page_break or None


class DetectedFromCatalog:
    """
    Looks at the first lines of the source file and matches them against the
    book marker catalog kept in the repository.
    """

    def __init__(
        self,
        repository: "DocumentRepository",
        reader: EncodingLineReader,
        head_lines: int = DETECTION_HEAD_LINES,
    ):
        self.repo = repository
        self.reader = reader
        self.head_lines = head_lines

    def resolve(self, document: DocumentRecord, source_path: Path) -> Optional[str]:
        first_lines = self.reader.head(source_path, self.head_lines)
        marker = detect_marker(first_lines, self.repo.list_markers())
        if marker is None:
            logger.warning("No catalog marker found in first %s lines of %s", self.head_lines, source_path.name)
        return marker


class FirstAvailable:
    """Tries each strategy in order and returns the first marker found."""

    def __init__(self, *strategies: MarkerResolutionStrategy):
        self.strategies: List[MarkerResolutionStrategy] = list(strategies)

    def resolve(self, document: DocumentRecord, source_path: Path) -> Optional[str]:
        for strategy in self.strategies:
            marker = strategy.resolve(document, source_path)
            if marker:
                return marker
        return None


STRATEGY_NAMES = ("auto", "fixed", "stored", "catalog")


def build_strategy(
    name: str,
    repository: "DocumentRepository",
    reader: EncodingLineReader,
    fixed_marker: str = DEFAULT_FIXED_MARKER,
) -> MarkerResolutionStrategy:
    if name == "fixed":
        return FixedMarker(fixed_marker)
    if name == "stored":
        return StoredOnDocument()
    if name == "catalog":
        return DetectedFromCatalog(repository, reader)
    if name == "auto":
        return FirstAvailable(StoredOnDocument(), DetectedFromCatalog(repository, reader))
    raise ValueError(f"Unknown marker strategy: {name!r} (expected one of {', '.join(STRATEGY_NAMES)})")
