from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator, List, Optional


class MatchMode(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"


class MarkerNotFoundError(LookupError):
    """Raised when a document has no page-break marker to split on."""


@dataclass(frozen=True)
class SplitPage:
    number: int
    lines: List[str]


def marker_matcher(marker: str, match: MatchMode) -> Callable[[str], bool]:
    if match == MatchMode.CONTAINS:
        return lambda line: marker in line
    return lambda line: line == marker


def iter_pages(
    lines: Iterable[str],
    marker: Optional[str],
    match: MatchMode = MatchMode.EXACT,
) -> Iterator[SplitPage]:
    """
    Group `lines` into pages separated by `marker`.

    The first line is a document header and never belongs to a page. A marker
    line closes the current page only when the page already holds content;
    consecutive markers therefore never produce empty pages. Marker lines are
    not part of any page. Whatever is left when the input ends is emitted as
    the last page, even when empty, so there is always at least one page.
    """
    if marker is None:
        raise MarkerNotFoundError("No page-break marker available for splitting")
    if marker == "":
        raise ValueError("Page-break marker must not be empty")

    is_marker = marker_matcher(marker, MatchMode(match))
    it = iter(lines)
    next(it, None)  # header

    number = 0
    current: List[str] = []
    for line in it:
        if is_marker(line):
            if current:
                yield SplitPage(number=number, lines=current)
                number += 1
                current = []
            continue
        current.append(line)
    yield SplitPage(number=number, lines=current)


def split_pages(
    lines: Iterable[str],
    marker: Optional[str],
    emit: Callable[[SplitPage], None],
    match: MatchMode = MatchMode.EXACT,
) -> int:
    """Call `emit` once per page in ascending page order and return the page count."""
    count = 0
    for page in iter_pages(lines, marker, match):
        emit(page)
        count += 1
    return count
