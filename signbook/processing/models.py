from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class DocumentStatus(str, Enum):
    TO_PROCESS = "to process"
    IN_PROCESS = "in process"
    FINISHED_OK = "finished ok"
    ERROR = "error"


@dataclass
class ActivityEntry:
    action: str
    start_time: datetime
    end_time: datetime
    status: str = DocumentStatus.FINISHED_OK.value
    filename: Optional[str] = None
    occurrences: int = 0
    error_description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat()
        data["end_time"] = self.end_time.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityEntry":
        return cls(
            action=data["action"],
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            status=data.get("status", DocumentStatus.FINISHED_OK.value),
            filename=data.get("filename"),
            occurrences=int(data.get("occurrences") or 0),
            error_description=data.get("error_description") or "",
        )


@dataclass
class DocumentRecord:
    id: str
    filename: str
    status: DocumentStatus = DocumentStatus.TO_PROCESS
    page_break: Optional[str] = None
    occurrence_publication: int = 0
    activity: List[ActivityEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class PageRecord:
    document_id: str
    number: int
    lines: List[str]
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class BookMarker:
    """Catalog entry mapping a book to the page-break marker its files use."""

    book_id: str
    page_break: str
