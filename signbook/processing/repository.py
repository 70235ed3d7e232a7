from __future__ import annotations

from copy import deepcopy
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from sqlalchemy import JSON, Column, DateTime, Enum, Integer, String, create_engine, select, update
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import ActivityEntry, BookMarker, DocumentRecord, DocumentStatus, PageRecord

Base = declarative_base()


class DocumentModel(Base):
    __tablename__ = "documents_meta"
    id = Column(String, primary_key=True)
    filename = Column(String, nullable=False)
    # Persist the enum values ("to process"), not the member names.
    status = Column(
        Enum(DocumentStatus, values_callable=lambda members: [m.value for m in members], native_enum=False),
        index=True,
    )
    page_break = Column(String)
    occurrence_publication = Column(Integer, default=0)
    activity = Column(JSON, default=list)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class PageModel(Base):
    __tablename__ = "pages"
    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String, index=True)
    number = Column(Integer)
    lines = Column(JSON)
    created_at = Column(DateTime)


class BookMarkerModel(Base):
    __tablename__ = "book_markers"
    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(String, unique=True)
    page_break = Column(String)


class DocumentRepository:
    """
    Persistence boundary for the ingestion pipeline. Implementations can target
    SQLite/Postgres or any other backing store. Errors raised by the backing
    store propagate unchanged to the caller.
    """

    # Document operations
    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        raise NotImplementedError

    def save_document(self, document: DocumentRecord) -> None:
        raise NotImplementedError

    def find_pending(self) -> List[DocumentRecord]:
        raise NotImplementedError

    def claim_document(self, document_id: str) -> bool:
        """Move a document from ToProcess to InProcess only if it is still ToProcess."""
        raise NotImplementedError

    def set_status(self, document_id: str, status: DocumentStatus) -> None:
        self.update_document(document_id, status=status)

    def update_document(
        self,
        document_id: str,
        status: Optional[DocumentStatus] = None,
        page_break: Optional[str] = None,
        occurrence_publication: Optional[int] = None,
    ) -> None:
        raise NotImplementedError

    def append_activity(self, document_id: str, entry: ActivityEntry) -> None:
        raise NotImplementedError

    # Pages
    def insert_page(self, page: PageRecord) -> None:
        self.insert_pages([page])

    def insert_pages(self, pages: Iterable[PageRecord]) -> None:
        raise NotImplementedError

    def list_pages(self, document_id: str) -> List[PageRecord]:
        raise NotImplementedError

    # Marker catalog
    def list_markers(self) -> List[BookMarker]:
        raise NotImplementedError

    def save_marker(self, marker: BookMarker) -> None:
        raise NotImplementedError


class InMemoryDocumentRepository(DocumentRepository):
    """
    In-memory store for local runs and tests. Keeps copies of dataclasses to
    avoid cross-mutation between calls.
    """

    def __init__(self):
        self.documents: Dict[str, DocumentRecord] = {}
        self.pages: List[PageRecord] = []
        self.markers: Dict[str, BookMarker] = {}

    def _clone(self, obj):
        return deepcopy(obj)

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        document = self.documents.get(document_id)
        return self._clone(document) if document else None

    def save_document(self, document: DocumentRecord) -> None:
        self.documents[document.id] = self._clone(document)

    def find_pending(self) -> List[DocumentRecord]:
        return [self._clone(d) for d in self.documents.values() if d.status == DocumentStatus.TO_PROCESS]

    def claim_document(self, document_id: str) -> bool:
        document = self.documents.get(document_id)
        if not document or document.status != DocumentStatus.TO_PROCESS:
            return False
        document.status = DocumentStatus.IN_PROCESS
        document.updated_at = datetime.utcnow()
        return True

    def update_document(
        self,
        document_id: str,
        status: Optional[DocumentStatus] = None,
        page_break: Optional[str] = None,
        occurrence_publication: Optional[int] = None,
    ) -> None:
        document = self.documents.get(document_id)
        if not document:
            return
        if status is not None:
            document.status = status
        if page_break is not None:
            document.page_break = page_break
        if occurrence_publication is not None:
            document.occurrence_publication = occurrence_publication
        document.updated_at = datetime.utcnow()

    def append_activity(self, document_id: str, entry: ActivityEntry) -> None:
        document = self.documents.get(document_id)
        if not document:
            return
        document.activity.append(self._clone(entry))

    def insert_pages(self, pages: Iterable[PageRecord]) -> None:
        for page in pages:
            self.pages.append(self._clone(page))

    def list_pages(self, document_id: str) -> List[PageRecord]:
        pages = [self._clone(p) for p in self.pages if p.document_id == document_id]
        return sorted(pages, key=lambda p: p.number)

    def list_markers(self) -> List[BookMarker]:
        return [self._clone(m) for m in self.markers.values()]

    def save_marker(self, marker: BookMarker) -> None:
        self.markers[marker.book_id] = self._clone(marker)


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or url.database in (None, "", ":memory:"):
        return
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)


class SqlAlchemyDocumentRepository(DocumentRepository):
    """
    SQL-backed repository using SQLAlchemy. Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str):
        _ensure_sqlite_dir(database_url)
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()

    # region Document operations
    def _to_record(self, model: DocumentModel) -> DocumentRecord:
        return DocumentRecord(
            id=model.id,
            filename=model.filename,
            status=model.status,
            page_break=model.page_break,
            occurrence_publication=int(model.occurrence_publication or 0),
            activity=[ActivityEntry.from_dict(item) for item in (model.activity or [])],
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        with self._session() as session:
            model = session.get(DocumentModel, document_id)
            if not model:
                return None
            return self._to_record(model)

    def save_document(self, document: DocumentRecord) -> None:
        with self._session() as session:
            model = DocumentModel(
                id=document.id,
                filename=document.filename,
                status=document.status,
                page_break=document.page_break,
                occurrence_publication=document.occurrence_publication,
                activity=[entry.to_dict() for entry in document.activity],
                created_at=document.created_at,
                updated_at=document.updated_at,
            )
            session.merge(model)
            session.commit()

    def find_pending(self) -> List[DocumentRecord]:
        with self._session() as session:
            stmt = (
                select(DocumentModel)
                .where(DocumentModel.status == DocumentStatus.TO_PROCESS)
                .order_by(DocumentModel.created_at, DocumentModel.id)
            )
            models = session.execute(stmt).scalars().all()
            return [self._to_record(m) for m in models]

    def claim_document(self, document_id: str) -> bool:
        with self._session() as session:
            stmt = (
                update(DocumentModel)
                .where(DocumentModel.id == document_id, DocumentModel.status == DocumentStatus.TO_PROCESS)
                .values(status=DocumentStatus.IN_PROCESS, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def update_document(
        self,
        document_id: str,
        status: Optional[DocumentStatus] = None,
        page_break: Optional[str] = None,
        occurrence_publication: Optional[int] = None,
    ) -> None:
        with self._session() as session:
            stmt = update(DocumentModel).where(DocumentModel.id == document_id)
            values = {}
            if status is not None:
                values["status"] = status
            if page_break is not None:
                values["page_break"] = page_break
            if occurrence_publication is not None:
                values["occurrence_publication"] = occurrence_publication
            if values:
                values["updated_at"] = datetime.utcnow()
                session.execute(stmt.values(**values).execution_options(synchronize_session=False))
                session.commit()

    def append_activity(self, document_id: str, entry: ActivityEntry) -> None:
        with self._session() as session:
            model = session.get(DocumentModel, document_id, with_for_update=True)
            if not model:
                return
            # Reassign so the JSON column is flagged as modified.
            model.activity = list(model.activity or []) + [entry.to_dict()]
            session.commit()

    # endregion

    # region Pages
    def insert_pages(self, pages: Iterable[PageRecord]) -> None:
        with self._session() as session:
            for page in pages:
                session.add(
                    PageModel(
                        document_id=page.document_id,
                        number=page.number,
                        lines=list(page.lines),
                        created_at=page.created_at,
                    )
                )
            session.commit()

    def list_pages(self, document_id: str) -> List[PageRecord]:
        with self._session() as session:
            stmt = (
                select(PageModel)
                .where(PageModel.document_id == document_id)
                .order_by(PageModel.number, PageModel.id)
            )
            models = session.execute(stmt).scalars().all()
            return [
                PageRecord(
                    document_id=m.document_id,
                    number=int(m.number),
                    lines=list(m.lines or []),
                    created_at=m.created_at,
                )
                for m in models
            ]

    # endregion

    # region Marker catalog
    def list_markers(self) -> List[BookMarker]:
        with self._session() as session:
            models = session.execute(select(BookMarkerModel).order_by(BookMarkerModel.id)).scalars().all()
            return [BookMarker(book_id=m.book_id, page_break=m.page_break) for m in models]

    def save_marker(self, marker: BookMarker) -> None:
        with self._session() as session:
            stmt = select(BookMarkerModel).where(BookMarkerModel.book_id == marker.book_id)
            model = session.execute(stmt).scalar_one_or_none()
            if model is None:
                session.add(BookMarkerModel(book_id=marker.book_id, page_break=marker.page_break))
            else:
                model.page_break = marker.page_break
            session.commit()

    # endregion
