"""
SQLAlchemy-backed document store.

Keeps documents as JSON blobs in a single ``documents`` table keyed by
(collection, id) and files in ``stored_files``. Used for local/offline
operation and as the read fallback when the remote backend is down.
Filtering happens in process; the collections involved are small.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import JSON, DateTime, LargeBinary, String, create_engine, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from pmiprep.core.errors import ConflictError, NotFoundError, TransientRemoteError
from pmiprep.core.models import format_datetime, parse_datetime, utcnow
from pmiprep.store.base import Collection, Filter, apply_query, collection_name


class Base(DeclarativeBase):
    pass


class StoredDocument(Base):
    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    permissions: Mapped[list | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def as_document(self) -> dict[str, Any]:
        document = dict(self.data)
        document["$id"] = self.id
        # SQLite hands back naive datetimes
        document["$createdAt"] = format_datetime(parse_datetime(self.created_at))
        document["$updatedAt"] = format_datetime(parse_datetime(self.updated_at))
        return document


class StoredFile(Base):
    __tablename__ = "stored_files"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    filename: Mapped[str] = mapped_column(String(255))
    content: Mapped[bytes] = mapped_column(LargeBinary)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


def _strip_meta(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if not k.startswith("$")}


class SqlDocumentStore:
    """DocumentStore over any SQLAlchemy URL (SQLite by default)."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        url = make_url(database_url)
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
        self._session_factory = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        Base.metadata.create_all(bind=self.engine)
        logger.debug("SQL document store ready: {}", url.render_as_string(hide_password=True))

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(f"Duplicate document: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise TransientRemoteError(f"Database error: {exc}", operation="sql") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _require(self, session: Session, collection: str, document_id: str) -> StoredDocument:
        row = session.get(StoredDocument, (collection, document_id))
        if row is None:
            raise NotFoundError(
                f"Document {document_id} not found in {collection}",
                collection=collection,
                key=document_id,
            )
        return row

    def create_document(
        self,
        collection: Collection | str,
        fields: dict[str, Any],
        document_id: str | None = None,
        permissions: list[str] | None = None,
    ) -> dict[str, Any]:
        name = collection_name(collection)
        with self.session_scope() as session:
            row = StoredDocument(
                collection=name,
                id=document_id or uuid.uuid4().hex,
                data=_strip_meta(fields),
                permissions=permissions,
            )
            session.add(row)
            session.flush()
            return row.as_document()

    def get_document(self, collection: Collection | str, document_id: str) -> dict[str, Any]:
        with self.session_scope() as session:
            return self._require(session, collection_name(collection), document_id).as_document()

    def update_document(
        self, collection: Collection | str, document_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        with self.session_scope() as session:
            row = self._require(session, collection_name(collection), document_id)
            # Reassign so the JSON column is marked dirty
            row.data = {**row.data, **_strip_meta(fields)}
            row.updated_at = utcnow()
            session.flush()
            return row.as_document()

    def list_documents(
        self,
        collection: Collection | str,
        filters: Sequence[Filter] = (),
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        with self.session_scope() as session:
            rows = session.scalars(
                select(StoredDocument)
                .where(StoredDocument.collection == collection_name(collection))
                .order_by(StoredDocument.created_at)
            ).all()
            documents = [row.as_document() for row in rows]
        return apply_query(documents, filters, limit, order_by, descending)

    def delete_document(self, collection: Collection | str, document_id: str) -> None:
        with self.session_scope() as session:
            session.delete(self._require(session, collection_name(collection), document_id))

    def upload_file(self, data: bytes, filename: str) -> str:
        file_id = uuid.uuid4().hex
        with self.session_scope() as session:
            session.add(StoredFile(id=file_id, filename=filename, content=data))
        logger.info("Stored file {} ({} bytes) as {}", filename, len(data), file_id)
        return file_id

    def download_url(self, file_id: str) -> str:
        with self.session_scope() as session:
            if session.get(StoredFile, file_id) is None:
                raise NotFoundError(f"File {file_id} not found", collection="files", key=file_id)
        return f"sqlfile://{file_id}"

    def read_file(self, file_id: str) -> bytes:
        with self.session_scope() as session:
            row = session.get(StoredFile, file_id)
            if row is None:
                raise NotFoundError(f"File {file_id} not found", collection="files", key=file_id)
            return row.content
