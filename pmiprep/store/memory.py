"""In-process document store for tests and throwaway sessions."""

from __future__ import annotations

import copy
import uuid
from collections.abc import Sequence
from typing import Any

from loguru import logger

from pmiprep.core.errors import ConflictError, NotFoundError
from pmiprep.core.models import format_datetime, utcnow
from pmiprep.store.base import Collection, Filter, apply_query, collection_name


class InMemoryDocumentStore:
    """Dict-backed DocumentStore. Returned documents are copies."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._files: dict[str, tuple[str, bytes]] = {}

    def _bucket(self, collection: Collection | str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection_name(collection), {})

    def create_document(
        self,
        collection: Collection | str,
        fields: dict[str, Any],
        document_id: str | None = None,
        permissions: list[str] | None = None,
    ) -> dict[str, Any]:
        bucket = self._bucket(collection)
        doc_id = document_id or uuid.uuid4().hex
        if doc_id in bucket:
            raise ConflictError(
                f"Document {doc_id} already exists in {collection_name(collection)}",
                collection=collection_name(collection),
                key=doc_id,
            )
        now = format_datetime(utcnow())
        document = copy.deepcopy({k: v for k, v in fields.items() if not k.startswith("$")})
        document.update({"$id": doc_id, "$createdAt": now, "$updatedAt": now})
        if permissions:
            document["$permissions"] = list(permissions)
        bucket[doc_id] = document
        logger.debug("memory: created {}/{}", collection_name(collection), doc_id)
        return copy.deepcopy(document)

    def get_document(self, collection: Collection | str, document_id: str) -> dict[str, Any]:
        try:
            return copy.deepcopy(self._bucket(collection)[document_id])
        except KeyError:
            raise NotFoundError(
                f"Document {document_id} not found in {collection_name(collection)}",
                collection=collection_name(collection),
                key=document_id,
            ) from None

    def update_document(
        self, collection: Collection | str, document_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        bucket = self._bucket(collection)
        if document_id not in bucket:
            raise NotFoundError(
                f"Document {document_id} not found in {collection_name(collection)}",
                collection=collection_name(collection),
                key=document_id,
            )
        document = bucket[document_id]
        document.update(copy.deepcopy({k: v for k, v in fields.items() if not k.startswith("$")}))
        document["$updatedAt"] = format_datetime(utcnow())
        return copy.deepcopy(document)

    def list_documents(
        self,
        collection: Collection | str,
        filters: Sequence[Filter] = (),
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        documents = list(self._bucket(collection).values())
        return copy.deepcopy(apply_query(documents, filters, limit, order_by, descending))

    def delete_document(self, collection: Collection | str, document_id: str) -> None:
        bucket = self._bucket(collection)
        if bucket.pop(document_id, None) is None:
            raise NotFoundError(
                f"Document {document_id} not found in {collection_name(collection)}",
                collection=collection_name(collection),
                key=document_id,
            )

    def upload_file(self, data: bytes, filename: str) -> str:
        file_id = uuid.uuid4().hex
        self._files[file_id] = (filename, bytes(data))
        return file_id

    def download_url(self, file_id: str) -> str:
        if file_id not in self._files:
            raise NotFoundError(f"File {file_id} not found", collection="files", key=file_id)
        return f"memory://files/{file_id}"
