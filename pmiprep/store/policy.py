"""
Retry/fallback policy around a DocumentStore.

One wrapper replaces per-call try/refetch blocks:
- TransientRemoteError is retried (idempotent calls only)
- Reads that still fail go to the fallback store when one is configured
- Writes propagate the error to the caller
- NotFoundError, ValidationError and AuthorizationError pass straight through
- A keyed create that conflicts on a retry means the first try landed

Reads that guard a write (duplicate checks, pending-request lookups,
read-modify-write) must not be answered by a possibly stale fallback;
they go through ``strict_reads``.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from loguru import logger

from pmiprep.core.errors import ConflictError, PrepError, TransientRemoteError
from pmiprep.store.base import Collection, DocumentStore, Filter

T = TypeVar("T")


class ResilientStore:
    """DocumentStore that applies one retry/fallback policy to every call."""

    def __init__(
        self,
        primary: DocumentStore,
        fallback: DocumentStore | None = None,
        retries: int = 1,
        backoff_seconds: float = 0.0,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.retries = max(0, retries)
        self.backoff_seconds = backoff_seconds

    @property
    def strict(self) -> ResilientStore:
        """Same primary and retries, no fallback: failed reads raise."""
        return ResilientStore(self.primary, retries=self.retries, backoff_seconds=self.backoff_seconds)

    def _call(self, operation: str, func: Callable[[], T], attempts: int) -> T:
        last_error: TransientRemoteError | None = None
        for attempt in range(1, attempts + 1):
            try:
                return func()
            except TransientRemoteError as exc:
                last_error = exc
            except PrepError:
                raise
            except Exception as exc:
                # Unknown transport failure from a backend client
                last_error = TransientRemoteError(str(exc), operation=operation)
                last_error.__cause__ = exc
            if attempt < attempts:
                logger.debug("Retrying {} after transient failure ({}/{})", operation, attempt, attempts)
                if self.backoff_seconds:
                    time.sleep(self.backoff_seconds * attempt)
        assert last_error is not None
        raise last_error

    def _read(self, operation: str, primary: Callable[[], T], fallback: Callable[[DocumentStore], T]) -> T:
        try:
            return self._call(operation, primary, self.retries + 1)
        except TransientRemoteError as exc:
            if self.fallback is None:
                raise
            logger.warning("{} failed on primary store, reading from fallback: {}", operation, exc)
            return fallback(self.fallback)

    def _write(self, operation: str, func: Callable[[], T], idempotent: bool) -> T:
        attempts = self.retries + 1 if idempotent else 1
        try:
            return self._call(operation, func, attempts)
        except TransientRemoteError as exc:
            logger.error("{} failed: {}", operation, exc)
            raise

    # ========================================
    # DocumentStore
    # ========================================

    def create_document(
        self,
        collection: Collection | str,
        fields: dict[str, Any],
        document_id: str | None = None,
        permissions: list[str] | None = None,
    ) -> dict[str, Any]:
        if document_id is None:
            return self._write(
                "create_document",
                lambda: self.primary.create_document(collection, fields, document_id, permissions),
                idempotent=False,
            )

        tries = 0

        def create() -> dict[str, Any]:
            nonlocal tries
            tries += 1
            try:
                return self.primary.create_document(collection, fields, document_id, permissions)
            except ConflictError:
                if tries == 1:
                    raise
                logger.info("create_document {} already stored by an earlier try", document_id)
                return self.primary.get_document(collection, document_id)

        return self._write("create_document", create, idempotent=True)

    def get_document(self, collection: Collection | str, document_id: str) -> dict[str, Any]:
        return self._read(
            "get_document",
            lambda: self.primary.get_document(collection, document_id),
            lambda store: store.get_document(collection, document_id),
        )

    def update_document(
        self, collection: Collection | str, document_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        return self._write(
            "update_document",
            lambda: self.primary.update_document(collection, document_id, fields),
            idempotent=True,
        )

    def list_documents(
        self,
        collection: Collection | str,
        filters: Sequence[Filter] = (),
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        return self._read(
            "list_documents",
            lambda: self.primary.list_documents(collection, filters, limit, order_by, descending),
            lambda store: store.list_documents(collection, filters, limit, order_by, descending),
        )

    def delete_document(self, collection: Collection | str, document_id: str) -> None:
        self._write(
            "delete_document",
            lambda: self.primary.delete_document(collection, document_id),
            idempotent=True,
        )

    def upload_file(self, data: bytes, filename: str) -> str:
        return self._write("upload_file", lambda: self.primary.upload_file(data, filename), idempotent=False)

    def download_url(self, file_id: str) -> str:
        return self._read(
            "download_url",
            lambda: self.primary.download_url(file_id),
            lambda store: store.download_url(file_id),
        )


def strict_reads(store: DocumentStore) -> DocumentStore:
    """Return a view of ``store`` whose reads never come from a fallback."""
    if isinstance(store, ResilientStore):
        return store.strict
    return store
