"""
Appwrite REST client implementing the DocumentStore protocol.

Talks to the Databases and Storage REST endpoints directly:
- Documents: /databases/{db}/collections/{collection}/documents
- Files: /storage/buckets/{bucket}/files

Hardening:
- Session-level retry with exponential backoff on 5xx for idempotent methods
- HTTP status mapped onto the pmi-prep error taxonomy
- Connection failures surface as TransientRemoteError
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import requests
from loguru import logger
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from pmiprep.core.errors import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    TransientRemoteError,
    ValidationError,
)
from pmiprep.store.base import Collection, Filter, collection_name

RETRY_STATUS_CODES = [500, 502, 503, 504]
# POST and PATCH are not retried at the session level; a lost response could mean a duplicate write
RETRY_METHODS = ["GET", "PUT", "DELETE"]
MAX_PAGE_SIZE = 100


def build_queries(
    filters: Sequence[Filter] = (),
    limit: int | None = None,
    order_by: str | None = None,
    descending: bool = False,
    offset: int = 0,
) -> list[str]:
    """Encode filters as Appwrite JSON query strings."""
    queries: list[str] = []
    for f in filters:
        values = list(f.value) if f.op == "in" else [f.value]
        queries.append(json.dumps({"method": "equal", "attribute": f.field, "values": values}))
    if order_by:
        method = "orderDesc" if descending else "orderAsc"
        queries.append(json.dumps({"method": method, "attribute": order_by}))
    if limit is not None:
        queries.append(json.dumps({"method": "limit", "values": [limit]}))
    if offset:
        queries.append(json.dumps({"method": "offset", "values": [offset]}))
    return queries


class AppwriteStore:
    """
    DocumentStore backed by an Appwrite project.

    Collection names are translated through ``collection_ids`` so deployments
    can use generated collection IDs.
    """

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        database_id: str,
        api_key: str | None = None,
        bucket_id: str = "",
        collection_ids: dict[str, str] | None = None,
        timeout: float = 30.0,
        retries: int = 3,
        backoff_factor: float = 0.5,
        session: requests.Session | None = None,
    ) -> None:
        if not endpoint or not project_id or not database_id:
            raise ConfigurationError(
                "Appwrite endpoint, project ID and database ID must all be configured"
            )
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.database_id = database_id
        self.bucket_id = bucket_id
        self.collection_ids = collection_ids or {}
        self.timeout = timeout

        self.session = session or requests.Session()
        retry_strategy = Retry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=RETRY_STATUS_CODES,
            allowed_methods=RETRY_METHODS,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)
        self.session.headers.update({"X-Appwrite-Project": project_id})
        if api_key:
            self.session.headers.update({"X-Appwrite-Key": api_key})

        logger.debug(
            "Initialized Appwrite store: endpoint={}, project={}, database={}, retries={}",
            self.endpoint,
            project_id,
            database_id,
            retries,
        )

    # ========================================
    # Transport
    # ========================================

    def _documents_path(self, collection: Collection | str) -> str:
        name = collection_name(collection)
        collection_id = self.collection_ids.get(name, name)
        return f"/databases/{self.database_id}/collections/{collection_id}/documents"

    def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        url = f"{self.endpoint}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("Appwrite {} failed: {}", operation, exc)
            raise TransientRemoteError(str(exc), operation=operation) from exc

        if response.status_code >= 400:
            self._raise_for_status(response, operation)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _raise_for_status(response: requests.Response, operation: str) -> None:
        status = response.status_code
        try:
            message = response.json().get("message", response.text)
        except ValueError:
            message = response.text
        logger.debug("Appwrite {} returned {}: {}", operation, status, message)

        if status == 404:
            raise NotFoundError(message)
        if status in (401, 403):
            raise AuthorizationError(message)
        if status == 409:
            raise ConflictError(message)
        if status == 429 or status >= 500:
            raise TransientRemoteError(message, operation=operation, status_code=status)
        raise ValidationError(message)

    @staticmethod
    def _clean(fields: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in fields.items() if not k.startswith("$")}

    # ========================================
    # Documents
    # ========================================

    def create_document(
        self,
        collection: Collection | str,
        fields: dict[str, Any],
        document_id: str | None = None,
        permissions: list[str] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "documentId": document_id or "unique()",
            "data": self._clean(fields),
        }
        if permissions:
            body["permissions"] = permissions
        return self._request("POST", self._documents_path(collection), "create_document", json=body)

    def get_document(self, collection: Collection | str, document_id: str) -> dict[str, Any]:
        try:
            return self._request(
                "GET", f"{self._documents_path(collection)}/{document_id}", "get_document"
            )
        except NotFoundError as exc:
            raise NotFoundError(
                str(exc), collection=collection_name(collection), key=document_id
            ) from exc

    def update_document(
        self, collection: Collection | str, document_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        return self._request(
            "PATCH",
            f"{self._documents_path(collection)}/{document_id}",
            "update_document",
            json={"data": self._clean(fields)},
        )

    def list_documents(
        self,
        collection: Collection | str,
        filters: Sequence[Filter] = (),
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """List matching documents, following offset pages until ``limit`` or the last page."""
        documents: list[dict[str, Any]] = []
        while limit is None or len(documents) < limit:
            wanted = MAX_PAGE_SIZE if limit is None else min(limit - len(documents), MAX_PAGE_SIZE)
            queries = build_queries(filters, wanted, order_by, descending, offset=len(documents))
            result = self._request(
                "GET",
                self._documents_path(collection),
                "list_documents",
                params={"queries[]": queries},
            )
            page = (result or {}).get("documents", [])
            documents.extend(page)
            if len(page) < wanted:
                break
        logger.debug("Appwrite listed {} documents from {}", len(documents), collection_name(collection))
        return documents

    def delete_document(self, collection: Collection | str, document_id: str) -> None:
        self._request("DELETE", f"{self._documents_path(collection)}/{document_id}", "delete_document")

    # ========================================
    # Storage
    # ========================================

    def _require_bucket(self) -> str:
        if not self.bucket_id:
            raise ConfigurationError("Appwrite storage bucket ID is not configured")
        return self.bucket_id

    def upload_file(self, data: bytes, filename: str) -> str:
        bucket = self._require_bucket()
        result = self._request(
            "POST",
            f"/storage/buckets/{bucket}/files",
            "upload_file",
            data={"fileId": "unique()"},
            files={"file": (filename, data)},
        )
        file_id = result["$id"]
        logger.info("Uploaded {} ({} bytes) as {}", filename, len(data), file_id)
        return file_id

    def download_url(self, file_id: str) -> str:
        bucket = self._require_bucket()
        return (
            f"{self.endpoint}/storage/buckets/{bucket}/files/{file_id}/download"
            f"?project={self.project_id}"
        )
