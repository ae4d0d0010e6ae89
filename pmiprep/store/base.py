"""
Document store capability.

The platform's backend is a generic multi-tenant document store. Everything
in pmiprep talks to it through this small protocol; concrete backends live
next to it (memory, sql, appwrite) and are wrapped by the retry/fallback
policy in ``pmiprep.store.policy``.

Documents are plain dicts. ``$id`` holds the document ID, ``$createdAt`` and
``$updatedAt`` are maintained by the store.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Protocol, runtime_checkable


class Collection(str, Enum):
    """Logical collection names."""

    QUESTIONS = "questions"
    QUIZ_ATTEMPTS = "quiz-attempts"
    USER_PROGRESS = "user-progress"
    ENROLLMENTS = "enrollments"
    UNENROLLMENT_REQUESTS = "unenrollment-requests"
    RESOURCES = "resources"
    RESOURCE_DOWNLOADS = "resource-downloads"
    PROFILES = "profiles"


@dataclass(frozen=True)
class Filter:
    """A single field predicate, AND-ed with the others in a query."""

    field: str
    op: Literal["equal", "in"]
    value: Any

    def matches(self, document: dict[str, Any]) -> bool:
        actual = document.get(self.field)
        if self.op == "equal":
            if isinstance(actual, list):
                return self.value in actual
            return actual == self.value
        # "in": any of the values
        values = list(self.value)
        if isinstance(actual, list):
            return any(v in actual for v in values)
        return actual in values


def equal(field: str, value: Any) -> Filter:
    if isinstance(value, Enum):
        value = value.value
    return Filter(field, "equal", value)


def is_in(field: str, values: Sequence[Any]) -> Filter:
    return Filter(field, "in", tuple(v.value if isinstance(v, Enum) else v for v in values))


def user_permissions(user_id: str) -> list[str]:
    """Read/update/delete for the owning user only."""
    role = f'user:{user_id}'
    return [f'read("{role}")', f'update("{role}")', f'delete("{role}")']


def collection_name(collection: Collection | str) -> str:
    return collection.value if isinstance(collection, Collection) else collection


@runtime_checkable
class DocumentStore(Protocol):
    """CRUD over named collections plus file storage."""

    def create_document(
        self,
        collection: Collection | str,
        fields: dict[str, Any],
        document_id: str | None = None,
        permissions: list[str] | None = None,
    ) -> dict[str, Any]: ...

    def get_document(self, collection: Collection | str, document_id: str) -> dict[str, Any]: ...

    def update_document(
        self, collection: Collection | str, document_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]: ...

    def list_documents(
        self,
        collection: Collection | str,
        filters: Sequence[Filter] = (),
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]: ...

    def delete_document(self, collection: Collection | str, document_id: str) -> None: ...

    def upload_file(self, data: bytes, filename: str) -> str: ...

    def download_url(self, file_id: str) -> str: ...


def apply_query(
    documents: list[dict[str, Any]],
    filters: Sequence[Filter] = (),
    limit: int | None = None,
    order_by: str | None = None,
    descending: bool = False,
) -> list[dict[str, Any]]:
    """Filter, order and limit documents in process (local backends)."""
    result = [d for d in documents if all(f.matches(d) for f in filters)]
    if order_by:
        result.sort(key=lambda d: (d.get(order_by) is None, d.get(order_by)), reverse=descending)
    if limit is not None:
        result = result[:limit]
    return result
