"""
Admin capability resolution.

Two sources can grant admin: the account label list and the ``isAdmin``
flag on the user's profile document. Either one grants. The label is
checked first and the profile lookup is skipped when it already grants;
a profile that is missing or cannot be read counts as not admin.
"""

from __future__ import annotations

from loguru import logger

from pmiprep.core.errors import AuthorizationError, NotFoundError, TransientRemoteError
from pmiprep.core.models import User
from pmiprep.store.base import Collection, DocumentStore, equal


class AdminResolver:
    """Single place that answers ``is_admin(user)``."""

    def __init__(self, store: DocumentStore | None = None, label: str = "admin") -> None:
        self.store = store
        self.label = label

    def has_admin_label(self, user: User) -> bool:
        return self.label in user.labels

    def has_admin_flag(self, user: User) -> bool:
        if self.store is None:
            return False
        try:
            documents = self.store.list_documents(
                Collection.PROFILES, [equal("userId", user.id)], limit=1
            )
        except (NotFoundError, TransientRemoteError) as exc:
            logger.warning("Profile lookup for admin check failed for {}: {}", user.id, exc)
            return False
        return bool(documents and documents[0].get("isAdmin"))

    def is_admin(self, user: User | None) -> bool:
        if user is None:
            return False
        return self.has_admin_label(user) or self.has_admin_flag(user)

    def require_admin(self, user: User | None) -> User:
        if user is None or not self.is_admin(user):
            raise AuthorizationError("Admin capability required")
        return user
