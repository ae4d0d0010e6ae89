"""Document store capability and its backends."""

from pmiprep.store.base import Collection, DocumentStore, Filter, equal, is_in, user_permissions
from pmiprep.store.factory import build_store
from pmiprep.store.memory import InMemoryDocumentStore
from pmiprep.store.policy import ResilientStore

__all__ = [
    "Collection",
    "DocumentStore",
    "Filter",
    "InMemoryDocumentStore",
    "ResilientStore",
    "build_store",
    "equal",
    "is_in",
    "user_permissions",
]
