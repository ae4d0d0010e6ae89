"""Build the configured DocumentStore."""

from __future__ import annotations

from loguru import logger

from pmiprep.config import Settings, get_settings
from pmiprep.core.errors import ConfigurationError
from pmiprep.store.appwrite import AppwriteStore
from pmiprep.store.base import DocumentStore
from pmiprep.store.memory import InMemoryDocumentStore
from pmiprep.store.policy import ResilientStore
from pmiprep.store.sql import SqlDocumentStore


def build_store(settings: Settings | None = None) -> DocumentStore:
    """
    Construct the store selected by ``store_backend``, wrapped in the retry policy.

    Raises:
        ConfigurationError: If the selected backend is missing required settings
    """
    settings = settings or get_settings()
    backend = settings.store_backend

    if backend == "memory":
        logger.info("Using in-memory document store")
        return ResilientStore(InMemoryDocumentStore(), retries=0)

    if backend == "sql":
        if not settings.sql_database_url:
            raise ConfigurationError("sql_database_url must be set for the sql backend")
        logger.info("Using SQL document store")
        return ResilientStore(SqlDocumentStore(settings.sql_database_url), retries=0)

    if backend == "appwrite":
        missing = [
            name
            for name in ("appwrite_endpoint", "appwrite_project_id", "appwrite_database_id")
            if not getattr(settings, name)
        ]
        if missing:
            raise ConfigurationError(f"Appwrite backend selected but not configured: {', '.join(missing)}")
        primary = AppwriteStore(
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id,
            database_id=settings.appwrite_database_id,
            api_key=settings.appwrite_api_key,
            bucket_id=settings.appwrite_bucket_id,
            collection_ids=settings.collection_ids(),
            timeout=settings.http_timeout_seconds,
            retries=settings.http_retries,
            backoff_factor=settings.http_backoff_factor,
        )
        fallback = SqlDocumentStore(settings.sql_database_url) if settings.store_fallback_to_sql else None
        logger.info("Using Appwrite document store (fallback={})", "sql" if fallback else "none")
        return ResilientStore(primary, fallback=fallback, retries=1)

    raise ConfigurationError(f"Unknown store backend: {backend}")
