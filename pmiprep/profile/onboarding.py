"""Four-step onboarding profile, saved step by step."""

from __future__ import annotations

from typing import Any

from loguru import logger

from pmiprep.core.errors import NotFoundError, ValidationError
from pmiprep.core.models import PROFILE_FIELDS, UserProfile, format_datetime, utcnow
from pmiprep.store.base import Collection, DocumentStore, equal, user_permissions

ONBOARDING_STEPS = 4


class ProfileService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def _find(self, user_id: str) -> dict[str, Any] | None:
        documents = self.store.list_documents(Collection.PROFILES, [equal("userId", user_id)], limit=1)
        return documents[0] if documents else None

    def get_profile(self, user_id: str) -> UserProfile:
        document = self._find(user_id)
        if document is None:
            raise NotFoundError(
                f"No profile for user {user_id}", collection=Collection.PROFILES.value, key=user_id
            )
        return UserProfile.from_dict(document)

    @staticmethod
    def _to_fields(data: dict[str, Any]) -> dict[str, Any]:
        """Accept either attribute names or document field names."""
        known = set(PROFILE_FIELDS.values())
        fields: dict[str, Any] = {}
        for key, value in data.items():
            if key in PROFILE_FIELDS:
                fields[PROFILE_FIELDS[key]] = value
            elif key in known:
                fields[key] = value
            else:
                raise ValidationError(f"Unknown profile field: {key}", field=key)
        return fields

    def _upsert(self, user_id: str, fields: dict[str, Any]) -> UserProfile:
        fields = {**fields, "userId": user_id, "updatedAt": format_datetime(utcnow())}
        existing = self._find(user_id)
        if existing is not None:
            document = self.store.update_document(Collection.PROFILES, existing["$id"], fields)
        else:
            document = self.store.create_document(
                Collection.PROFILES, fields, permissions=user_permissions(user_id)
            )
        return UserProfile.from_dict(document)

    def save_step(self, user_id: str, step: int, data: dict[str, Any]) -> UserProfile:
        if not 1 <= step <= ONBOARDING_STEPS:
            raise ValidationError(f"Step must be between 1 and {ONBOARDING_STEPS}", field="currentStep")
        fields = self._to_fields(data)
        fields.update({"profileCompleted": False, "currentStep": step})
        logger.debug("Saving onboarding step {} for {}", step, user_id)
        return self._upsert(user_id, fields)

    def complete(self, user_id: str, data: dict[str, Any]) -> UserProfile:
        fields = self._to_fields(data)
        fields.update({"profileCompleted": True, "currentStep": ONBOARDING_STEPS})
        profile = self._upsert(user_id, fields)
        logger.info("Profile completed for {}", user_id)
        return profile
