"""Service deciding who may act as a teacher, and keeping user profiles in sync."""

from __future__ import annotations

import logging

from classquiz.config import Settings, normalize_email
from classquiz.constants.quiz_constants import TEACHER_EMAILS, USER_PROFILES
from classquiz.core.models import UserProfile, format_timestamp, utc_now
from classquiz.store.document_store import DocumentStore, DocumentStoreError

logger = logging.getLogger(__name__)


class TeacherAccess:
    """Teachers come from configuration or from the ``teacherEmails`` allow-list."""

    def __init__(self, store: DocumentStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings

    def is_primary_teacher(self, email: str) -> bool:
        normalized = normalize_email(email)
        return bool(normalized) and normalized == self._settings.primary_teacher_email

    def is_teacher(self, email: str) -> bool:
        normalized = normalize_email(email)
        if not normalized:
            return False
        if normalized in self._settings.teacher_emails:
            return True
        try:
            return self._store.get(TEACHER_EMAILS, normalized) is not None
        except DocumentStoreError as exc:
            logger.warning("Could not read teacher allow-list for %s: %s", normalized, exc)
            return False

    def teacher_emails(self) -> list[str]:
        snapshot = self._store.query(TEACHER_EMAILS)
        return sorted(email for email in (normalize_email(doc.id) for doc in snapshot.docs) if email)

    def add_teacher_email(self, email: str, added_by: UserProfile) -> str:
        normalized = normalize_email(email)
        if not normalized or "@" not in normalized:
            raise ValueError("Enter a valid teacher email.")
        self._store.set(
            TEACHER_EMAILS,
            normalized,
            {"email": normalized, "addedAt": format_timestamp(utc_now()), "addedBy": added_by.uid},
        )
        logger.info("Granted teacher access to %s", normalized)
        return normalized

    def remove_teacher_email(self, email: str) -> None:
        normalized = normalize_email(email)
        self._store.delete(TEACHER_EMAILS, normalized)
        logger.info("Revoked teacher access for %s", normalized)

    def upsert_user_profile(self, user: UserProfile) -> bool:
        """Merge the signed-in user's profile; returns False when the write failed."""
        if not user.uid:
            return False
        try:
            self._store.set(USER_PROFILES, user.uid, user.to_document(), merge=True)
        except DocumentStoreError as exc:
            logger.error("Failed to sync user profile %s: %s", user.uid, exc)
            return False
        return True
