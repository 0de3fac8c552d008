"""Service for classes, rosters and the legacy-quiz migration."""

from __future__ import annotations

from collections.abc import Iterable
import logging

from classquiz.config import normalize_email
from classquiz.constants.quiz_constants import (
    CLASS_ENROLLMENTS,
    CLASSES,
    DEFAULT_CLASS_NAME,
    QUIZZES,
    USER_PROFILES,
)
from classquiz.core.models import (
    ClassEnrollment,
    ClassRoom,
    Quiz,
    UserProfile,
    format_timestamp,
    utc_now,
)
from classquiz.store.document_store import DocumentStore, DocumentStoreError

logger = logging.getLogger(__name__)


def sort_classes(classes: Iterable[ClassRoom]) -> list[ClassRoom]:
    """Active classes first, then alphabetical by name."""
    return sorted(classes, key=lambda row: (row.is_archived, row.name.casefold()))


class ClassroomService:
    """Manages teacher classes and the students enrolled in them."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # --- Classes ---

    def classes_for_teacher(self, teacher_id: str) -> list[ClassRoom]:
        snapshot = self._store.query(CLASSES, teacherId=teacher_id)
        return sort_classes(ClassRoom.from_document(doc.id, doc.data) for doc in snapshot.docs)

    def classes_for_student(self, student_id: str) -> list[ClassRoom]:
        enrollments = self._store.query(CLASS_ENROLLMENTS, studentId=student_id)
        class_ids = dict.fromkeys(
            doc.data.get("classId") for doc in enrollments.docs if doc.data.get("classId")
        )
        rows = []
        for class_id in class_ids:
            doc = self._store.get(CLASSES, class_id)
            if doc is not None:
                rows.append(ClassRoom.from_document(doc.id, doc.data))
        return sort_classes(rows)

    def create_class(self, name: str, teacher: UserProfile, is_default: bool = False) -> ClassRoom:
        trimmed = (name or "").strip()
        if not trimmed:
            raise ValueError("Class name must not be empty.")
        now = utc_now()
        classroom = ClassRoom(
            id=self._store.new_id(CLASSES),
            name=trimmed,
            teacher_id=teacher.uid,
            teacher_name=teacher.label,
            is_archived=False,
            is_default=is_default,
            created_at=now,
            updated_at=now,
        )
        self._store.set(CLASSES, classroom.id, classroom.to_document())
        logger.info("Created class %s (%s)", classroom.id, classroom.name)
        return classroom

    def rename_class(self, classroom: ClassRoom, name: str) -> None:
        trimmed = (name or "").strip()
        if not trimmed:
            raise ValueError("Class name must not be empty.")
        self._store.set(
            CLASSES,
            classroom.id,
            {"name": trimmed, "updatedAt": format_timestamp(utc_now())},
            merge=True,
        )

    def toggle_archive(self, classroom: ClassRoom) -> bool:
        archived = not classroom.is_archived
        self._store.set(
            CLASSES,
            classroom.id,
            {"isArchived": archived, "updatedAt": format_timestamp(utc_now())},
            merge=True,
        )
        return archived

    def delete_class(self, classroom: ClassRoom, quizzes: Iterable[Quiz]) -> None:
        """Delete an empty, non-default class together with its enrollments."""
        if classroom.is_default:
            raise RuntimeError("Cannot delete default class.")
        if any(quiz.class_id == classroom.id for quiz in quizzes):
            raise RuntimeError("Move/delete quizzes in this class first.")
        for doc in self._store.query(CLASS_ENROLLMENTS, classId=classroom.id).docs:
            self._store.delete(CLASS_ENROLLMENTS, doc.id)
        self._store.delete(CLASSES, classroom.id)
        logger.info("Deleted class %s", classroom.id)

    def get_or_create_default_class(self, teacher: UserProfile) -> ClassRoom:
        existing = self._store.query(CLASSES, teacherId=teacher.uid, isDefault=True)
        if not existing.empty:
            doc = existing.docs[0]
            return ClassRoom.from_document(doc.id, doc.data)
        return self.create_class(DEFAULT_CLASS_NAME, teacher, is_default=True)

    def migrate_legacy_quizzes(self, teacher: UserProfile, quizzes: Iterable[Quiz]) -> int:
        """Move quizzes that predate classes into the teacher's default class.

        Returns the number of quizzes moved. Store failures are logged and
        end the migration early; they are not raised.
        """
        legacy = [quiz for quiz in quizzes if not quiz.class_id]
        if not legacy:
            return 0
        moved = 0
        try:
            default_class = self.get_or_create_default_class(teacher)
            for quiz in legacy:
                self._store.set(
                    QUIZZES,
                    quiz.id,
                    {
                        "classId": default_class.id,
                        "className": default_class.name,
                        "updatedAt": format_timestamp(utc_now()),
                    },
                    merge=True,
                )
                moved += 1
        except DocumentStoreError as exc:
            logger.error("Legacy migration failed after %d quiz(zes): %s", moved, exc)
            return moved
        logger.info("Migrated %d legacy quiz(zes) into class %s", moved, default_class.id)
        return moved

    # --- Rosters ---

    def roster(self, class_id: str) -> list[ClassEnrollment]:
        snapshot = self._store.query(CLASS_ENROLLMENTS, classId=class_id)
        rows = [ClassEnrollment.from_document(doc.data) for doc in snapshot.docs]
        return sorted(rows, key=lambda row: row.student_email)

    def enroll_student(self, classroom: ClassRoom, email: str, teacher: UserProfile) -> ClassEnrollment:
        """Enroll the student registered under ``email``.

        The student must have signed in once so a profile exists. Enrolling
        the same student twice rewrites the same document.
        """
        normalized = normalize_email(email)
        if not normalized or "@" not in normalized:
            raise ValueError("Enter a valid student email.")
        profiles = self._store.query(USER_PROFILES, normalizedEmail=normalized)
        if profiles.empty:
            raise LookupError("Student must sign in once before enrollment.")
        profile_doc = profiles.docs[0]
        profile = UserProfile.from_document(profile_doc.id, profile_doc.data)
        enrollment = ClassEnrollment(
            class_id=classroom.id,
            student_id=profile_doc.id,
            student_email=normalized,
            student_name=profile.display_name or profile.email or normalized,
            added_by_teacher_id=teacher.uid,
            created_at=utc_now(),
        )
        self._store.set(CLASS_ENROLLMENTS, enrollment.id, enrollment.to_document())
        logger.info("Enrolled %s in class %s", normalized, classroom.id)
        return enrollment

    def remove_enrollment(self, enrollment: ClassEnrollment) -> None:
        self._store.delete(CLASS_ENROLLMENTS, enrollment.id)
