"""Service for storing and listing quizzes."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
import time
from typing import Any

from classquiz.constants.quiz_constants import DEFAULT_QUIZ_TITLE, QUIZZES
from classquiz.core.models import (
    ClassRoom,
    Question,
    Quiz,
    UserProfile,
    coerce_max_attempts,
    utc_now,
)
from classquiz.store.document_store import DocumentNotFoundError, DocumentStore

logger = logging.getLogger(__name__)


def _title_key(quiz: Quiz) -> str:
    return quiz.title.casefold()


def _normalize_questions(questions: Iterable[Question | Mapping[str, Any]]) -> list[Question]:
    """Fill in missing question ids; answers are keyed by id, so ids must be unique."""
    stamp = int(time.time() * 1000)
    normalized: list[Question] = []
    seen: set[str] = set()
    for index, item in enumerate(questions):
        question = item if isinstance(item, Question) else Question.from_document(item)
        question_id = question.id or f"q-{stamp}-{index}"
        if question_id in seen:
            raise ValueError(f"Question id '{question_id}' is used more than once in this quiz.")
        seen.add(question_id)
        normalized.append(
            Question(
                id=question_id,
                text=question.text or "",
                show_feedback=bool(question.show_feedback),
            )
        )
    return normalized


class QuizRepository:
    """Persists teacher-authored quizzes in the ``quizzes`` collection."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @staticmethod
    def build_payload(quiz: Quiz, teacher: UserProfile, class_name: str | None = None) -> Quiz:
        """Normalize ``quiz`` for storage and stamp it with its owner."""
        return Quiz(
            id=quiz.id,
            title=quiz.title or DEFAULT_QUIZ_TITLE,
            description=quiz.description or "",
            is_locked=bool(quiz.is_locked),
            max_attempts=coerce_max_attempts(quiz.max_attempts),
            prefill_from_last_attempt=bool(quiz.prefill_from_last_attempt),
            allow_shuffle=quiz.allow_shuffle is not False,
            allow_review=quiz.allow_review is not False,
            class_id=quiz.class_id or "",
            class_name=class_name if class_name is not None else quiz.class_name,
            teacher_id=teacher.uid,
            teacher_name=teacher.label,
            questions=_normalize_questions(quiz.questions),
            created_at=quiz.created_at,
            updated_at=utc_now(),
        )

    def save(self, quiz: Quiz, teacher: UserProfile, classes: Iterable[ClassRoom]) -> Quiz:
        """Create ``quiz`` when it has no id yet, otherwise merge the edit into the stored quiz.

        The quiz must target one of ``classes`` (the teacher's own); new
        quizzes may not be added to an archived class.
        """
        class_lookup = {row.id: row for row in classes}
        target = class_lookup.get(quiz.class_id)
        if target is None:
            raise ValueError("Choose one of your classes for this quiz.")

        is_new = not quiz.id
        if is_new and target.is_archived:
            raise ValueError("Cannot add quiz to archived class.")

        payload = self.build_payload(quiz, teacher, class_name=target.name)
        if is_new:
            payload.id = self._store.new_id(QUIZZES)
            payload.created_at = payload.updated_at
            self._store.set(QUIZZES, payload.id, payload.to_document())
            logger.info("Created quiz %s in class %s", payload.id, target.id)
        else:
            if self._store.get(QUIZZES, payload.id) is None:
                raise DocumentNotFoundError(f"Quiz {payload.id} no longer exists.")
            document = payload.to_document()
            document.pop("createdAt", None)
            self._store.set(QUIZZES, payload.id, document, merge=True)
            logger.info("Updated quiz %s", payload.id)
        return payload

    def delete(self, quiz_id: str) -> None:
        """Delete a quiz. Submissions referencing it are left in place."""
        self._store.delete(QUIZZES, quiz_id)
        logger.info("Deleted quiz %s", quiz_id)

    def get(self, quiz_id: str) -> Quiz | None:
        doc = self._store.get(QUIZZES, quiz_id)
        return None if doc is None else Quiz.from_document(doc.id, doc.data)

    def quizzes_for_teacher(self, teacher_id: str, class_id: str | None = None) -> list[Quiz]:
        snapshot = self._store.query(QUIZZES, teacherId=teacher_id)
        quizzes = [Quiz.from_document(doc.id, doc.data) for doc in snapshot.docs]
        if class_id is not None:
            quizzes = [quiz for quiz in quizzes if quiz.class_id == class_id]
        return sorted(quizzes, key=_title_key)

    def quizzes_for_classes(self, class_ids: Iterable[str]) -> list[Quiz]:
        merged: list[Quiz] = []
        for class_id in dict.fromkeys(cid for cid in class_ids if cid):
            snapshot = self._store.query(QUIZZES, classId=class_id)
            merged.extend(Quiz.from_document(doc.id, doc.data) for doc in snapshot.docs)
        return sorted(merged, key=_title_key)

    @staticmethod
    def available_to_student(quizzes: Iterable[Quiz]) -> list[Quiz]:
        return [quiz for quiz in quizzes if not quiz.is_locked]
