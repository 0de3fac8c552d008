"""Live aggregates fed by store subscriptions.

Every snapshot replaces the previous state of a view outright; views never
patch themselves incrementally.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable

from classquiz.constants.quiz_constants import QUIZZES, SUBMISSIONS
from classquiz.core.attempt_ledger import (
    AttemptSummary,
    sort_attempt_history,
    summarize_by_quiz,
    teacher_feed,
)
from classquiz.core.models import Quiz, Submission
from classquiz.store.document_store import DocumentStore, Snapshot, Subscription

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]


def _submissions(snapshot: Snapshot) -> list[Submission]:
    return [Submission.from_document(doc.id, doc.data) for doc in snapshot.docs]


class StudentSubmissionsView:
    """A student's attempt summary and history, kept current."""

    def __init__(
        self,
        store: DocumentStore,
        student_id: str,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self._student_id = student_id
        self._on_change = on_change
        self._lock = Lock()
        self._summary: dict[str, AttemptSummary] = {}
        self._attempts: list[Submission] = []
        self._subscription: Subscription = store.subscribe(
            SUBMISSIONS,
            self._handle_snapshot,
            on_error=self._handle_error,
            studentId=student_id,
        )

    @property
    def summary(self) -> dict[str, AttemptSummary]:
        with self._lock:
            return dict(self._summary)

    @property
    def attempts(self) -> list[Submission]:
        with self._lock:
            return list(self._attempts)

    def close(self) -> None:
        self._subscription.cancel()

    def _handle_snapshot(self, snapshot: Snapshot) -> None:
        rows = _submissions(snapshot)
        summary = summarize_by_quiz(rows, self._student_id)
        attempts = sort_attempt_history(rows)
        with self._lock:
            self._summary = summary
            self._attempts = attempts
        if self._on_change:
            self._on_change()

    def _handle_error(self, exc: Exception) -> None:
        logger.error("Failed to load submissions for student %s: %s", self._student_id, exc)


class TeacherSubmissionsFeed:
    """Submissions across all quizzes a teacher owns, newest first.

    The quiz subscription drives one submissions subscription per quiz; when
    the set of quizzes changes, every per-quiz subscription is replaced.
    """

    def __init__(
        self,
        store: DocumentStore,
        teacher_id: str,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self._store = store
        self._teacher_id = teacher_id
        self._on_change = on_change
        self._lock = Lock()
        self._quizzes: list[Quiz] = []
        self._by_quiz: dict[str, list[Submission]] = {}
        self._quiz_subscriptions: list[Subscription] = []
        self._feed: list[Submission] = []
        self._subscription: Subscription = store.subscribe(
            QUIZZES,
            self._handle_quizzes,
            on_error=self._handle_quiz_error,
            teacherId=teacher_id,
        )

    @property
    def quizzes(self) -> list[Quiz]:
        with self._lock:
            return list(self._quizzes)

    @property
    def submissions(self) -> list[Submission]:
        with self._lock:
            return list(self._feed)

    def for_class(self, class_id: str) -> list[Submission]:
        with self._lock:
            return teacher_feed(self._feed, self._quizzes, class_id=class_id)

    def close(self) -> None:
        self._subscription.cancel()
        self._clear_quiz_subscriptions()

    def _clear_quiz_subscriptions(self) -> None:
        with self._lock:
            subscriptions, self._quiz_subscriptions = self._quiz_subscriptions, []
            self._by_quiz = {}
        for subscription in subscriptions:
            subscription.cancel()

    def _handle_quizzes(self, snapshot: Snapshot) -> None:
        self._clear_quiz_subscriptions()
        quizzes = [Quiz.from_document(doc.id, doc.data) for doc in snapshot.docs]
        with self._lock:
            self._quizzes = quizzes
        if not quizzes:
            self._emit()
            return
        for quiz in quizzes:
            subscription = self._store.subscribe(
                SUBMISSIONS,
                self._quiz_handler(quiz.id),
                on_error=self._quiz_error_handler(quiz.id),
                quizId=quiz.id,
            )
            with self._lock:
                self._quiz_subscriptions.append(subscription)

    def _quiz_handler(self, quiz_id: str) -> Callable[[Snapshot], None]:
        def handle(snapshot: Snapshot) -> None:
            with self._lock:
                self._by_quiz[quiz_id] = _submissions(snapshot)
            self._emit()

        return handle

    def _quiz_error_handler(self, quiz_id: str) -> Callable[[Exception], None]:
        def handle(exc: Exception) -> None:
            logger.error("Error loading submissions for quiz %s: %s", quiz_id, exc)
            with self._lock:
                self._by_quiz[quiz_id] = []
            self._emit()

        return handle

    def _handle_quiz_error(self, exc: Exception) -> None:
        logger.error("Failed to load quizzes for teacher %s: %s", self._teacher_id, exc)

    def _emit(self) -> None:
        with self._lock:
            merged = [row for rows in self._by_quiz.values() for row in rows]
            self._feed = teacher_feed(merged)
        if self._on_change:
            self._on_change()
