"""Service that grades and records attempts."""

from __future__ import annotations

from dataclasses import replace
import logging

from classquiz.constants.grading_constants import DEFAULT_GRADING_TIMEOUT_SECONDS
from classquiz.constants.quiz_constants import SUBMISSIONS
from classquiz.core.attempt_ledger import (
    AttemptSummary,
    attempt_info,
    sort_attempt_history,
    summarize_by_quiz,
)
from classquiz.core.grading import GradingService, grade_or_fallback
from classquiz.core.models import Submission, UserProfile
from classquiz.core.services.attempt_session import AttemptSession
from classquiz.store.document_store import DocumentStore

logger = logging.getLogger(__name__)


class SubmissionService:
    """Grades finished attempts and appends them to the ``submissions`` collection.

    The attempt budget is re-read right before writing, but nothing here is
    atomic: two concurrent submissions can compute the same attempt number
    and both be stored.
    """

    def __init__(
        self,
        store: DocumentStore,
        grading_service: GradingService,
        timeout_seconds: float = DEFAULT_GRADING_TIMEOUT_SECONDS,
    ) -> None:
        self._store = store
        self._grading_service = grading_service
        self._timeout_seconds = timeout_seconds

    def load_submissions(self, student_id: str) -> list[Submission]:
        snapshot = self._store.query(SUBMISSIONS, studentId=student_id)
        return [Submission.from_document(doc.id, doc.data) for doc in snapshot.docs]

    def summary_for_student(self, student_id: str) -> dict[str, AttemptSummary]:
        return summarize_by_quiz(self.load_submissions(student_id), student_id)

    def attempts_for_student(self, student_id: str) -> list[Submission]:
        return sort_attempt_history(self.load_submissions(student_id))

    def submit(self, session: AttemptSession, student: UserProfile) -> Submission:
        """Grade the attempt and store it, degrading to teacher review on grading failure.

        Store failures propagate; the caller reports them with
        :func:`classquiz.store.document_store.describe_store_error`.
        """
        if session.is_submitted():
            raise RuntimeError("This attempt has already been submitted.")

        quiz = session.quiz
        info = attempt_info(quiz, self.summary_for_student(student.uid))
        if info.remaining_attempts <= 0:
            raise RuntimeError("Attempt limit reached for this quiz.")

        outcome = grade_or_fallback(
            quiz,
            session.get_answers(),
            self._grading_service,
            self._timeout_seconds,
        )
        submission = session.build_submission(student, outcome, info=info)
        doc_id = self._store.add(SUBMISSIONS, submission.to_document())
        session.mark_submitted()
        logger.info(
            "Stored attempt %d/%d of quiz %s for student %s (%s)",
            submission.attempt_number,
            submission.max_attempts_at_submission,
            quiz.id,
            student.uid,
            submission.grade_status.value,
        )
        return replace(submission, id=doc_id)

    def delete_attempt(self, submission_id: str) -> None:
        """Remove an attempt, giving it back to the student."""
        self._store.delete(SUBMISSIONS, submission_id)
        logger.info("Deleted attempt %s", submission_id)
