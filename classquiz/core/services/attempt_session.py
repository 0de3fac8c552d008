"""Service for one student's in-progress attempt at a quiz."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
import random

from classquiz.core.attempt_ledger import (
    AttemptInfo,
    AttemptSummary,
    attempt_info,
    initial_answers,
    present_questions,
)
from classquiz.core.grading import GradeOutcome
from classquiz.core.models import Question, Quiz, Submission, UserProfile, utc_now


class AttemptSession:
    """Holds the answers and the fixed question order of one attempt.

    The order is decided once in :meth:`start`; re-reading
    :attr:`questions` never reshuffles.
    """

    def __init__(
        self,
        quiz: Quiz,
        info: AttemptInfo,
        questions: list[Question],
        answers: dict[str, str],
    ) -> None:
        self._quiz = quiz
        self._info = info
        self._questions = questions
        self._answers = answers
        self._submitted = False

    @classmethod
    def start(
        cls,
        quiz: Quiz,
        summary: Mapping[str, AttemptSummary],
        rng: random.Random | None = None,
    ) -> "AttemptSession":
        """Begin a new attempt, refusing locked quizzes and exhausted budgets."""
        if quiz.is_locked:
            raise RuntimeError("This quiz is locked.")
        info = attempt_info(quiz, summary)
        if info.remaining_attempts <= 0:
            raise RuntimeError("No attempts remaining for this quiz.")
        return cls(
            quiz=quiz,
            info=info,
            questions=present_questions(quiz, rng),
            answers=initial_answers(quiz, summary),
        )

    @property
    def quiz(self) -> Quiz:
        return self._quiz

    @property
    def info(self) -> AttemptInfo:
        return self._info

    @property
    def questions(self) -> list[Question]:
        return list(self._questions)

    @property
    def attempt_number(self) -> int:
        return self._info.used_attempts + 1

    def is_submitted(self) -> bool:
        return self._submitted

    def mark_submitted(self) -> None:
        """Close the attempt once its submission has been stored."""
        self._submitted = True

    def set_answer(self, question_id: str, value: str) -> None:
        if self._submitted:
            raise RuntimeError("This attempt has already been submitted.")
        if question_id not in self._quiz.question_ids():
            raise ValueError(f"Unknown question id '{question_id}'.")
        self._answers[question_id] = value

    def get_answers(self) -> dict[str, str]:
        return dict(self._answers)

    def answered_count(self) -> int:
        return sum(
            1
            for question in self._quiz.questions
            if self._answers.get(question.id, "").strip()
        )

    def unanswered_count(self) -> int:
        return len(self._quiz.questions) - self.answered_count()

    def build_submission(
        self,
        student: UserProfile,
        outcome: GradeOutcome,
        info: AttemptInfo | None = None,
        attempted_at: datetime | None = None,
    ) -> Submission:
        """Build the submission record for this attempt (id assigned by the store).

        ``info`` is the attempt budget as seen at submission time; the attempt
        number is one past the attempts used then.
        """
        info = info or self._info
        return Submission(
            id="",
            quiz_id=self._quiz.id,
            class_id=self._quiz.class_id,
            quiz_title=self._quiz.title,
            student_id=student.uid,
            student_email=student.email,
            student_name=student.label,
            answers=dict(self._answers),
            evaluations=dict(outcome.evaluations),
            grade_status=outcome.grade_status,
            attempt_number=info.used_attempts + 1,
            max_attempts_at_submission=info.max_attempts,
            attempted_at=attempted_at or utc_now(),
        )
