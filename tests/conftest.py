"""
Test fixtures for ClassQuiz.

Provides an initialized in-memory document store, teacher/student profiles
and small factories for quizzes and submissions. No test touches the network.
"""

from __future__ import annotations

from datetime import datetime
from typing import Mapping

import pytest

from classquiz.core.grading import GradingError
from classquiz.core.models import (
    Evaluation,
    GradeStatus,
    Question,
    Quiz,
    Submission,
    UserProfile,
)
from classquiz.store.document_store import InMemoryDocumentStore


class FakeGradingService:
    """Grades every non-empty answer as correct, or fails on demand."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, dict[str, str], float]] = []

    def grade(self, quiz: Quiz, answers: Mapping[str, str], timeout: float) -> dict[str, Evaluation]:
        self.calls.append((quiz.id, dict(answers), timeout))
        if self.error is not None:
            raise self.error
        return {
            question.id: Evaluation(
                is_correct=bool(answers.get(question.id, "").strip()),
                feedback="Looks right." if answers.get(question.id, "").strip() else "No answer.",
            )
            for question in quiz.questions
        }


@pytest.fixture
def store():
    with InMemoryDocumentStore() as document_store:
        yield document_store


@pytest.fixture
def teacher() -> UserProfile:
    return UserProfile(uid="teacher-1", email="Ms.Frizzle@School.org", display_name="Ms Frizzle")


@pytest.fixture
def student() -> UserProfile:
    return UserProfile(uid="student-1", email="arnold@school.org", display_name="Arnold")


@pytest.fixture
def grading_service() -> FakeGradingService:
    return FakeGradingService()


@pytest.fixture
def failing_grading_service() -> FakeGradingService:
    return FakeGradingService(error=GradingError("Grading timed out after 5s."))


def make_quiz(
    quiz_id: str = "quiz-1",
    question_count: int = 3,
    **overrides,
) -> Quiz:
    questions = [
        Question(id=f"q{index}", text=f"Compute ${index} + {index}$.", show_feedback=True)
        for index in range(1, question_count + 1)
    ]
    fields = {
        "id": quiz_id,
        "title": "Arithmetic warm-up",
        "max_attempts": 2,
        "class_id": "class-1",
        "class_name": "Period 1",
        "teacher_id": "teacher-1",
        "questions": questions,
    }
    fields.update(overrides)
    return Quiz(**fields)


def make_submission(
    attempt_number: int,
    quiz_id: str = "quiz-1",
    student_id: str = "student-1",
    attempted_at: str | None = "2024-03-01T10:00:00Z",
    answers: dict[str, str] | None = None,
    submission_id: str | None = None,
    **overrides,
) -> Submission:
    fields = {
        "id": submission_id or f"{quiz_id}-{student_id}-{attempt_number}",
        "quiz_id": quiz_id,
        "student_id": student_id,
        "answers": answers if answers is not None else {"q1": f"answer {attempt_number}"},
        "evaluations": {"q1": Evaluation(is_correct=True, feedback=f"attempt {attempt_number}")},
        "grade_status": GradeStatus.GRADED,
        "attempt_number": attempt_number,
        "attempted_at": (
            datetime.fromisoformat(attempted_at.replace("Z", "+00:00")) if attempted_at else None
        ),
    }
    fields.update(overrides)
    return Submission(**fields)


@pytest.fixture
def quiz_factory():
    return make_quiz


@pytest.fixture
def submission_factory():
    return make_submission
