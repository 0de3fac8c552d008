"""Domain models for ClassQuiz.

Records mirror the documents kept in the store. Each one reads its document
shape through ``from_document`` with the default-substitution rules applied
once, so the rest of the code can rely on the attributes being present and
well typed. ``to_document`` writes the camelCase shape back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import math
from typing import Any, Mapping

from classquiz.constants.quiz_constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_QUIZ_TITLE,
    GRADE_STATUS_GRADED,
    GRADE_STATUS_NEEDS_REVIEW,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class GradeStatus(str, Enum):
    GRADED = GRADE_STATUS_GRADED
    NEEDS_TEACHER_REVIEW = GRADE_STATUS_NEEDS_REVIEW

    @classmethod
    def parse(cls, value: object) -> "GradeStatus":
        if value == GRADE_STATUS_NEEDS_REVIEW:
            return cls.NEEDS_TEACHER_REVIEW
        return cls.GRADED


def coerce_max_attempts(value: object) -> int:
    """Return ``value`` as a positive attempt limit, falling back to one.

    Numeric strings are accepted; fractional limits are floored. Anything
    absent, non-numeric, non-finite, zero or negative becomes ``1``.
    """
    if value is None or isinstance(value, (list, tuple, dict, set)):
        return DEFAULT_MAX_ATTEMPTS
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_MAX_ATTEMPTS
    if not math.isfinite(number) or number <= 0:
        return DEFAULT_MAX_ATTEMPTS
    return max(DEFAULT_MAX_ATTEMPTS, math.floor(number))


def coerce_int(value: object, default: int = 0) -> int:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    return int(number)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def timestamp_sort_key(value: datetime | None) -> float:
    """Missing timestamps sort as the epoch."""
    return (value or _EPOCH).timestamp()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Question:
    """Free-text question whose text is Markdown with LaTeX and code cells."""

    id: str
    text: str = ""
    show_feedback: bool = True

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "Question":
        return cls(
            id=str(data.get("id") or ""),
            text=str(data.get("text") or ""),
            show_feedback=bool(data.get("showFeedback", True)),
        )

    def to_document(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "showFeedback": self.show_feedback}


@dataclass(slots=True)
class Quiz:
    id: str
    title: str = DEFAULT_QUIZ_TITLE
    description: str = ""
    is_locked: bool = False
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    prefill_from_last_attempt: bool = False
    allow_shuffle: bool = True
    allow_review: bool = True
    class_id: str = ""
    class_name: str = ""
    teacher_id: str = ""
    teacher_name: str = ""
    questions: list[Question] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "Quiz":
        raw_questions = data.get("questions")
        questions = [
            Question.from_document(item)
            for item in (raw_questions if isinstance(raw_questions, (list, tuple)) else [])
            if isinstance(item, Mapping)
        ]
        return cls(
            id=doc_id,
            title=str(data.get("title") or DEFAULT_QUIZ_TITLE),
            description=str(data.get("description") or ""),
            is_locked=bool(data.get("isLocked")),
            max_attempts=coerce_max_attempts(data.get("maxAttempts")),
            prefill_from_last_attempt=bool(data.get("prefillFromLastAttempt")),
            allow_shuffle=data.get("allowShuffle") is not False,
            allow_review=data.get("allowReview") is not False,
            class_id=str(data.get("classId") or ""),
            class_name=str(data.get("className") or ""),
            teacher_id=str(data.get("teacherId") or ""),
            teacher_name=str(data.get("teacherName") or ""),
            questions=questions,
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "isLocked": self.is_locked,
            "maxAttempts": self.max_attempts,
            "prefillFromLastAttempt": self.prefill_from_last_attempt,
            "allowShuffle": self.allow_shuffle,
            "allowReview": self.allow_review,
            "classId": self.class_id,
            "className": self.class_name,
            "teacherId": self.teacher_id,
            "teacherName": self.teacher_name,
            "questions": [question.to_document() for question in self.questions],
            "updatedAt": format_timestamp(self.updated_at),
        }
        if self.created_at is not None:
            document["createdAt"] = format_timestamp(self.created_at)
        return document

    def question_ids(self) -> list[str]:
        return [question.id for question in self.questions]


@dataclass(slots=True)
class ClassRoom:
    """A teacher-owned class; ``is_default`` marks the legacy-migration target."""

    id: str
    name: str
    teacher_id: str
    teacher_name: str = ""
    is_archived: bool = False
    is_default: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "ClassRoom":
        return cls(
            id=doc_id,
            name=str(data.get("name") or ""),
            teacher_id=str(data.get("teacherId") or ""),
            teacher_name=str(data.get("teacherName") or ""),
            is_archived=bool(data.get("isArchived")),
            is_default=bool(data.get("isDefault")),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "teacherId": self.teacher_id,
            "teacherName": self.teacher_name,
            "isArchived": self.is_archived,
            "isDefault": self.is_default,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }


def enrollment_id(class_id: str, student_id: str) -> str:
    return f"{class_id}_{student_id}"


@dataclass(slots=True)
class ClassEnrollment:
    class_id: str
    student_id: str
    student_email: str = ""
    student_name: str = ""
    added_by_teacher_id: str = ""
    created_at: datetime | None = None

    @property
    def id(self) -> str:
        return enrollment_id(self.class_id, self.student_id)

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "ClassEnrollment":
        return cls(
            class_id=str(data.get("classId") or ""),
            student_id=str(data.get("studentId") or ""),
            student_email=str(data.get("studentEmail") or ""),
            student_name=str(data.get("studentName") or ""),
            added_by_teacher_id=str(data.get("addedByTeacherId") or ""),
            created_at=parse_timestamp(data.get("createdAt")),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "classId": self.class_id,
            "studentId": self.student_id,
            "studentEmail": self.student_email,
            "studentName": self.student_name,
            "addedByTeacherId": self.added_by_teacher_id,
            "createdAt": format_timestamp(self.created_at),
        }


@dataclass(slots=True)
class Evaluation:
    is_correct: bool
    feedback: str = ""

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "Evaluation":
        return cls(
            is_correct=bool(data.get("isCorrect")),
            feedback=str(data.get("feedback") or ""),
        )

    def to_document(self) -> dict[str, Any]:
        return {"isCorrect": self.is_correct, "feedback": self.feedback}


def evaluations_from_document(data: object) -> dict[str, Evaluation]:
    if not isinstance(data, Mapping):
        return {}
    return {
        str(question_id): Evaluation.from_document(entry)
        for question_id, entry in data.items()
        if isinstance(entry, Mapping)
    }


@dataclass(slots=True)
class Submission:
    """One graded attempt. Append-only: never updated, only deleted."""

    id: str
    quiz_id: str
    student_id: str
    answers: dict[str, str] = field(default_factory=dict)
    evaluations: dict[str, Evaluation] | None = None
    grade_status: GradeStatus = GradeStatus.GRADED
    attempt_number: int = 0
    max_attempts_at_submission: int = DEFAULT_MAX_ATTEMPTS
    attempted_at: datetime | None = None
    class_id: str = ""
    quiz_title: str = ""
    student_email: str = ""
    student_name: str = ""

    @property
    def display_attempt_number(self) -> int:
        return self.attempt_number or 1

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "Submission":
        raw_answers = data.get("answers")
        answers = (
            {str(key): str(value or "") for key, value in raw_answers.items()}
            if isinstance(raw_answers, Mapping)
            else {}
        )
        raw_evaluations = data.get("evaluations")
        return cls(
            id=doc_id,
            quiz_id=str(data.get("quizId") or ""),
            student_id=str(data.get("studentId") or ""),
            answers=answers,
            evaluations=None if raw_evaluations is None else evaluations_from_document(raw_evaluations),
            grade_status=GradeStatus.parse(data.get("gradeStatus")),
            attempt_number=coerce_int(data.get("attemptNumber")),
            max_attempts_at_submission=coerce_max_attempts(data.get("maxAttemptsAtSubmission")),
            attempted_at=parse_timestamp(data.get("attemptedAt")),
            class_id=str(data.get("classId") or ""),
            quiz_title=str(data.get("quizTitle") or ""),
            student_email=str(data.get("studentEmail") or ""),
            student_name=str(data.get("studentName") or ""),
        )

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "quizId": self.quiz_id,
            "classId": self.class_id,
            "quizTitle": self.quiz_title,
            "studentId": self.student_id,
            "studentEmail": self.student_email,
            "studentName": self.student_name,
            "answers": dict(self.answers),
            "gradeStatus": self.grade_status.value,
            "attemptNumber": self.attempt_number,
            "maxAttemptsAtSubmission": self.max_attempts_at_submission,
            "attemptedAt": format_timestamp(self.attempted_at),
        }
        if self.evaluations is not None:
            document["evaluations"] = {
                question_id: evaluation.to_document()
                for question_id, evaluation in self.evaluations.items()
            }
        return document


@dataclass(slots=True)
class UserProfile:
    uid: str
    email: str = ""
    display_name: str = ""
    photo_url: str = ""

    @property
    def normalized_email(self) -> str:
        return self.email.strip().lower()

    @property
    def label(self) -> str:
        return self.display_name or self.email

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "UserProfile":
        return cls(
            uid=str(data.get("uid") or doc_id),
            email=str(data.get("email") or ""),
            display_name=str(data.get("displayName") or ""),
            photo_url=str(data.get("photoURL") or ""),
        )

    def to_document(self, updated_at: datetime | None = None) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "email": self.email,
            "normalizedEmail": self.normalized_email,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
            "updatedAt": format_timestamp(updated_at or utc_now()),
        }
