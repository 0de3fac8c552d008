"""Attempt accounting over raw submission records.

Everything here is a pure fold over an in-memory snapshot: no I/O, no hidden
state, and the same input in the same order always produces the same output.

Two orderings are used and must stay distinct:

* per-quiz history (``group_by_quiz``/``sort_attempt_history``) sorts by
  attempt number first and only then by timestamp, so client clock skew
  cannot put an older attempt on top;
* the teacher feed (``teacher_feed``) sorts by timestamp only.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import copy
import random

from classquiz.core.models import (
    Evaluation,
    Question,
    Quiz,
    Submission,
    coerce_max_attempts,
    timestamp_sort_key,
)

__all__ = [
    "AttemptInfo",
    "AttemptSummary",
    "attempt_info",
    "coerce_max_attempts",
    "group_by_quiz",
    "initial_answers",
    "is_startable",
    "present_questions",
    "sort_attempt_history",
    "summarize_by_quiz",
    "teacher_feed",
]


@dataclass(slots=True)
class AttemptSummary:
    """Per-quiz totals plus the snapshot of the latest attempt."""

    count: int = 0
    latest_attempt_number: int = 0
    latest_answers: dict[str, str] = field(default_factory=dict)
    latest_evaluations: dict[str, Evaluation] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AttemptInfo:
    max_attempts: int
    used_attempts: int
    remaining_attempts: int


def summarize_by_quiz(
    submissions: Iterable[Submission],
    student_id: str | None = None,
) -> dict[str, AttemptSummary]:
    """Count attempts per quiz and remember the latest one.

    "Latest" is the highest attempt number. Ties go to the record seen last
    in iteration order: change streams deliver documents in no particular
    order, so the last observed write wins. Records without a quiz id are
    ignored, as are records of another student when ``student_id`` is given.
    """
    summary: dict[str, AttemptSummary] = {}
    for submission in submissions:
        quiz_id = submission.quiz_id
        if not quiz_id:
            continue
        if student_id is not None and submission.student_id != student_id:
            continue

        entry = summary.get(quiz_id)
        if entry is None:
            entry = AttemptSummary()
            summary[quiz_id] = entry

        entry.count += 1
        if submission.attempt_number >= entry.latest_attempt_number:
            entry.latest_attempt_number = submission.attempt_number
            entry.latest_answers = submission.answers
            entry.latest_evaluations = submission.evaluations or {}
    return summary


def _quiz_field(quiz: object, attribute: str, key: str) -> object:
    if isinstance(quiz, Mapping):
        return quiz.get(key)
    return getattr(quiz, attribute, None)


def attempt_info(quiz: Quiz | Mapping[str, object], summary: Mapping[str, AttemptSummary]) -> AttemptInfo:
    """Return the attempt budget of ``quiz`` for the student behind ``summary``.

    Accepts a :class:`Quiz` or a raw quiz document and never raises; broken
    ``maxAttempts`` values degrade to a single attempt.
    """
    max_attempts = coerce_max_attempts(_quiz_field(quiz, "max_attempts", "maxAttempts"))
    quiz_id = _quiz_field(quiz, "id", "id")
    entry = summary.get(quiz_id) if isinstance(quiz_id, str) else None
    used_attempts = entry.count if entry is not None else 0
    return AttemptInfo(
        max_attempts=max_attempts,
        used_attempts=used_attempts,
        remaining_attempts=max(0, max_attempts - used_attempts),
    )


def is_startable(quiz: Quiz | Mapping[str, object], summary: Mapping[str, AttemptSummary]) -> bool:
    locked = bool(_quiz_field(quiz, "is_locked", "isLocked"))
    return attempt_info(quiz, summary).remaining_attempts > 0 and not locked


def initial_answers(quiz: Quiz, summary: Mapping[str, AttemptSummary]) -> dict[str, str]:
    """Seed answers for a fresh attempt; always a copy of the stored history."""
    if not quiz.prefill_from_last_attempt:
        return {}
    entry = summary.get(quiz.id)
    if entry is None:
        return {}
    return dict(entry.latest_answers)


def present_questions(quiz: Quiz, rng: random.Random | None = None) -> list[Question]:
    """Question order for one attempt: a fresh uniform permutation when shuffling is allowed."""
    questions = [copy.copy(question) for question in quiz.questions]
    if quiz.allow_shuffle:
        (rng or random.Random()).shuffle(questions)
    return questions


def _history_key(submission: Submission) -> tuple[int, float]:
    return submission.attempt_number, timestamp_sort_key(submission.attempted_at)


def sort_attempt_history(submissions: Iterable[Submission]) -> list[Submission]:
    """Newest attempt first: attempt number, then timestamp, both descending."""
    return sorted(submissions, key=_history_key, reverse=True)


def group_by_quiz(submissions: Iterable[Submission]) -> dict[str, list[Submission]]:
    grouped: dict[str, list[Submission]] = {}
    for submission in submissions:
        if not submission.quiz_id:
            continue
        grouped.setdefault(submission.quiz_id, []).append(submission)
    return {quiz_id: sort_attempt_history(rows) for quiz_id, rows in grouped.items()}


def teacher_feed(
    submissions: Iterable[Submission],
    quizzes: Iterable[Quiz] | None = None,
    class_id: str | None = None,
) -> list[Submission]:
    """Merge submissions across a teacher's quizzes, most recent first.

    With ``class_id`` only submissions whose quiz (looked up in ``quizzes``)
    belongs to that class are kept.
    """
    rows = list(submissions)
    if class_id is not None:
        quiz_classes = {quiz.id: quiz.class_id for quiz in quizzes or []}
        rows = [row for row in rows if quiz_classes.get(row.quiz_id) == class_id]
    return sorted(rows, key=lambda row: timestamp_sort_key(row.attempted_at), reverse=True)
