"""Client side of AI grading.

``grade_or_fallback`` is the single failure-handling contract of the attempt
flow: the student's answers are always kept, only the quality of the
evaluation degrades when the grading service misbehaves.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping, Protocol

import requests

from classquiz.constants.grading_constants import (
    DEFAULT_GRADING_TIMEOUT_SECONDS,
    ELLIPSIS,
    MAX_FIELD_CHARS,
    MAX_QUESTIONS,
    MAX_TITLE_CHARS,
)
from classquiz.constants.quiz_constants import FALLBACK_FEEDBACK
from classquiz.core.models import Evaluation, GradeStatus, Quiz, evaluations_from_document

logger = logging.getLogger(__name__)


class GradingError(Exception):
    """Raised when the grading service cannot produce evaluations."""


class GradingService(Protocol):
    def grade(
        self,
        quiz: Quiz,
        answers: Mapping[str, str],
        timeout: float,
    ) -> dict[str, Evaluation]: ...


@dataclass(slots=True)
class GradeOutcome:
    evaluations: dict[str, Evaluation]
    grade_status: GradeStatus

    @property
    def needs_teacher_review(self) -> bool:
        return self.grade_status is GradeStatus.NEEDS_TEACHER_REVIEW


def truncate(text: object, limit: int) -> str:
    """Cap ``text`` at ``limit`` characters, marking the cut with an ellipsis."""
    value = str(text or "")
    if len(value) <= limit:
        return value
    return value[:limit] + ELLIPSIS


def build_grading_request(quiz: Quiz, answers: Mapping[str, str]) -> dict[str, Any]:
    """Build the wire payload for the grading boundary with size limits applied."""
    questions = quiz.questions[:MAX_QUESTIONS]
    return {
        "quizTitle": truncate(quiz.title, MAX_TITLE_CHARS),
        "questions": [
            {"id": question.id, "text": truncate(question.text, MAX_FIELD_CHARS)}
            for question in questions
        ],
        "studentAnswers": {
            question.id: truncate(answers.get(question.id, ""), MAX_FIELD_CHARS)
            for question in questions
            if question.id in answers
        },
    }


def parse_grading_response(payload: object) -> dict[str, Evaluation]:
    if not isinstance(payload, Mapping) or not isinstance(payload.get("evaluations"), Mapping):
        raise GradingError("Grading response did not contain an evaluations object.")
    return evaluations_from_document(payload["evaluations"])


class HttpGradingService:
    """Calls the grading proxy over HTTP."""

    def __init__(self, url: str, session: requests.Session | None = None) -> None:
        self._url = url
        self._session = session or requests.Session()

    def grade(
        self,
        quiz: Quiz,
        answers: Mapping[str, str],
        timeout: float = DEFAULT_GRADING_TIMEOUT_SECONDS,
    ) -> dict[str, Evaluation]:
        payload = build_grading_request(quiz, answers)
        try:
            response = self._session.post(self._url, json=payload, timeout=timeout)
        except requests.Timeout as exc:
            raise GradingError(f"Grading timed out after {timeout:g}s.") from exc
        except requests.RequestException as exc:
            raise GradingError(f"Grading request failed: {exc}") from exc

        if not response.ok:
            details = ""
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, Mapping) and body.get("error"):
                details = f" - {body['error']}"
            raise GradingError(f"Server Error: {response.status_code}{details}")

        try:
            body = response.json()
        except ValueError as exc:
            raise GradingError("Grading response was not valid JSON.") from exc
        return parse_grading_response(body)

    def close(self) -> None:
        self._session.close()


def fallback_evaluations(quiz: Quiz) -> dict[str, Evaluation]:
    return {
        question.id: Evaluation(is_correct=False, feedback=FALLBACK_FEEDBACK)
        for question in quiz.questions
    }


def grade_or_fallback(
    quiz: Quiz,
    answers: Mapping[str, str],
    grading_service: GradingService,
    timeout: float = DEFAULT_GRADING_TIMEOUT_SECONDS,
) -> GradeOutcome:
    """Grade ``answers``; on any failure mark every question for teacher review."""
    try:
        evaluations = grading_service.grade(quiz, answers, timeout)
    except Exception as exc:
        logger.warning("Grading failed for quiz %s, falling back to teacher review: %s", quiz.id, exc)
        return GradeOutcome(fallback_evaluations(quiz), GradeStatus.NEEDS_TEACHER_REVIEW)

    checked = _checked_evaluations(evaluations)
    if checked is None:
        logger.warning("Grading service returned malformed evaluations for quiz %s", quiz.id)
        return GradeOutcome(fallback_evaluations(quiz), GradeStatus.NEEDS_TEACHER_REVIEW)
    return GradeOutcome(checked, GradeStatus.GRADED)


def _checked_evaluations(result: object) -> dict[str, Evaluation] | None:
    """Evaluations keyed by question id, or None when any entry is unusable.

    Raw ``{"isCorrect": ..., "feedback": ...}`` mappings are accepted.
    """
    if not isinstance(result, Mapping):
        return None
    checked: dict[str, Evaluation] = {}
    for question_id, entry in result.items():
        if isinstance(entry, Evaluation):
            checked[str(question_id)] = entry
        elif isinstance(entry, Mapping):
            checked[str(question_id)] = Evaluation.from_document(entry)
        else:
            return None
    return checked
