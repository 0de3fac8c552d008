"""Grades free-text math answers with Google Gemini.

The grader walks a short list of candidate models. A candidate is skipped
only when the model does not exist (404 / "not found"); any other failure
aborts immediately so quota or auth problems surface as they are.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Mapping, Protocol, Sequence

import google.generativeai as genai

from classquiz.constants.grading_constants import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_GRADING_TIMEOUT_SECONDS,
    FALLBACK_GEMINI_MODELS,
    MAX_FIELD_CHARS,
    MAX_QUESTIONS,
    MAX_TITLE_CHARS,
    NO_ANSWER_PLACEHOLDER,
)
from classquiz.core.grading import truncate

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?")

GRADER_INSTRUCTIONS = """INSTRUCTIONS:
1. Check if the math is correct. Implicit multiplication and LaTeX variations are allowed.
2. If answer is blank/empty, it is incorrect.
3. Return ONLY valid JSON. The keys MUST match the Question IDs exactly.

Structure:
{
  "evaluations": {
    "QUESTION_ID": { "isCorrect": boolean, "feedback": "Brief feedback string" }
  }
}"""


class GraderConfigurationError(Exception):
    """Raised when the grader lacks credentials."""


class ModelUnavailableError(Exception):
    """Raised when every candidate model was reported as not found."""


class MalformedModelResponseError(Exception):
    """Raised when the model reply is not the expected JSON shape."""


class GenerativeModel(Protocol):
    def generate_content(self, contents: Any, **kwargs: Any) -> Any: ...


ModelFactory = Callable[[str], GenerativeModel]


def model_candidates(configured_model: str | None) -> list[str]:
    """Configured model first, then the fallbacks, without duplicates."""
    ordered = [configured_model or DEFAULT_GEMINI_MODEL, *FALLBACK_GEMINI_MODELS]
    return list(dict.fromkeys(ordered))


def is_model_not_found(error: BaseException) -> bool:
    status = getattr(error, "code", None) or getattr(error, "status", None)
    if callable(status):
        status = None
    if status in (404, "404", "NOT_FOUND"):
        return True
    message = str(error)
    return "404" in message or "not found" in message.lower()


def build_prompt(quiz_title: str, questions: Sequence[Mapping[str, Any]], answers: Mapping[str, Any]) -> str:
    """Assemble the grading prompt with every field capped in size."""
    blocks = []
    for question in list(questions)[:MAX_QUESTIONS]:
        question_id = str(question.get("id") or "")
        answer = truncate(answers.get(question_id), MAX_FIELD_CHARS) or NO_ANSWER_PLACEHOLDER
        blocks.append(
            f'[ID: "{question_id}"]\n'
            f"Question: {truncate(question.get('text'), MAX_FIELD_CHARS)}\n"
            f"Student Answer: {answer}"
        )
    joined = "\n----------------\n".join(blocks)
    return (
        "You are a math teacher grading a quiz.\n"
        f"Quiz Title: {truncate(quiz_title, MAX_TITLE_CHARS)}\n\n"
        "Questions & Student Answers:\n"
        f"{joined}\n\n"
        f"{GRADER_INSTRUCTIONS}\n"
    )


def extract_json(text: str) -> dict[str, Any] | None:
    """Pull the outermost JSON object out of a model reply."""
    cleaned = _CODE_FENCE.sub("", text or "")
    first_open = cleaned.find("{")
    last_close = cleaned.rfind("}")
    if first_open == -1 or last_close < first_open:
        return None
    try:
        parsed = json.loads(cleaned[first_open : last_close + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _default_model_factory(api_key: str) -> ModelFactory:
    genai.configure(api_key=api_key)
    return lambda name: genai.GenerativeModel(name)


class GeminiGrader:
    """Turns a grading request into ``{"evaluations": {...}}`` using Gemini."""

    def __init__(
        self,
        api_key: str,
        configured_model: str | None = None,
        timeout_seconds: float = DEFAULT_GRADING_TIMEOUT_SECONDS,
        model_factory: ModelFactory | None = None,
    ) -> None:
        if not api_key:
            raise GraderConfigurationError("GEMINI_API_KEY is missing.")
        self._candidates = model_candidates(configured_model)
        self._timeout_seconds = timeout_seconds
        self._model_factory = model_factory or _default_model_factory(api_key)

    @property
    def candidates(self) -> list[str]:
        return list(self._candidates)

    def grade(
        self,
        quiz_title: str,
        questions: Sequence[Mapping[str, Any]],
        student_answers: Mapping[str, Any],
    ) -> dict[str, Any]:
        prompt = build_prompt(quiz_title, questions, student_answers)
        text, used_model = self._generate(prompt)

        parsed = extract_json(text)
        if not parsed or not isinstance(parsed.get("evaluations"), dict):
            raise MalformedModelResponseError(
                f"Gemini returned non-JSON or unexpected JSON shape (model: {used_model})."
            )
        return parsed

    def _generate(self, prompt: str) -> tuple[str, str]:
        last_error: BaseException | None = None
        for model_name in self._candidates:
            try:
                model = self._model_factory(model_name)
                response = model.generate_content(
                    prompt,
                    request_options={"timeout": self._timeout_seconds},
                )
                text = getattr(response, "text", "") or ""
            except Exception as exc:
                last_error = exc
                logger.error("Gemini model failed: %s (%s)", model_name, exc)
                if not is_model_not_found(exc):
                    raise
                continue
            if text:
                logger.info("Graded with model %s", model_name)
                return text, model_name
            last_error = MalformedModelResponseError(f"Empty reply from model {model_name}.")
            break

        detail = str(last_error) if last_error else "Unknown Gemini error"
        raise ModelUnavailableError(f"All model candidates failed. Last error: {detail}")
