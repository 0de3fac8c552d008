"""Limits and model names used when talking to the grading model."""

MAX_TITLE_CHARS: int = 200
MAX_FIELD_CHARS: int = 1200
MAX_QUESTIONS: int = 20
ELLIPSIS: str = "…"

DEFAULT_GRADING_TIMEOUT_SECONDS: float = 20.0
DEFAULT_GEMINI_MODEL: str = "gemini-2.5-flash"
FALLBACK_GEMINI_MODELS: tuple[str, ...] = ("gemini-flash-latest", "gemini-2.0-flash")
NO_ANSWER_PLACEHOLDER: str = "No answer provided"
