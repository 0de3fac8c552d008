"""Network configuration constants for the grading proxy."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
DEFAULT_GRADING_URL: str = "http://127.0.0.1:8000/grade"
