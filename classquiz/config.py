"""Environment-backed settings for the grading proxy and the store workflows.

Recognized variables (a local ``.env`` file is honoured):

    GEMINI_API_KEY            key for the hosted grading model (proxy only)
    GEMINI_MODEL              preferred model name
    GRADING_TIMEOUT_SECONDS   bound on one grading round-trip
    GRADING_URL               where clients reach the proxy
    CLASSQUIZ_HOST / _PORT    bind address of the proxy
    TEACHER_EMAIL             primary teacher (may manage the allow-list)
    TEACHER_EMAILS            comma separated list of additional teachers
    LOG_LEVEL                 logging level name
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Mapping

from dotenv import load_dotenv

from classquiz.constants.grading_constants import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_GRADING_TIMEOUT_SECONDS,
)
from classquiz.constants.network_constants import (
    DEFAULT_GRADING_URL,
    DEFAULT_HOST,
    DEFAULT_PORT,
)


def normalize_email(email: object) -> str:
    return str(email or "").strip().lower()


def _parse_teacher_emails(raw: str, primary: str) -> frozenset[str]:
    emails = {normalize_email(value) for value in raw.split(",")}
    if primary:
        emails.add(primary)
    emails.discard("")
    return frozenset(emails)


def _parse_float(raw: str | None, default: float) -> float:
    try:
        value = float(raw) if raw else default
    except ValueError:
        return default
    return value if math.isfinite(value) and value > 0 else default


def _parse_int(raw: str | None, default: int) -> int:
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    grading_timeout_seconds: float = DEFAULT_GRADING_TIMEOUT_SECONDS
    grading_url: str = DEFAULT_GRADING_URL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    primary_teacher_email: str = ""
    teacher_emails: frozenset[str] = field(default_factory=frozenset)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``environ`` (defaults to ``os.environ`` after loading ``.env``)."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        primary = normalize_email(environ.get("TEACHER_EMAIL", ""))
        return cls(
            gemini_api_key=environ.get("GEMINI_API_KEY", "").strip(),
            gemini_model=environ.get("GEMINI_MODEL", "").strip() or DEFAULT_GEMINI_MODEL,
            grading_timeout_seconds=_parse_float(
                environ.get("GRADING_TIMEOUT_SECONDS"), DEFAULT_GRADING_TIMEOUT_SECONDS
            ),
            grading_url=environ.get("GRADING_URL", "").strip() or DEFAULT_GRADING_URL,
            host=environ.get("CLASSQUIZ_HOST", "").strip() or DEFAULT_HOST,
            port=_parse_int(environ.get("CLASSQUIZ_PORT"), DEFAULT_PORT),
            primary_teacher_email=primary,
            teacher_emails=_parse_teacher_emails(environ.get("TEACHER_EMAILS", ""), primary),
            log_level=environ.get("LOG_LEVEL", "").strip() or "INFO",
        )

    @property
    def grader_configured(self) -> bool:
        return bool(self.gemini_api_key)
