"""Application entry point for the ClassQuiz grading proxy."""

from __future__ import annotations

from classquiz.config import Settings
from classquiz.server.api_server import run_api_server
from classquiz.utils.logging_config import configure_logging


def main() -> None:
    """Load settings, initialize logging and serve the grading API."""
    settings = Settings.from_env()
    logger = configure_logging(settings.log_level)
    logger.info("Starting ClassQuiz grading proxy on %s:%d", settings.host, settings.port)
    if not settings.grader_configured:
        logger.warning("GEMINI_API_KEY is not set; /grade will answer with a configuration error.")
    run_api_server(settings)


if __name__ == "__main__":
    main()
