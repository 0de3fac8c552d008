"""FastAPI server that exposes the grading proxy.

The proxy keeps the model API key on the server. Clients post the quiz title,
the questions and the student's answers to ``/grade`` and receive
``{"evaluations": {...}}`` or a non-2xx status with ``{"error": ...}``.
"""

from __future__ import annotations

import json
import logging
from threading import Thread
from typing import Any, Callable, Protocol

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.concurrency import run_in_threadpool
import uvicorn

from classquiz.config import Settings
from classquiz.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from classquiz.server.gemini_grader import GeminiGrader

logger = logging.getLogger(__name__)

_CONFIGURATION_ERROR = "Server Configuration Error"


class Grader(Protocol):
    def grade(
        self,
        quiz_title: str,
        questions: list[dict[str, Any]],
        student_answers: dict[str, Any],
    ) -> dict[str, Any]: ...


class GradeQuestionPayload(BaseModel):
    """One question as sent to the grader."""

    id: str
    text: str = ""


class GradeRequestPayload(BaseModel):
    """Payload schema for grading requests."""

    model_config = ConfigDict(populate_by_name=True)

    quiz_title: str = Field(default="", alias="quizTitle")
    questions: list[GradeQuestionPayload]
    student_answers: dict[str, str | None] = Field(default_factory=dict, alias="studentAnswers")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _default_grader_factory(settings: Settings) -> Grader:
    return GeminiGrader(
        api_key=settings.gemini_api_key,
        configured_model=settings.gemini_model,
        timeout_seconds=settings.grading_timeout_seconds,
    )


def create_api_app(
    settings: Settings,
    grader: Grader | None = None,
    grader_factory: Callable[[Settings], Grader] = _default_grader_factory,
) -> FastAPI:
    """Create a FastAPI application wired to the provided grader.

    Without an explicit ``grader`` one is built on first use from
    ``settings``; a missing API key then yields a generic 500.
    """
    app = FastAPI(
        title=f"{APP_NAME} Grading API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
    )
    state: dict[str, Grader | None] = {"grader": grader}

    def resolve_grader() -> Grader | None:
        if state["grader"] is None and settings.grader_configured:
            state["grader"] = grader_factory(settings)
        return state["grader"]

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/grade")
    async def grade(request: Request) -> JSONResponse:
        active_grader = resolve_grader()
        if active_grader is None:
            logger.error("Server Error: GEMINI_API_KEY is missing.")
            return _error(500, _CONFIGURATION_ERROR)

        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _error(400, "Request body must be valid JSON.")

        try:
            payload = GradeRequestPayload.model_validate(body)
        except ValidationError as exc:
            return _error(400, f"Invalid grading request: {exc.error_count()} validation error(s).")

        try:
            result = await run_in_threadpool(
                active_grader.grade,
                payload.quiz_title,
                [question.model_dump() for question in payload.questions],
                {key: value or "" for key, value in payload.student_answers.items()},
            )
        except Exception as exc:
            logger.exception("AI Grading Error")
            return _error(500, str(exc) or "Unknown AI grading error")
        return JSONResponse(status_code=200, content=result)

    @app.api_route("/grade", methods=["GET", "PUT", "PATCH", "DELETE"])
    def grade_wrong_method() -> Response:
        if resolve_grader() is None:
            return _error(500, _CONFIGURATION_ERROR)
        return PlainTextResponse("Method Not Allowed", status_code=405)

    return app


def _build_server(app: FastAPI, host: str, port: int) -> uvicorn.Server:
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    return uvicorn.Server(config)


def start_api_server(settings: Settings, grader: Grader | None = None) -> Thread:
    """Start the FastAPI server in a background daemon thread."""
    server = _build_server(create_api_app(settings, grader), settings.host, settings.port)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="GradingApiServer", daemon=True)
    thread.start()
    return thread


def run_api_server(settings: Settings, grader: Grader | None = None) -> None:
    """Run the FastAPI server on the calling thread until it is stopped."""
    _build_server(create_api_app(settings, grader), settings.host, settings.port).run()
