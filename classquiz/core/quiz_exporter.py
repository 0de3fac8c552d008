"""Utilities for exporting quiz questions to the plain-text import format."""

from __future__ import annotations

from pathlib import Path

from classquiz.core.models import Question


def save_quiz_to_file(file_path: Path, questions: list[Question]) -> None:
    """Persist the provided questions to disk in the text import format."""

    if not questions:
        raise ValueError("Cannot export an empty quiz.")

    file_path = file_path.resolve()
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(serialize_questions(questions), encoding="utf-8")


def serialize_questions(questions: list[Question]) -> str:
    blocks = [_serialize_question(question) for question in questions]
    return "\n\n---\n\n".join(blocks) + "\n"


def _serialize_question(question: Question) -> str:
    question_lines = question.text.splitlines() or [""]
    lines = [f"Q: {question_lines[0]}", *question_lines[1:]]
    if question.id:
        lines.append(f"ID: {question.id}")
    lines.append(f"FEEDBACK: {'yes' if question.show_feedback else 'no'}")
    return "\n".join(lines)
