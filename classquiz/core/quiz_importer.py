"""Utilities for importing quiz questions from a human-friendly text file.

File format (repeat blocks separated by blank lines or '---'):

    Q: Question text (supports markdown + LaTeX). Additional lines until the
       next marker are treated as part of the question, including blank
       lines inside fenced ``` code cells.
    ID: stable question id (optional, generated on save when omitted)
    FEEDBACK: yes|no       (optional, defaults to yes)

Example:

    Q: Solve $x^2 - 5x + 6 = 0$.
    ID: q-quadratic
    FEEDBACK: yes

Architecture note:
    Question ids are what submissions index answers by, so an imported id is
    kept verbatim; renaming it later orphans earlier attempts.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from classquiz.core.models import Question


class QuizImportError(Exception):
    """Raised when a quiz definition cannot be parsed."""


@dataclass(slots=True)
class ImportedQuiz:
    """Container for imported quiz metadata and questions."""

    source_path: Path
    questions: list[Question]


_TRUE_VALUES = {"yes", "y", "true", "1", "on"}
_FALSE_VALUES = {"no", "n", "false", "0", "off"}


def load_quiz_from_file(file_path: Path) -> ImportedQuiz:
    text = file_path.read_text(encoding="utf-8")
    questions = parse_quiz_text(text)
    if not questions:
        raise QuizImportError("Quiz file did not contain any questions.")
    return ImportedQuiz(source_path=file_path, questions=questions)


def parse_quiz_text(text: str) -> list[Question]:
    blocks: list[str] = []
    current_block: list[str] = []
    in_fence = False
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped.startswith("```"):
            in_fence = not in_fence
        if not in_fence and stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped or in_fence:
            current_block.append(raw_line)
        elif current_block:
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())

    questions = [_parse_block(block) for block in blocks if block]
    seen: set[str] = set()
    for question in questions:
        if question.id and question.id in seen:
            raise QuizImportError(f"Duplicate question id '{question.id}'.")
        seen.add(question.id)
    return questions


def _parse_block(block: str) -> Question:
    question_lines: list[str] = []
    question_id = ""
    show_feedback = True
    in_question = False

    for raw_line in block.splitlines():
        line = raw_line.strip()
        upper = line.upper()

        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            in_question = True
            continue

        if upper.startswith("ID:"):
            question_id = line.split(":", 1)[1].strip()
            if not question_id:
                raise QuizImportError("ID must not be empty.")
            in_question = False
            continue

        if upper.startswith("FEEDBACK:"):
            raw_value = line.split(":", 1)[1].strip().lower()
            if raw_value in _TRUE_VALUES:
                show_feedback = True
            elif raw_value in _FALSE_VALUES:
                show_feedback = False
            else:
                raise QuizImportError("FEEDBACK must be 'yes' or 'no'.")
            in_question = False
            continue

        if in_question:
            question_lines.append(raw_line.rstrip())
        elif line:
            raise QuizImportError(
                f"Encountered text outside of a known section: '{line}'."
            )

    question_text = "\n".join(question_lines).strip()
    if not question_text:
        raise QuizImportError("Question text missing (Q: ...)")

    return Question(id=question_id, text=question_text, show_feedback=show_feedback)
