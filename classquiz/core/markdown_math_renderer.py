"""Markdown + LaTeX rendering helpers for question text and review sheets.

Architecture note:
    Math is left in the HTML as ``$...$``/``$$...$$`` and typeset by MathJax
    when the page is displayed, so question sources stay engine-agnostic.
    Fenced ``sage`` blocks are computation cells: they are emitted as
    placeholders that the SageMathCell embed script turns into live cells.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import html

from markdown_it import MarkdownIt

from classquiz.core.models import GradeStatus, Question, Quiz, Submission

_MATHJAX_SCRIPT = (
    "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"
)
_SAGECELL_SCRIPT = "https://sagecell.sagemath.org/static/embedded_sagecell.js"


def _render_fence(self, tokens, idx, options, env) -> str:  # type: ignore[no-untyped-def]
    token = tokens[idx]
    language = token.info.strip().split(maxsplit=1)[0] if token.info.strip() else ""
    if language == "sage":
        # Script content is not entity-decoded; only a closing tag can break out.
        code = token.content.rstrip("\n").replace("</", "<\\/")
        return (
            '<div class="sage-compute">'
            f'<script type="text/x-sage">{code}</script>'
            "</div>\n"
        )
    return self.fence(tokens, idx, options, env)


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math into HTML fragments or full documents."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )
        self._markdown.add_render_rule("fence", _render_fence)

    def render_fragment(self, markdown_text: str) -> str:
        """Render a markdown string into an HTML fragment."""

        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        return self._markdown.render(sanitized)

    def wrap_with_mathjax(self, body_html: str, title: str = "ClassQuiz") -> str:
        """Wrap a fragment inside a minimal HTML document that loads MathJax."""

        return f"""<!doctype html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <title>{html.escape(title)}</title>
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <style>
      body {{ font-family: 'Segoe UI', system-ui, sans-serif; margin: 0; padding: 1rem; color: #1e293b; }}
      .question-html {{ font-size: 1.1rem; line-height: 1.5; }}
      .evaluation.correct {{ color: #166534; }}
      .evaluation.review {{ color: #991b1b; }}
    </style>
    <script>
      window.MathJax = {{ tex: {{ inlineMath: [['$','$']], displayMath: [['$$','$$']] }}, svg: {{ fontCache: 'global' }} }};
    </script>
    <script defer src=\"{_MATHJAX_SCRIPT}\"></script>
    <script src=\"{_SAGECELL_SCRIPT}\"></script>
    <script>
      window.addEventListener('load', function () {{
        if (window.sagecell) {{ sagecell.makeSagecell({{ inputLocation: 'div.sage-compute', languages: ['sage'] }}); }}
      }});
    </script>
  </head>
  <body>
    <div class=\"question-html\">{body_html}</div>
  </body>
</html>"""

    def render_full_document(self, markdown_text: str, title: str = "ClassQuiz") -> str:
        """Convenience wrapper to render markdown and embed MathJax."""

        fragment = self.render_fragment(markdown_text)
        return self.wrap_with_mathjax(fragment, title=title)


renderer = MarkdownMathRenderer()


def review_questions(quiz: Quiz | None, submission: Submission) -> list[Question]:
    """Questions to show for ``submission``; rebuilt from answer keys when the quiz is gone."""
    if quiz is not None and quiz.questions:
        return list(quiz.questions)
    return [Question(id=question_id, text=f"Question ID: {question_id}") for question_id in submission.answers]


def render_submission_review(
    quiz: Quiz | None,
    submission: Submission,
    for_student: bool = False,
    markdown_renderer: MarkdownMathRenderer = renderer,
) -> str:
    """Render one attempt as an HTML review sheet.

    Students only see the sheet when the quiz allows review, and only see
    feedback on questions that show it.
    """
    if for_student and quiz is not None and not quiz.allow_review:
        raise RuntimeError("Review is disabled for this quiz.")

    title = quiz.title if quiz is not None else submission.quiz_title or "Submission Review"
    who = submission.student_name or submission.student_email or "Unknown Student"
    sections = [
        f"<h1>{html.escape(title)}</h1>",
        f"<p>{html.escape(who)} - Attempt {submission.display_attempt_number}</p>",
    ]
    if submission.grade_status is GradeStatus.NEEDS_TEACHER_REVIEW:
        sections.append("<p><strong>Needs teacher review</strong></p>")

    evaluations = submission.evaluations or {}
    for index, question in enumerate(review_questions(quiz, submission), start=1):
        answer = submission.answers.get(question.id, "")
        parts = [
            f"<section class=\"review-item\" data-question-id=\"{html.escape(question.id)}\">",
            f"<h2>Question {index}</h2>",
            markdown_renderer.render_fragment(question.text),
            "<h3>Answer</h3>",
            markdown_renderer.render_fragment(answer),
        ]
        evaluation = evaluations.get(question.id)
        if evaluation is not None and (question.show_feedback or not for_student):
            css = "correct" if evaluation.is_correct else "review"
            label = "Correct" if evaluation.is_correct else "Needs Review"
            parts.append(
                f"<div class=\"evaluation {css}\"><strong>{label}</strong>"
                f"<p>{html.escape(evaluation.feedback)}</p></div>"
            )
        parts.append("</section>")
        sections.append("\n".join(parts))

    return markdown_renderer.wrap_with_mathjax("\n".join(sections), title=title)
