"""Static metadata describing ClassQuiz."""

APP_NAME = "ClassQuiz"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "ClassQuiz is a classroom math quiz service. Teachers write questions in Markdown with "
    "LaTeX and computation cells, organize students into classes, and review AI-assisted "
    "grading of free-text answers."
)
