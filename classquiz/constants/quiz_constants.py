"""Quiz-related constants shared across the core and server layers."""

DEFAULT_MAX_ATTEMPTS: int = 1
DEFAULT_QUIZ_TITLE: str = "Untitled Quiz"
DEFAULT_CLASS_NAME: str = "Unassigned"

GRADE_STATUS_GRADED: str = "graded"
GRADE_STATUS_NEEDS_REVIEW: str = "needs_teacher_review"
FALLBACK_FEEDBACK: str = "Automatic grading is unavailable. Your teacher will review this answer."

# Document store collection names.
QUIZZES: str = "quizzes"
CLASSES: str = "classes"
CLASS_ENROLLMENTS: str = "classEnrollments"
SUBMISSIONS: str = "submissions"
TEACHER_EMAILS: str = "teacherEmails"
USER_PROFILES: str = "userProfiles"
