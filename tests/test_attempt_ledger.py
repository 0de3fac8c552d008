"""Tests for attempt accounting: summaries, attempt budget, prefill, shuffle and ordering."""

from __future__ import annotations

from collections import Counter
import random

import pytest

from classquiz.core.attempt_ledger import (
    AttemptSummary,
    attempt_info,
    group_by_quiz,
    initial_answers,
    is_startable,
    present_questions,
    sort_attempt_history,
    summarize_by_quiz,
    teacher_feed,
)
from classquiz.core.models import Submission


# ── summarize_by_quiz ───────────────────────────────────────


class TestSummarizeByQuiz:
    def test_empty_input_yields_empty_map(self):
        assert summarize_by_quiz([], "student-1") == {}

    def test_counts_match_records_per_quiz(self, submission_factory):
        rows = [
            submission_factory(1, quiz_id="a"),
            submission_factory(2, quiz_id="a"),
            submission_factory(1, quiz_id="b"),
            submission_factory(3, quiz_id="a"),
        ]
        summary = summarize_by_quiz(rows, "student-1")
        expected = Counter(row.quiz_id for row in rows)
        assert {quiz_id: entry.count for quiz_id, entry in summary.items()} == dict(expected)

    def test_latest_is_highest_attempt_number(self, submission_factory):
        rows = [
            submission_factory(2, answers={"q1": "second"}),
            submission_factory(1, answers={"q1": "first"}),
        ]
        entry = summarize_by_quiz(rows, "student-1")["quiz-1"]
        assert entry.latest_attempt_number == 2
        assert entry.latest_answers == {"q1": "second"}
        assert entry.latest_evaluations["q1"].feedback == "attempt 2"

    def test_tie_goes_to_the_later_record(self, submission_factory):
        earlier_seen = submission_factory(
            2, answers={"q1": "seen first"}, attempted_at="2024-05-01T12:00:00Z", submission_id="x"
        )
        later_seen = submission_factory(
            2, answers={"q1": "seen last"}, attempted_at="2024-01-01T12:00:00Z", submission_id="y"
        )
        entry = summarize_by_quiz([earlier_seen, later_seen], "student-1")["quiz-1"]
        assert entry.latest_answers == {"q1": "seen last"}

        reversed_entry = summarize_by_quiz([later_seen, earlier_seen], "student-1")["quiz-1"]
        assert reversed_entry.latest_answers == {"q1": "seen first"}

    def test_latest_answers_and_evaluations_come_from_same_record(self, submission_factory):
        first = submission_factory(1, answers={"q1": "one"})
        second = submission_factory(2, answers={"q1": "two"}, evaluations=None)
        entry = summarize_by_quiz([first, second], "student-1")["quiz-1"]
        assert entry.latest_answers == {"q1": "two"}
        assert entry.latest_evaluations == {}

    def test_records_without_quiz_id_are_skipped(self, submission_factory):
        rows = [submission_factory(1, quiz_id=""), submission_factory(1, quiz_id="a")]
        summary = summarize_by_quiz(rows, "student-1")
        assert list(summary) == ["a"]
        assert summary["a"].count == 1

    def test_other_students_are_skipped(self, submission_factory):
        rows = [submission_factory(1), submission_factory(1, student_id="student-2")]
        assert summarize_by_quiz(rows, "student-1")["quiz-1"].count == 1
        assert summarize_by_quiz(rows)["quiz-1"].count == 2

    def test_missing_attempt_numbers_still_pick_a_latest(self, submission_factory):
        rows = [
            submission_factory(0, answers={"q1": "legacy a"}),
            submission_factory(0, answers={"q1": "legacy b"}),
        ]
        entry = summarize_by_quiz(rows, "student-1")["quiz-1"]
        assert entry.count == 2
        assert entry.latest_answers == {"q1": "legacy b"}

    def test_is_idempotent(self, submission_factory):
        rows = [submission_factory(1), submission_factory(2, quiz_id="b"), submission_factory(2)]
        assert summarize_by_quiz(rows, "student-1") == summarize_by_quiz(rows, "student-1")


# ── attempt_info ────────────────────────────────────────────


class TestAttemptInfo:
    @pytest.mark.parametrize("raw", [0, -3, "abc", None, "", float("nan"), float("inf"), [], {}, 10**400, "1e400"])
    def test_malformed_max_attempts_defaults_to_one(self, raw):
        info = attempt_info({"id": "quiz-1", "maxAttempts": raw}, {})
        assert info.max_attempts == 1
        assert info.remaining_attempts == 1

    def test_missing_max_attempts_defaults_to_one(self):
        assert attempt_info({"id": "quiz-1"}, {}).max_attempts == 1

    @pytest.mark.parametrize("raw, expected", [(3.7, 3), ("4", 4), (2, 2), ("2.9", 2)])
    def test_fractional_values_are_floored(self, raw, expected):
        assert attempt_info({"id": "quiz-1", "maxAttempts": raw}, {}).max_attempts == expected

    def test_never_raises_on_odd_quiz_objects(self):
        assert attempt_info(None, {}).max_attempts == 1  # type: ignore[arg-type]
        assert attempt_info(object(), {}).used_attempts == 0  # type: ignore[arg-type]
        assert attempt_info({"id": 42}, {"42": AttemptSummary(count=5)}).used_attempts == 0

    def test_remaining_never_negative(self, quiz_factory):
        quiz = quiz_factory(max_attempts=2)
        info = attempt_info(quiz, {"quiz-1": AttemptSummary(count=7)})
        assert info.used_attempts == 7
        assert info.remaining_attempts == 0

    def test_one_of_two_attempts_used(self, quiz_factory, submission_factory):
        quiz = quiz_factory(max_attempts=2)
        summary = summarize_by_quiz([submission_factory(1)], "student-1")
        info = attempt_info(quiz, summary)
        assert (info.max_attempts, info.used_attempts, info.remaining_attempts) == (2, 1, 1)

    def test_locked_quiz_is_not_startable(self, quiz_factory):
        assert is_startable(quiz_factory(), {})
        assert not is_startable(quiz_factory(is_locked=True), {})
        assert not is_startable(quiz_factory(max_attempts=1), {"quiz-1": AttemptSummary(count=1)})


# ── prefill and shuffle ─────────────────────────────────────


class TestRetakePolicy:
    def test_prefill_copies_latest_answers(self, quiz_factory, submission_factory):
        quiz = quiz_factory(prefill_from_last_attempt=True)
        summary = summarize_by_quiz([submission_factory(1, answers={"q1": "42"})], "student-1")

        answers = initial_answers(quiz, summary)
        answers["q1"] = "changed"

        assert summary["quiz-1"].latest_answers == {"q1": "42"}

    def test_no_prefill_starts_empty(self, quiz_factory, submission_factory):
        summary = summarize_by_quiz([submission_factory(1)], "student-1")
        assert initial_answers(quiz_factory(prefill_from_last_attempt=False), summary) == {}

    def test_prefill_without_history_is_empty(self, quiz_factory):
        assert initial_answers(quiz_factory(prefill_from_last_attempt=True), {}) == {}

    def test_fixed_order_without_shuffle(self, quiz_factory):
        quiz = quiz_factory(question_count=6, allow_shuffle=False)
        assert [q.id for q in present_questions(quiz)] == quiz.question_ids()

    def test_shuffle_is_a_permutation(self, quiz_factory):
        quiz = quiz_factory(question_count=8, allow_shuffle=True)
        presented = present_questions(quiz, random.Random(7))
        assert sorted(q.id for q in presented) == sorted(quiz.question_ids())
        assert [q.id for q in quiz.questions] == [f"q{i}" for i in range(1, 9)]

    def test_shuffle_reaches_other_orders(self, quiz_factory):
        quiz = quiz_factory(question_count=4, allow_shuffle=True)
        rng = random.Random(3)
        orders = {tuple(q.id for q in present_questions(quiz, rng)) for _ in range(50)}
        assert len(orders) > 1


# ── ordering ────────────────────────────────────────────────


class TestOrdering:
    def test_attempt_number_beats_timestamp(self, submission_factory):
        first = submission_factory(1, attempted_at="2024-03-02T10:00:00Z")
        second = submission_factory(2, attempted_at="2024-03-01T09:00:00Z")
        grouped = group_by_quiz([first, second])
        assert [row.attempt_number for row in grouped["quiz-1"]] == [2, 1]

    def test_equal_attempts_fall_back_to_timestamp(self, submission_factory):
        old = submission_factory(1, attempted_at="2024-03-01T09:00:00Z", submission_id="old")
        new = submission_factory(1, attempted_at="2024-03-02T09:00:00Z", submission_id="new")
        assert [row.id for row in sort_attempt_history([old, new])] == ["new", "old"]

    def test_group_by_quiz_splits_quizzes(self, submission_factory):
        rows = [submission_factory(1, quiz_id="a"), submission_factory(1, quiz_id="b"), submission_factory(2, quiz_id="a")]
        grouped = group_by_quiz(rows)
        assert set(grouped) == {"a", "b"}
        assert [row.attempt_number for row in grouped["a"]] == [2, 1]

    def test_teacher_feed_orders_by_time_only(self, submission_factory):
        late_first_attempt = submission_factory(1, quiz_id="a", attempted_at="2024-03-05T00:00:00Z")
        early_third_attempt = submission_factory(3, quiz_id="b", attempted_at="2024-03-01T00:00:00Z")
        missing_time = submission_factory(2, quiz_id="a", attempted_at=None)
        feed = teacher_feed([early_third_attempt, missing_time, late_first_attempt])
        assert feed == [late_first_attempt, early_third_attempt, missing_time]

    def test_teacher_feed_class_filter(self, quiz_factory, submission_factory):
        quizzes = [quiz_factory("a", class_id="c1"), quiz_factory("b", class_id="c2")]
        rows = [submission_factory(1, quiz_id="a"), submission_factory(1, quiz_id="b"), submission_factory(1, quiz_id="gone")]
        feed = teacher_feed(rows, quizzes, class_id="c1")
        assert [row.quiz_id for row in feed] == ["a"]

    def test_orderings_disagree_on_skewed_clocks(self, submission_factory):
        rows: list[Submission] = [
            submission_factory(1, attempted_at="2024-03-02T00:00:00Z", submission_id="one"),
            submission_factory(2, attempted_at="2024-03-01T00:00:00Z", submission_id="two"),
        ]
        assert [row.id for row in group_by_quiz(rows)["quiz-1"]] == ["two", "one"]
        assert [row.id for row in teacher_feed(rows)] == ["one", "two"]
