import pytest

from jlpt_quiz.achievements import BADGES, award_badge, evaluate
from jlpt_quiz.models import HistoryRecord
from jlpt_quiz.session import QuizResult


def make_result(level="N3", score=50.0, total=5, elapsed=120):
    return QuizResult(
        level=level,
        score=score,
        correct_count=round(score / 100 * total),
        total=total,
        elapsed_seconds=elapsed,
    )


def record(level="N3", score=50.0):
    return HistoryRecord(date="2024-01-01", level=level, score=score)


def submit(store, result):
    store.append_history(result.to_history_record())
    return award_badge(result, store)


def test_first_quiz_wins_over_other_matching_badges():
    result = make_result(level="N5", score=100.0, total=10, elapsed=30)
    assert evaluate(result, [record()], unlocked=[]) == "firstQuiz"


@pytest.mark.parametrize(
    "unlocked, expected",
    [
        (["firstQuiz"], "perfectScore"),
        (["firstQuiz", "perfectScore"], "levelStarter"),
        (["firstQuiz", "perfectScore", "levelStarter"], "quickLearner"),
        (["firstQuiz", "perfectScore", "levelStarter", "quickLearner"], None),
    ],
)
def test_priority_order_skips_unlocked_badges(unlocked, expected):
    result = make_result(level="N5", score=100.0, total=10, elapsed=30)
    history = [record(), record()]
    assert evaluate(result, history, unlocked) == expected


def test_quick_learner_needs_ten_questions_under_a_minute():
    history = [record(), record()]
    unlocked = ["firstQuiz"]
    assert evaluate(make_result(total=10, elapsed=59), history, unlocked) == "quickLearner"
    assert evaluate(make_result(total=10, elapsed=60), history, unlocked) is None
    assert evaluate(make_result(total=9, elapsed=10), history, unlocked) is None


def test_starter_level_is_configurable():
    history = [record(), record()]
    result = make_result(level="Beginner")
    assert evaluate(result, history, ["firstQuiz"], starter_level="Beginner") == "levelStarter"
    assert evaluate(result, history, ["firstQuiz"]) is None


def test_perfect_score_unlocks_exactly_once(store):
    assert submit(store, make_result(score=50.0)).id == "firstQuiz"
    assert submit(store, make_result(score=100.0)).id == "perfectScore"
    assert submit(store, make_result(score=100.0)) is None
    assert store.load_unlocked().count("perfectScore") == 1
    assert store.load_unlocked() == ["firstQuiz", "perfectScore"]


def test_badges_survive_history_deletion(store):
    submit(store, make_result())
    store.delete_history_at(0)
    assert store.load_unlocked() == ["firstQuiz"]


def test_badge_names_are_localized():
    badge = BADGES["levelStarter"]
    assert badge.name("ja", "N5") == "N5 入門"
    assert badge.name("en", "N4") == "N4 Starter"
    assert badge.name("fr", "N3") == "N3 Starter"
