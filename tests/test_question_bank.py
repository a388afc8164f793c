import json
import random
from pathlib import Path

import pytest

from jlpt_quiz.question_bank import QuestionBank

BANK_PATH = Path(__file__).resolve().parent.parent / "bank" / "question_bank.jsonl"


def test_sample_returns_what_is_available_when_pool_is_short(bank):
    # 8 N5 questions, 10 requested
    picked = bank.sample("N5", 10)
    assert len(picked) == 8
    assert len({q.id for q in picked}) == 8


@pytest.mark.parametrize("count", [0, 1, 3, 8])
def test_sample_is_bounded_by_count(bank, count):
    picked = bank.sample("N5", count)
    assert len(picked) == count
    assert all(q.level == "N5" for q in picked)


def test_sample_without_replacement_and_uniform_enough(question_factory):
    questions = [question_factory(level="N3") for _ in range(4)]
    bank = QuestionBank(questions, rng=random.Random(7))
    firsts = {}
    for _ in range(2000):
        first = bank.sample("N3", 4)[0].id
        firsts[first] = firsts.get(first, 0) + 1
    assert set(firsts) == {q.id for q in questions}
    assert min(firsts.values()) > 350


def test_beginner_pool_is_beginner_n5_and_n4(bank):
    levels = {q.level for q in bank.pool("Beginner")}
    assert levels == {"Beginner", "N5", "N4"}
    assert len(bank.pool("Beginner")) == 2 + 8 + 5


def test_pool_can_be_narrowed_by_type(bank):
    pool = bank.pool("Beginner", "Grammar")
    assert len(pool) == 5
    assert all(q.type == "Grammar" for q in pool)


def test_add_skips_duplicate_question_answer_pairs(bank, question_factory):
    existing = bank.by_level("N3")[0]
    dup = question_factory(level="N3", question=existing.question, answer=existing.answer)
    fresh = question_factory(level="N3")
    assert bank.add([dup, fresh]) == 1
    assert len(bank.by_level("N3")) == 4


def test_stats_counts_by_level_and_type(bank):
    stats = bank.stats()
    assert stats["total"] == 18
    assert stats["by_level"]["N5"] == 8
    assert stats["by_type"]["Kanji"] == 3


def test_from_jsonl_skips_broken_lines(tmp_path, question_factory):
    path = tmp_path / "bank.jsonl"
    good = question_factory().to_dict()
    bad = dict(good, answer="not an option", question="別の問題")
    path.write_text(
        "\n".join([json.dumps(good, ensure_ascii=False), "{not json", json.dumps(bad, ensure_ascii=False), ""]),
        encoding="utf-8",
    )
    bank = QuestionBank.from_jsonl(path)
    assert len(bank) == 1


def test_from_jsonl_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        QuestionBank.from_jsonl(tmp_path / "missing.jsonl")


def test_bundled_bank_holds_only_valid_questions():
    bank = QuestionBank.from_jsonl(BANK_PATH)
    stats = bank.stats()
    assert stats["total"] == 87
    for level in ("N5", "N4", "N3", "N2", "N1", "Beginner"):
        assert stats["by_level"].get(level, 0) > 0
    for q in bank.all():
        assert len(q.options) == 4 and q.answer in q.options


def test_by_topic_and_by_difficulty_keep_catalog_order(question_factory):
    questions = [
        question_factory(topic="食べ物", difficulty=1),
        question_factory(topic="旅行", difficulty=2),
        question_factory(topic="食べ物", difficulty=2),
        question_factory(topic="仕事", difficulty=1),
    ]
    bank = QuestionBank(questions)
    assert bank.by_topic("食べ物") == [questions[0], questions[2]]
    assert bank.by_difficulty(1) == [questions[0], questions[3]]
    assert bank.by_difficulty(2) == [questions[1], questions[2]]
    assert bank.by_topic("天気") == []
    assert bank.by_difficulty(5) == []


def test_stats_counts_every_grouping(question_factory):
    bank = QuestionBank(
        [
            question_factory(level="N5", type="Kanji", topic="数字", difficulty=1),
            question_factory(level="N5", type="Grammar", topic="数字", difficulty=2),
            question_factory(level="N1", type="Kanji", topic="経済", difficulty=5),
        ]
    )
    assert bank.stats() == {
        "total": 3,
        "by_level": {"N5": 2, "N1": 1},
        "by_type": {"Kanji": 2, "Grammar": 1},
        "by_topic": {"数字": 2, "経済": 1},
        "by_difficulty": {1: 1, 2: 1, 5: 1},
    }


def test_add_rekeys_questions_whose_id_is_taken(bank, question_factory):
    taken = bank.all()[0]
    newcomer = question_factory(id=taken.id, level="N3", question="新しい問題")
    assert bank.add([newcomer]) == 1

    added = bank.all()[-1]
    assert added.question == "新しい問題"
    assert added.id != taken.id
    assert bank.get(taken.id) == taken
    ids = [q.id for q in bank.all()]
    assert len(ids) == len(set(ids))
