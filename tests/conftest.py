import itertools
import random
from types import SimpleNamespace

import pytest

from jlpt_quiz.models import Question
from jlpt_quiz.question_bank import QuestionBank
from jlpt_quiz.storage import LocalStorage
from jlpt_quiz.store import PersistenceStore

_ids = itertools.count(1)


def make_question(
    level="N5",
    type="Vocabulary",
    question=None,
    answer="あ",
    options=("あ", "い", "う", "え"),
    **kwargs,
):
    qid = kwargs.pop("id", next(_ids))
    return Question(
        id=qid,
        level=level,
        type=type,
        question=question or f"問題 {qid}",
        options=tuple(options),
        answer=answer,
        explanation=kwargs.pop("explanation", "解説"),
        **kwargs,
    )


@pytest.fixture
def question_factory():
    return make_question


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def bank(rng):
    questions = (
        [make_question(level="N5", type="Vocabulary") for _ in range(8)]
        + [make_question(level="N4", type="Grammar") for _ in range(5)]
        + [make_question(level="N3", type="Kanji") for _ in range(3)]
        + [make_question(level="Beginner", type="Reading") for _ in range(2)]
    )
    return QuestionBank(questions, rng=rng)


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "data")


@pytest.fixture
def store(storage):
    return PersistenceStore(storage)


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class FakeModel:
    """generate_content_async だけを持つ GenerativeModel の代役。"""

    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(text=reply)


@pytest.fixture
def fake_model_factory():
    """FakeModel を返す model_factory を作る。作ったモデルは factory.model で参照できる。"""

    def build(*replies):
        model = FakeModel(replies)

        def factory(model_name, generation_config):
            factory.calls.append((model_name, generation_config))
            return model

        factory.calls = []
        factory.model = model
        return factory

    return build
