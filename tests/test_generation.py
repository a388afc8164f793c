import asyncio
import json
from types import SimpleNamespace

import pytest
from google.api_core.exceptions import InternalServerError, ResourceExhausted

from jlpt_quiz.config import AppConfig
from jlpt_quiz.errors import (
    GenerationFailure,
    GenerationParseError,
    RateLimitExceeded,
    ValidationFailure,
)
from jlpt_quiz.generation import GenerationClient, build_prompt, parse_response
from jlpt_quiz.quota import RateLimiter


def reply(*items, wrap="ここに問題があります:\n{}\n以上です。"):
    return wrap.format(json.dumps({"questions": list(items)}, ensure_ascii=False))


def item(**overrides):
    data = {
        "question": "「先生」の読み方は？",
        "options": ["せんせい", "さきせい", "せんしょう", "さきしょう"],
        "answer": "せんせい",
        "explanation": "先生 = せんせい",
        "difficulty": 2,
    }
    data.update(overrides)
    return data


def make_client(factory, **kwargs):
    return GenerationClient("test-key", model_factory=factory, **kwargs)


# ----------------------------------------------------------------------
#  プロンプト・応答の解析
# ----------------------------------------------------------------------
def test_prompt_mentions_level_type_topic_and_count():
    prompt = build_prompt("N3", "Grammar", "旅行", 4)
    assert "N3" in prompt
    assert "文法" in prompt
    assert "旅行" in prompt
    assert "4 問" in prompt
    assert '"questions"' in prompt


def test_parse_response_stamps_generated_questions():
    questions = parse_response(reply(item(), item(question="「学生」の読み方は？")), "N4", "Kanji", "school")
    assert len(questions) == 2
    for q in questions:
        assert q.source == "generated"
        assert q.level == "N4"
        assert q.type == "Kanji"
        assert q.topic == "school"
        assert q.created_at
    assert questions[0].id != questions[1].id


def test_parse_response_keeps_fields_from_the_model():
    q = parse_response(reply(item(level="N2", type="Vocabulary", topic="仕事")), "N4", "Kanji")[0]
    assert (q.level, q.type, q.topic) == ("N2", "Vocabulary", "仕事")


@pytest.mark.parametrize(
    "text",
    [
        "申し訳ありませんが、作成できません。",
        "{ this is not json }",
        '{"items": []}',
        reply(item(answer="せんせえ")),
        reply(item(options=["a", "b", "c"])),
        reply("not an object"),
    ],
)
def test_parse_response_failures_keep_raw_text(text):
    with pytest.raises(GenerationParseError) as excinfo:
        parse_response(text, "N5", "Kanji")
    assert excinfo.value.raw_text == text
    assert excinfo.value.category == "generation"


# ----------------------------------------------------------------------
#  クライアント
# ----------------------------------------------------------------------
def test_generate_questions_calls_model_asynchronously(fake_model_factory):
    factory = fake_model_factory(reply(item()))
    client = make_client(factory, model_name="gemini-test", generation_config={"temperature": 0.1})

    questions = asyncio.run(client.generate_questions("N5", "Kanji", "  ", 1))

    assert len(questions) == 1
    assert questions[0].topic == "general"
    assert factory.calls == [("gemini-test", {"temperature": 0.1})]
    assert "N5" in factory.model.prompts[0]


@pytest.mark.parametrize(
    "args",
    [
        ("Beginner", "Kanji", None, 1),
        ("N6", "Kanji", None, 1),
        ("N5", "Listening", None, 1),
        ("N5", "Kanji", None, 0),
        ("N5", "Kanji", None, True),
    ],
)
def test_generate_questions_validates_input(fake_model_factory, args):
    factory = fake_model_factory()
    client = make_client(factory)
    with pytest.raises(ValidationFailure):
        asyncio.run(client.generate_questions(*args))
    assert factory.calls == []


@pytest.mark.parametrize("error", [ResourceExhausted("quota"), InternalServerError("boom")])
def test_api_errors_become_generation_failures(fake_model_factory, error):
    client = make_client(fake_model_factory(error))
    with pytest.raises(GenerationFailure) as excinfo:
        asyncio.run(client.generate_questions("N5", "Kanji"))
    assert not isinstance(excinfo.value, GenerationParseError)


def test_blocked_response_is_a_parse_error():
    class Blocked:
        @property
        def text(self):
            raise ValueError("no candidates")

    class Model:
        async def generate_content_async(self, prompt):
            return Blocked()

    client = make_client(lambda name, cfg: Model())
    with pytest.raises(GenerationParseError):
        asyncio.run(client.generate_questions("N5", "Kanji"))


def test_rate_limiter_rejects_without_calling_the_api(fake_model_factory, clock):
    factory = fake_model_factory(reply(item()), reply(item()))
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
    client = make_client(factory, rate_limiter=limiter)

    asyncio.run(client.generate_questions("N5", "Kanji"))
    clock.advance(10)
    with pytest.raises(RateLimitExceeded) as excinfo:
        asyncio.run(client.generate_questions("N5", "Kanji"))
    assert excinfo.value.wait_seconds == 50
    assert len(factory.model.prompts) == 1


def test_empty_api_key_is_rejected():
    with pytest.raises(ValidationFailure):
        GenerationClient("   ")


def test_from_config_builds_limiter_and_generation_config(fake_model_factory):
    config = AppConfig(gemini_api_key="cfg-key", gemini_model="gemini-x", enable_rate_limit=True, rate_limit_max=3)
    client = GenerationClient.from_config(config, model_factory=fake_model_factory())
    assert client.api_key == "cfg-key"
    assert client.model_name == "gemini-x"
    assert client.generation_config["top_k"] == 40
    assert client.rate_limiter.max_requests == 3


def test_list_available_models_filters_and_sorts(monkeypatch):
    import jlpt_quiz.generation as generation

    models = [
        SimpleNamespace(name="models/gemini-1.0-pro", supported_generation_methods=["generateContent"]),
        SimpleNamespace(name="models/embedding-001", supported_generation_methods=["embedContent"]),
        SimpleNamespace(name="models/gemini-1.5-flash", supported_generation_methods=["generateContent"]),
    ]
    monkeypatch.setattr(generation.genai, "list_models", lambda: iter(models))
    client = GenerationClient("test-key")
    assert client.list_available_models() == ["models/gemini-1.5-flash", "models/gemini-1.0-pro"]
