"""
generation.py
======================

Google Gemini API で JLPT 形式の四択問題を生成するクライアント。

要件:
- レベル・分類・トピック・問題数からプロンプトを組み立てる
- 応答は {"questions": [...]} 形式の JSON のみを要求する
- 応答から JSON を取り出し、各問題を Question として検証する
  （1 問でも不正なら GenerationParseError。生の応答テキストを保持する）
- 生成した問題には新しい ID・createdAt・source="generated" を付ける
- 任意でスライディングウィンドウのレート制限（quota.RateLimiter）
- API エラーは GenerationFailure としてそのまま呼び出し側へ（自動リトライなし）

ネットワーク呼び出しは generate_content_async を使うコルーチン。
同期コードからは asyncio.run(client.generate_questions(...)) で呼ぶ。
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPIError, ResourceExhausted

from .config import AppConfig
from .errors import GenerationFailure, GenerationParseError, ValidationFailure
from .models import (
    DEFAULT_TOPIC,
    JLPT_LEVELS,
    QUESTION_TYPES,
    TYPE_LABELS_JA,
    Question,
    new_question_id,
    now_iso,
)
from .quota import RateLimiter

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

TYPE_GUIDANCE: Dict[str, str] = {
    "Kanji": "漢字問題は読み方または書き方を問うこと。",
    "Vocabulary": "語彙問題は語の意味・用法・コロケーションを問うこと。",
    "Grammar": "文法問題は助詞・活用・文型などを問うこと。",
    "Reading": "読解問題は短い文章を示し、その内容について問うこと。",
}

ModelFactory = Callable[[str, Dict[str, Any]], Any]


def _default_model_factory(model_name: str, generation_config: Dict[str, Any]) -> Any:
    return genai.GenerativeModel(model_name, generation_config=generation_config)


# ----------------------------------------------------------------------
#  プロンプト
# ----------------------------------------------------------------------
def build_prompt(level: str, question_type: str, topic: Optional[str], count: int) -> str:
    """
    指定したレベル・分類の問題を count 問生成するためのプロンプト。
    """
    topic_text = f"、テーマは「{topic}」" if topic else ""
    label = TYPE_LABELS_JA.get(question_type, question_type)

    return f"""
日本語能力試験（JLPT）{level} レベルの「{label}」問題を {count} 問作成してください{topic_text}。

次の JSON 形式だけで回答し、それ以外の文字列は絶対に出力しないでください。

{{
  "questions": [
    {{
      "level": "{level}",
      "type": "{question_type}",
      "question": "問題文",
      "options": ["選択肢1", "選択肢2", "選択肢3", "選択肢4"],
      "answer": "正解（options のいずれかと完全に一致する文字列）",
      "explanation": "詳しい解説",
      "topic": "{topic or DEFAULT_TOPIC}",
      "difficulty": 3,
      "source": "generated"
    }}
  ]
}}

# 出力条件
1. {level} レベルの基準に合った問題にする。
2. 選択肢は必ず 4 つで重複させず、正解は 1 つだけにする。
3. 解説では、なぜその答えが正しいのかを丁寧に説明する。
4. 日常生活に役立つ実用的な内容にする。
5. 難解すぎる語・古い語は避ける。
6. 選択肢どうしの違いを明確にする。
7. difficulty は 1〜5 の整数。

{TYPE_GUIDANCE.get(question_type, "")}
"""


def parse_response(
    text: str,
    level: str,
    question_type: str,
    topic: Optional[str] = None,
) -> List[Question]:
    """
    Gemini の応答テキストから Question のリストを組み立てる。

    - 最初の "{" から最後の "}" までを JSON として読む
    - "questions" 配列が無い・1 問でも検証に失敗した場合は GenerationParseError
    """
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise GenerationParseError("no JSON object found in response", raw_text=text)

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise GenerationParseError(f"invalid JSON in response: {e}", raw_text=text) from None

    items = data.get("questions") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise GenerationParseError("response is missing the questions array", raw_text=text)

    created_at = now_iso()
    questions: List[Question] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise GenerationParseError(f"question {index + 1} is not an object", raw_text=text)
        try:
            q = Question.from_dict(
                {**item, "id": new_question_id(), "source": "generated", "createdAt": created_at},
                level=level,
                type=question_type,
                topic=topic or DEFAULT_TOPIC,
            )
        except ValidationFailure as e:
            raise GenerationParseError(f"question {index + 1} is invalid: {e}", raw_text=text) from None
        questions.append(q)

    return questions


# ----------------------------------------------------------------------
#  クライアント
# ----------------------------------------------------------------------
class GenerationClient:
    """
    Gemini による問題生成クライアント。

    主な機能:
    - generate_questions(): 問題生成（コルーチン）
    - list_available_models(): generateContent 対応モデル一覧
    - test_connection(): 疎通確認
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-1.5-flash",
        generation_config: Optional[Dict[str, Any]] = None,
        rate_limiter: Optional[RateLimiter] = None,
        model_factory: Optional[ModelFactory] = None,
    ):
        api_key = (api_key or "").strip()
        if not api_key:
            raise ValidationFailure("API key cannot be empty")
        if not model_name:
            raise ValidationFailure("model name must be a non-empty string")

        self.api_key = api_key
        self.model_name = model_name
        self.generation_config = dict(generation_config or {})
        self.rate_limiter = rate_limiter
        self._model_factory = model_factory or _default_model_factory
        genai.configure(api_key=api_key)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        api_key: Optional[str] = None,
        model_factory: Optional[ModelFactory] = None,
    ) -> "GenerationClient":
        limiter = None
        if config.enable_rate_limit:
            limiter = RateLimiter(
                max_requests=config.rate_limit_max,
                window_seconds=config.rate_limit_window_seconds,
            )
        return cls(
            api_key=api_key or config.gemini_api_key,
            model_name=config.gemini_model,
            generation_config=config.generation_config(),
            rate_limiter=limiter,
            model_factory=model_factory,
        )

    # ------------------------------------------------------------
    # 低レベル呼び出し
    # ------------------------------------------------------------
    async def generate_content(self, prompt: str) -> str:
        """プロンプトを送信し、応答テキストを返す。"""
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

        model = self._model_factory(self.model_name, self.generation_config)
        try:
            response = await model.generate_content_async(prompt)
        except ResourceExhausted as e:
            # クォータ上限（429）
            raise GenerationFailure(f"API quota exhausted (429): {e}") from e
        except GoogleAPIError as e:
            raise GenerationFailure(f"API request failed: {e}") from e

        try:
            text = response.text
        except ValueError as e:
            # 安全フィルタなどで候補が返らなかった場合
            raise GenerationParseError(f"response contains no text: {e}") from e
        if not text:
            raise GenerationParseError("response contains no text", raw_text=text)
        return text

    # ------------------------------------------------------------
    # 問題生成
    # ------------------------------------------------------------
    async def generate_questions(
        self,
        level: str,
        question_type: str,
        topic: Optional[str] = None,
        count: int = 1,
    ) -> List[Question]:
        """
        問題を count 問生成する。

        入力が不正な場合は ValidationFailure、
        応答が解析できない場合は GenerationParseError。
        """
        if level not in JLPT_LEVELS:
            raise ValidationFailure(f"level must be one of {', '.join(JLPT_LEVELS)}")
        if question_type not in QUESTION_TYPES:
            raise ValidationFailure(f"type must be one of {', '.join(QUESTION_TYPES)}")
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ValidationFailure("count must be a positive integer")

        topic = (topic or "").strip() or None
        prompt = build_prompt(level, question_type, topic, count)
        text = await self.generate_content(prompt)

        try:
            questions = parse_response(text, level, question_type, topic)
        except GenerationParseError:
            logger.warning("Failed to parse generated questions, raw response: %s", text)
            raise

        logger.info(
            "Generated %d %s/%s questions with %s", len(questions), level, question_type, self.model_name
        )
        return questions

    # ------------------------------------------------------------
    # 補助
    # ------------------------------------------------------------
    async def test_connection(self) -> bool:
        await self.generate_content(
            'Hello, this is a test message. Please respond with "Connection successful".'
        )
        return True

    def list_available_models(self) -> List[str]:
        """
        generateContent に対応しているモデル名の一覧（名前の逆順 = 新しい順）。
        """
        try:
            response = genai.list_models()
            names = [
                m.name
                for m in response
                if "generateContent" in getattr(m, "supported_generation_methods", [])
            ]
        except GoogleAPIError as e:
            raise GenerationFailure(f"failed to list models: {e}") from e
        return sorted(names, reverse=True)
