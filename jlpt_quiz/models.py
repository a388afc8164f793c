"""
models.py
======================

問題（Question）と学習履歴（HistoryRecord）のデータモデル。

Question は生成時に不変条件を検証する:
- 選択肢はちょうど 4 つで、互いに重複しない
- answer は options のいずれかと完全一致する
- level / type / source は固定の列挙値

不正な入力は補正せずに ValidationFailure で拒否する。
永続化形式（JSON）は camelCase（createdAt / importedAt）を使う。
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Tuple

from .errors import ValidationFailure

Level = Literal["N5", "N4", "N3", "N2", "N1", "Beginner"]
QuestionType = Literal["Kanji", "Vocabulary", "Grammar", "Reading"]
Source = Literal["static", "generated", "imported"]

LEVELS: Tuple[str, ...] = ("N5", "N4", "N3", "N2", "N1", "Beginner")
JLPT_LEVELS: Tuple[str, ...] = ("N5", "N4", "N3", "N2", "N1")
QUESTION_TYPES: Tuple[str, ...] = ("Kanji", "Vocabulary", "Grammar", "Reading")
SOURCES: Tuple[str, ...] = ("static", "generated", "imported")

# 表示用ラベル（プロンプト・UI で利用）
TYPE_LABELS_JA: Dict[str, str] = {
    "Kanji": "漢字",
    "Vocabulary": "語彙",
    "Grammar": "文法",
    "Reading": "読解",
}

# 旧データ・手作業の CSV で使われているカテゴリ名
TYPE_ALIASES: Dict[str, str] = {
    "漢字": "Kanji",
    "詞彙": "Vocabulary",
    "語彙": "Vocabulary",
    "文法": "Grammar",
    "讀解": "Reading",
    "読解": "Reading",
}

DEFAULT_TOPIC = "general"
DEFAULT_DIFFICULTY = 3
OPTION_COUNT = 4


# ----------------------------------------------------------------------
#  ユーティリティ
# ----------------------------------------------------------------------
def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


_ID_SEQ = itertools.count()


def new_question_id() -> int:
    """マイクロ秒のタイムスタンプに連番を足した、単調増加する ID。"""
    return time.time_ns() // 1000 + next(_ID_SEQ)


def normalize_type(value: Any) -> str:
    text = str(value or "").strip()
    return TYPE_ALIASES.get(text, text)


def _coerce_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return None


def _coerce_difficulty(value: Any) -> int:
    if value is None or value == "":
        return DEFAULT_DIFFICULTY
    if isinstance(value, bool):
        raise ValidationFailure(f"difficulty must be an integer: {value!r}")
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationFailure(f"difficulty must be an integer: {value!r}") from None


# ----------------------------------------------------------------------
#  Question
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Question:
    """
    四択問題 1 問。

    直接生成した場合も from_dict() 経由の場合も __post_init__ で検証される。
    """

    id: int
    level: str
    type: str
    question: str
    options: Tuple[str, ...]
    answer: str
    explanation: str
    topic: str = DEFAULT_TOPIC
    difficulty: int = DEFAULT_DIFFICULTY
    source: str = "static"
    created_at: Optional[str] = None
    imported_at: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.options, list):
            object.__setattr__(self, "options", tuple(self.options))

        missing = [
            name
            for name in ("question", "answer", "explanation")
            if not isinstance(getattr(self, name), str) or not getattr(self, name).strip()
        ]
        if missing:
            raise ValidationFailure(f"missing required fields: {', '.join(missing)}")

        if self.level not in LEVELS:
            raise ValidationFailure(f"unknown level: {self.level!r}")
        if self.type not in QUESTION_TYPES:
            raise ValidationFailure(f"unknown question type: {self.type!r}")
        if self.source not in SOURCES:
            raise ValidationFailure(f"unknown source: {self.source!r}")

        if not isinstance(self.options, tuple) or len(self.options) != OPTION_COUNT:
            raise ValidationFailure("options must contain exactly 4 entries")
        if not all(isinstance(o, str) and o.strip() for o in self.options):
            raise ValidationFailure("options must be non-empty strings")
        if len(set(self.options)) != OPTION_COUNT:
            raise ValidationFailure("options must be distinct")
        if self.answer not in self.options:
            raise ValidationFailure("answer must be one of the options")

        if not isinstance(self.difficulty, int) or not 1 <= self.difficulty <= 5:
            raise ValidationFailure(f"difficulty out of range: {self.difficulty!r}")

    @property
    def dedup_key(self) -> Tuple[str, str]:
        """重複判定キー (問題文, 正解)。"""
        return (self.question, self.answer)

    # ------------------------------------------------------------
    # dict 変換
    # ------------------------------------------------------------
    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        *,
        level: Optional[str] = None,
        type: Optional[str] = None,
        topic: Optional[str] = None,
        source: Optional[str] = None,
    ) -> "Question":
        """
        永続化形式・API 応答・インポートデータから Question を生成する。

        キーワード引数は data 側に値が無い場合のフォールバック。
        id が無い（または数値でない）場合は新しい ID を割り当てる。
        """
        if not isinstance(data, dict):
            raise ValidationFailure(f"question must be an object, got {data.__class__.__name__}")

        options = data.get("options")
        if not isinstance(options, (list, tuple)):
            raise ValidationFailure("options must be a list")

        qid = _coerce_id(data.get("id"))

        return cls(
            id=qid if qid is not None else new_question_id(),
            level=str(data.get("level") or level or "").strip(),
            type=normalize_type(data.get("type") or type),
            question=data.get("question") or "",
            options=tuple(options),
            answer=data.get("answer") or "",
            explanation=data.get("explanation") or "",
            topic=str(data.get("topic") or topic or DEFAULT_TOPIC),
            difficulty=_coerce_difficulty(data.get("difficulty")),
            source=str(data.get("source") or source or "static"),
            created_at=data.get("createdAt") or data.get("created_at"),
            imported_at=data.get("importedAt") or data.get("imported_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "level": self.level,
            "type": self.type,
            "question": self.question,
            "options": list(self.options),
            "answer": self.answer,
            "explanation": self.explanation,
            "topic": self.topic,
            "difficulty": self.difficulty,
            "source": self.source,
        }
        if self.created_at:
            data["createdAt"] = self.created_at
        if self.imported_at:
            data["importedAt"] = self.imported_at
        return data


# ----------------------------------------------------------------------
#  HistoryRecord
# ----------------------------------------------------------------------
@dataclass
class HistoryRecord:
    """1 回分のクイズ結果。score は小数第 1 位まで。"""

    date: str
    level: str
    score: float
    elapsed_seconds: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryRecord":
        if not isinstance(data, dict):
            raise ValidationFailure("history record must be an object")
        try:
            score = round(float(data["score"]), 1)
            elapsed = int(data.get("elapsedSeconds", data.get("time", 0)) or 0)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationFailure(f"invalid history record: {e}") from None
        return cls(
            date=str(data.get("date", "")),
            level=str(data.get("level", "")),
            score=score,
            elapsed_seconds=elapsed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "level": self.level,
            "score": self.score,
            "elapsedSeconds": self.elapsed_seconds,
        }
