"""
question_bank.py
===========================

JLPT 問題カタログ（QuestionBank）。

目的:
- bank/question_bank.jsonl から静的問題を読み込む（壊れた行は skip + ログ）
- レベル・分類・トピック・難易度での絞り込み
- 偏りのないランダム抽出（Fisher–Yates）
- 生成・インポートされた問題の追加（追記のみ、既存問題の編集・削除はしない）

グローバルキャッシュは持たない。QuestionBank のインスタンスを
必要なコンポーネントへ明示的に渡す。
"""

from __future__ import annotations

import json
import logging
import random
from collections import Counter
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .errors import ValidationFailure
from .models import Question, new_question_id

logger = logging.getLogger(__name__)

# Beginner は独立したレベルではなく、入門者向けの出題範囲
BEGINNER_POOL_LEVELS = ("Beginner", "N5", "N4")


class QuestionBank:
    """
    問題カタログ。

    主な機能:
    - by_level / by_type / by_topic / by_difficulty: 単純フィルタ
    - sample(): 出題候補からランダムに count 問
    - stats(): レベル・分類・トピック・難易度ごとの件数
    - add(): 問題の追加
    """

    def __init__(
        self,
        questions: Iterable[Question] = (),
        rng: Optional[random.Random] = None,
    ):
        self._questions: List[Question] = []
        self._keys = set()
        self._ids = set()
        self._rng = rng or random.Random()
        self.add(questions)

    # ------------------------------------------------------------------
    #  JSONL 読み込み
    # ------------------------------------------------------------------
    @classmethod
    def from_jsonl(
        cls,
        path: Union[str, Path],
        rng: Optional[random.Random] = None,
    ) -> "QuestionBank":
        """
        question_bank.jsonl を読み込んで QuestionBank を作る。

        - 壊れた行（JSON として不正・不変条件違反）はスキップしてログに残す
        - ファイルが無い場合は FileNotFoundError
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"問題バンクが見つかりません: {path}")

        questions: List[Question] = []
        with path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    questions.append(Question.from_dict(json.loads(line)))
                except (json.JSONDecodeError, ValidationFailure) as e:
                    logger.warning("Skipping %s:%d: %s", path, lineno, e)

        bank = cls(questions, rng=rng)
        logger.info("Loaded %d questions from %s", len(bank), path)
        return bank

    # ------------------------------------------------------------------
    #  単純ヘルパー
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._questions)

    def all(self) -> List[Question]:
        return list(self._questions)

    def get(self, question_id: int) -> Optional[Question]:
        for q in self._questions:
            if q.id == question_id:
                return q
        return None

    def by_level(self, level: str) -> List[Question]:
        return [q for q in self._questions if q.level == level]

    def by_type(self, question_type: str) -> List[Question]:
        return [q for q in self._questions if q.type == question_type]

    def by_topic(self, topic: str) -> List[Question]:
        return [q for q in self._questions if q.topic == topic]

    def by_difficulty(self, difficulty: int) -> List[Question]:
        return [q for q in self._questions if q.difficulty == difficulty]

    # ------------------------------------------------------------------
    #  ランダム出題
    # ------------------------------------------------------------------
    def pool(self, level: str, question_type: Optional[str] = None) -> List[Question]:
        """
        出題候補。

        Beginner の場合は Beginner / N5 / N4 の和集合。
        question_type を指定した場合はさらにその分類に絞る。
        """
        if level == "Beginner":
            items = [q for q in self._questions if q.level in BEGINNER_POOL_LEVELS]
        else:
            items = self.by_level(level)

        if question_type:
            items = [q for q in items if q.type == question_type]
        return items

    def sample(
        self,
        level: str,
        count: int,
        question_type: Optional[str] = None,
    ) -> List[Question]:
        """
        出題候補をシャッフルして先頭 count 問を返す（重複なし）。

        候補が count に満たない場合は、ある分だけ返す。
        不足の判定は呼び出し側（QuizSession）で行う。
        """
        items = self.pool(level, question_type)
        # random.shuffle は Fisher–Yates
        self._rng.shuffle(items)
        return items[: max(count, 0)]

    # ------------------------------------------------------------------
    #  統計
    # ------------------------------------------------------------------
    def stats(self) -> Dict[str, object]:
        return {
            "total": len(self._questions),
            "by_level": dict(Counter(q.level for q in self._questions)),
            "by_type": dict(Counter(q.type for q in self._questions)),
            "by_topic": dict(Counter(q.topic for q in self._questions)),
            "by_difficulty": dict(Counter(q.difficulty for q in self._questions)),
        }

    # ------------------------------------------------------------------
    #  追加
    # ------------------------------------------------------------------
    def add(self, questions: Iterable[Question]) -> int:
        """
        問題を末尾に追加する。

        (問題文, 正解) が既にカタログにある問題は追加しない。
        ID が既存の問題と重なる場合は新しい ID を振り直して追加する
        （回答は ID 単位で記録するため、カタログ内の ID は一意に保つ）。
        追加した件数を返す。
        """
        added = 0
        for q in questions:
            if q.dedup_key in self._keys:
                continue
            if q.id in self._ids:
                new_id = new_question_id()
                logger.info("Question id %s is already in the catalog, re-keyed to %s", q.id, new_id)
                q = replace(q, id=new_id)
            self._questions.append(q)
            self._keys.add(q.dedup_key)
            self._ids.add(q.id)
            added += 1
        return added
