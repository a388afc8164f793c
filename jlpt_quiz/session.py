"""
session.py
======================

1 回分のクイズ（QuizSession）の状態管理と採点。

状態遷移:

    IDLE --configure()--> CONFIGURED --start()--> IN_PROGRESS --submit()--> SUBMITTED
                           ^    |
                           +----+  start() で問題が足りない場合は CONFIGURED のまま

- 経過時間は start() からの秒数（単調増加クロック）。submit() で止まる
- 未回答の問題は "unanswered" として記録する
- SUBMITTED 以降は変更不可。再挑戦は新しい QuizSession で行う
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional

from .errors import InsufficientQuestions, SessionStateError, ValidationFailure
from .models import LEVELS, HistoryRecord, Question
from .question_bank import QuestionBank

UNANSWERED = "unanswered"


class SessionStatus(str, Enum):
    IDLE = "idle"
    CONFIGURED = "configured"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


@dataclass
class CategoryStat:
    correct: int = 0
    total: int = 0

    @property
    def percentage(self) -> int:
        return round(self.correct / self.total * 100) if self.total else 0


@dataclass(frozen=True)
class WrongAnswer:
    question: Question
    user_answer: str


@dataclass
class QuizResult:
    """採点結果。score は丸める前の値、表示には display_score を使う。"""

    level: str
    score: float
    correct_count: int
    total: int
    elapsed_seconds: int
    category_stats: Dict[str, CategoryStat] = field(default_factory=dict)
    wrong_answers: List[WrongAnswer] = field(default_factory=list)

    @property
    def display_score(self) -> float:
        return round(self.score, 1)

    def to_history_record(self, day: Optional[date] = None) -> HistoryRecord:
        return HistoryRecord(
            date=(day or date.today()).isoformat(),
            level=self.level,
            score=self.display_score,
            elapsed_seconds=self.elapsed_seconds,
        )


class QuizSession:
    """
    クイズ 1 回分のセッション。

    主な機能:
    - configure(level, count): 出題条件の設定
    - start(): QuestionBank から出題（不足時は InsufficientQuestions）
    - select(question_id, option): 回答の記録
    - submit(): 採点して QuizResult を返す
    """

    def __init__(
        self,
        bank: QuestionBank,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.bank = bank
        self._clock = clock

        self.status = SessionStatus.IDLE
        self.level: Optional[str] = None
        self.requested_count: int = 0
        self.question_type: Optional[str] = None
        self.questions: List[Question] = []
        self.answers: Dict[int, str] = {}
        self.result: Optional[QuizResult] = None

        self._started_at: Optional[float] = None
        self._frozen_elapsed: Optional[int] = None

    # ------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------
    def _require(self, *allowed: SessionStatus) -> None:
        if self.status not in allowed:
            expected = " / ".join(s.value for s in allowed)
            raise SessionStateError(
                f"operation not allowed in state {self.status.value!r} (expected {expected})"
            )

    # ------------------------------------------------------------
    # 設定
    # ------------------------------------------------------------
    def configure(
        self,
        level: str,
        requested_count: int,
        question_type: Optional[str] = None,
    ) -> None:
        """出題レベルと問題数を設定する。問題数は正の整数。"""
        self._require(SessionStatus.IDLE, SessionStatus.CONFIGURED)

        if level not in LEVELS:
            raise ValidationFailure(f"unknown level: {level!r}")
        if (
            isinstance(requested_count, bool)
            or not isinstance(requested_count, int)
            or requested_count <= 0
        ):
            raise ValidationFailure("question count must be a positive integer")

        self.level = level
        self.requested_count = requested_count
        self.question_type = question_type or None
        self.status = SessionStatus.CONFIGURED

    # ------------------------------------------------------------
    # 開始
    # ------------------------------------------------------------
    def start(self) -> List[Question]:
        """
        問題を抽出してクイズを開始する。

        出題可能数が足りない場合は InsufficientQuestions を送出し、
        状態は CONFIGURED のまま（問題数を減らして再設定できる）。
        """
        self._require(SessionStatus.CONFIGURED)

        picked = self.bank.sample(self.level, self.requested_count, self.question_type)
        if len(picked) < self.requested_count:
            raise InsufficientQuestions(self.level, len(picked), self.requested_count)

        self.questions = picked
        self.answers = {}
        self._started_at = self._clock()
        self._frozen_elapsed = None
        self.status = SessionStatus.IN_PROGRESS
        return list(picked)

    # ------------------------------------------------------------
    # 経過時間
    # ------------------------------------------------------------
    @property
    def elapsed_seconds(self) -> int:
        if self._frozen_elapsed is not None:
            return self._frozen_elapsed
        if self._started_at is None:
            return 0
        return max(0, math.floor(self._clock() - self._started_at))

    # ------------------------------------------------------------
    # 回答
    # ------------------------------------------------------------
    def _question(self, question_id: int) -> Question:
        for q in self.questions:
            if q.id == question_id:
                return q
        raise ValidationFailure(f"question {question_id} is not part of this quiz")

    def select(self, question_id: int, option: Optional[str]) -> None:
        """
        回答を記録する。option=None で回答を取り消す。
        """
        self._require(SessionStatus.IN_PROGRESS)
        q = self._question(question_id)

        if option is None:
            self.answers.pop(q.id, None)
            return
        if option not in q.options:
            raise ValidationFailure(f"{option!r} is not an option of question {question_id}")
        self.answers[q.id] = option

    # ------------------------------------------------------------
    # 採点
    # ------------------------------------------------------------
    def submit(self, answers: Optional[Dict[int, Optional[str]]] = None) -> QuizResult:
        """
        タイマーを止めて採点する。

        answers を渡した場合は、まとめて select() してから採点する。
        """
        self._require(SessionStatus.IN_PROGRESS)

        for question_id, option in (answers or {}).items():
            self.select(question_id, option)

        self._frozen_elapsed = self.elapsed_seconds

        for q in self.questions:
            self.answers.setdefault(q.id, UNANSWERED)

        correct = 0
        stats: Dict[str, CategoryStat] = {}
        wrong: List[WrongAnswer] = []
        for q in self.questions:
            stat = stats.setdefault(q.type, CategoryStat())
            stat.total += 1
            user_answer = self.answers[q.id]
            if user_answer == q.answer:
                correct += 1
                stat.correct += 1
            else:
                wrong.append(WrongAnswer(question=q, user_answer=user_answer))

        total = len(self.questions)
        self.result = QuizResult(
            level=self.level,
            score=correct / total * 100,
            correct_count=correct,
            total=total,
            elapsed_seconds=self._frozen_elapsed,
            category_stats=stats,
            wrong_answers=wrong,
        )
        self.status = SessionStatus.SUBMITTED
        return self.result


def format_elapsed(seconds: int) -> str:
    """経過秒数を mm:ss に整形する。"""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"
