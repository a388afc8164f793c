"""
achievements.py
======================

バッジ（実績）の定義と判定。

判定は 1 回の提出につき 1 度だけ行い、獲得できるバッジは最大 1 つ。
優先順位（先に当てはまったものを採用、獲得済みのものは飛ばす）:

1. firstQuiz    : 履歴がちょうど 1 件（今回の結果を追加した後）
2. perfectScore : 100 点
3. levelStarter : 対象レベル（既定 N5）のクイズを完了
4. quickLearner : 10 問以上を 60 秒未満で完了

一度獲得したバッジは取り消さない。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Collection, Dict, List, Optional, Sequence, Tuple

from .models import HistoryRecord
from .session import QuizResult
from .store import PersistenceStore

QUICK_MIN_QUESTIONS = 10
QUICK_MAX_SECONDS = 60


@dataclass(frozen=True)
class Badge:
    id: str
    icon: str
    names: Dict[str, str]
    descriptions: Dict[str, str]

    def name(self, language: str = "ja", level: str = "N5") -> str:
        text = self.names.get(language) or self.names["en"]
        return text.format(level=level)

    def description(self, language: str = "ja", level: str = "N5") -> str:
        text = self.descriptions.get(language) or self.descriptions["en"]
        return text.format(level=level)


BADGES: Dict[str, Badge] = {
    "firstQuiz": Badge(
        id="firstQuiz",
        icon="🔰",
        names={"ja": "はじめの一歩", "en": "First Challenge"},
        descriptions={"ja": "はじめてのクイズを完了する", "en": "Complete your first quiz"},
    ),
    "perfectScore": Badge(
        id="perfectScore",
        icon="🏆",
        names={"ja": "パーフェクト", "en": "Perfectionist"},
        descriptions={"ja": "クイズで 100 点を取る", "en": "Get a perfect score of 100"},
    ),
    "levelStarter": Badge(
        id="levelStarter",
        icon="🐣",
        names={"ja": "{level} 入門", "en": "{level} Starter"},
        descriptions={"ja": "{level} のクイズを完了する", "en": "Complete a {level} quiz"},
    ),
    "quickLearner": Badge(
        id="quickLearner",
        icon="⚡️",
        names={"ja": "スピードマスター", "en": "Quick Learner"},
        descriptions={
            "ja": "10 問以上のクイズを 1 分以内に完了する",
            "en": "Finish a 10+ question quiz in under 1 minute",
        },
    ),
}

Predicate = Callable[[QuizResult, Sequence[HistoryRecord], str], bool]

# 評価順 = 優先順
RULES: List[Tuple[str, Predicate]] = [
    ("firstQuiz", lambda result, history, starter: len(history) == 1),
    ("perfectScore", lambda result, history, starter: result.score >= 100),
    ("levelStarter", lambda result, history, starter: result.level == starter),
    (
        "quickLearner",
        lambda result, history, starter: (
            result.total >= QUICK_MIN_QUESTIONS and result.elapsed_seconds < QUICK_MAX_SECONDS
        ),
    ),
]


def evaluate(
    result: QuizResult,
    history: Sequence[HistoryRecord],
    unlocked: Collection[str],
    starter_level: str = "N5",
) -> Optional[str]:
    """
    今回新たに獲得するバッジ ID を返す（無ければ None）。

    history は今回の結果を追加した後の履歴。副作用なし。
    """
    for badge_id, predicate in RULES:
        if badge_id in unlocked:
            continue
        if predicate(result, history, starter_level):
            return badge_id
    return None


def award_badge(
    result: QuizResult,
    store: PersistenceStore,
    starter_level: str = "N5",
) -> Optional[Badge]:
    """
    保存済みの履歴・獲得済みバッジをもとに判定し、獲得したバッジを保存する。

    履歴への追加（store.append_history）は呼び出し側で先に行うこと。
    """
    badge_id = evaluate(result, store.load_history(), store.load_unlocked(), starter_level)
    if badge_id is None:
        return None
    if not store.unlock(badge_id):
        return None
    return BADGES[badge_id]
