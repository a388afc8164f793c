"""
jlpt_quiz パッケージ
======================

このパッケージは、JLPT 対策クイズアプリの内部ロジックを提供する。

主な役割:
- 設定管理（config）
- 問題・学習記録のデータ型と検証（models）
- 問題バンクとレベル別の出題（question_bank）
- クイズ 1 回分の進行と採点（session）
- バッジ判定（achievements）
- ローカル保存・インポート / エクスポート（storage, store, transfer）
- Gemini API による問題生成とレート制限（generation, quota）
- UI コンポーネント（ui）

app.py は Streamlit UI のみを担当し、内部ロジックはすべて本パッケージから呼ぶ。
UI を使わないスクリプト（tools/ やテスト）が streamlit を読み込まずに済むよう、
ui はここでは import しない。
"""

from .config import AppConfig
from .errors import (
    GenerationFailure,
    GenerationParseError,
    ImportFailure,
    InsufficientQuestions,
    NothingToExport,
    QuizError,
    RateLimitExceeded,
    SessionStateError,
    StorageFailure,
    ValidationFailure,
)
from .models import HistoryRecord, Question
from .question_bank import QuestionBank
from .session import QuizResult, QuizSession, SessionStatus
from .achievements import BADGES, award_badge, evaluate
from .storage import LocalStorage
from .store import ExportFile, PersistenceStore
from .quota import RateLimiter
from .generation import GenerationClient

__all__ = [
    "AppConfig",
    "QuizError",
    "ValidationFailure",
    "InsufficientQuestions",
    "StorageFailure",
    "NothingToExport",
    "ImportFailure",
    "GenerationFailure",
    "GenerationParseError",
    "RateLimitExceeded",
    "SessionStateError",
    "Question",
    "HistoryRecord",
    "QuestionBank",
    "QuizSession",
    "QuizResult",
    "SessionStatus",
    "BADGES",
    "evaluate",
    "award_badge",
    "LocalStorage",
    "PersistenceStore",
    "ExportFile",
    "RateLimiter",
    "GenerationClient",
]
