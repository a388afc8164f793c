"""
errors.py
======================

アプリ全体で利用する例外クラス。

UI 側では `[category] message` の形でユーザーに表示する。
破損したストレージの読み込み以外は、握りつぶさずに呼び出し側へ伝える。
"""

from __future__ import annotations

from typing import Optional


class QuizError(Exception):
    """すべてのアプリ例外の基底クラス。"""

    category = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationFailure(QuizError):
    """不正な問題データ、または不正なクイズ設定。"""

    category = "validation"


class InsufficientQuestions(QuizError):
    """要求数に対して出題可能な問題が足りない。"""

    category = "insufficient"

    def __init__(self, level: str, available: int, requested: int):
        super().__init__(f"{level}: {available} available")
        self.level = level
        self.available = available
        self.requested = requested


class StorageFailure(QuizError):
    """ストレージへの書き込み（容量超過など）に失敗した。"""

    category = "storage"


class NothingToExport(QuizError):
    """エクスポートする保存済みの問題が無い。"""

    category = "export"

    def __init__(self, message: str = "no stored questions to export"):
        super().__init__(message)


class ImportFailure(QuizError):
    """ファイルを解析できない、または有効な問題が 0 件。"""

    category = "import"

    def __init__(self, reason: str):
        super().__init__(f"import failed: {reason}")
        self.reason = reason


class GenerationFailure(QuizError):
    """Gemini API の呼び出しに失敗した。自動リトライはしない。"""

    category = "generation"


class GenerationParseError(GenerationFailure):
    """Gemini の応答から問題を組み立てられなかった。raw_text は診断用。"""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        super().__init__(message)
        self.raw_text = raw_text


class RateLimitExceeded(GenerationFailure):
    """レート制限の上限に達した。wait_seconds 秒後に再試行できる。"""

    category = "rate_limit"

    def __init__(self, wait_seconds: int):
        super().__init__(
            f"too many requests, retry in {wait_seconds} seconds"
        )
        self.wait_seconds = wait_seconds


class SessionStateError(QuizError):
    """現在の状態では許可されていないセッション操作。"""

    category = "session"
