"""
quota.py
======================

Gemini API 呼び出しのレート制限（スライディングウィンドウ）。

- 直近 window_seconds 秒以内のリクエスト時刻を保持
- max_requests 件に達していれば、キューに積まずに即座に RateLimitExceeded
  （例外には「あと何秒待てばよいか」を持たせる）
- UI 側からは get_status() で残り回数を問い合わせ可能
"""

from __future__ import annotations

import math
import time
from typing import Any, Callable, Dict, List, Optional

from .errors import RateLimitExceeded


class RateLimiter:
    """
    直近のリクエスト時刻をもとに呼び出し可否を判定するクラス。
    """

    def __init__(
        self,
        max_requests: int = 15,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._history: List[float] = []

    # ------------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------------
    def _prune(self, now: float) -> None:
        self._history = [t for t in self._history if now - t < self.window_seconds]

    # ------------------------------------------------------------------
    # 判定
    # ------------------------------------------------------------------
    def acquire(self) -> None:
        """
        1 リクエスト分の枠を確保する。

        上限に達している場合は記録せずに RateLimitExceeded を送出する。
        """
        now = self._clock()
        self._prune(now)

        if len(self._history) >= self.max_requests:
            oldest = min(self._history)
            wait = self.window_seconds - (now - oldest)
            raise RateLimitExceeded(max(1, math.ceil(wait)))

        self._history.append(now)

    # ------------------------------------------------------------------
    # 状態参照
    # ------------------------------------------------------------------
    def remaining(self) -> int:
        self._prune(self._clock())
        return max(0, self.max_requests - len(self._history))

    def get_status(self) -> Dict[str, Any]:
        """
        UI や app.py から参照するための状態サマリ。

        next_reset_in: 最も古いリクエストが窓から外れるまでの秒数（無ければ None）
        """
        now = self._clock()
        self._prune(now)
        next_reset: Optional[float] = None
        if self._history:
            next_reset = max(0.0, self.window_seconds - (now - min(self._history)))
        return {
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "remaining": max(0, self.max_requests - len(self._history)),
            "next_reset_in": next_reset,
        }
