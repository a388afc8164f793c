"""
config.py
=========

アプリ全体で利用する設定値を一元管理する。
Streamlit、Gemini API、ファイルパス、保存上限、レート制限など
すべてこのクラスを通じて取得する。

本ファイルは app.py と tools/auto_refill.py の共通設定でもある。

config.toml（任意）の例:

    [gemini]
    model = "gemini-1.5-flash"
    temperature = 0.7
    enable_rate_limit = true

    [storage]
    data_dir = "data"
    max_stored_questions = 1000

    [quiz]
    max_history = 50
    starter_level = "N5"
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import toml

logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# 基本パス定義
# ------------------------------------------------------------

ROOT_DIR = Path(__file__).resolve().parent.parent
BANK_DIR = ROOT_DIR / "bank"
DATA_DIR = ROOT_DIR / "data"
CONFIG_PATH = ROOT_DIR / "config.toml"


# ------------------------------------------------------------
# AppConfig
# ------------------------------------------------------------

@dataclass
class AppConfig:
    """
    アプリ設定クラス。

    - APIキーの読み取り（環境変数 / .env）
    - 問題バンク・保存ディレクトリのパス
    - Gemini の生成パラメータ
    - 保存上限・履歴上限・レート制限
    """

    # ---------- API ----------
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 2048

    # ---------- レート制限（スライディングウィンドウ） ----------
    enable_rate_limit: bool = False
    rate_limit_window_seconds: float = 60.0
    rate_limit_max: int = 15

    # ---------- ファイルパス ----------
    question_bank_path: Path = BANK_DIR / "question_bank.jsonl"
    data_dir: Path = DATA_DIR

    # ---------- 保存設定 ----------
    max_stored_questions: int = 1000
    storage_quota_bytes: int = 5 * 1024 * 1024

    # ---------- クイズ設定 ----------
    max_history: int = 50
    starter_level: str = "N5"
    default_language: str = "ja"

    # ============================================================
    # 初期化処理
    # ============================================================

    def __post_init__(self):
        if not self.gemini_api_key:
            self.gemini_api_key = self._load_api_key()
        self.question_bank_path = Path(self.question_bank_path)
        self.data_dir = Path(self.data_dir)

    # ============================================================
    # config.toml からの読み込み
    # ============================================================

    @classmethod
    def load(cls, path: Union[str, Path, None] = None) -> "AppConfig":
        """
        config.toml を読み込み、デフォルト値に上書きした AppConfig を返す。

        - ファイルが無ければデフォルト値のまま
        - 解析に失敗した場合は警告を出してデフォルト値を使う
        - 知らないキーは無視する
        """
        path = Path(path) if path is not None else CONFIG_PATH
        raw: Dict[str, Any] = {}

        if path.exists():
            try:
                raw = toml.load(path)
            except (toml.TomlDecodeError, OSError) as e:
                logger.warning("Failed to read %s: %s", path, e)
                raw = {}

        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}

        # [gemini] のキーは model / temperature ... のように短く書ける
        gemini = raw.get("gemini")
        if isinstance(gemini, dict):
            for key, value in gemini.items():
                name = "gemini_model" if key == "model" else key
                if key == "api_key":
                    name = "gemini_api_key"
                if name in known:
                    values[name] = value

        for section in ("app", "storage", "quiz"):
            table = raw.get(section)
            if not isinstance(table, dict):
                continue
            for key, value in table.items():
                if key in known:
                    values[key] = value

        for key in ("question_bank_path", "data_dir"):
            if key in values and not Path(values[key]).is_absolute():
                values[key] = path.parent / values[key]

        return cls(**values)

    # ============================================================
    # 内部関数
    # ============================================================

    def _load_api_key(self) -> str:
        """
        ローカル / CI どちらでも GEMINI_API_KEY が使えるようにする。
        """

        key = os.environ.get("GEMINI_API_KEY")
        if key:
            return key

        # ローカル開発などで .env を使いたい場合にも対応
        env_path = ROOT_DIR / ".env"
        if env_path.exists():
            for line in env_path.read_text().splitlines():
                if line.startswith("GEMINI_API_KEY="):
                    return line.split("=", 1)[1].strip()

        return ""  # キーなし → 保存済みキー or 生成機能オフ

    def generation_config(self) -> Dict[str, Any]:
        """Gemini の generation_config に渡す dict。"""
        return {
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
            "max_output_tokens": self.max_output_tokens,
        }

    def resolve_api_key(self, stored_key: Optional[str]) -> str:
        """環境変数のキーを優先し、無ければストアに保存済みのキーを使う。"""
        return self.gemini_api_key or (stored_key or "")
