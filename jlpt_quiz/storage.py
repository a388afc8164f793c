"""
storage.py
======================

ブラウザの localStorage に相当するキー・バリューストア。

- 1 キー = data_dir/<key>.json の 1 ファイル
- 値は文字列（JSON 文字列）をそのまま保存する
- 書き込みは一時ファイル + os.replace で丸ごと置き換える（途中状態を残さない）
- 合計サイズが quota_bytes を超える書き込みは StorageFailure

読み込みの失敗はここでは例外にしない。中身の解釈（破損判定）は
呼び出し側（store.PersistenceStore）が行う。
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from .errors import StorageFailure

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalStorage:
    """
    ディレクトリ上のキー・バリューストア。

    主な機能:
    - get_item(key): 値（文字列）を返す。無ければ None
    - set_item(key, value): 値を丸ごと上書き保存する
    - remove_item(key): 値を削除する（無ければ何もしない）
    """

    def __init__(
        self,
        directory: Union[str, Path],
        quota_bytes: Optional[int] = DEFAULT_QUOTA_BYTES,
    ):
        self.directory = Path(directory)
        self.quota_bytes = quota_bytes

    # ------------------------------------------------------------
    # パス
    # ------------------------------------------------------------
    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    # ------------------------------------------------------------
    # 読み書き
    # ------------------------------------------------------------
    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read storage key %s: %s", key, e)
            return None

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        payload = value.encode("utf-8")

        if self.quota_bytes is not None:
            others = self.used_bytes() - self.item_bytes(key)
            if others + len(payload) > self.quota_bytes:
                raise StorageFailure(
                    f"storage quota exceeded while writing {key!r} "
                    f"({others + len(payload)} > {self.quota_bytes} bytes)"
                )

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageFailure(f"failed to write {key!r}: {e}") from e

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageFailure(f"failed to remove {key!r}: {e}") from e

    # ------------------------------------------------------------
    # サイズ
    # ------------------------------------------------------------
    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def item_bytes(self, key: str) -> int:
        path = self._path(key)
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return 0

    def used_bytes(self) -> int:
        return sum(self.item_bytes(k) for k in self.keys())
