"""
store.py
======================

生成・インポートした問題、学習履歴、獲得バッジの永続化（PersistenceStore）。

ストレージのキー構成:

    generated_questions : Question の JSON 配列
    quiz_history        : HistoryRecord の JSON 配列（新しい順）
    unlocked_badges     : バッジ ID の JSON 配列
    user_language       : 言語タグ（JSON 文字列）
    gemini_api_key      : API キー（JSON 文字列）

方針:
- 書き込みは常にペイロード全体の上書き
- 書き込み失敗は StorageFailure として呼び出し側へ
- 読み込み時に壊れたペイロードはログに残して空として扱う
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from . import transfer
from .errors import ImportFailure, NothingToExport, ValidationFailure
from .models import HistoryRecord, Question, new_question_id, now_iso
from .storage import LocalStorage

logger = logging.getLogger(__name__)

QUESTIONS_KEY = "generated_questions"
HISTORY_KEY = "quiz_history"
BADGES_KEY = "unlocked_badges"
LANGUAGE_KEY = "user_language"
API_KEY_KEY = "gemini_api_key"

MAX_STORED_QUESTIONS = 1000
MAX_HISTORY = 50

EXPORT_BASENAME = "japanese_quiz_questions"
EXPORT_MIME_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
}


@dataclass(frozen=True)
class ExportFile:
    filename: str
    mime_type: str
    content: str


def remove_duplicates(questions: Sequence[Question]) -> List[Question]:
    """(問題文, 正解) が同じ問題は最初の 1 件だけ残す。"""
    seen = set()
    unique: List[Question] = []
    for q in questions:
        if q.dedup_key in seen:
            continue
        seen.add(q.dedup_key)
        unique.append(q)
    return unique


class PersistenceStore:
    """
    LocalStorage の上に載る永続化レイヤ。

    主な責務:
    - save_generated / load_stored / clear_stored / stats
    - export_all / import_from
    - 学習履歴とバッジの保存
    - 言語設定・API キーの保存
    """

    def __init__(
        self,
        storage: LocalStorage,
        max_stored_questions: int = MAX_STORED_QUESTIONS,
        max_history: int = MAX_HISTORY,
    ):
        self.storage = storage
        self.max_stored_questions = max_stored_questions
        self.max_history = max_history

    # ------------------------------------------------------------------
    # JSON 読み書き
    # ------------------------------------------------------------------
    def _read_json(self, key: str) -> Any:
        raw = self.storage.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Corrupt payload for %s, treating as empty: %s", key, e)
            return None

    def _read_list(self, key: str) -> List[Any]:
        data = self._read_json(key)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("Payload for %s is not a list, treating as empty", key)
            return []
        return data

    def _write_json(self, key: str, data: Any) -> None:
        self.storage.set_item(key, json.dumps(data, ensure_ascii=False))

    # ==================================================================
    # 生成・インポート問題
    # ==================================================================
    def load_stored(self) -> List[Question]:
        """保存済みの問題。無い・壊れている場合は空リスト。"""
        questions: List[Question] = []
        for item in self._read_list(QUESTIONS_KEY):
            try:
                questions.append(Question.from_dict(item))
            except ValidationFailure as e:
                logger.warning("Skipping invalid stored question: %s", e)
        return questions

    def save_generated(self, new_questions: Sequence[Question]) -> int:
        """
        新しい問題を保存済みの問題の後ろに追加して保存する。

        1. 上限 max_stored_questions を超えた分は古い方から捨てる
        2. (問題文, 正解) の重複を除く（先に現れた方を残す）

        保存後の総数を返す。書き込みに失敗した場合は StorageFailure。
        """
        questions = self.load_stored() + list(new_questions)

        overflow = len(questions) - self.max_stored_questions
        if overflow > 0:
            questions = questions[overflow:]

        questions = remove_duplicates(questions)
        self._write_json(QUESTIONS_KEY, [q.to_dict() for q in questions])

        logger.info("Saved %d questions, %d stored in total", len(new_questions), len(questions))
        return len(questions)

    def clear_stored(self) -> None:
        self.storage.remove_item(QUESTIONS_KEY)
        logger.info("Cleared all stored questions")

    def stats(self) -> Dict[str, Any]:
        questions = self.load_stored()
        return {
            "total": len(questions),
            "by_level": dict(Counter(q.level for q in questions)),
            "by_type": dict(Counter(q.type for q in questions)),
            "by_source": dict(Counter(q.source or "static" for q in questions)),
            "storage_kb": self.storage_kb(),
        }

    def storage_kb(self) -> int:
        raw = self.storage.get_item(QUESTIONS_KEY)
        if not raw:
            return 0
        return round(len(raw.encode("utf-8")) / 1024)

    # ------------------------------------------------------------------
    # エクスポート
    # ------------------------------------------------------------------
    def export_all(self, fmt: str = "json", today: Optional[date] = None) -> ExportFile:
        """
        保存済みの問題を JSON または CSV に変換する。

        保存済みの問題が無い場合は NothingToExport。
        """
        fmt = fmt.lower()
        if fmt not in EXPORT_MIME_TYPES:
            raise ValidationFailure(f"unsupported export format: {fmt!r}")

        questions = self.load_stored()
        if not questions:
            raise NothingToExport()

        content = (
            transfer.to_json_document(questions)
            if fmt == "json"
            else transfer.to_csv(questions)
        )
        stamp = (today or date.today()).strftime("%Y%m%d")
        logger.info("Exported %d questions as %s", len(questions), fmt.upper())
        return ExportFile(
            filename=f"{EXPORT_BASENAME}_{stamp}.{fmt}",
            mime_type=EXPORT_MIME_TYPES[fmt],
            content=content,
        )

    # ------------------------------------------------------------------
    # インポート
    # ------------------------------------------------------------------
    def import_from(self, filename: str, content: Union[str, bytes]) -> int:
        """
        JSON / CSV ファイルの内容を取り込み、save_generated で統合する。

        - 形式はファイル拡張子で判定
        - 不正な問題は捨てる（一部が不正でも残りは取り込む）
        - source=imported と importedAt を付け、ID が無い・保存済みの ID と重なる場合は振り直す

        取り込んだ件数を返す。解析できない場合・有効な問題が 0 件の場合は
        ImportFailure。
        """
        candidates = self._parse_import(filename, content)

        imported_at = now_iso()
        used_ids = {q.id for q in self.load_stored()}
        valid: List[Question] = []
        for index, item in enumerate(candidates):
            if not isinstance(item, dict):
                logger.warning("Skipping import row %d: not an object", index + 1)
                continue
            try:
                q = Question.from_dict(item)
            except ValidationFailure as e:
                logger.warning("Skipping import row %d: %s", index + 1, e)
                continue
            # ファイル側の ID が保存済み・同じファイル内と重なる場合は振り直す
            qid = q.id if q.id not in used_ids else new_question_id()
            used_ids.add(qid)
            valid.append(replace(q, id=qid, source="imported", imported_at=imported_at))

        if not valid:
            raise ImportFailure("no valid questions found in file")

        total = self.save_generated(valid)
        logger.info("Imported %d of %d questions from %s (%d stored)", len(valid), len(candidates), filename, total)
        return len(valid)

    def _parse_import(self, filename: str, content: Union[str, bytes]) -> List[Any]:
        if isinstance(content, bytes):
            try:
                content = content.decode("utf-8-sig")
            except UnicodeDecodeError as e:
                raise ImportFailure(f"file is not UTF-8 text: {e}") from None
        else:
            content = content.lstrip("\ufeff")

        name = filename.lower()
        try:
            if name.endswith(".json"):
                return transfer.parse_json_document(content)
            if name.endswith(".csv"):
                return transfer.parse_csv(content)
        except ValueError as e:
            # json.JSONDecodeError も ValueError のサブクラス
            raise ImportFailure(str(e)) from None
        raise ImportFailure(f"unsupported file format: {filename}")

    # ==================================================================
    # 学習履歴
    # ==================================================================
    def load_history(self) -> List[HistoryRecord]:
        records: List[HistoryRecord] = []
        for item in self._read_list(HISTORY_KEY):
            try:
                records.append(HistoryRecord.from_dict(item))
            except ValidationFailure as e:
                logger.warning("Skipping invalid history record: %s", e)
        return records

    def _save_history(self, records: Sequence[HistoryRecord]) -> None:
        self._write_json(HISTORY_KEY, [r.to_dict() for r in records])

    def append_history(self, record: HistoryRecord) -> List[HistoryRecord]:
        """先頭に追加し、上限を超えた古い記録を捨てる。"""
        records = [record] + self.load_history()
        records = records[: self.max_history]
        self._save_history(records)
        return records

    def delete_history_at(self, index: int) -> bool:
        records = self.load_history()
        if not 0 <= index < len(records):
            return False
        del records[index]
        self._save_history(records)
        return True

    def clear_history(self) -> None:
        """学習履歴を削除する。獲得バッジも同時に削除する。"""
        self.storage.remove_item(HISTORY_KEY)
        self.storage.remove_item(BADGES_KEY)
        logger.info("Cleared quiz history and badges")

    # ==================================================================
    # バッジ
    # ==================================================================
    def load_unlocked(self) -> List[str]:
        return [b for b in self._read_list(BADGES_KEY) if isinstance(b, str)]

    def unlock(self, badge_id: str) -> bool:
        """バッジを獲得済みにする。既に獲得済みなら何もしない。"""
        unlocked = self.load_unlocked()
        if badge_id in unlocked:
            return False
        unlocked.append(badge_id)
        self._write_json(BADGES_KEY, unlocked)
        return True

    # ==================================================================
    # 設定値
    # ==================================================================
    def load_language(self, default: str = "ja") -> str:
        value = self._read_json(LANGUAGE_KEY)
        return value if isinstance(value, str) and value else default

    def save_language(self, tag: str) -> None:
        self._write_json(LANGUAGE_KEY, tag)

    def load_api_key(self) -> Optional[str]:
        value = self._read_json(API_KEY_KEY)
        return value if isinstance(value, str) and value else None

    def save_api_key(self, api_key: str) -> None:
        api_key = (api_key or "").strip()
        if not api_key:
            raise ValidationFailure("API key cannot be empty")
        self._write_json(API_KEY_KEY, api_key)

    def remove_api_key(self) -> None:
        self.storage.remove_item(API_KEY_KEY)


def history_scores(records: Sequence[HistoryRecord]) -> List[Tuple[str, float]]:
    """グラフ描画用に古い順の (日付, スコア) を返す。"""
    return [(r.date, r.score) for r in reversed(records)]
