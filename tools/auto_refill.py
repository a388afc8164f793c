"""
tools/auto_refill.py
===========================

コマンドラインから Gemini に問題を生成させ、保存済みの問題に追加するスクリプト。
定期実行（cron や GitHub Actions など）での問題補充を想定している。

主な役割:
- config.toml / 環境変数から AppConfig を読み込む
- レベル・分類・テーマを指定して GenerationClient で問題を生成
- 生成された問題を PersistenceStore に保存（重複除去・上限つき）
- --append-bank を付けた場合は bank/question_bank.jsonl にも JSONL で追記

前提:
- 環境変数 GEMINI_API_KEY に Google Gemini API キーが設定されている
  （または data/ に保存済みのキーがある）
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from jlpt_quiz.config import AppConfig
from jlpt_quiz.errors import QuizError
from jlpt_quiz.generation import GenerationClient
from jlpt_quiz.models import JLPT_LEVELS, QUESTION_TYPES, Question, normalize_type
from jlpt_quiz.question_bank import QuestionBank
from jlpt_quiz.storage import LocalStorage
from jlpt_quiz.store import PersistenceStore, remove_duplicates

logger = logging.getLogger("auto_refill")


# -------------------------------------------------------------
#  モデル選択
# -------------------------------------------------------------
def choose_model_with_fallback(client: GenerationClient, preferred_model: Optional[str] = None) -> str:
    """
    利用可能なモデルの中から 1 つ選ぶ。

    - preferred_model が指定されていて利用可能ならそれ
    - そうでなければ設定のモデル、それも無ければ一覧の先頭
    """
    available = client.list_available_models()
    if not available:
        raise RuntimeError("利用可能な Gemini モデルが見つかりません。")

    for name in (preferred_model, client.model_name):
        if not name:
            continue
        # list_models は "models/gemini-..." 形式で返す
        for candidate in (name, f"models/{name}"):
            if candidate in available:
                return candidate
    return available[0]


# -------------------------------------------------------------
#  バンクへの追記
# -------------------------------------------------------------
def append_to_bank(bank_path: Path, questions: List[Question]) -> int:
    """
    既存の問題と (問題文, 正解) が重複しないものだけを JSONL で追記する。
    追記した件数を返す。
    """
    existing = QuestionBank.from_jsonl(bank_path).all() if bank_path.exists() else []
    known = {q.dedup_key for q in existing}
    fresh = [q for q in remove_duplicates(questions) if q.dedup_key not in known]

    bank_path.parent.mkdir(parents=True, exist_ok=True)
    with bank_path.open("a", encoding="utf-8") as f:
        for q in fresh:
            f.write(json.dumps(q.to_dict(), ensure_ascii=False))
            f.write("\n")
    return len(fresh)


# -------------------------------------------------------------
#  メイン処理
# -------------------------------------------------------------
def refill_questions(
    config: AppConfig,
    level: str,
    question_type: str,
    topic: Optional[str] = None,
    count: int = 5,
    preferred_model: Optional[str] = None,
    dry_run: bool = False,
    append_bank: bool = False,
) -> List[Question]:
    """
    問題を count 問生成して保存する。

    - dry_run=True の場合、生成内容を標準出力に表示するだけで保存しない
    - append_bank=True の場合、静的バンク（question_bank.jsonl）にも追記する
    """
    storage = LocalStorage(config.data_dir, quota_bytes=config.storage_quota_bytes)
    store = PersistenceStore(
        storage,
        max_stored_questions=config.max_stored_questions,
        max_history=config.max_history,
    )

    api_key = config.resolve_api_key(store.load_api_key())
    client = GenerationClient.from_config(config, api_key=api_key)
    if preferred_model:
        client.model_name = choose_model_with_fallback(client, preferred_model)

    new_questions = asyncio.run(client.generate_questions(level, question_type, topic, count))

    if not new_questions:
        print("新規問題は生成されませんでした。")
    elif dry_run:
        print(f"[DRY RUN] {len(new_questions)}問生成:")
        for q in new_questions:
            print(json.dumps(q.to_dict(), ensure_ascii=False))
    else:
        total = store.save_generated(new_questions)
        print(f"{len(new_questions)}問を保存しました（保存済み合計 {total} 問）。")
        if append_bank:
            added = append_to_bank(config.question_bank_path, new_questions)
            print(f"{added}問を {config.question_bank_path} に追記しました。")

    return new_questions


# -------------------------------------------------------------
#  CLI エントリーポイント
# -------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="JLPT クイズ用 問題自動補充スクリプト",
    )
    parser.add_argument(
        "--level",
        choices=JLPT_LEVELS,
        default="N5",
        help="生成する問題のレベル（デフォルト: N5）",
    )
    parser.add_argument(
        "--type",
        dest="question_type",
        type=normalize_type,
        default="Vocabulary",
        help=f"問題の分類（{' / '.join(QUESTION_TYPES)}、デフォルト: Vocabulary）",
    )
    parser.add_argument(
        "--topic",
        type=str,
        default=None,
        help="テーマ（任意）",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=5,
        help="生成する問題数（デフォルト: 5）",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="優先的に使いたい Gemini モデル名（任意）",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="config.toml のパス（任意）",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="保存せず、生成結果のみ標準出力に表示する",
    )
    parser.add_argument(
        "--append-bank",
        action="store_true",
        help="bank/question_bank.jsonl にも追記する",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    args = build_parser().parse_args(argv)

    config = AppConfig.load(args.config)
    try:
        refill_questions(
            config,
            level=args.level,
            question_type=args.question_type,
            topic=args.topic,
            count=args.count,
            preferred_model=args.model,
            dry_run=args.dry_run,
            append_bank=args.append_bank,
        )
    except QuizError as e:
        logger.error("[%s] %s", e.category, e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
