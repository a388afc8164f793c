"""
transfer.py
======================

問題のエクスポート / インポート形式（JSON・CSV）。

JSON:
    {"exportDate": "...", "questionCount": N, "questions": [...]}

CSV（1 行目はヘッダ）:
    ID,Level,Type,Question,Option1,Option2,Option3,Option4,Answer,Explanation,Topic,Source,CreatedAt

CSV のクォートは標準の csv モジュールに任せる（カンマ・改行・"" エスケープ対応）。
ここでは文字列 ⇔ dict の変換だけを行い、検証は Question 側の責務とする。
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, List, Sequence

from .models import DEFAULT_TOPIC, Question, now_iso

CSV_HEADERS = [
    "ID",
    "Level",
    "Type",
    "Question",
    "Option1",
    "Option2",
    "Option3",
    "Option4",
    "Answer",
    "Explanation",
    "Topic",
    "Source",
    "CreatedAt",
]

# ID〜Explanation までは必須列
MIN_CSV_COLUMNS = 10


# ----------------------------------------------------------------------
#  エクスポート
# ----------------------------------------------------------------------
def to_json_document(questions: Sequence[Question]) -> str:
    return json.dumps(
        {
            "exportDate": now_iso(),
            "questionCount": len(questions),
            "questions": [q.to_dict() for q in questions],
        },
        ensure_ascii=False,
        indent=2,
    )


def to_csv(questions: Sequence[Question]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for q in questions:
        writer.writerow(
            [
                q.id,
                q.level,
                q.type,
                q.question,
                *q.options,
                q.answer,
                q.explanation,
                q.topic,
                q.source,
                q.created_at or q.imported_at or "",
            ]
        )
    return buf.getvalue()


# ----------------------------------------------------------------------
#  インポート
# ----------------------------------------------------------------------
def parse_json_document(text: str) -> List[Any]:
    """
    {"questions": [...]} 形式、または配列そのものを受け付ける。

    JSON として不正な場合は json.JSONDecodeError、
    問題の配列が見つからない場合は ValueError。
    """
    data = json.loads(text)
    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        raise ValueError("no questions array found")
    return data


def parse_csv(text: str) -> List[Dict[str, Any]]:
    """
    CSV を問題 dict のリストに変換する。

    - 1 行目はヘッダとして読み飛ばす
    - 列数が足りない行・空行はスキップ
    - ヘッダ行が無い（空ファイル）場合は ValueError
    """
    reader = csv.reader(io.StringIO(text))
    try:
        next(reader)
    except StopIteration:
        raise ValueError("empty CSV file") from None

    rows: List[Dict[str, Any]] = []
    for values in reader:
        if not any(v.strip() for v in values):
            continue
        if len(values) < MIN_CSV_COLUMNS:
            continue
        values = values + [""] * (len(CSV_HEADERS) - len(values))
        rows.append(
            {
                "id": values[0] or None,
                "level": values[1],
                "type": values[2],
                "question": values[3],
                "options": values[4:8],
                "answer": values[8],
                "explanation": values[9],
                "topic": values[10] or DEFAULT_TOPIC,
                "createdAt": values[12] or None,
            }
        )
    return rows
