"""
ui.py
======================

Streamlit ベースの UI コンポーネントをまとめたモジュール。

責務:
- スマートフォンでも読みやすいレイアウトとスタイル
- クイズ画面（問題・選択肢・経過時間）の描画
- 結果画面（得点・分類別の正答率・間違えた問題）の描画
- 学習履歴とバッジ一覧の描画

ここでは「見た目」と「ユーザー操作の入力」だけを扱い、
採点や保存などのロジックは jlpt_quiz の各モジュールに任せる。
戻り値として「何が押されたか」「どの選択肢が選ばれたか」を返す。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
import streamlit as st

from .achievements import BADGES, Badge
from .errors import QuizError
from .models import TYPE_LABELS_JA, HistoryRecord
from .session import UNANSWERED, QuizResult, QuizSession, format_elapsed

# ----------------------------------------------------------------------
#  テーマ定義
# ----------------------------------------------------------------------


THEMES: Dict[str, Dict[str, str]] = {
    "light": {
        "bg": "#ffffff",
        "text": "#1c1c1e",
        "surface": "#f2f2f7",
        "border": "#d1d1d6",
        "primary": "#007aff",
        "correct": "#34c759",
        "incorrect": "#ff3b30",
    },
    "dark": {
        "bg": "#000000",
        "text": "#f5f5f7",
        "surface": "#1c1c1e",
        "border": "#3a3a3c",
        "primary": "#0a84ff",
        "correct": "#30d158",
        "incorrect": "#ff453a",
    },
}


# ----------------------------------------------------------------------
#  CSS 生成
# ----------------------------------------------------------------------
def _generate_css(theme: Dict[str, str]) -> str:
    """テーマに応じたグローバル CSS を生成する。"""

    return f"""
    <style>
    .jq-question-box {{
        background: {theme['surface']};
        padding: 0.9rem;
        border-radius: 12px;
        border: 1px solid {theme['border']};
        font-size: 1.1rem;
        line-height: 1.6;
        margin-top: 0.5rem;
    }}

    .jq-tag {{
        padding: 0.1rem 0.5rem;
        margin-right: 0.25rem;
        border-radius: 999px;
        border: 1px solid {theme['border']};
        font-size: 0.75rem;
    }}

    .jq-timer {{
        font-variant-numeric: tabular-nums;
        color: {theme['primary']};
        font-weight: 600;
    }}

    .jq-user-answer {{ color: {theme['incorrect']}; }}
    .jq-correct-answer {{ color: {theme['correct']}; font-weight: 600; }}

    .jq-badge {{
        display: inline-block;
        width: 7rem;
        margin: 0.25rem;
        padding: 0.5rem;
        text-align: center;
        border-radius: 12px;
        border: 1px solid {theme['border']};
        opacity: 0.35;
    }}

    .jq-badge.unlocked {{
        opacity: 1;
        border-color: {theme['primary']};
    }}

    .jq-badge .icon {{ font-size: 1.8rem; }}
    </style>
    """


# ----------------------------------------------------------------------
#  テーマ関連
# ----------------------------------------------------------------------
def apply_theme() -> str:
    """セッションのテーマキーを確定し、CSS を注入する。"""
    theme_key = st.session_state.get("theme", "light")
    if theme_key not in THEMES:
        theme_key = "light"
    st.session_state["theme"] = theme_key
    st.markdown(_generate_css(THEMES[theme_key]), unsafe_allow_html=True)
    return theme_key


def render_error(error: QuizError) -> None:
    """アプリ例外を [分類] メッセージ の形で表示する。"""
    st.error(f"[{error.category}] {error.message}")


# ----------------------------------------------------------------------
#  クイズ画面
# ----------------------------------------------------------------------
def render_quiz_form(session: QuizSession) -> Dict[str, Any]:
    """
    出題中のセッションを描画し、フォームの入力結果を返す。

    戻り値:
        {
          "submitted": bool,                     # 提出ボタンが押されたか
          "answers": Dict[int, Optional[str]],   # 問題 ID → 選択肢（未選択は None）
        }
    """
    st.markdown(
        f"**{session.level}** ・ {len(session.questions)} 問 ・ "
        f"<span class='jq-timer'>⏱ {format_elapsed(session.elapsed_seconds)}</span>",
        unsafe_allow_html=True,
    )

    answers: Dict[int, Optional[str]] = {}
    with st.form("quiz_form"):
        for index, q in enumerate(session.questions, start=1):
            tags = (
                f"<span class='jq-tag'>{TYPE_LABELS_JA.get(q.type, q.type)}</span>"
                f"<span class='jq-tag'>{q.topic}</span>"
            )
            st.markdown(
                f"<div class='jq-question-box'>{index}. {q.question}<br>{tags}</div>",
                unsafe_allow_html=True,
            )
            answers[q.id] = st.radio(
                f"q{q.id}",
                list(q.options),
                index=None,
                key=f"answer_{q.id}",
                label_visibility="collapsed",
            )
        submitted = st.form_submit_button("提出する", use_container_width=True)

    return {"submitted": submitted, "answers": answers}


# ----------------------------------------------------------------------
#  結果画面
# ----------------------------------------------------------------------
def render_result(
    result: QuizResult,
    badge: Optional[Badge] = None,
    language: str = "ja",
    starter_level: str = "N5",
) -> None:
    st.markdown(f"### 合計点: {result.display_score:.1f}")
    st.write(f"正解数: {result.correct_count} / {result.total}")
    st.write(f"所要時間: {format_elapsed(result.elapsed_seconds)}")

    st.markdown("#### 分類別の成績")
    rows = [
        {
            "分類": TYPE_LABELS_JA.get(category, category),
            "正解": stat.correct,
            "出題": stat.total,
            "正答率(%)": stat.percentage,
        }
        for category, stat in result.category_stats.items()
    ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    if badge is not None:
        st.balloons()
        st.success(
            f"{badge.icon} バッジ獲得: {badge.name(language, starter_level)}"
            f" ー {badge.description(language, starter_level)}"
        )

    if result.wrong_answers:
        st.markdown("#### 間違えた問題")
    for wrong in result.wrong_answers:
        q = wrong.question
        answer_text = "未回答" if wrong.user_answer == UNANSWERED else wrong.user_answer
        st.markdown(
            f"<div class='jq-question-box'>{q.question}<br>"
            f"あなたの答え: <span class='jq-user-answer'>{answer_text}</span><br>"
            f"正解: <span class='jq-correct-answer'>{q.answer}</span></div>",
            unsafe_allow_html=True,
        )
        with st.expander("解説"):
            st.write(q.explanation)


# ----------------------------------------------------------------------
#  学習履歴・バッジ
# ----------------------------------------------------------------------
def render_progress_chart(records: Sequence[HistoryRecord]) -> None:
    """古い記録を左にした得点推移グラフ。"""
    if not records:
        return
    df = pd.DataFrame(
        [{"回": i + 1, "得点": r.score} for i, r in enumerate(reversed(records))]
    ).set_index("回")
    st.line_chart(df, y="得点")


def render_history_list(records: Sequence[HistoryRecord]) -> Optional[int]:
    """
    履歴の一覧を描画する。削除ボタンが押された記録の index を返す。
    """
    deleted: Optional[int] = None
    if not records:
        st.info("まだ学習記録がありません。クイズを完了すると記録されます。")
        return None

    for index, r in enumerate(records):
        col_info, col_delete = st.columns([5, 1])
        with col_info:
            st.write(
                f"{r.date} ・ {r.level} ・ 得点: {r.score} ・ "
                f"時間: {format_elapsed(r.elapsed_seconds)}"
            )
        with col_delete:
            if st.button("削除", key=f"delete_history_{index}"):
                deleted = index
    return deleted


def render_badges(
    unlocked: List[str],
    language: str = "ja",
    starter_level: str = "N5",
) -> None:
    if not unlocked:
        st.info("まだバッジはありません。学習を続けましょう！")

    html = []
    for badge in BADGES.values():
        css = "jq-badge unlocked" if badge.id in unlocked else "jq-badge"
        html.append(
            f"<div class='{css}' title='{badge.description(language, starter_level)}'>"
            f"<div class='icon'>{badge.icon}</div>"
            f"<div>{badge.name(language, starter_level)}</div></div>"
        )
    st.markdown("".join(html), unsafe_allow_html=True)
