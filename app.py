"""
app.py
======================

JLPT 対策クイズアプリ（Streamlit）エントリーポイント。

特徴:
- ホーム画面でレベル・問題数を選んで時間計測つきのクイズ
- 採点結果・分類別成績・間違えた問題の解説
- 学習履歴（得点推移グラフ）とバッジ
- 生成・インポートした問題の保存 / エクスポート / インポート
- Gemini による問題生成（API キーがある場合のみ）

前提:
- bank/question_bank.jsonl に静的問題が格納されている
- 保存データは data/ 以下（config.toml の [storage].data_dir で変更可）
- 環境変数 GEMINI_API_KEY、または設定画面で保存したキーで生成機能が有効
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import streamlit as st

from jlpt_quiz import ui
from jlpt_quiz.achievements import award_badge
from jlpt_quiz.config import AppConfig
from jlpt_quiz.errors import QuizError
from jlpt_quiz.generation import GenerationClient
from jlpt_quiz.models import JLPT_LEVELS, LEVELS, QUESTION_TYPES, TYPE_LABELS_JA
from jlpt_quiz.question_bank import QuestionBank
from jlpt_quiz.session import QuizSession, SessionStatus
from jlpt_quiz.storage import LocalStorage
from jlpt_quiz.store import PersistenceStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger(__name__)

LEVEL_LABELS = {"Beginner": "初級 (Beginner)"}
QUANTITY_CHOICES = [5, 10, 20]


# ----------------------------------------------------------------------
#  セッションに保持するオブジェクト
# ----------------------------------------------------------------------
def get_config() -> AppConfig:
    if "app_config" not in st.session_state:
        st.session_state["app_config"] = AppConfig.load()
    return st.session_state["app_config"]


def get_store() -> PersistenceStore:
    if "store" not in st.session_state:
        cfg = get_config()
        storage = LocalStorage(cfg.data_dir, quota_bytes=cfg.storage_quota_bytes)
        st.session_state["store"] = PersistenceStore(
            storage,
            max_stored_questions=cfg.max_stored_questions,
            max_history=cfg.max_history,
        )
    return st.session_state["store"]


def get_bank() -> QuestionBank:
    """静的問題 + 保存済みの生成・インポート問題。"""
    if "bank" not in st.session_state:
        bank = QuestionBank.from_jsonl(get_config().question_bank_path)
        bank.add(get_store().load_stored())
        st.session_state["bank"] = bank
    return st.session_state["bank"]


def get_language() -> str:
    if "language" not in st.session_state:
        st.session_state["language"] = get_store().load_language(get_config().default_language)
    return st.session_state["language"]


def get_generation_client() -> Optional[GenerationClient]:
    """API キーがあればクライアントを返す（レート制限の状態を保つためキャッシュする）。"""
    cfg = get_config()
    api_key = cfg.resolve_api_key(get_store().load_api_key())
    if not api_key:
        return None
    cached = st.session_state.get("generation_client")
    if cached is None or cached.api_key != api_key:
        cached = GenerationClient.from_config(cfg, api_key=api_key)
        st.session_state["generation_client"] = cached
    return cached


def set_page(page: str) -> None:
    st.session_state["page"] = page


def get_page() -> str:
    return st.session_state.get("page", "home")


def go(page: str) -> None:
    set_page(page)
    st.rerun()


def home_button() -> None:
    if st.button("🏠 ホームに戻る", use_container_width=True):
        go("home")


# ----------------------------------------------------------------------
#  ページ: ホーム
# ----------------------------------------------------------------------
def render_home_page() -> None:
    st.markdown("## 🗾 JLPT クイズへようこそ")

    bank = get_bank()
    st.caption(f"問題数: {len(bank)} 問")

    level = st.radio(
        "レベル",
        list(LEVELS),
        horizontal=True,
        format_func=lambda lv: LEVEL_LABELS.get(lv, lv),
    )
    choice = st.radio("問題数", QUANTITY_CHOICES + ["カスタム"], horizontal=True)
    if choice == "カスタム":
        count = int(st.number_input("問題数を入力", min_value=0, value=5, step=1))
    else:
        count = int(choice)

    if st.button("🚀 クイズを始める", use_container_width=True):
        session = QuizSession(bank)
        try:
            session.configure(level, count)
            session.start()
        except QuizError as e:
            ui.render_error(e)
            return
        st.session_state["quiz_session"] = session
        st.session_state.pop("last_result", None)
        st.session_state.pop("last_badge", None)
        go("quiz")

    st.write("---")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("📈 学習記録", use_container_width=True):
            go("history")
        if st.button("🤖 問題を生成", use_container_width=True):
            go("generate")
    with col2:
        if st.button("💾 問題の保存・入出力", use_container_width=True):
            go("storage")
        if st.button("⚙️ 設定", use_container_width=True):
            go("settings")


# ----------------------------------------------------------------------
#  ページ: クイズ
# ----------------------------------------------------------------------
def render_quiz_page() -> None:
    session: Optional[QuizSession] = st.session_state.get("quiz_session")
    if session is None or session.status is not SessionStatus.IN_PROGRESS:
        go("home")
        return

    form = ui.render_quiz_form(session)
    if not form["submitted"]:
        if st.button("中断してホームへ", use_container_width=True):
            st.session_state.pop("quiz_session", None)
            go("home")
        return

    cfg = get_config()
    store = get_store()
    result = session.submit(form["answers"])

    badge = None
    try:
        store.append_history(result.to_history_record())
        badge = award_badge(result, store, cfg.starter_level)
    except QuizError as e:
        ui.render_error(e)

    st.session_state["last_result"] = result
    st.session_state["last_badge"] = badge
    go("result")


# ----------------------------------------------------------------------
#  ページ: 結果
# ----------------------------------------------------------------------
def render_result_page() -> None:
    result = st.session_state.get("last_result")
    if result is None:
        go("home")
        return

    st.markdown("## 📝 結果")
    ui.render_result(
        result,
        badge=st.session_state.get("last_badge"),
        language=get_language(),
        starter_level=get_config().starter_level,
    )
    st.session_state["last_badge"] = None

    col1, col2 = st.columns(2)
    with col1:
        if st.button("🔁 もう一度", use_container_width=True):
            go("home")
    with col2:
        if st.button("📈 学習記録", use_container_width=True):
            go("history")


# ----------------------------------------------------------------------
#  ページ: 学習記録
# ----------------------------------------------------------------------
def render_history_page() -> None:
    store = get_store()
    st.markdown("## 📈 学習記録")

    records = store.load_history()
    ui.render_progress_chart(records)

    st.markdown("### 獲得したバッジ")
    ui.render_badges(store.load_unlocked(), get_language(), get_config().starter_level)

    st.markdown("### 記録一覧")
    deleted = ui.render_history_list(records)
    if deleted is not None:
        try:
            store.delete_history_at(deleted)
        except QuizError as e:
            ui.render_error(e)
        else:
            st.rerun()

    if records and st.button("🗑 学習記録をすべて削除（バッジも削除）", use_container_width=True):
        store.clear_history()
        st.success("学習記録を削除しました。")
        st.rerun()

    home_button()


# ----------------------------------------------------------------------
#  ページ: 保存・入出力
# ----------------------------------------------------------------------
def render_storage_page() -> None:
    store = get_store()
    bank = get_bank()
    st.markdown("## 💾 問題の保存・入出力")

    stats = store.stats()
    st.write(f"- 保存済み: **{stats['total']} 問**（{stats['storage_kb']} KB）")
    for title, key in (("レベル", "by_level"), ("分類", "by_type"), ("出典", "by_source")):
        breakdown = stats[key]
        if breakdown:
            st.write(f"- {title}: " + ", ".join(f"{k}: {v} 問" for k, v in breakdown.items()))

    st.markdown("### エクスポート")
    col_json, col_csv = st.columns(2)
    for column, fmt in ((col_json, "json"), (col_csv, "csv")):
        with column:
            try:
                exported = store.export_all(fmt)
            except QuizError as e:
                st.caption(f"{fmt.upper()}: {e.message}")
                continue
            st.download_button(
                f"{fmt.upper()} でダウンロード",
                data=exported.content,
                file_name=exported.filename,
                mime=exported.mime_type,
                use_container_width=True,
            )

    st.markdown("### インポート")
    uploaded = st.file_uploader("JSON / CSV ファイル", type=["json", "csv"])
    if uploaded is not None and st.button("取り込む", use_container_width=True):
        try:
            count = store.import_from(uploaded.name, uploaded.getvalue())
        except QuizError as e:
            ui.render_error(e)
        else:
            added = bank.add(store.load_stored())
            st.success(f"{count} 問を取り込みました（出題対象に {added} 問追加）。")

    st.write("---")
    if st.button("🗑 保存済みの問題をすべて削除", use_container_width=True):
        try:
            store.clear_stored()
        except QuizError as e:
            ui.render_error(e)
        else:
            st.success("保存済みの問題を削除しました。")

    home_button()


# ----------------------------------------------------------------------
#  ページ: 問題生成
# ----------------------------------------------------------------------
def render_generate_page() -> None:
    st.markdown("## 🤖 Gemini で問題を生成")

    client = get_generation_client()
    if client is None:
        st.info("問題生成を利用するには、設定画面で Gemini API キーを保存してください。")
        home_button()
        return

    with st.form("generate_form"):
        level = st.selectbox("レベル", list(JLPT_LEVELS))
        question_type = st.selectbox(
            "分類", list(QUESTION_TYPES), format_func=lambda t: TYPE_LABELS_JA.get(t, t)
        )
        topic = st.text_input("テーマ（任意）")
        count = int(st.number_input("問題数", min_value=1, max_value=10, value=3, step=1))
        submitted = st.form_submit_button("生成する", use_container_width=True)

    if submitted:
        try:
            with st.spinner("生成中..."):
                questions = asyncio.run(
                    client.generate_questions(level, question_type, topic or None, count)
                )
            total = get_store().save_generated(questions)
        except QuizError as e:
            ui.render_error(e)
        else:
            get_bank().add(questions)
            st.success(f"{len(questions)} 問を生成しました（保存済み合計 {total} 問）。")
            for q in questions:
                with st.expander(q.question):
                    st.write(" / ".join(q.options))
                    st.write(f"正解: {q.answer}")
                    st.write(q.explanation)

    if client.rate_limiter is not None:
        status = client.rate_limiter.get_status()
        st.caption(f"残りリクエスト: {status['remaining']} / {status['max_requests']}")

    home_button()


# ----------------------------------------------------------------------
#  ページ: 設定
# ----------------------------------------------------------------------
def render_settings_page() -> None:
    st.markdown("## ⚙️ 設定")
    store = get_store()

    st.markdown("### 表示言語（バッジ名）")
    languages = {"ja": "日本語", "en": "English"}
    current = get_language()
    selected = st.radio(
        "言語",
        list(languages),
        index=list(languages).index(current) if current in languages else 0,
        format_func=lambda k: languages[k],
        horizontal=True,
    )
    if selected != current:
        store.save_language(selected)
        st.session_state["language"] = selected

    st.write("---")
    st.markdown("### Gemini API キー")
    if get_config().gemini_api_key:
        st.info("環境変数 GEMINI_API_KEY のキーを使用しています。")
    elif store.load_api_key():
        st.write("API キーは保存済みです。")
        if st.button("API キーを削除"):
            store.remove_api_key()
            st.session_state.pop("generation_client", None)
            st.rerun()
    else:
        key = st.text_input("API キー", type="password")
        if st.button("保存"):
            try:
                store.save_api_key(key)
            except QuizError as e:
                ui.render_error(e)
            else:
                st.success("API キーを保存しました。")

    client = get_generation_client()
    if client is not None and st.button("接続テスト"):
        try:
            asyncio.run(client.test_connection())
            st.success(f"接続に成功しました（{client.model_name}）。")
        except QuizError as e:
            ui.render_error(e)

    if client is not None and st.button("利用可能なモデルを表示"):
        try:
            st.write(client.list_available_models())
        except QuizError as e:
            ui.render_error(e)

    home_button()


# ----------------------------------------------------------------------
#  メイン
# ----------------------------------------------------------------------
def main() -> None:
    st.set_page_config(
        page_title="JLPT Quiz",
        page_icon="🗾",
        layout="centered",
    )
    ui.apply_theme()

    pages = {
        "home": render_home_page,
        "quiz": render_quiz_page,
        "result": render_result_page,
        "history": render_history_page,
        "storage": render_storage_page,
        "generate": render_generate_page,
        "settings": render_settings_page,
    }
    page = get_page()
    if page not in pages:
        page = "home"
        set_page(page)
    pages[page]()


if __name__ == "__main__":
    main()
