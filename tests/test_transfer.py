import json

import pytest

from jlpt_quiz import transfer
from jlpt_quiz.models import Question


def test_csv_escapes_commas_quotes_and_newlines(question_factory):
    q = question_factory(
        question='彼は「はい、そうです」と"言った"。',
        explanation="一行目\n二行目, 続き",
        options=("a,b", 'c"d', "e\nf", "g"),
        answer="a,b",
        created_at="2024-01-01T00:00:00Z",
    )
    text = transfer.to_csv([q])
    rows = transfer.parse_csv(text)
    assert len(rows) == 1
    row = rows[0]
    assert row["question"] == q.question
    assert row["explanation"] == q.explanation
    assert row["options"] == list(q.options)
    assert row["createdAt"] == "2024-01-01T00:00:00Z"
    assert Question.from_dict(row).dedup_key == q.dedup_key


def test_csv_header_row():
    header = transfer.to_csv([]).splitlines()[0]
    assert header.split(",")[0] == '"ID"'
    assert len(header.split(",")) == len(transfer.CSV_HEADERS)


def test_parse_csv_skips_blank_and_short_rows():
    text = "ID,Level\n\n1,N5,Kanji\n,N5,Kanji,q,a,b,c,d,a,e\n"
    rows = transfer.parse_csv(text)
    assert len(rows) == 1
    assert rows[0]["id"] is None
    assert rows[0]["topic"] == "general"


def test_parse_csv_empty_file():
    with pytest.raises(ValueError):
        transfer.parse_csv("")


def test_json_document_shape(question_factory):
    questions = [question_factory(), question_factory()]
    doc = json.loads(transfer.to_json_document(questions))
    assert doc["questionCount"] == 2
    assert doc["exportDate"].endswith("Z")
    assert transfer.parse_json_document(json.dumps(doc)) == doc["questions"]


@pytest.mark.parametrize("text", ['{"questions": {}}', '"just a string"', "42"])
def test_parse_json_document_requires_questions_array(text):
    with pytest.raises(ValueError):
        transfer.parse_json_document(text)
