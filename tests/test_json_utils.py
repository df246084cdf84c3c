from json_utils import (
    iter_json_values,
    iter_llm_json,
    load_llm_json,
    strip_markdown_json,
    strip_trailing_commas,
)


def test_strip_markdown_fence():
    assert strip_markdown_json('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_strip_trailing_commas():
    assert strip_trailing_commas('{"a": [1, 2,], "b": 3,}') == '{"a": [1, 2], "b": 3}'


def test_iter_json_values_skips_malformed_openers():
    text = 'Scores for [2 pools] below: {"a": {"b": 1}} and [1, 2] done'

    assert list(iter_json_values(text)) == [{"a": {"b": 1}}, [1, 2]]
    assert list(iter_json_values('noise [{"a": 1}, {"b": 2}] tail')) == [[{"a": 1}, {"b": 2}]]
    assert list(iter_json_values("no json here")) == []


def test_load_llm_json_skips_bracketed_prose():
    raw = 'Scores for [2 pools] below:\n{"0xa": {"score": 70}}'

    assert load_llm_json(raw) == {"0xa": {"score": 70}}


def test_iter_llm_json_yields_later_candidates():
    raw = 'Checked [1] pool: {"0xa": {"score": 70}}'

    assert list(iter_llm_json(raw)) == [[1], {"0xa": {"score": 70}}]


def test_load_llm_json_with_prose_and_trailing_commas():
    raw = 'Here are the scores:\n{"0xa": {"score": 70, "tags": ["gem",],},}\nHope this helps.'

    assert load_llm_json(raw) == {"0xa": {"score": 70, "tags": ["gem"]}}


def test_load_llm_json_fenced_array():
    raw = '```json\n[{"address": "0xa", "score": 10}]\n```'

    assert load_llm_json(raw) == [{"address": "0xa", "score": 10}]


def test_load_llm_json_fails_soft():
    assert load_llm_json("") is None
    assert load_llm_json(None) is None
    assert load_llm_json("{not: valid json") is None
    assert load_llm_json("42") is None
