"""Tests for LLM JSON extraction helpers."""

import pytest

from app.llm.helpers import extract_json_object, strip_json_fences

pytestmark = pytest.mark.unit


class TestStripJsonFences:
    def test_no_fences(self):
        raw = '{"key": "value"}'
        assert strip_json_fences(raw) == '{"key": "value"}'

    def test_json_fence(self):
        raw = '```json\n{"key": "value"}\n```'
        assert strip_json_fences(raw) == '{"key": "value"}'

    def test_plain_fence(self):
        raw = '```\n{"key": "value"}\n```'
        assert strip_json_fences(raw) == '{"key": "value"}'

    def test_fence_with_whitespace(self):
        raw = '  ```json\n{"key": "value"}\n```  '
        assert strip_json_fences(raw) == '{"key": "value"}'


class TestExtractJsonObject:
    def test_plain_object(self):
        assert extract_json_object('{"score_intelligent": 80}') == {"score_intelligent": 80}

    def test_object_surrounded_by_prose(self):
        text = 'Segue a análise:\n{"insights": ["a"]}\nEspero ter ajudado.'
        assert extract_json_object(text) == {"insights": ["a"]}

    def test_fenced_object(self):
        assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_spans_first_to_last_brace(self):
        text = 'x {"outer": {"inner": 1}} y'
        assert extract_json_object(text) == {"outer": {"inner": 1}}

    def test_no_braces_returns_none(self):
        assert extract_json_object("Desculpe, sem análise.") is None

    def test_undecodable_returns_none(self):
        assert extract_json_object("{isto não é json}") is None

    def test_two_objects_are_not_merged(self):
        # First "{" to last "}" covers both, which does not decode
        assert extract_json_object('{"a": 1} e {"b": 2}') is None

    def test_closing_before_opening_returns_none(self):
        assert extract_json_object("} antes {") is None

    def test_empty_and_none(self):
        assert extract_json_object("") is None
        assert extract_json_object(None) is None
