import json

import pytest

from tact_api.errors import ParseError
from tact_api.llm_parsing import extract_json_span, normalize, strip_code_fences

SAMPLE = {
    "score": 73,
    "summary": "Mostly fine.",
    "audience_perception": {"primary_receiver": "ok", "neutral_observer": "ok"},
    "highlights": [{"substring": "asap", "severity": "low"}],
    "rewritten_message": None,
}


def test_plain_json_roundtrip():
    assert normalize(json.dumps(SAMPLE)) == SAMPLE


def test_fenced_json_is_recovered():
    raw = "```json\n" + json.dumps(SAMPLE, indent=2) + "\n```"
    assert normalize(raw) == SAMPLE


def test_bare_fence_without_language_tag():
    raw = "```\n" + json.dumps(SAMPLE) + "\n```"
    assert normalize(raw) == SAMPLE


def test_preamble_and_trailing_chatter_are_dropped():
    raw = "Sure! Here is your analysis:\n" + json.dumps(SAMPLE) + "\nLet me know if you need more."
    assert normalize(raw) == SAMPLE


def test_nested_braces_survive_span_extraction():
    raw = 'Result -> {"a": {"b": {"c": 1}}, "d": [1, {"e": 2}]} done'
    assert normalize(raw) == {"a": {"b": {"c": 1}}, "d": [1, {"e": 2}]}


def test_strip_code_fences_removes_markers_anywhere():
    assert strip_code_fences('prefix ```JSON {"x": 1} ``` suffix') == 'prefix  {"x": 1}  suffix'


def test_extract_json_span_none_without_braces():
    assert extract_json_span("no object here") is None
    assert extract_json_span("") is None
    assert extract_json_span("only a closing } brace") is None


def test_extract_json_span_keeps_text_starting_with_brace():
    assert extract_json_span('  {"x": 1} trailing') == '{"x": 1} trailing'


@pytest.mark.parametrize(
    "raw",
    [
        "I cannot help with that.",
        "",
        "[1, 2, 3]",
        '{"score": 10,}',
        "{'score': 10}",
        '{"score": 10',
    ],
)
def test_rejects_without_guessing(raw):
    with pytest.raises(ParseError) as ei:
        normalize(raw)
    assert ei.value.raw_text == raw


def test_non_object_json_is_rejected():
    with pytest.raises(ParseError):
        normalize('"just a string"')
