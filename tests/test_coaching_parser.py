import json

from agentassist.models.coaching_models import ParsedCoaching, UnparseableCoaching
from agentassist.services.coaching_parser import (
    extract_first_object,
    parse_coaching_output,
    strip_code_fences,
)

from conftest import VALID_COACHING


def test_plain_json_is_parsed():
    parsed = parse_coaching_output(json.dumps(VALID_COACHING))

    assert isinstance(parsed, ParsedCoaching)
    result = parsed.result
    assert result.next_action == "Verify Identity Before Proceeding"
    assert len(result.smart_replies) == 2
    assert result.sentiment == "neutral"
    assert result.insights[0].color == "amber"
    assert result.escalation_risk == 20


def test_fenced_json_is_parsed():
    raw = "```json\n" + json.dumps(VALID_COACHING, indent=2) + "\n```"

    parsed = parse_coaching_output(raw)

    assert isinstance(parsed, ParsedCoaching)
    assert parsed.result.next_action == VALID_COACHING["nextAction"]


def test_json_wrapped_in_prose_is_extracted():
    raw = (
        "Sure! Here is my coaching for this turn: "
        + json.dumps(VALID_COACHING)
        + " Let me know if you need anything else {not json}."
    )

    parsed = parse_coaching_output(raw)

    assert isinstance(parsed, ParsedCoaching)
    assert parsed.result.escalation_risk == 20


def test_garbage_is_unparseable():
    parsed = parse_coaching_output("I'm sorry, I can't help with that.")

    assert isinstance(parsed, UnparseableCoaching)
    assert parsed.raw == "I'm sorry, I can't help with that."


def test_empty_output_is_unparseable():
    assert isinstance(parse_coaching_output(""), UnparseableCoaching)
    assert isinstance(parse_coaching_output(None), UnparseableCoaching)


def test_missing_next_action_is_unparseable():
    data = dict(VALID_COACHING)
    del data["nextAction"]

    assert isinstance(parse_coaching_output(json.dumps(data)), UnparseableCoaching)


def test_json_array_is_unparseable():
    assert isinstance(parse_coaching_output("[1, 2, 3]"), UnparseableCoaching)


def test_out_of_range_values_are_normalized():
    data = dict(
        VALID_COACHING,
        escalationRisk=250,
        sentiment="Furious",
        smartReplies="Just one reply",
        insights=[{"label": "Tone", "color": "purple"}, {"tip": "no label"}],
    )

    result = parse_coaching_output(json.dumps(data)).result

    assert result.escalation_risk == 100
    assert result.sentiment == "neutral"
    assert result.smart_replies == ["Just one reply"]
    assert len(result.insights) == 1
    assert result.insights[0].color == "blue"
    assert result.insights[0].tip == ""


def test_negative_and_non_numeric_risk():
    low = parse_coaching_output(json.dumps(dict(VALID_COACHING, escalationRisk=-5)))
    text = parse_coaching_output(json.dumps(dict(VALID_COACHING, escalationRisk="high")))

    assert low.result.escalation_risk == 0
    assert text.result.escalation_risk == 0


def test_strip_code_fences():
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_extract_first_object_skips_broken_braces():
    assert extract_first_object('see {this} then {"a": {"b": 2}} and {"c": 3}') == {
        "a": {"b": 2}
    }
    assert extract_first_object("no objects here") is None
