"""Tests for recognition payload parsing and normalization."""

import pytest

from locallens.common.ids import SequentialIds
from locallens.models import NoPlace, Position, Recognized, StoryKind
from locallens.remote.mock import GRAND_CENTRAL_PAYLOAD, NO_PLACE_PAYLOAD
from locallens.remote.schema import (
    INSUFFICIENT_CERTAINTY,
    RECOGNITION_PROMPT,
    normalize_payload,
    parse_payload,
    recognition_prompt,
)


def payload_with(confidence: float, reasoning: str | None = None) -> dict:
    data = dict(GRAND_CENTRAL_PAYLOAD)
    data["place"] = {**data["place"], "confidence": confidence}
    data["reasoning"] = reasoning
    return data


class TestParsePayload:
    """Tests for parse_payload."""

    def test_parse_json_text(self):
        """Test parsing the JSON text a provider returns."""
        payload = parse_payload(
            '{"place": {"name": "Flatiron", "category": "Landmark", '
            '"description": "Wedge.", "yearBuilt": 1902, "rating": 4.6, '
            '"confidence": 0.9}, "stories": [], "reasoning": "clear"}'
        )

        assert payload.place.name == "Flatiron"
        assert payload.place.year_built == "1902"
        assert payload.reasoning == "clear"

    def test_parse_null_place(self):
        payload = parse_payload(NO_PLACE_PAYLOAD)
        assert payload.place is None
        assert payload.stories == []

    def test_empty_text_is_no_place(self):
        assert parse_payload("").place is None

    def test_unknown_story_type_becomes_fact(self):
        payload = parse_payload(
            {
                "place": None,
                "stories": [{"type": "Rumor", "title": "t", "content": "c"}],
            }
        )
        assert payload.stories[0].type == StoryKind.FACT
        assert payload.stories[0].icon == "Info"

    def test_malformed_json_raises(self):
        with pytest.raises(ValueError):
            parse_payload("{not json")

    def test_confidence_out_of_range_raises(self):
        with pytest.raises(ValueError):
            parse_payload(payload_with(1.7))


class TestNormalizePayload:
    """Tests for the acceptance threshold."""

    def test_accepted_place_gets_ids(self):
        """Test that an accepted place and its stories get injected ids."""
        outcome = normalize_payload(
            parse_payload(GRAND_CENTRAL_PAYLOAD),
            ids=SequentialIds(prefix="rec"),
        )

        assert isinstance(outcome, Recognized)
        assert outcome.place.id == "rec-1"
        assert [s.id for s in outcome.stories] == ["rec-2", "rec-3", "rec-4"]
        assert outcome.place.name == "Grand Central Terminal"
        assert outcome.place.confidence == 0.92
        assert outcome.stories[1].kind == StoryKind.SECRET

    def test_threshold_is_inclusive(self):
        outcome = normalize_payload(parse_payload(payload_with(0.85)))
        assert isinstance(outcome, Recognized)

    def test_below_threshold_is_no_place(self):
        """Test that a low-confidence place becomes a rejection."""
        outcome = normalize_payload(parse_payload(payload_with(0.84)))
        assert outcome == NoPlace(reasoning=INSUFFICIENT_CERTAINTY)

    def test_below_threshold_keeps_model_reasoning(self):
        outcome = normalize_payload(parse_payload(payload_with(0.5, "partly occluded")))
        assert outcome == NoPlace(reasoning="partly occluded")

    def test_null_place_without_reasoning(self):
        outcome = normalize_payload(parse_payload({"place": None}))
        assert outcome == NoPlace(reasoning=INSUFFICIENT_CERTAINTY)

    def test_custom_threshold(self):
        outcome = normalize_payload(parse_payload(payload_with(0.92)), threshold=0.95)
        assert isinstance(outcome, NoPlace)


class TestPrompt:
    """Tests for the recognition prompt."""

    def test_prompt_without_position(self):
        assert recognition_prompt() == RECOGNITION_PROMPT

    def test_prompt_with_position_hint(self):
        prompt = recognition_prompt(Position(latitude=40.752726, longitude=-73.977229))
        assert prompt.startswith(RECOGNITION_PROMPT)
        assert "40.75273" in prompt
        assert "-73.97723" in prompt
