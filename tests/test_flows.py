"""Tests for flow definitions: JSONL loading and the conversational step chain."""

import json

import pytest

from voice_booking.flows.conversational import FIRST_STEP, STEP_IDS, get_step, next_step_id
from voice_booking.flows.courier_booking import FLOW_DEF, STEP_COUNT, step_fields
from voice_booking.flows.loader import load_flow_jsonl, parse_flow
from voice_booking.flows.schema import FieldDescriptor


class TestCourierFlow:
    def test_four_steps(self):
        assert STEP_COUNT == 4
        assert FLOW_DEF.step_numbers == [1, 2, 3, 4]

    def test_step_one_order(self):
        assert [d.field for d in step_fields(1)] == [
            "senderName", "senderPhone", "pickupAddress", "pickupCity",
        ]

    def test_only_dimensions_are_optional(self):
        optional = {d.field for s in FLOW_DEF.step_numbers for d in step_fields(s) if d.optional}
        assert optional == {"dimensions.length", "dimensions.width", "dimensions.height"}

    def test_descriptors_know_their_step(self):
        assert FLOW_DEF.find("pickupTime").step == 4
        assert FLOW_DEF.find("missing") is None

    def test_unknown_step_falls_back_to_first(self):
        assert FLOW_DEF.fields_for(99) == FLOW_DEF.fields_for(1)

    def test_descriptors_are_immutable(self):
        descriptor = step_fields(1)[0]
        with pytest.raises(Exception):
            descriptor.prompt = "changed"


class TestLoader:
    def test_parse_flow_stamps_steps(self):
        flow = parse_flow({
            "id": "mini",
            "steps": {"2": [{"field": "a", "label": "a", "prompt": "A?"}]},
        })
        assert flow.id == "mini"
        assert flow.scope == "booking"
        assert flow.fields_for(2) == (FieldDescriptor(field="a", label="a", prompt="A?", step=2),)

    def test_load_jsonl(self, tmp_path):
        path = tmp_path / "flow.jsonl"
        path.write_text("\n" + json.dumps({
            "id": "f", "scope": "booking",
            "steps": {"1": [{"field": "x", "label": "x", "prompt": "X?", "optional": True}]},
        }) + "\n")
        flow = load_flow_jsonl(path)
        assert flow.fields_for(1)[0].optional is True

    def test_empty_file_raises(self, tmp_path):
        path = tmp_path / "empty.jsonl"
        path.write_text("\n\n")
        with pytest.raises(ValueError):
            load_flow_jsonl(path)


class TestConversationSteps:
    def test_chain_order(self):
        assert STEP_IDS[0] == FIRST_STEP == "ask-name"
        assert STEP_IDS[-2:] == ["confirm", "complete"]

    def test_next_step(self):
        assert next_step_id("ask-name") == "ask-phone"
        assert next_step_id("ask-pickup-time") == "confirm"
        assert next_step_id("complete") == "complete"
        assert next_step_id("idle") == FIRST_STEP

    def test_get_step(self):
        assert get_step("ask-weight").field == "weight"
        assert get_step("idle") is None
