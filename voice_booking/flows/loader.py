"""Load JSONL flow definitions into BookingFlowDef objects."""

from __future__ import annotations

import json
from pathlib import Path

from voice_booking.flows.schema import BookingFlowDef, FieldDescriptor


def load_flow_jsonl(path: str | Path) -> BookingFlowDef:
    """Load a single flow from a JSONL file.

    The JSONL file contains exactly one JSON object (the flow). Fields are
    nested inside the top-level ``steps`` dict, keyed by step number.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8").strip()

    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        return parse_flow(json.loads(line))

    raise ValueError(f"No flow found in {path}")


def parse_flow(data: dict) -> BookingFlowDef:
    """Parse a raw dict into a BookingFlowDef, stamping each field's step."""
    steps: dict[int, tuple[FieldDescriptor, ...]] = {}
    for step_key, raw_fields in data.get("steps", {}).items():
        step = int(step_key)
        descriptors = []
        for raw in raw_fields:
            if isinstance(raw, FieldDescriptor):
                descriptors.append(raw)
                continue
            raw = dict(raw)
            raw["step"] = step
            descriptors.append(FieldDescriptor(**raw))
        steps[step] = tuple(descriptors)

    return BookingFlowDef(
        id=data.get("id", ""),
        scope=data.get("scope", "booking"),
        steps=steps,
    )
