"""Pydantic models for guided booking flows.

A flow groups immutable field descriptors into ordered lists per booking
step. The order of a step's list is the order the guided engine asks in.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class FieldDescriptor(BaseModel):
    """One form field the assistant can ask for."""

    model_config = ConfigDict(frozen=True)

    field: str                  # form field id, dotted for nested values
    label: str                  # spoken name, e.g. "sender phone"
    prompt: str                 # question asked when the field is empty
    optional: bool = False      # accepts "skip"
    step: int = 1


class BookingFlowDef(BaseModel):
    """A complete guided flow: step number -> ordered field descriptors."""

    model_config = ConfigDict(frozen=True)

    id: str
    scope: str = "booking"
    steps: dict[int, tuple[FieldDescriptor, ...]] = {}

    @property
    def step_numbers(self) -> list[int]:
        return sorted(self.steps)

    def fields_for(self, step: int) -> tuple[FieldDescriptor, ...]:
        """Descriptors of ``step``; unknown steps fall back to the first step."""
        if step in self.steps:
            return self.steps[step]
        if not self.steps:
            return ()
        return self.steps[self.step_numbers[0]]

    def find(self, field: str) -> FieldDescriptor | None:
        for descriptors in self.steps.values():
            for descriptor in descriptors:
                if descriptor.field == field:
                    return descriptor
        return None
