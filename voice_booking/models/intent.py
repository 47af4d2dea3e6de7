"""Parsed user intents.

An intent is a transient value: produced once by the intent parser (or a
resolver) and consumed once by the assistant's intent handler.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

Scope = Literal["global", "booking", "login", "signup", "payment"]

FormAction = Literal[
    "next",
    "back",
    "detect-location",
    "submit",
    "pay",
    "login-submit",
    "signup-submit",
]


class Navigate(BaseModel):
    type: Literal["navigate"] = "navigate"
    path: str
    explicit: bool = False  # said "go to ...", not just a bare route word


class StartBooking(BaseModel):
    type: Literal["start_booking"] = "start_booking"


class BookingAction(BaseModel):
    type: Literal["booking_action"] = "booking_action"
    action: FormAction


class PaymentAction(BaseModel):
    type: Literal["payment_action"] = "payment_action"
    action: FormAction = "pay"


class PageAction(BaseModel):
    """Submit on the login / signup pages, resolved from the current route."""

    type: Literal["page_action"] = "page_action"
    scope: Literal["login", "signup"]
    action: FormAction


class SetField(BaseModel):
    type: Literal["set_field"] = "set_field"
    scope: Scope
    field: str
    value: str


class Stop(BaseModel):
    type: Literal["stop"] = "stop"


class Help(BaseModel):
    type: Literal["help"] = "help"


class Unknown(BaseModel):
    type: Literal["unknown"] = "unknown"


Intent = Annotated[
    Union[
        Navigate,
        StartBooking,
        BookingAction,
        PaymentAction,
        PageAction,
        SetField,
        Stop,
        Help,
        Unknown,
    ],
    Field(discriminator="type"),
]
