"""Ordered, pattern-based intent classification.

Rules are evaluated top to bottom and the first match wins. Commands come
before data: "next city please" must advance the form rather than be read as
a value for the city field.

  1. control words          -> Stop / Help
  2. booking start phrases  -> StartBooking
  3. booking navigation     -> BookingAction (auth pages: PageAction)
  4. payment keywords       -> PaymentAction
  5. route aliases, go-to   -> Navigate
  6. "<label> is <value>"   -> SetField
  7. anything else          -> Unknown
"""

from __future__ import annotations

import re
from typing import Optional

from voice_booking.models.intent import (
    BookingAction,
    Help,
    Intent,
    Navigate,
    PageAction,
    PaymentAction,
    SetField,
    StartBooking,
    Stop,
    Unknown,
)
from voice_booking.nlp.normalizer import is_detect_location, normalize

LOGIN_PAGE = "/auth/login"
SIGNUP_PAGE = "/auth/signup"

ROUTES = ("/booking", "/tracking", "/", "/profile", "/payment", "/chat", LOGIN_PAGE, SIGNUP_PAGE)

_STOP = re.compile(r"\b(stop|cancel|nevermind|never mind|quiet)\b")
_HELP = re.compile(r"\b(help|what can you do|commands)\b")
_START_BOOKING = re.compile(
    r"\b(start (a )?booking|book a delivery|place an order|create a booking|send a (package|parcel))\b"
)
_NEXT = re.compile(r"\b(next|continue)\b")
_BACK = re.compile(r"\b(back|previous)\b")
_SUBMIT = re.compile(r"\b(submit|confirm booking|finish booking|proceed to payment)\b")
_PAY = re.compile(r"\b(pay|pay now|confirm payment|make payment|complete payment)\b")
_LOGIN_SUBMIT = re.compile(r"\b(submit|sign in|log in|login)( now)?\b")
_SIGNUP_SUBMIT = re.compile(r"\b(submit|sign up|signup|create account)( now)?\b")

_ROUTE_ALIASES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(login|log in|sign in)\b"), LOGIN_PAGE),
    (re.compile(r"\b(sign up|signup|register|create account)\b"), SIGNUP_PAGE),
    (re.compile(r"\b(dashboard|home)\b"), "/"),
    (re.compile(r"\b(booking|book( a)? delivery|place( an)? order)\b"), "/booking"),
    (re.compile(r"\b(tracking|track( my)? (order|delivery|package|parcel))\b"), "/tracking"),
    (re.compile(r"\bprofile\b"), "/profile"),
    (re.compile(r"\b(payment|checkout)\b"), "/payment"),
    (re.compile(r"\bchat\b"), "/chat"),
]
_EXPLICIT_NAV = re.compile(r"\b(go to|open|navigate to|take me to|show me)\b")
_GO_TO_PATH = re.compile(r"\b(?:go to|open|navigate to)\s+(/[a-z\-/]*)")

# (label pattern, scope, field id); booking labels always apply, login and
# signup labels only on their own page.
_FIELD_LABELS: list[tuple[str, str, str]] = [
    (r"sender name", "booking", "senderName"),
    (r"sender phone|sender number", "booking", "senderPhone"),
    (r"pickup address|pick up address", "booking", "pickupAddress"),
    (r"pickup city|pick up city", "booking", "pickupCity"),
    (r"receiver name", "booking", "receiverName"),
    (r"receiver phone|receiver number", "booking", "receiverPhone"),
    (r"dropoff address|drop off address|delivery address", "booking", "dropoffAddress"),
    (r"dropoff city|drop off city|delivery city", "booking", "dropoffCity"),
    (r"package type", "booking", "packageType"),
    (r"weight", "booking", "weight"),
    (r"delivery speed|speed", "booking", "deliverySpeed"),
    (r"length", "booking", "dimensions.length"),
    (r"width", "booking", "dimensions.width"),
    (r"height", "booking", "dimensions.height"),
    (r"pickup date|pick up date", "booking", "pickupDate"),
    (r"pickup time|pick up time", "booking", "pickupTime"),
    (r"email", "login", "email"),
    (r"password", "login", "password"),
    (r"full name|name", "signup", "name"),
    (r"sign ?up email|email", "signup", "email"),
    (r"sign ?up password|password", "signup", "password"),
]
_FIELD_PATTERNS = [
    (re.compile(rf"\b(?:{label})\s+is\s+(.+)$", re.IGNORECASE), scope, field)
    for label, scope, field in _FIELD_LABELS
]
_PAGE_FOR_SCOPE = {"login": LOGIN_PAGE, "signup": SIGNUP_PAGE}


def parse(raw_text: str, page: Optional[str] = None) -> Intent:
    """Classify an utterance.

    ``raw_text`` may be raw or already normalized; values for set-field
    intents keep the caller's casing. ``page`` is the host's current route
    and scopes the login/signup rules.
    """
    text = normalize(raw_text)
    if not text:
        return Unknown()

    # 1. control words
    if _STOP.search(text):
        return Stop()
    if _HELP.search(text):
        return Help()

    # 2. booking start
    if _START_BOOKING.search(text):
        return StartBooking()

    # 3. page submit on auth routes, then booking navigation
    if page == LOGIN_PAGE and _LOGIN_SUBMIT.search(text):
        return PageAction(scope="login", action="login-submit")
    if page == SIGNUP_PAGE and _SIGNUP_SUBMIT.search(text):
        return PageAction(scope="signup", action="signup-submit")

    if _NEXT.search(text):
        return BookingAction(action="next")
    if _BACK.search(text):
        return BookingAction(action="back")
    if is_detect_location(text):
        return BookingAction(action="detect-location")
    if _SUBMIT.search(text):
        return BookingAction(action="submit")

    # 4. payment
    if _PAY.search(text):
        return PaymentAction(action="pay")

    # 5. navigation
    explicit = bool(_EXPLICIT_NAV.search(text))
    for pattern, path in _ROUTE_ALIASES:
        if pattern.search(text):
            return Navigate(path=path, explicit=explicit)
    go_to = _GO_TO_PATH.search(text)
    if go_to:
        return Navigate(path=go_to.group(1).rstrip("/") or "/", explicit=True)

    # 6. labeled field values
    source = raw_text.strip()
    for pattern, scope, field in _FIELD_PATTERNS:
        if scope in _PAGE_FOR_SCOPE and page != _PAGE_FOR_SCOPE[scope]:
            continue
        match = pattern.search(source)
        if match and match.group(1).strip():
            return SetField(scope=scope, field=field, value=match.group(1).strip(" .,"))

    return Unknown()
