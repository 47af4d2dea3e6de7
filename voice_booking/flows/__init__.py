"""Booking flow definitions: guided field order and conversational steps."""
