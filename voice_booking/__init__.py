"""Voice-driven booking assistant.

Listens to speech, keeps a multi-turn dialogue about a courier booking form,
extracts typed field values from free-form utterances and drives the form
through set-field and action events.
"""

__version__ = "0.1.0"
