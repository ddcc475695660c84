"""Feedback resolver: triage, consolidate and answer incoming feedback."""

__version__ = "0.1.0"
