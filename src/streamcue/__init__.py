"""Trigger-driven speech, sound and notification automation for live streams."""

__version__ = "0.1.0"
