"""Trigger sub-actions: configuration models, collaborator sinks and the composer."""

from .models import ACTION_ORDER, ActionKind, ActionsConfig, ActionUser, EventConfig, load_events, parse_events

__all__ = [
    "ACTION_ORDER",
    "ActionKind",
    "ActionUser",
    "ActionsConfig",
    "EventConfig",
    "load_events",
    "parse_events",
]
