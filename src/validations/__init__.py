"""Presence/absence predicates evaluated against the telemetry backend."""

from .predicates import (
    PredicateKind,
    Query,
    Term,
    Validation,
    has_event,
    has_event_from_beat,
    has_event_from_pod,
    has_message_containing,
    has_monitoring_event,
    no_event,
    no_message_containing,
    parse_query,
)
from .evaluator import Outcome, all_satisfied, evaluate, evaluate_all

__all__ = [
    "Outcome",
    "PredicateKind",
    "Query",
    "Term",
    "Validation",
    "all_satisfied",
    "evaluate",
    "evaluate_all",
    "has_event",
    "has_event_from_beat",
    "has_event_from_pod",
    "has_message_containing",
    "has_monitoring_event",
    "no_event",
    "no_message_containing",
    "parse_query",
]
