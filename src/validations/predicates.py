from __future__ import annotations

import enum
import shlex
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

DEFAULT_INDEX = "*beat*"
MONITORING_INDEX = ".monitoring-*"

_MISSING = object()


class PredicateKind(str, enum.Enum):
    PRESENCE = "presence"
    ABSENCE = "absence"


@dataclass(frozen=True)
class Term:
    field: str
    value: Any
    contains: bool = False

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = lookup_field(record, self.field)
        if actual is _MISSING:
            return False
        if isinstance(actual, list):
            return any(self._matches_value(item) for item in actual)
        return self._matches_value(actual)

    def _matches_value(self, actual: Any) -> bool:
        if self.contains:
            return isinstance(actual, str) and str(self.value) in actual
        if isinstance(actual, bool) or isinstance(self.value, bool):
            return str(actual).lower() == str(self.value).lower()
        return actual == self.value or str(actual) == str(self.value)

    def __str__(self) -> str:
        if self.contains:
            return f'{self.field}:*"{self.value}"*'
        return f"{self.field}:{self.value}"


@dataclass(frozen=True)
class Query:
    """Conjunction of ``field:value`` terms."""

    terms: Tuple[Term, ...]

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(term.matches(record) for term in self.terms)

    def __str__(self) -> str:
        return " AND ".join(str(term) for term in self.terms)


@dataclass(frozen=True)
class Validation:
    kind: PredicateKind
    query: Query
    index: str = DEFAULT_INDEX
    description: Optional[str] = None

    @property
    def must_hold(self) -> bool:
        return self.kind is PredicateKind.PRESENCE

    def describe(self) -> str:
        if self.description:
            return self.description
        prefix = "has" if self.must_hold else "no"
        return f"{prefix} event in {self.index} matching {self.query}"


def parse_query(text: str) -> Query:
    """Parse ``event.dataset:flow agent.type:packetbeat`` into exact terms.

    Values may be quoted to include spaces. Every term must be ``field:value``.
    """

    if not isinstance(text, str) or not text.strip():
        raise ValueError("query must be a non-empty string")
    terms = []
    try:
        tokens = shlex.split(text)
    except ValueError as exc:
        raise ValueError(f"cannot parse query {text!r}: {exc}") from exc
    for token in tokens:
        field, sep, value = token.partition(":")
        if not sep or not field or value == "":
            raise ValueError(f"query term must be field:value, got {token!r}")
        terms.append(Term(field=field, value=value))
    return Query(terms=tuple(terms))


def contains_query(field: str, text: str) -> Query:
    return Query(terms=(Term(field=field, value=text, contains=True),))


def lookup_field(record: Mapping[str, Any], field: str) -> Any:
    if field in record:
        return record[field]
    current: Any = record
    parts = field.split(".")
    for idx, part in enumerate(parts):
        if not isinstance(current, Mapping):
            return _MISSING
        if part in current:
            current = current[part]
            continue
        # Tolerate partially flattened documents such as {"event": {"dataset.name": ...}}.
        remainder = ".".join(parts[idx:])
        if remainder in current:
            return current[remainder]
        return _MISSING
    return current


def has_event(query: str, index: str = DEFAULT_INDEX) -> Validation:
    return Validation(PredicateKind.PRESENCE, parse_query(query), index=index)


def no_event(query: str, index: str = DEFAULT_INDEX) -> Validation:
    return Validation(PredicateKind.ABSENCE, parse_query(query), index=index)


def has_monitoring_event(query: str) -> Validation:
    return has_event(query, index=MONITORING_INDEX)


def has_event_from_beat(beat_type: str) -> Validation:
    return Validation(
        PredicateKind.PRESENCE,
        Query(terms=(Term("agent.type", beat_type),)),
        description=f"has event from {beat_type}",
    )


def has_event_from_pod(pod_name: str) -> Validation:
    return Validation(
        PredicateKind.PRESENCE,
        Query(terms=(Term("kubernetes.pod.name", pod_name),)),
        description=f"has event from pod {pod_name}",
    )


def has_message_containing(text: str) -> Validation:
    return Validation(
        PredicateKind.PRESENCE,
        contains_query("message", text),
        description=f"has message containing {text!r}",
    )


def no_message_containing(text: str) -> Validation:
    return Validation(
        PredicateKind.ABSENCE,
        contains_query("message", text),
        description=f"no message containing {text!r}",
    )


def validation_from_dict(data: Dict[str, Any]) -> Validation:
    kind = PredicateKind(str(data.get("kind", PredicateKind.PRESENCE.value)))
    index = str(data.get("index") or DEFAULT_INDEX)
    if data.get("contains") is not None:
        field = str(data.get("field") or "message")
        query = contains_query(field, str(data["contains"]))
    else:
        query = parse_query(str(data.get("query", "")))
    return Validation(kind, query, index=index, description=data.get("description"))


__all__ = [
    "DEFAULT_INDEX",
    "MONITORING_INDEX",
    "PredicateKind",
    "Query",
    "Term",
    "Validation",
    "contains_query",
    "has_event",
    "has_event_from_beat",
    "has_event_from_pod",
    "has_message_containing",
    "has_monitoring_event",
    "lookup_field",
    "no_event",
    "no_message_containing",
    "parse_query",
    "validation_from_dict",
]
