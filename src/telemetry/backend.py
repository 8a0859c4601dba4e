from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:  # pragma: no cover
    from src.validations.predicates import Query


class BackendError(Exception):
    """Raised when a single telemetry query could not be answered."""


class TelemetryBackend(Protocol):
    def has_match(self, index: str, query: "Query") -> bool:
        """Return True when at least one record in ``index`` matches ``query``."""
        ...


__all__ = ["BackendError", "TelemetryBackend"]
