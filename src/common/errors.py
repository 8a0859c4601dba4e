from __future__ import annotations


class HarnessError(Exception):
    """Base class for every failure a recipe case can end with."""

    kind = "harness_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class SkipCondition(HarnessError):
    """The compatibility gate declined the case. Not a failure."""

    kind = "skipped"


class VersionParseError(HarnessError):
    kind = "version_parse_error"


class LoadError(HarnessError):
    kind = "load_error"


class ApplyError(HarnessError):
    kind = "apply_error"


class ReadinessTimeout(HarnessError):
    kind = "readiness_timeout"


class ValidationFailure(HarnessError):
    kind = "validation_failure"


class TeardownError(HarnessError):
    kind = "teardown_error"


__all__ = [
    "ApplyError",
    "HarnessError",
    "LoadError",
    "ReadinessTimeout",
    "SkipCondition",
    "TeardownError",
    "ValidationFailure",
    "VersionParseError",
]
