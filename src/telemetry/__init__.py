"""Telemetry backend adapters."""

from .backend import BackendError, TelemetryBackend
from .elasticsearch import BackendOptions, ElasticsearchBackend

__all__ = ["BackendError", "BackendOptions", "ElasticsearchBackend", "TelemetryBackend"]
