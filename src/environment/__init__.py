"""Environment context shared read-only by every recipe case."""

from .context import EnvironmentContext

__all__ = ["EnvironmentContext"]
