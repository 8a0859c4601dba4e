from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_NAMESPACE = "e2e-mercury"


@dataclass(frozen=True)
class EnvironmentContext:
    """Read-only description of where the test process runs.

    Built once per invocation and handed to every component explicitly;
    nothing in the harness reads ambient state after construction.
    """

    provider: str
    kubernetes_version: str
    stack_version: str
    namespace: str = DEFAULT_NAMESPACE

    @property
    def kubernetes_minor(self) -> str:
        return minor_version(self.kubernetes_version)

    @classmethod
    def from_env(
        cls,
        provider: Optional[str] = None,
        kubernetes_version: Optional[str] = None,
        stack_version: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> "EnvironmentContext":
        resolved_stack = stack_version or os.getenv("E2E_STACK_VERSION")
        if not resolved_stack:
            raise RuntimeError("Environment variable E2E_STACK_VERSION not set")
        return cls(
            provider=provider or os.getenv("E2E_PROVIDER", "kind"),
            kubernetes_version=kubernetes_version or os.getenv("E2E_KUBERNETES_VERSION", ""),
            stack_version=resolved_stack,
            namespace=namespace or os.getenv("E2E_NAMESPACE", DEFAULT_NAMESPACE),
        )


def minor_version(version: str) -> str:
    """Reduce ``v1.12.3`` or ``1.12`` to ``1.12``."""

    stripped = (version or "").strip().lstrip("v")
    parts = stripped.split(".")
    return ".".join(parts[:2])


__all__ = ["DEFAULT_NAMESPACE", "EnvironmentContext", "minor_version"]
