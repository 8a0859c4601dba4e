from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

import yaml

from src.common.errors import LoadError, SkipCondition
from src.environment.context import EnvironmentContext, minor_version
from src.versioning.version import parse_version

logger = logging.getLogger(__name__)

ALL_RECIPES = "*"


@dataclass(frozen=True)
class ProviderExclusion:
    provider: str
    recipe_classes: FrozenSet[str]
    reason: str = ""

    def applies(self, provider: str, recipe_class: str) -> bool:
        if provider != self.provider:
            return False
        return any(_class_matches(selector, recipe_class) for selector in self.recipe_classes)


@dataclass(frozen=True)
class CapabilityGap:
    provider: str
    kubernetes_minor: str
    capabilities: FrozenSet[str]
    reason: str = ""

    def applies(self, environment: EnvironmentContext) -> bool:
        return (
            environment.provider == self.provider
            and environment.kubernetes_minor == minor_version(self.kubernetes_minor)
        )


@dataclass(frozen=True)
class GateRules:
    exclusions: Tuple[ProviderExclusion, ...] = ()
    capability_gaps: Tuple[CapabilityGap, ...] = ()

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "GateRules":
        exclusions: List[ProviderExclusion] = []
        for entry in data.get("exclusions") or []:
            if not isinstance(entry, dict) or not entry.get("provider"):
                raise LoadError(f"gate exclusion must name a provider: {entry!r}")
            classes = entry.get("recipe_classes") or [ALL_RECIPES]
            exclusions.append(
                ProviderExclusion(
                    provider=str(entry["provider"]),
                    recipe_classes=frozenset(str(c) for c in classes),
                    reason=str(entry.get("reason", "")),
                )
            )
        gaps: List[CapabilityGap] = []
        for entry in data.get("capability_gaps") or []:
            if not isinstance(entry, dict) or not entry.get("provider") or not entry.get("kubernetes_version"):
                raise LoadError(f"capability gap must name provider and kubernetes_version: {entry!r}")
            gaps.append(
                CapabilityGap(
                    provider=str(entry["provider"]),
                    kubernetes_minor=str(entry["kubernetes_version"]),
                    capabilities=frozenset(str(c) for c in entry.get("capabilities") or []),
                    reason=str(entry.get("reason", "")),
                )
            )
        return cls(exclusions=tuple(exclusions), capability_gaps=tuple(gaps))

    @classmethod
    def from_yaml(cls, path: Path) -> "GateRules":
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise LoadError(f"Failed to read gate rules {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise LoadError(f"Gate rules file must contain a mapping: {path}")
        return cls.from_mapping(data)


DEFAULT_RULES = GateRules(
    exclusions=(
        ProviderExclusion(
            provider="ocp",
            recipe_classes=frozenset({"beat"}),
            reason="OpenShift requires a different securityContext than the recipes provide",
        ),
        ProviderExclusion(
            provider="kind",
            recipe_classes=frozenset({"beat.auditbeat"}),
            reason="kind cannot configure the kernel settings auditbeat requires",
        ),
    ),
    capability_gaps=(
        CapabilityGap(
            provider="kind",
            kubernetes_minor="1.12",
            capabilities=frozenset({"http-tracing"}),
            reason="kind 1.12 does not reliably expose http traffic to packet capture",
        ),
    ),
)


@dataclass(frozen=True)
class CompatibilityGate:
    rules: GateRules = field(default_factory=lambda: DEFAULT_RULES)

    def skip_reason(
        self,
        resource_version: Optional[str],
        environment: EnvironmentContext,
        recipe_class: str,
        required_capabilities: Iterable[str] = (),
    ) -> Optional[str]:
        # Version errors propagate: a malformed declared version fails the case.
        if resource_version:
            declared = parse_version(resource_version)
            stack = parse_version(environment.stack_version)
            if declared.is_after(stack):
                return f"resource version {declared} is after stack version {stack}"

        for exclusion in self.rules.exclusions:
            if exclusion.applies(environment.provider, recipe_class):
                detail = f": {exclusion.reason}" if exclusion.reason else ""
                return f"provider {environment.provider} excluded for {recipe_class}{detail}"

        for capability in required_capabilities:
            if not self.has_capability(environment, capability):
                return (
                    f"provider {environment.provider} on kubernetes {environment.kubernetes_minor} "
                    f"lacks capability {capability}"
                )
        return None

    def should_skip(
        self,
        resource_version: Optional[str],
        environment: EnvironmentContext,
        recipe_class: str,
        required_capabilities: Iterable[str] = (),
    ) -> bool:
        reason = self.skip_reason(resource_version, environment, recipe_class, required_capabilities)
        if reason:
            logger.info("Skipping %s: %s", recipe_class, reason)
        return reason is not None

    def check(
        self,
        resource_version: Optional[str],
        environment: EnvironmentContext,
        recipe_class: str,
        required_capabilities: Iterable[str] = (),
    ) -> None:
        """Raise :class:`SkipCondition` when the case must not run here."""

        reason = self.skip_reason(resource_version, environment, recipe_class, required_capabilities)
        if reason is not None:
            raise SkipCondition(reason)

    def has_capability(self, environment: EnvironmentContext, capability: str) -> bool:
        for gap in self.rules.capability_gaps:
            if gap.applies(environment) and capability in gap.capabilities:
                return False
        return True


def _class_matches(selector: str, recipe_class: str) -> bool:
    if selector == ALL_RECIPES or selector == recipe_class:
        return True
    return recipe_class.startswith(selector + ".")


__all__ = [
    "ALL_RECIPES",
    "CapabilityGap",
    "CompatibilityGate",
    "DEFAULT_RULES",
    "GateRules",
    "ProviderExclusion",
]
