from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from src.builder.builder import Builder, Customization
from src.common.resources import Resource
from src.validations.predicates import has_event_from_beat, lookup_field


@dataclass(frozen=True)
class ReadinessRule:
    """Primary resource is ready once ``field`` holds one of ``ready_values``."""

    field: str = "status.health"
    ready_values: FrozenSet[str] = frozenset({"green"})

    def observed(self, obj: Dict[str, Any]) -> Optional[str]:
        value = lookup_field(obj, self.field)
        if isinstance(value, (str, int, bool, float)):
            return str(value)
        return None

    def is_ready(self, obj: Dict[str, Any]) -> bool:
        return self.observed(obj) in self.ready_values


@dataclass(frozen=True)
class RecipeClass:
    name: str
    primary_kind: Optional[str] = None
    readiness: ReadinessRule = field(default_factory=ReadinessRule)
    # Runs after the case's own customizations.
    finalize: Optional[Customization] = None


def _beat_finalize(builder: Builder) -> Builder:
    beat_types: List[str] = []
    for beat in (builder.primary, *builder.siblings):
        beat_type = beat.spec.get("type")
        if beat_type and str(beat_type) not in beat_types:
            beat_types.append(str(beat_type))
    return builder.with_validations(*(has_event_from_beat(beat_type) for beat_type in beat_types))


BEAT_CLASS = RecipeClass(name="beat", primary_kind="Beat", finalize=_beat_finalize)
GENERIC_CLASS = RecipeClass(name="generic")


@dataclass(frozen=True)
class RecipeCase:
    name: str
    recipe_path: Path
    recipe_class: RecipeClass = GENERIC_CLASS
    customizations: Tuple[Customization, ...] = ()
    additional_objects: Tuple[Resource, ...] = ()
    gate_class: Optional[str] = None
    required_capabilities: Tuple[str, ...] = ()

    @property
    def gate_selector(self) -> str:
        return self.gate_class or self.recipe_class.name

    def all_customizations(self) -> Tuple[Callable[[Builder], Builder], ...]:
        steps = self.customizations
        if self.recipe_class.finalize is not None:
            steps = steps + (self.recipe_class.finalize,)
        return steps


__all__ = [
    "BEAT_CLASS",
    "GENERIC_CLASS",
    "ReadinessRule",
    "RecipeCase",
    "RecipeClass",
]
