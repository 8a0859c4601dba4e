from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.builder.builder import Builder, Customization
from src.common.errors import LoadError
from src.environment.context import EnvironmentContext
from src.recipes.cases import BEAT_CLASS, GENERIC_CLASS, ReadinessRule, RecipeCase, RecipeClass
from src.recipes.loader import parse_objects, substitute_tokens
from src.validations.predicates import validation_from_dict

RECIPE_CLASSES: Dict[str, RecipeClass] = {
    BEAT_CLASS.name: BEAT_CLASS,
    GENERIC_CLASS.name: GENERIC_CLASS,
}


class ValidationSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: str = Field("presence", description="presence or absence")
    query: Optional[str] = Field(default=None, description="Space separated field:value terms")
    contains: Optional[str] = Field(default=None, description="Substring to look for in `field`")
    field: str = Field("message", description="Field searched by `contains`")
    index: Optional[str] = Field(default=None, description="Index pattern to query")
    description: Optional[str] = None


class ReadinessSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field: str = "status.health"
    ready_values: List[str] = Field(default_factory=lambda: ["green"])


class CaseSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    recipe: str = Field(..., description="Recipe file, relative to recipes_dir")
    recipe_class: str = Field("generic", alias="class")
    primary_kind: Optional[str] = None
    gate_class: Optional[str] = None
    required_capabilities: List[str] = Field(default_factory=list)
    roles: List[str] = Field(default_factory=list)
    validations: List[ValidationSpec] = Field(default_factory=list)
    patches: List[Dict[str, Any]] = Field(default_factory=list, description="RFC 6902 ops for the primary resource")
    additional_objects: List[str] = Field(default_factory=list, description="Manifest files applied before the primary")
    readiness: Optional[ReadinessSpec] = None


class SuiteSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    recipes_dir: str = "."
    gate_rules: Optional[str] = None
    cases: List[CaseSpec]


def load_suite(path: Path) -> SuiteSpec:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise LoadError(f"Failed to read suite {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise LoadError(f"Suite file must contain a mapping: {path}")
    try:
        return SuiteSpec.model_validate(data)
    except ValidationError as exc:
        raise LoadError(f"Suite file {path} is invalid: {exc}") from exc


def resolve_path(base_dir: Path, value: str) -> Path:
    candidate = Path(value)
    if not candidate.is_absolute():
        candidate = (base_dir / candidate).resolve()
    return candidate


def build_cases(suite: SuiteSpec, base_dir: Path, environment: EnvironmentContext) -> List[RecipeCase]:
    recipes_dir = resolve_path(base_dir, suite.recipes_dir)
    return [_build_case(spec, recipes_dir, base_dir, environment) for spec in suite.cases]


def _build_case(spec: CaseSpec, recipes_dir: Path, base_dir: Path, environment: EnvironmentContext) -> RecipeCase:
    recipe_class = RECIPE_CLASSES.get(spec.recipe_class)
    if recipe_class is None:
        raise LoadError(f"Case {spec.name}: unknown recipe class {spec.recipe_class!r}")
    if spec.primary_kind:
        recipe_class = dataclasses.replace(recipe_class, primary_kind=spec.primary_kind)
    if spec.readiness is not None:
        rule = ReadinessRule(field=spec.readiness.field, ready_values=frozenset(spec.readiness.ready_values))
        recipe_class = dataclasses.replace(recipe_class, readiness=rule)

    namespace = environment.namespace
    validation_data = [v.model_dump(exclude_none=True) for v in spec.validations]
    try:
        # Checked up front with a placeholder suffix; rendered again per run.
        for data in validation_data:
            validation_from_dict(_render_validation(data, namespace, "suffix"))
    except ValueError as exc:
        raise LoadError(f"Case {spec.name}: invalid validation: {exc}") from exc

    object_sources = []
    for object_file in spec.additional_objects:
        path = resolve_path(base_dir, object_file)
        try:
            object_sources.append((str(path), path.read_text(encoding="utf-8")))
        except OSError as exc:
            raise LoadError(f"Case {spec.name}: failed to read {path}: {exc}") from exc

    customizations: List[Customization] = []
    if spec.patches:
        patches = list(spec.patches)
        customizations.append(lambda b: b.with_json_patch(patches))
    if object_sources:

        def add_objects(builder: Builder) -> Builder:
            objects = []
            for source, text in object_sources:
                objects.extend(parse_objects(text, namespace, builder.suffix, source=source))
            return builder.with_additional_objects(*objects)

        customizations.append(add_objects)
    if spec.roles:
        roles = tuple(spec.roles)
        customizations.append(lambda b: b.with_roles(*roles))
    if validation_data:

        def add_validations(builder: Builder) -> Builder:
            rendered = [validation_from_dict(_render_validation(d, namespace, builder.suffix)) for d in validation_data]
            return builder.with_validations(*rendered)

        customizations.append(add_validations)

    return RecipeCase(
        name=spec.name,
        recipe_path=recipes_dir / spec.recipe,
        recipe_class=recipe_class,
        customizations=tuple(customizations),
        gate_class=spec.gate_class,
        required_capabilities=tuple(spec.required_capabilities),
    )


def _render_validation(data: Dict[str, Any], namespace: str, suffix: str) -> Dict[str, Any]:
    rendered = dict(data)
    for key in ("query", "contains"):
        if isinstance(rendered.get(key), str):
            rendered[key] = substitute_tokens(rendered[key], namespace, suffix)
    return rendered


__all__ = ["CaseSpec", "SuiteSpec", "ValidationSpec", "build_cases", "load_suite", "resolve_path"]
