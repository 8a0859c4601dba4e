from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from src.builder.builder import Builder
from src.common.errors import LoadError
from src.common.resources import Resource, ensure_namespace

logger = logging.getLogger(__name__)

NAMESPACE_TOKEN = "${NAMESPACE}"
SUFFIX_TOKEN = "${SUFFIX}"


def substitute_tokens(text: str, namespace: str, suffix: str) -> str:
    """Replace the namespace and suffix placeholders; nothing else is templated."""

    return text.replace(NAMESPACE_TOKEN, namespace).replace(SUFFIX_TOKEN, suffix)


def load_recipe(
    template_path: Path,
    namespace: str,
    suffix: str,
    *,
    primary_kind: Optional[str] = None,
) -> Builder:
    try:
        raw_text = Path(template_path).read_text(encoding="utf-8")
    except OSError as exc:
        raise LoadError(f"Failed to read recipe {template_path}: {exc}") from exc
    return parse_recipe(raw_text, namespace, suffix, primary_kind=primary_kind, source=str(template_path))


def parse_recipe(
    raw_text: str,
    namespace: str,
    suffix: str,
    *,
    primary_kind: Optional[str] = None,
    source: str = "<recipe>",
) -> Builder:
    resources = parse_objects(raw_text, namespace, suffix, source=source)

    primary_index = _primary_index(resources, primary_kind)
    if primary_index is None:
        raise LoadError(f"Recipe {source} has no {primary_kind} resource")
    primary = resources[primary_index]
    auxiliary = tuple(r for idx, r in enumerate(resources) if idx != primary_index)
    logger.debug("Loaded %s: primary %s with %d auxiliary object(s)", source, primary.ref, len(auxiliary))
    return Builder(primary=primary, suffix=suffix, auxiliary=auxiliary)


def parse_objects(raw_text: str, namespace: str, suffix: str, *, source: str = "<objects>") -> List[Resource]:
    rendered = substitute_tokens(raw_text, namespace, suffix)
    try:
        documents = [doc for doc in yaml.safe_load_all(rendered) if doc is not None]
    except yaml.YAMLError as exc:
        raise LoadError(f"Recipe {source} is not valid YAML: {exc}") from exc
    if not documents:
        raise LoadError(f"Recipe {source} is empty")
    return [ensure_namespace(_to_resource(doc, source, idx), namespace) for idx, doc in enumerate(documents)]


def _to_resource(doc: Any, source: str, idx: int) -> Resource:
    if not isinstance(doc, dict):
        raise LoadError(f"Recipe {source} document {idx} must be a mapping")
    missing: List[str] = [key for key in ("apiVersion", "kind") if not isinstance(doc.get(key), str) or not doc.get(key)]
    metadata = doc.get("metadata")
    if not isinstance(metadata, dict) or not isinstance(metadata.get("name"), str) or not metadata.get("name"):
        missing.append("metadata.name")
    if missing:
        raise LoadError(f"Recipe {source} document {idx} missing {', '.join(missing)}")
    spec = doc.get("spec")
    if spec is not None and not isinstance(spec, dict):
        raise LoadError(f"Recipe {source} document {idx} has a non-mapping spec")
    return Resource(_plain(doc))


def _primary_index(resources: List[Resource], primary_kind: Optional[str]) -> Optional[int]:
    if primary_kind is None:
        return 0
    for idx, resource in enumerate(resources):
        if resource.kind == primary_kind:
            return idx
    return None


def _plain(doc: Dict[str, Any]) -> Dict[str, Any]:
    # Round-trip through YAML so anchors and aliases become independent copies.
    return yaml.safe_load(yaml.safe_dump(doc))


__all__ = ["NAMESPACE_TOKEN", "SUFFIX_TOKEN", "load_recipe", "parse_objects", "parse_recipe", "substitute_tokens"]
