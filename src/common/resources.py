from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import yaml

CLUSTER_SCOPED_KINDS = frozenset(
    {
        "ClusterRole",
        "ClusterRoleBinding",
        "CustomResourceDefinition",
        "Namespace",
        "PodSecurityPolicy",
        "PriorityClass",
        "StorageClass",
    }
)


@dataclass(frozen=True)
class Resource:
    """A single Kubernetes object as a manifest mapping.

    The mapping is treated as immutable: helpers hand out deep copies and
    edits build a new Resource from a copied manifest.
    """

    manifest: Dict[str, Any]

    @property
    def api_version(self) -> str:
        return str(self.manifest.get("apiVersion", ""))

    @property
    def kind(self) -> str:
        return str(self.manifest.get("kind", ""))

    @property
    def metadata(self) -> Dict[str, Any]:
        metadata = self.manifest.get("metadata")
        return metadata if isinstance(metadata, dict) else {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name", ""))

    @property
    def namespace(self) -> Optional[str]:
        namespace = self.metadata.get("namespace")
        return str(namespace) if namespace else None

    @property
    def cluster_scoped(self) -> bool:
        return self.kind in CLUSTER_SCOPED_KINDS

    @property
    def spec(self) -> Dict[str, Any]:
        spec = self.manifest.get("spec")
        return spec if isinstance(spec, dict) else {}

    @property
    def declared_version(self) -> Optional[str]:
        version = self.spec.get("version")
        return str(version) if version else None

    @property
    def ref(self) -> str:
        if self.namespace and not self.cluster_scoped:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.manifest)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.manifest, sort_keys=False)


def ensure_namespace(resource: Resource, namespace: str) -> Resource:
    if resource.cluster_scoped or resource.namespace:
        return resource
    manifest = resource.to_dict()
    manifest.setdefault("metadata", {})["namespace"] = namespace
    return Resource(manifest)


def collect_pod_specs(manifest: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return the pod specs embedded in a workload or operator resource.

    Walks ``spec.template``, ``spec.jobTemplate`` and the ``podTemplate`` of
    ``spec.daemonSet`` / ``spec.deployment`` used by custom resources. The
    returned dicts are live references into ``manifest``.
    """

    specs: List[Dict[str, Any]] = []

    def visit(spec: Any) -> None:
        if not isinstance(spec, dict):
            return
        if isinstance(spec.get("containers"), list):
            specs.append(spec)
        template = spec.get("template")
        if isinstance(template, dict):
            visit(template.get("spec"))
        for workload in ("daemonSet", "deployment"):
            block = spec.get(workload)
            if isinstance(block, dict):
                pod_template = block.setdefault("podTemplate", {})
                if isinstance(pod_template, dict):
                    visit_template(pod_template.setdefault("spec", {}))
        job_template = spec.get("jobTemplate")
        if isinstance(job_template, dict):
            visit(job_template.get("spec"))

    def visit_template(spec: Any) -> None:
        # Operator pod templates may omit containers entirely.
        if isinstance(spec, dict):
            if isinstance(spec.get("containers"), list):
                visit(spec)
            else:
                specs.append(spec)

    if manifest.get("kind") == "Pod":
        spec = manifest.get("spec")
        if isinstance(spec, dict):
            specs.append(spec)
        return specs
    visit(manifest.get("spec"))
    return specs


__all__ = ["CLUSTER_SCOPED_KINDS", "Resource", "collect_pod_specs", "ensure_namespace"]
