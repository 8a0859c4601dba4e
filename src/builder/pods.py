from __future__ import annotations

from typing import Dict, Optional, Tuple

from src.common.naming import generate_suffix, scoped_name
from src.common.resources import Resource

LOGGING_IMAGE = "busybox:1.36"


def logging_test_pod(name: str, suffix: Optional[str] = None, namespace: Optional[str] = None) -> Tuple[Resource, str]:
    """Pod that keeps printing a unique marker so log shippers have something to find."""

    suffix = suffix or generate_suffix()
    pod_name = scoped_name(name, suffix)
    marker = f"e2e log marker {pod_name} {generate_suffix()}"
    metadata: Dict[str, object] = {"name": pod_name, "labels": {"app": "e2e-logging", "e2e-pod": name}}
    if namespace:
        metadata["namespace"] = namespace
    manifest = {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": metadata,
        "spec": {
            "terminationGracePeriodSeconds": 1,
            "containers": [
                {
                    "name": "logger",
                    "image": LOGGING_IMAGE,
                    "command": ["/bin/sh", "-c", f'while true; do echo "{marker}"; sleep 5; done'],
                }
            ],
        },
    }
    return Resource(manifest), marker


def with_labels(resource: Resource, labels: Dict[str, str]) -> Resource:
    manifest = resource.to_dict()
    metadata = manifest.setdefault("metadata", {})
    merged = dict(metadata.get("labels") or {})
    merged.update(labels)
    metadata["labels"] = merged
    return Resource(manifest)


__all__ = ["LOGGING_IMAGE", "logging_test_pod", "with_labels"]
