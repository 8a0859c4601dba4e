from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import yaml

from src.builder.builder import Builder, Customization
from src.builder.pods import logging_test_pod, with_labels
from src.common.resources import Resource, collect_pod_specs
from src.environment.context import EnvironmentContext
from src.gate.compatibility import CompatibilityGate
from src.validations.predicates import (
    has_event,
    has_event_from_pod,
    has_message_containing,
    has_monitoring_event,
    no_message_containing,
    Validation,
)
from .cases import BEAT_CLASS, RecipeCase

DEFAULT_RECIPES_DIR = Path("config/recipes/beats")

PSP_CLUSTER_ROLE = "elastic-beat-restricted"
AUTODISCOVER_CLUSTER_ROLE = "elastic-beat-autodiscover"
AUDITBEAT_PSP_CLUSTER_ROLE = "elastic-auditbeat-restricted"
PACKETBEAT_PSP_CLUSTER_ROLE = "elastic-packetbeat-restricted"
JOURNALBEAT_PSP_CLUSTER_ROLE = "elastic-journalbeat-restricted"

HTTP_TRACING_CAPABILITY = "http-tracing"

METRICBEAT_DATASETS = (
    "system.cpu",
    "system.load",
    "system.memory",
    "system.network",
    "system.process",
    "system.process.summary",
    "system.fsstat",
)

STACK_MONITORING_QUERIES = (
    "type:cluster_stats",
    "type:enrich_coordinator_stats",
    "type:index_stats",
    "type:index_recovery",
    "type:indices_stats",
    "node_stats.node_master:true",
    "kibana_stats.kibana.status:green",
)


def rename_monitoring_secret(builder: Builder) -> Builder:
    """Point metricbeat at the suffixed monitored-cluster credentials."""

    if not builder.primary.name.startswith("metricbeat"):
        return builder
    suffix = builder.suffix

    def edit(manifest: Dict[str, Any]) -> None:
        for pod_spec in collect_pod_specs(manifest):
            for container in pod_spec.get("containers") or []:
                for env in container.get("env") or []:
                    ref = (env.get("valueFrom") or {}).get("secretKeyRef") if isinstance(env, dict) else None
                    if not isinstance(ref, dict):
                        continue
                    name = ref.get("name")
                    if isinstance(name, str) and name.startswith("elasticsearch") and suffix not in name:
                        ref["name"] = name.replace("elasticsearch", f"elasticsearch-{suffix}", 1)

    return builder.edit_primary(edit)


def rewrite_heartbeat_hosts(builder: Builder) -> Builder:
    """Retarget heartbeat monitors from the default namespace to the run's services."""

    spec = builder.primary.spec
    namespace = builder.primary.namespace or "default"
    es_ref = (spec.get("elasticsearchRef") or {}).get("name")
    kb_ref = (spec.get("kibanaRef") or {}).get("name")
    config = spec.get("config")
    if not isinstance(config, dict):
        return builder

    rendered = yaml.safe_dump(config, sort_keys=False)
    if es_ref:
        rendered = rendered.replace("elasticsearch-es-http.default.svc", f"{es_ref}-es-http.{namespace}.svc")
    if kb_ref:
        rendered = rendered.replace("kibana-kb-http.default.svc", f"{kb_ref}-kb-http.{namespace}.svc")
    new_config = yaml.safe_load(rendered)

    def edit(manifest: Dict[str, Any]) -> None:
        manifest["spec"]["config"] = new_config

    return builder.edit_primary(edit)


def with_logging_pod(
    name: str,
    validations_for: Callable[[Resource, str], Sequence[Validation]],
    labels: Optional[Dict[str, str]] = None,
) -> Customization:
    """Add a logging pod named after the run's suffix and the checks ``validations_for`` derives from it."""

    def customize(builder: Builder) -> Builder:
        pod, marker = logging_test_pod(name, suffix=builder.suffix, namespace=builder.primary.namespace)
        if labels:
            pod = with_labels(pod, labels)
        return builder.with_additional_objects(pod).with_validations(*validations_for(pod, marker))

    return customize


def beat_cases(
    environment: EnvironmentContext,
    recipes_dir: Path = DEFAULT_RECIPES_DIR,
    gate: CompatibilityGate = CompatibilityGate(),
) -> List[RecipeCase]:
    cases: List[RecipeCase] = []

    def case(name: str, file_name: str, *customizations, **kwargs) -> None:
        cases.append(
            RecipeCase(
                name=name,
                recipe_path=recipes_dir / file_name,
                recipe_class=BEAT_CLASS,
                customizations=tuple(customizations),
                **kwargs,
            )
        )

    case(
        "filebeat-no-autodiscover",
        "filebeat_no_autodiscover.yaml",
        lambda b: b.with_roles(PSP_CLUSTER_ROLE),
        with_logging_pod("fb-no-autodiscover", lambda pod, marker: (has_message_containing(marker),)),
    )

    case(
        "filebeat-autodiscover",
        "filebeat_autodiscover.yaml",
        lambda b: b.with_roles(PSP_CLUSTER_ROLE),
        with_logging_pod(
            "fb-autodiscover",
            lambda pod, marker: (has_event_from_pod(pod.name), has_message_containing(marker)),
        ),
    )

    case(
        "filebeat-autodiscover-by-metadata",
        "filebeat_autodiscover_by_metadata.yaml",
        lambda b: b.with_roles(PSP_CLUSTER_ROLE, AUTODISCOVER_CLUSTER_ROLE),
        with_logging_pod(
            "fb-autodiscover-meta-label",
            lambda pod, marker: (has_event_from_pod(pod.name), has_message_containing(marker)),
            labels={"log-label": "true"},
        ),
        with_logging_pod("fb-autodiscover-meta-bad", lambda pod, marker: (no_message_containing(marker),)),
    )

    case(
        "metricbeat-hosts",
        "metricbeat_hosts.yaml",
        lambda b: b.with_roles(PSP_CLUSTER_ROLE).with_validations(
            *(has_event(f"event.dataset:{dataset}") for dataset in METRICBEAT_DATASETS)
        ),
    )

    case(
        "stack-monitoring",
        "stack_monitoring.yaml",
        rename_monitoring_secret,
        lambda b: b.with_roles(PSP_CLUSTER_ROLE).with_validations(
            *(has_monitoring_event(query) for query in STACK_MONITORING_QUERIES)
        ),
        with_logging_pod(
            "fb-stack-monitoring",
            lambda pod, marker: (has_event_from_pod(pod.name), has_message_containing(marker)),
        ),
    )

    case(
        "heartbeat-es-kb-health",
        "heartbeat_es_kb_health.yaml",
        rewrite_heartbeat_hosts,
        lambda b: b.with_roles(PSP_CLUSTER_ROLE).with_validations(has_event("monitor.status:up")),
    )

    case(
        "auditbeat-hosts",
        "auditbeat_hosts.yaml",
        lambda b: b.with_roles(AUDITBEAT_PSP_CLUSTER_ROLE).with_validations(
            has_event("event.dataset:file"),
            has_event("event.module:file_integrity"),
        ),
        gate_class="beat.auditbeat",
    )

    http_supported = gate.has_capability(environment, HTTP_TRACING_CAPABILITY)

    def packetbeat(builder: Builder) -> Builder:
        if http_supported:
            builder = builder.with_validations(has_event("event.dataset:http"))
        return builder.with_roles(PACKETBEAT_PSP_CLUSTER_ROLE).with_validations(
            has_event("event.dataset:flow"),
            has_event("event.dataset:dns"),
        )

    case("packetbeat-dns-http", "packetbeat_dns_http.yaml", packetbeat, gate_class="beat.packetbeat")

    case(
        "journalbeat-hosts",
        "journalbeat_hosts.yaml",
        lambda b: b.with_roles(JOURNALBEAT_PSP_CLUSTER_ROLE),
    )
    return cases


__all__ = [
    "AUDITBEAT_PSP_CLUSTER_ROLE",
    "AUTODISCOVER_CLUSTER_ROLE",
    "DEFAULT_RECIPES_DIR",
    "JOURNALBEAT_PSP_CLUSTER_ROLE",
    "PACKETBEAT_PSP_CLUSTER_ROLE",
    "PSP_CLUSTER_ROLE",
    "beat_cases",
    "rename_monitoring_secret",
    "rewrite_heartbeat_hosts",
    "with_logging_pod",
]
