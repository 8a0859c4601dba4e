from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from src.cluster.kubectl import KubectlClient
from src.common.errors import HarnessError
from src.environment.context import EnvironmentContext
from src.gate.compatibility import CompatibilityGate, DEFAULT_RULES, GateRules
from src.recipes.beats import DEFAULT_RECIPES_DIR, beat_cases
from src.recipes.cases import RecipeCase
from src.telemetry.elasticsearch import ElasticsearchBackend
from .runner import RecipeRunner, RunnerOptions, SuiteReport
from .suite import build_cases, load_suite, resolve_path

app = typer.Typer(help="Run recipe-driven integration tests against a live cluster.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(levelname)s: %(message)s")


def _environment(
    provider: Optional[str],
    kubernetes_version: Optional[str],
    stack_version: Optional[str],
    namespace: Optional[str],
) -> EnvironmentContext:
    try:
        return EnvironmentContext.from_env(
            provider=provider,
            kubernetes_version=kubernetes_version,
            stack_version=stack_version,
            namespace=namespace,
        )
    except RuntimeError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _gate(rules_path: Optional[Path]) -> CompatibilityGate:
    if rules_path is None:
        return CompatibilityGate(DEFAULT_RULES)
    try:
        return CompatibilityGate(GateRules.from_yaml(rules_path))
    except HarnessError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _execute(
    cases: List[RecipeCase],
    environment: EnvironmentContext,
    gate: CompatibilityGate,
    *,
    kubectl_cmd: str,
    es_url: Optional[str],
    jobs: int,
    options: RunnerOptions,
    out: Path,
) -> SuiteReport:
    runner = RecipeRunner(
        KubectlClient(kubectl_cmd),
        ElasticsearchBackend.from_env(url=es_url),
        environment,
        gate=gate,
        options=options,
    )
    report = runner.run_all(cases, jobs=jobs)
    report.write(out)
    typer.echo(
        f"{report.passed} passed, {report.failed} failed, {report.skipped} skipped. "
        f"Report written to {out.resolve()}"
    )
    for leak in report.leaked:
        typer.echo(f"teardown error: {leak}", err=True)
    return report


@app.command()
def run(
    suite: Path = typer.Option(..., "--suite", "-s", help="Suite YAML describing the recipe cases."),
    out: Path = typer.Option(Path("data/e2e/report.json"), "--out", "-o", help="Where to write the JSON report."),
    provider: Optional[str] = typer.Option(None, help="Cluster provider (default: $E2E_PROVIDER or kind)."),
    kubernetes_version: Optional[str] = typer.Option(None, help="Kubernetes version (default: $E2E_KUBERNETES_VERSION)."),
    stack_version: Optional[str] = typer.Option(None, help="Telemetry stack version (default: $E2E_STACK_VERSION)."),
    namespace: Optional[str] = typer.Option(None, help="Isolation namespace (default: $E2E_NAMESPACE)."),
    es_url: Optional[str] = typer.Option(None, help="Elasticsearch URL (default: $E2E_ES_URL)."),
    kubectl_cmd: str = typer.Option("kubectl", help="Kubectl binary used to apply recipes."),
    gate_rules: Optional[Path] = typer.Option(None, "--gate-rules", help="YAML file overriding the compatibility rules."),
    jobs: int = typer.Option(1, "--jobs", "-j", min=1, help="Number of cases to run in parallel."),
    case_timeout: float = typer.Option(1800.0, help="Overall deadline per case in seconds."),
    validation_timeout: float = typer.Option(600.0, help="Polling window for validations in seconds."),
    poll_interval: float = typer.Option(5.0, help="Seconds between telemetry polls."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    _configure_logging(verbose)
    environment = _environment(provider, kubernetes_version, stack_version, namespace)
    try:
        suite_spec = load_suite(suite)
        cases = build_cases(suite_spec, suite.parent, environment)
    except HarnessError as exc:
        raise typer.BadParameter(str(exc)) from exc
    rules_path = gate_rules
    if rules_path is None and suite_spec.gate_rules:
        rules_path = resolve_path(suite.parent, suite_spec.gate_rules)
    options = RunnerOptions(
        case_timeout=case_timeout,
        validation_timeout=validation_timeout,
        poll_interval=poll_interval,
    )
    report = _execute(
        cases,
        environment,
        _gate(rules_path),
        kubectl_cmd=kubectl_cmd,
        es_url=es_url,
        jobs=jobs,
        options=options,
        out=out,
    )
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def beats(
    recipes_dir: Path = typer.Option(DEFAULT_RECIPES_DIR, help="Directory holding the beat recipes."),
    only: Optional[List[str]] = typer.Option(None, "--only", help="Run only the named case(s)."),
    out: Path = typer.Option(Path("data/e2e/beats.json"), "--out", "-o", help="Where to write the JSON report."),
    provider: Optional[str] = typer.Option(None, help="Cluster provider (default: $E2E_PROVIDER or kind)."),
    kubernetes_version: Optional[str] = typer.Option(None, help="Kubernetes version (default: $E2E_KUBERNETES_VERSION)."),
    stack_version: Optional[str] = typer.Option(None, help="Telemetry stack version (default: $E2E_STACK_VERSION)."),
    namespace: Optional[str] = typer.Option(None, help="Isolation namespace (default: $E2E_NAMESPACE)."),
    es_url: Optional[str] = typer.Option(None, help="Elasticsearch URL (default: $E2E_ES_URL)."),
    kubectl_cmd: str = typer.Option("kubectl", help="Kubectl binary used to apply recipes."),
    gate_rules: Optional[Path] = typer.Option(None, "--gate-rules", help="YAML file overriding the compatibility rules."),
    jobs: int = typer.Option(1, "--jobs", "-j", min=1, help="Number of cases to run in parallel."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    _configure_logging(verbose)
    environment = _environment(provider, kubernetes_version, stack_version, namespace)
    gate = _gate(gate_rules)
    cases = beat_cases(environment, recipes_dir=recipes_dir, gate=gate)
    if only:
        wanted = set(only)
        unknown = wanted - {case.name for case in cases}
        if unknown:
            raise typer.BadParameter(f"Unknown case(s): {', '.join(sorted(unknown))}")
        cases = [case for case in cases if case.name in wanted]
    report = _execute(
        cases,
        environment,
        gate,
        kubectl_cmd=kubectl_cmd,
        es_url=es_url,
        jobs=jobs,
        options=RunnerOptions(),
        out=out,
    )
    if not report.ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()
