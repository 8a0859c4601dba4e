from __future__ import annotations

import enum
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from src.builder.builder import apply_customizations
from src.cluster.kubectl import ClusterClient, KubectlError
from src.common.errors import (
    ApplyError,
    HarnessError,
    LoadError,
    ReadinessTimeout,
    SkipCondition,
    TeardownError,
    ValidationFailure,
)
from src.common.naming import generate_suffix
from src.common.resources import Resource, ensure_namespace
from src.environment.context import EnvironmentContext
from src.gate.compatibility import CompatibilityGate
from src.recipes.cases import ReadinessRule, RecipeCase
from src.recipes.loader import load_recipe
from src.telemetry.backend import TelemetryBackend
from src.validations.evaluator import Outcome, all_satisfied, evaluate_all

logger = logging.getLogger(__name__)


class CaseState(str, enum.Enum):
    INIT = "init"
    GATE_CHECK = "gate_check"
    SKIPPED = "skipped"
    APPLYING = "applying"
    WAITING = "waiting"
    VALIDATING = "validating"
    PASSED = "passed"
    FAILED = "failed"
    TORN_DOWN = "torn_down"


class Verdict(str, enum.Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RunnerOptions:
    case_timeout: float = 1800.0
    apply_timeout: float = 60.0
    readiness_timeout: float = 600.0
    readiness_interval: float = 5.0
    validation_timeout: float = 600.0
    poll_interval: float = 5.0
    max_attempts: Optional[int] = None
    delete_timeout: float = 60.0


@dataclass
class CaseResult:
    name: str
    suffix: Optional[str] = None
    verdict: Optional[Verdict] = None
    states: List[CaseState] = field(default_factory=list)
    error_kind: Optional[str] = None
    error: Optional[str] = None
    skip_reason: Optional[str] = None
    applied: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    outcomes: List[Outcome] = field(default_factory=list)
    teardown_errors: List[str] = field(default_factory=list)
    duration_s: float = 0.0

    def enter(self, state: CaseState) -> None:
        previous = self.states[-1].value if self.states else "-"
        logger.info("[%s] %s -> %s", self.name, previous, state.value)
        self.states.append(state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "suffix": self.suffix,
            "verdict": self.verdict.value if self.verdict else None,
            "states": [state.value for state in self.states],
            "error_kind": self.error_kind,
            "error": self.error,
            "skip_reason": self.skip_reason,
            "applied": list(self.applied),
            "removed": list(self.removed),
            "validations": [outcome.to_dict() for outcome in self.outcomes],
            "teardown_errors": list(self.teardown_errors),
            "duration_s": round(self.duration_s, 3),
        }


class AppliedObjects:
    """Tracks what reached the cluster and deletes it, newest first, on exit."""

    def __init__(self, cluster: ClusterClient, delete_timeout: float) -> None:
        self.cluster = cluster
        self.delete_timeout = delete_timeout
        self.applied: List[Resource] = []
        self.removed: List[Resource] = []
        self.errors: List[str] = []

    def apply(self, resource: Resource, timeout: float) -> None:
        if timeout <= 0:
            raise ApplyError(f"case deadline reached before applying {resource.ref}")
        self.cluster.apply(resource, timeout)
        self.applied.append(resource)

    def teardown(self) -> List[str]:
        errors: List[str] = []
        for resource in reversed(self.applied):
            if any(resource is removed for removed in self.removed):
                continue
            try:
                self.cluster.delete(resource, self.delete_timeout)
            except TeardownError as exc:
                errors.append(str(exc))
                logger.warning("Teardown of %s failed: %s", resource.ref, exc)
                continue
            except Exception as exc:  # pragma: no cover - unexpected client failure
                errors.append(f"{resource.ref}: {exc}")
                logger.warning("Teardown of %s failed unexpectedly: %s", resource.ref, exc)
                continue
            self.removed.append(resource)
        self.errors.extend(errors)
        return errors

    def __enter__(self) -> "AppliedObjects":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.teardown()
        return False


class RecipeRunner:
    def __init__(
        self,
        cluster: ClusterClient,
        backend: TelemetryBackend,
        environment: EnvironmentContext,
        *,
        gate: Optional[CompatibilityGate] = None,
        options: Optional[RunnerOptions] = None,
        suffix_factory: Optional[Callable[[], str]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cluster = cluster
        self.backend = backend
        self.environment = environment
        self.gate = gate or CompatibilityGate()
        self.options = options or RunnerOptions()
        self.suffix_factory = suffix_factory or generate_suffix
        self.clock = clock
        self.sleep = sleep

    def run(self, case: RecipeCase) -> CaseResult:
        result = CaseResult(name=case.name)
        started = self.clock()
        case_deadline = started + self.options.case_timeout
        deployment = AppliedObjects(self.cluster, self.options.delete_timeout)
        result.enter(CaseState.INIT)
        try:
            result.suffix = self.suffix_factory()
            builder = load_recipe(
                case.recipe_path,
                self.environment.namespace,
                result.suffix,
                primary_kind=case.recipe_class.primary_kind,
            )

            result.enter(CaseState.GATE_CHECK)
            self.gate.check(
                builder.primary.declared_version,
                self.environment,
                case.gate_selector,
                case.required_capabilities,
            )

            extra = [ensure_namespace(obj, self.environment.namespace) for obj in case.additional_objects]
            builder = builder.with_additional_objects(*extra)
            try:
                builder = apply_customizations(builder, case.all_customizations())
            except ValueError as exc:
                raise LoadError(f"case {case.name}: invalid customization: {exc}") from exc
            validations = tuple(builder.validations)

            with deployment:
                result.enter(CaseState.APPLYING)
                for obj in builder.objects_to_apply():
                    deployment.apply(obj, self._remaining(case_deadline, self.options.apply_timeout))

                result.enter(CaseState.WAITING)
                self._wait_ready(builder.workloads(), case.recipe_class.readiness, case_deadline)

                result.enter(CaseState.VALIDATING)
                if case_deadline - self.clock() <= 0:
                    raise ValidationFailure("case deadline reached before validation window")
                window_end = self.clock() + self.options.validation_timeout
                result.outcomes = evaluate_all(
                    validations,
                    self.backend,
                    min(case_deadline, window_end),
                    interval=self.options.poll_interval,
                    max_attempts=self.options.max_attempts,
                    full_deadline=window_end,
                    clock=self.clock,
                    sleep=self.sleep,
                )
                if not all_satisfied(result.outcomes):
                    unsatisfied = [o.validation.describe() for o in result.outcomes if not o.satisfied]
                    raise ValidationFailure(f"{len(unsatisfied)} validation(s) unsatisfied: {'; '.join(unsatisfied)}")

            result.verdict = Verdict.PASSED
            result.enter(CaseState.PASSED)
        except SkipCondition as exc:
            logger.info("[%s] skipped: %s", case.name, exc)
            result.skip_reason = str(exc)
            result.verdict = Verdict.SKIPPED
            result.enter(CaseState.SKIPPED)
        except HarnessError as exc:
            self._fail(result, exc.kind, str(exc))
        except Exception as exc:  # pragma: no cover - unexpected failure inside a case
            logger.exception("[%s] unexpected error", case.name)
            self._fail(result, "unexpected_error", f"{type(exc).__name__}: {exc}")
        finally:
            result.applied = [obj.ref for obj in deployment.applied]
            result.removed = [obj.ref for obj in deployment.removed]
            result.teardown_errors = list(deployment.errors)
            result.enter(CaseState.TORN_DOWN)
            result.duration_s = self.clock() - started
        return result

    def run_all(self, cases: Sequence[RecipeCase], jobs: int = 1) -> "SuiteReport":
        if jobs <= 1 or len(cases) <= 1:
            return SuiteReport([self.run(case) for case in cases])
        jobs = min(jobs, len(cases))
        with ThreadPoolExecutor(max_workers=jobs) as executor:
            futures = [executor.submit(self.run, case) for case in cases]
            return SuiteReport([future.result() for future in futures])

    def _remaining(self, case_deadline: float, step_timeout: float) -> float:
        return min(step_timeout, case_deadline - self.clock())

    def _wait_ready(self, workloads: Sequence[Resource], rule: ReadinessRule, case_deadline: float) -> None:
        """Wait for every workload in turn; they share one readiness deadline."""

        deadline = min(case_deadline, self.clock() + self.options.readiness_timeout)
        for workload in workloads:
            self._wait_one(workload, rule, deadline)

    def _wait_one(self, workload: Resource, rule: ReadinessRule, deadline: float) -> None:
        observed: Optional[str] = None
        while True:
            remaining = deadline - self.clock()
            try:
                obj = self.cluster.get(workload, max(1.0, min(self.options.apply_timeout, remaining)))
            except KubectlError as exc:
                logger.warning("Status read of %s failed: %s", workload.ref, exc)
                obj = None
            if obj is not None:
                observed = rule.observed(obj)
                if rule.is_ready(obj):
                    return
            now = self.clock()
            if now >= deadline:
                raise ReadinessTimeout(
                    f"{workload.ref} not ready: {rule.field}={observed!r}, expected one of {sorted(rule.ready_values)}"
                )
            self.sleep(min(self.options.readiness_interval, deadline - now))

    @staticmethod
    def _fail(result: CaseResult, kind: str, message: str) -> None:
        logger.error("[%s] failed (%s): %s", result.name, kind, message)
        result.verdict = Verdict.FAILED
        result.error_kind = kind
        result.error = message
        result.enter(CaseState.FAILED)


@dataclass
class SuiteReport:
    results: List[CaseResult]

    def count(self, verdict: Verdict) -> int:
        return sum(1 for result in self.results if result.verdict is verdict)

    @property
    def passed(self) -> int:
        return self.count(Verdict.PASSED)

    @property
    def failed(self) -> int:
        return self.count(Verdict.FAILED)

    @property
    def skipped(self) -> int:
        return self.count(Verdict.SKIPPED)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def leaked(self) -> List[str]:
        return [error for result in self.results for error in result.teardown_errors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "cases": len(self.results),
                "passed": self.passed,
                "failed": self.failed,
                "skipped": self.skipped,
                "teardown_errors": len(self.leaked),
            },
            "cases": [result.to_dict() for result in self.results],
        }

    def write(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")


__all__ = [
    "AppliedObjects",
    "CaseResult",
    "CaseState",
    "RecipeRunner",
    "RunnerOptions",
    "SuiteReport",
    "Verdict",
]
