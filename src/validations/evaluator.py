from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from src.telemetry.backend import BackendError, TelemetryBackend
from .predicates import PredicateKind, Validation

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_MAX_ATTEMPTS = 1000

Clock = Callable[[], float]
Sleep = Callable[[float], None]


@dataclass(frozen=True)
class Outcome:
    validation: Validation
    satisfied: bool
    attempts: int
    elapsed: float
    detail: str

    def to_dict(self) -> dict:
        return {
            "validation": self.validation.describe(),
            "kind": self.validation.kind.value,
            "satisfied": self.satisfied,
            "attempts": self.attempts,
            "elapsed_s": round(self.elapsed, 3),
            "detail": self.detail,
        }


class _PollState:
    def __init__(self, validation: Validation) -> None:
        self.validation = validation
        self.attempts = 0
        self.successes = 0
        self.last_error: Optional[str] = None
        self.settled = False
        self.satisfied = False
        self.detail = ""
        self.elapsed = 0.0

    def settle(self, satisfied: bool, detail: str, elapsed: float) -> None:
        self.settled = True
        self.satisfied = satisfied
        self.detail = detail
        self.elapsed = elapsed

    def outcome(self) -> Outcome:
        return Outcome(self.validation, self.satisfied, self.attempts, self.elapsed, self.detail)


def attempt_budget(window: float, interval: float, max_attempts: Optional[int]) -> tuple:
    """Return ``(attempts, interval)`` covering ``window`` with bounded polls.

    When ``max_attempts`` is tighter than ``window / interval`` the interval is
    widened so the polls still span the whole window.
    """

    if interval <= 0:
        raise ValueError("poll interval must be positive")
    attempts = int(math.ceil(window / interval)) + 1
    limit = max_attempts if max_attempts is not None else DEFAULT_MAX_ATTEMPTS
    if limit < 1:
        raise ValueError("max_attempts must be at least 1")
    if attempts > limit:
        attempts = limit
        if attempts > 1:
            interval = max(interval, window / (attempts - 1))
    return attempts, interval


def evaluate_all(
    validations: Sequence[Validation],
    backend: TelemetryBackend,
    deadline: float,
    *,
    interval: float = DEFAULT_INTERVAL,
    max_attempts: Optional[int] = None,
    full_deadline: Optional[float] = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> List[Outcome]:
    """Poll every validation against ``backend`` until ``deadline``.

    Presence predicates settle on their first match. Absence predicates can
    only be satisfied once the deadline passes without a match, since the
    backend is eventually consistent; a match settles them as failed at once.
    All predicates share the same window and the first failure stops polling.

    ``full_deadline`` is where the window would have ended had nothing capped
    it. When ``deadline`` falls short of it, or the window is empty, absence
    predicates cannot be satisfied.
    """

    states = [_PollState(v) for v in validations]
    start = clock()
    if deadline <= start:
        truncated = "empty validation window"
    elif full_deadline is not None and deadline < full_deadline:
        truncated = "window cut short by case deadline"
    else:
        truncated = None
    budget, interval = attempt_budget(max(0.0, deadline - start), interval, max_attempts)
    rounds = 0
    failed = False

    while True:
        pending = [s for s in states if not s.settled]
        if not pending:
            break
        rounds += 1
        for state in pending:
            _poll(state, backend, clock() - start)
            if state.settled and not state.satisfied:
                failed = True
                break
        if failed:
            break
        now = clock()
        if now >= deadline:
            break
        absence_pending = any(
            not s.settled and s.validation.kind is PredicateKind.ABSENCE for s in states
        )
        if rounds >= budget and not absence_pending:
            break
        sleep(min(interval, deadline - now))

    elapsed = clock() - start
    for state in states:
        if state.settled:
            continue
        if failed:
            state.settle(False, "not settled: another validation failed first", elapsed)
        elif state.validation.kind is PredicateKind.ABSENCE:
            if truncated:
                state.settle(False, f"{truncated} after {elapsed:.1f}s", elapsed)
            elif state.successes:
                state.settle(True, f"no match within {elapsed:.1f}s", elapsed)
            else:
                state.settle(False, f"backend never answered: {state.last_error}", elapsed)
        else:
            detail = f"no match after {state.attempts} attempt(s) in {elapsed:.1f}s"
            if state.last_error:
                detail += f"; last error: {state.last_error}"
            state.settle(False, detail, elapsed)
    return [state.outcome() for state in states]


def evaluate(
    validation: Validation,
    backend: TelemetryBackend,
    deadline: float,
    *,
    interval: float = DEFAULT_INTERVAL,
    max_attempts: Optional[int] = None,
    full_deadline: Optional[float] = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> Outcome:
    return evaluate_all(
        [validation],
        backend,
        deadline,
        interval=interval,
        max_attempts=max_attempts,
        full_deadline=full_deadline,
        clock=clock,
        sleep=sleep,
    )[0]


def all_satisfied(outcomes: Sequence[Outcome]) -> bool:
    return all(outcome.satisfied for outcome in outcomes)


def _poll(state: _PollState, backend: TelemetryBackend, elapsed: float) -> None:
    validation = state.validation
    state.attempts += 1
    try:
        matched = backend.has_match(validation.index, validation.query)
    except BackendError as exc:
        state.last_error = str(exc)
        logger.warning("Query for %s failed (attempt %d): %s", validation.describe(), state.attempts, exc)
        return
    state.successes += 1
    if not matched:
        return
    if validation.kind is PredicateKind.PRESENCE:
        state.settle(True, f"matched after {state.attempts} attempt(s)", elapsed)
    else:
        state.settle(False, f"unexpected match after {state.attempts} attempt(s)", elapsed)


__all__ = [
    "DEFAULT_INTERVAL",
    "Outcome",
    "all_satisfied",
    "attempt_budget",
    "evaluate",
    "evaluate_all",
]
