"""Recipe case orchestration: gate, apply, wait, validate, tear down."""

from .runner import AppliedObjects, CaseResult, CaseState, RecipeRunner, RunnerOptions, SuiteReport, Verdict

__all__ = [
    "AppliedObjects",
    "CaseResult",
    "CaseState",
    "RecipeRunner",
    "RunnerOptions",
    "SuiteReport",
    "Verdict",
]
