"""Compatibility gate deciding whether a recipe case runs at all."""

from .compatibility import CompatibilityGate, DEFAULT_RULES, GateRules

__all__ = ["CompatibilityGate", "DEFAULT_RULES", "GateRules"]
