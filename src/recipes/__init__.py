"""Recipe loading, recipe classes and the built-in beat catalogue."""

from .cases import BEAT_CLASS, GENERIC_CLASS, ReadinessRule, RecipeCase, RecipeClass
from .loader import load_recipe, parse_recipe

__all__ = [
    "BEAT_CLASS",
    "GENERIC_CLASS",
    "ReadinessRule",
    "RecipeCase",
    "RecipeClass",
    "load_recipe",
    "parse_recipe",
]
