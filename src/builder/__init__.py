"""Builder value and customization pipeline for recipe cases."""

from .builder import Builder, Customization, apply_customizations, chain
from .pods import logging_test_pod, with_labels

__all__ = [
    "Builder",
    "Customization",
    "apply_customizations",
    "chain",
    "logging_test_pod",
    "with_labels",
]
