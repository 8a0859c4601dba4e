"""Semantic version parsing and ordering."""

from .version import Version, compare_versions, must_parse, parse_version

__all__ = ["Version", "compare_versions", "must_parse", "parse_version"]
