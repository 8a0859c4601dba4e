from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Tuple, Union

from src.common.errors import VersionParseError

_SEMVER_PATTERN = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@dataclass(frozen=True)
class Version:
    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = field(default=(), compare=False)

    def compare(self, other: "Version") -> int:
        left = (self.major, self.minor, self.patch)
        right = (other.major, other.minor, other.patch)
        if left != right:
            return -1 if left < right else 1
        return _compare_prerelease(self.prerelease, other.prerelease)

    def is_after(self, other: "Version") -> bool:
        return self.compare(other) > 0

    def is_before(self, other: "Version") -> bool:
        return self.compare(other) < 0

    def equal(self, other: "Version") -> bool:
        return self.compare(other) == 0

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


def parse_version(text: Union[str, Version]) -> Version:
    """Parse a semantic version such as ``7.10.0`` or ``8.0.0-SNAPSHOT``.

    A malformed version is an authoring bug in the recipe or environment, so
    the error is fatal for the case rather than a reason to skip it.
    """

    if isinstance(text, Version):
        return text
    if not isinstance(text, str):
        raise VersionParseError(f"version must be a string, got {type(text).__name__}")
    match = _SEMVER_PATTERN.match(text.strip())
    if match is None:
        raise VersionParseError(f"malformed version: {text!r}")
    prerelease = tuple(match.group("prerelease").split(".")) if match.group("prerelease") else ()
    for identifier in prerelease:
        if identifier.isdigit() and len(identifier) > 1 and identifier.startswith("0"):
            raise VersionParseError(f"numeric prerelease identifier has leading zero: {text!r}")
    build = tuple(match.group("build").split(".")) if match.group("build") else ()
    return Version(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        prerelease=prerelease,
        build=build,
    )


must_parse = parse_version


def compare_versions(left: Union[str, Version], right: Union[str, Version]) -> int:
    return parse_version(left).compare(parse_version(right))


def _compare_prerelease(left: Tuple[str, ...], right: Tuple[str, ...]) -> int:
    # A release sorts above any prerelease of the same core version.
    if not left and not right:
        return 0
    if not left:
        return 1
    if not right:
        return -1
    for a, b in zip(left, right):
        if a == b:
            continue
        a_num, b_num = a.isdigit(), b.isdigit()
        if a_num and b_num:
            return -1 if int(a) < int(b) else 1
        if a_num:
            return -1
        if b_num:
            return 1
        return -1 if a < b else 1
    if len(left) == len(right):
        return 0
    return -1 if len(left) < len(right) else 1


__all__ = ["Version", "compare_versions", "must_parse", "parse_version"]
