from __future__ import annotations

import random
import re
import string

SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
DEFAULT_SUFFIX_LENGTH = 10
MAX_NAME_LENGTH = 63

_rng = random.SystemRandom()
_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]+")


def generate_suffix(length: int = DEFAULT_SUFFIX_LENGTH) -> str:
    """Random DNS-safe token; 36**10 values keeps concurrent runs apart."""

    if length < 4:
        raise ValueError("suffix length must be at least 4")
    first = _rng.choice(string.ascii_lowercase)
    return first + "".join(_rng.choices(SUFFIX_ALPHABET, k=length - 1))


def scoped_name(base: str, suffix: str) -> str:
    cleaned = _INVALID_NAME_CHARS.sub("-", base.lower()).strip("-")
    keep = MAX_NAME_LENGTH - len(suffix) - 1
    return f"{cleaned[:keep].rstrip('-')}-{suffix}"


__all__ = ["DEFAULT_SUFFIX_LENGTH", "generate_suffix", "scoped_name"]
