"""Service-name canonicalization shared by every matching stage."""

from __future__ import annotations

import re

_TRAILING_HEADLESS_RE = re.compile(r"-headless$", re.IGNORECASE)
_HEADLESS_RE = re.compile(r"headless", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-+")
_EDGE_RE = re.compile(r"^[\s-]+|[\s-]+$")


def normalize_service_name(name: str | None) -> str:
    """Return the comparison key for a raw service identifier.

    ``"Foo-Headless"``, ``"foo"`` and ``" FOO "`` all normalize to ``"foo"``.
    Never raises; ``None`` and ``""`` give ``""``.
    """

    if not name:
        return ""
    value = str(name).strip()
    value = _TRAILING_HEADLESS_RE.sub("", value)
    # Loop so that removals cannot splice a new "headless" together.
    while True:
        stripped = _HEADLESS_RE.sub("", value)
        if stripped == value:
            break
        value = stripped
    value = _WHITESPACE_RE.sub(" ", value)
    value = _HYPHENS_RE.sub("-", value)
    value = _EDGE_RE.sub("", value)
    return value.lower()


def underscore_form(name: str | None) -> str:
    """Normalized name with hyphens replaced by underscores."""

    return normalize_service_name(name).replace("-", "_")


def names_match(left: str | None, right: str | None) -> bool:
    """Return whether two raw names refer to the same service.

    Hyphen and underscore are interchangeable. Empty names never match.
    """

    left_key = normalize_service_name(left)
    right_key = normalize_service_name(right)
    if not left_key or not right_key:
        return False
    return left_key == right_key or left_key.replace("-", "_") == right_key.replace("-", "_")
