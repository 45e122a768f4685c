"""Version/bundle drift detection against the tag named in a ticket summary.

A release ticket summary such as ``"Deploy to prod_w1_20250101 ..."`` names
the expected tag as its third word. Observed values may carry an extra
trailing build segment (``prod_w1_20250101_7``), which the equality rule
tolerates on exactly one side.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from .models import ERROR, NOT_FOUND, SUMMARY_COLUMN, SUMMARY_FALLBACK_COLUMN

_ANCHOR_NUMBER_RE = re.compile(r">(\d+)</a>")
_DIGITS_RE = re.compile(r"^\d+$")


class DriftStatus(str, Enum):
    MATCH = "match"
    BUILD_MISMATCH = "build-mismatch"
    MISMATCH = "mismatch"
    NO_EXPECTATION = "no-expectation"


@dataclass(frozen=True, slots=True)
class DriftResult:
    """Classification of one observed value.

    ``highlight`` is set for build mismatches: the observed value split into
    the part that agrees and the trailing segment to flag.
    """

    status: DriftStatus
    expected: str = ""
    highlight: tuple[str, str] | None = None

    @property
    def is_drift(self) -> bool:
        return self.status in (DriftStatus.BUILD_MISMATCH, DriftStatus.MISMATCH)


def expected_tag(summary_text: str | None) -> str:
    """Third whitespace-delimited token of the summary, or ``""``."""

    words = (summary_text or "").split()
    return words[2] if len(words) >= 3 else ""


def extract_build_number(observed: str | None) -> str:
    """Build number from a build cell (anchor markup or plain digits)."""

    if not observed:
        return ""
    lowered = observed.lower()
    if lowered == ERROR.lower() or "build not found" in lowered:
        return ""
    if "<a" in observed:
        match = _ANCHOR_NUMBER_RE.search(observed)
        return match.group(1) if match else ""
    trimmed = observed.strip()
    return trimmed if _DIGITS_RE.match(trimmed) else ""


def versions_equal(a: str | None, b: str | None) -> bool:
    """Case-insensitive equality that ignores one side's extra ``_`` segments.

    When token counts differ, the longer value is cut to the shorter one's
    token count before comparing, so ``x_y_7`` equals ``x_y``. If both sides
    carry differing extra tokens this can mask a mismatch; that is the
    established behavior filters rely on.
    """

    if not a or not b:
        return False
    left = a.strip().lower()
    right = b.strip().lower()
    left_parts = left.split("_")
    right_parts = right.split("_")

    if len(left_parts) == len(right_parts):
        return left == right
    if len(left_parts) > len(right_parts):
        return "_".join(left_parts[: len(right_parts)]) == right
    return "_".join(right_parts[: len(left_parts)]) == left


def _split_last_segment(value: str) -> tuple[str, str] | None:
    if "_" not in value:
        return None
    head, _, tail = value.rpartition("_")
    return head, tail


def classify_drift(observed_value: str | None, expected: str | None, build_number: str | None = "") -> DriftResult:
    """Compare an observed version/bundle with the expected tag."""

    if not expected:
        return DriftResult(DriftStatus.NO_EXPECTATION)

    full_expected = f"{expected}_{build_number}" if build_number else expected
    if versions_equal(observed_value, full_expected):
        return DriftResult(DriftStatus.MATCH, expected=full_expected)
    if versions_equal(observed_value, expected):
        return DriftResult(
            DriftStatus.BUILD_MISMATCH,
            expected=full_expected,
            highlight=_split_last_segment(observed_value or ""),
        )
    return DriftResult(DriftStatus.MISMATCH, expected=full_expected)


def is_comparable_value(value: str | None) -> bool:
    """Cells holding adapter sentinels or nothing are never drift-checked."""

    return bool(value) and value not in (NOT_FOUND, ERROR)


def row_expected_tag(row: Mapping[str, str]) -> str:
    summary = (row.get(SUMMARY_FALLBACK_COLUMN) or row.get(SUMMARY_COLUMN) or "").strip()
    return expected_tag(summary)


def row_drift(row: Mapping[str, str], column: str, build_column: str | None = None) -> DriftResult:
    """Classify one cell of ``row`` using the row's summary and build cell.

    Returns ``NO_EXPECTATION`` for non-comparable cells.
    """

    value = str(row.get(column) or "")
    if not is_comparable_value(value):
        return DriftResult(DriftStatus.NO_EXPECTATION)
    build_number = extract_build_number((row.get(build_column) or "").strip()) if build_column else ""
    return classify_drift(value, row_expected_tag(row), build_number)
