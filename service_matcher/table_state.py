"""Reconciled table held between requests: data, visibility, filters, sort.

One ``TableState`` is owned by its caller (the API keeps it on
``app.state``, the CLI builds one per run). Records in ``view()`` are the
same objects as in ``records``, so edits made through a view index land in
the table.
"""

from __future__ import annotations

import functools
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional, Sequence

from .columns import is_auto_visible_column, is_bundle_column, is_health_column, is_version_column
from .drift import is_comparable_value, row_drift, row_expected_tag, versions_equal
from .errors import InputValidationError
from .logging_utils import logger
from .models import (
    BUILD_BUNDLE_COLUMN,
    BUILD_IMAGES_COLUMN,
    ENVIRONMENT_COLUMN,
    STATUS_COLUMN,
    SUMMARY_COLUMN,
    AdapterResult,
    AddMissingResult,
    ServiceRecord,
    ServiceSet,
)
from .reconcile import add_missing_from_deployment_links

HEALTHY_STATUS = "FULL_SERVICE"
SORT_DIRECTIONS = ("asc", "desc")

_NUMERIC_PREFIX_RE = re.compile(
    r"^\s*[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|Infinity)"
)


@dataclass
class FilterSettings:
    unhealthy_only: bool = False
    unequal_versions_only: bool = False
    unequal_bundles_only: bool = False
    only_changes: bool = False
    ignore_empty_columns: bool = False
    custom: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SortSettings:
    column: str = ""
    direction: str = "asc"


def parse_float_prefix(value: Any) -> Optional[float]:
    """Numeric value of the leading number in ``value``, like JS ``parseFloat``."""

    match = _NUMERIC_PREFIX_RE.match(str(value))
    if not match:
        return None
    return float(match.group(0).replace("Infinity", "inf"))


def _compare_cells(left: str, right: str) -> int:
    left_num = parse_float_prefix(left)
    right_num = parse_float_prefix(right)
    if left_num is not None and right_num is not None:
        return (left_num > right_num) - (left_num < right_num)
    left_key, right_key = left.casefold(), right.casefold()
    return (left_key > right_key) - (left_key < right_key)


def sort_records(records: Sequence[ServiceRecord], column: str, direction: str = "asc") -> ServiceSet:
    """Stable sort of ``records`` by one column; no column means input order."""

    if not column:
        return list(records)
    sign = -1 if direction == "desc" else 1

    def compare(a: ServiceRecord, b: ServiceRecord) -> int:
        return sign * _compare_cells(str(a.get(column) or ""), str(b.get(column) or ""))

    return sorted(records, key=functools.cmp_to_key(compare))


def apply_env_filter(env: str, pattern: str | None) -> str:
    """Shorten an environment label to capture group 1 of ``pattern``.

    An empty or invalid pattern, or one without a matching group, leaves
    ``env`` as it is.
    """

    pattern = (pattern or "").strip()
    if not pattern or not env:
        return env
    try:
        match = re.search(pattern, env)
    except re.error:
        return env
    if match and match.re.groups >= 1 and match.group(1):
        return match.group(1)
    return env


class TableState:
    """Mutable table plus the display settings that apply to it."""

    def __init__(self):
        self.records: ServiceSet = []
        self.headers: list[str] = []
        self.visible_headers: list[str] = []
        self.manifest_labels: list[str] = []
        self.tracker_columns: list[str] = []
        self.has_tracker_data = False
        self.filters = FilterSettings()
        self.sort = SortSettings()
        self.deleted_rows: ServiceSet = []
        self.env_filter = ""

    @property
    def is_empty(self) -> bool:
        return not self.records and not self.headers

    def load(
        self,
        records: ServiceSet,
        headers: Sequence[str],
        manifest_labels: Optional[Sequence[str]] = None,
        tracker_columns: Optional[Sequence[str]] = None,
        has_tracker_data: Optional[bool] = None,
    ) -> None:
        """Replace the table, keeping the user's column visibility.

        Columns seen before keep their visibility; of the new ones only
        version/bundle/health and build columns are shown.
        """

        previous_visible = list(self.visible_headers)
        previous_all = set(self.headers)
        self.records = list(records)
        self.headers = list(dict.fromkeys(headers))

        if previous_visible:
            header_set = set(self.headers)
            visible = [h for h in previous_visible if h in header_set]
            visible.extend(h for h in self.headers if h not in previous_all and is_auto_visible_column(h))
            self.visible_headers = visible
        else:
            self.visible_headers = list(self.headers)

        if manifest_labels is not None:
            self.manifest_labels = list(manifest_labels)
        if tracker_columns is not None:
            self.tracker_columns = list(tracker_columns)
        if has_tracker_data is not None:
            self.has_tracker_data = has_tracker_data

    # Filtering

    def _visible_keys(self, row: ServiceRecord, predicate) -> list[str]:
        visible = set(self.visible_headers)
        return [key for key in row if key in visible and predicate(key)]

    def _is_version_key(self, key: str) -> bool:
        return is_version_column(key, self.manifest_labels)

    def _is_unhealthy(self, row: ServiceRecord) -> bool:
        status = (row.get(STATUS_COLUMN) or "").upper()
        if status and HEALTHY_STATUS not in status:
            return True

        for key in self._visible_keys(row, is_health_column):
            health = (row.get(key) or "").upper().strip()
            if health and health != HEALTHY_STATUS:
                return True

        expected = row_expected_tag(row)
        if not expected:
            return False
        for key in self._visible_keys(row, self._is_version_key):
            value = str(row.get(key) or "")
            if is_comparable_value(value) and not versions_equal(value, expected):
                return True
        return False

    def _has_drift(self, row: ServiceRecord, predicate, build_column: str) -> bool:
        if not row_expected_tag(row):
            return False
        return any(row_drift(row, key, build_column).is_drift for key in self._visible_keys(row, predicate))

    def filtered_records(self) -> ServiceSet:
        rows = list(self.records)
        filters = self.filters

        if filters.unhealthy_only:
            rows = [row for row in rows if self._is_unhealthy(row)]
        if filters.unequal_versions_only:
            rows = [row for row in rows if self._has_drift(row, self._is_version_key, BUILD_IMAGES_COLUMN)]
        if filters.unequal_bundles_only:
            rows = [row for row in rows if self._has_drift(row, is_bundle_column, BUILD_BUNDLE_COLUMN)]
        if filters.only_changes:
            rows = [row for row in rows if (row.get(SUMMARY_COLUMN) or "").strip()]

        for column, needle in filters.custom.items():
            needle = (needle or "").lower()
            if not needle:
                continue
            rows = [row for row in rows if needle in str(row.get(column) or "").lower()]
        return rows

    def view(self) -> ServiceSet:
        return sort_records(self.filtered_records(), self.sort.column, self.sort.direction)

    def display_headers(self, rows: Optional[ServiceSet] = None) -> list[str]:
        headers = list(self.visible_headers or self.headers)
        if not self.filters.ignore_empty_columns:
            return headers
        if rows is None:
            rows = self.filtered_records()
        return [h for h in headers if any(row.get(h) not in (None, "") for row in rows)]

    def rendered_rows(self) -> ServiceSet:
        """``view()`` with the environment filter applied, as copies."""

        rows = self.view()
        if not self.env_filter:
            return [dict(row) for row in rows]
        rendered = []
        for row in rows:
            copy = dict(row)
            if ENVIRONMENT_COLUMN in copy:
                copy[ENVIRONMENT_COLUMN] = apply_env_filter(copy[ENVIRONMENT_COLUMN], self.env_filter)
            rendered.append(copy)
        return rendered

    # Mutators

    def set_filters(self, **changes: Any) -> FilterSettings:
        for name, value in changes.items():
            if not hasattr(self.filters, name):
                raise InputValidationError(f"Unknown filter: {name}")
            if name == "custom":
                value = {str(k): str(v) for k, v in (value or {}).items()}
            setattr(self.filters, name, value)
        return self.filters

    def set_sort(self, column: str, direction: str = "asc") -> SortSettings:
        if direction not in SORT_DIRECTIONS:
            raise InputValidationError(f"Sort direction must be one of {SORT_DIRECTIONS}, got {direction!r}")
        if column and column not in self.headers:
            raise InputValidationError(f"Unknown column: {column}")
        self.sort = SortSettings(column=column or "", direction=direction)
        return self.sort

    def delete_rows(self, indices: Iterable[int]) -> int:
        """Move rows, addressed by position in ``view()``, to the stash."""

        current = self.view()
        doomed = []
        for index in sorted(set(indices)):
            if 0 <= index < len(current):
                doomed.append(current[index])
        doomed_ids = {id(row) for row in doomed}
        self.records = [row for row in self.records if id(row) not in doomed_ids]
        self.deleted_rows.extend(doomed)
        logger.info("rows_deleted", deleted=len(doomed), remaining=len(self.records))
        return len(doomed)

    def restore_deleted_rows(self) -> int:
        restored = len(self.deleted_rows)
        self.records.extend(self.deleted_rows)
        self.deleted_rows = []
        logger.info("rows_restored", restored=restored, total=len(self.records))
        return restored

    def edit_cell(self, view_index: int, column: str, value: str) -> ServiceRecord:
        current = self.view()
        if not 0 <= view_index < len(current):
            raise InputValidationError(f"Row index {view_index} is out of range")
        if column not in self.headers:
            raise InputValidationError(f"Unknown column: {column}")
        row = current[view_index]
        row[column] = value
        return row

    def hide_column(self, column: str) -> None:
        self.visible_headers = [h for h in self.visible_headers if h != column]

    def show_column(self, column: str) -> None:
        if column not in self.headers:
            raise InputValidationError(f"Unknown column: {column}")
        if column in self.visible_headers:
            return
        # keep the header order
        order = {h: i for i, h in enumerate(self.headers)}
        self.visible_headers.append(column)
        self.visible_headers.sort(key=lambda h: order.get(h, len(order)))

    def move_column(self, src: int, dst: int) -> None:
        """Move the visible column at ``src`` to ``dst``; ``headers`` follows."""

        visible = self.visible_headers
        if src == dst or not (0 <= src < len(visible) and 0 <= dst < len(visible)):
            return
        column = visible[src]
        target = visible[dst]
        visible.insert(dst, visible.pop(src))

        self.headers.remove(column)
        target_index = self.headers.index(target)
        self.headers.insert(target_index + 1 if src < dst else target_index, column)

    def add_missing_services(self, deployment_links: Iterable[str]) -> AddMissingResult:
        result = add_missing_from_deployment_links(self.records, self.headers, deployment_links)
        if result.count:
            self.load(self.records + result.added, self.headers)
        logger.info("missing_services_added", added=result.count, total=len(self.records))
        return result

    def apply_adapter_result(self, result: AdapterResult) -> None:
        self.load(result.updated_data, result.updated_headers)

    def snapshot(self) -> dict[str, Any]:
        """Serializable view for API responses."""

        rows = self.rendered_rows()
        return {
            "headers": self.display_headers(self.filtered_records()),
            "all_headers": list(self.headers),
            "rows": rows,
            "total_rows": len(self.records),
            "shown_rows": len(rows),
            "deleted_rows": len(self.deleted_rows),
            "filters": self.filters.to_dict(),
            "sort": asdict(self.sort),
        }
