"""Column classification and deterministic header ordering.

Every column predicate lives here so rendering, filtering and export agree
on what counts as a version, bundle, health or build column.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from .ingest import manifest_prefix
from .models import (
    BUILD_BUNDLE_COLUMN,
    BUILD_IMAGES_COLUMN,
    ENVIRONMENT_COLUMN,
    IDENTITY_COLUMN,
    LINK_COLUMN,
    ServiceSet,
)

VERSION_ENV_RE = re.compile(r"^Version\s+[\w.-]+$", re.IGNORECASE)
BUNDLE_ENV_RE = re.compile(r"^Bundle\s+[\w.-]+$", re.IGNORECASE)
HEALTH_RE = re.compile(r"\s+Health$", re.IGNORECASE)

FIXED_LEADING_COLUMNS = (IDENTITY_COLUMN, LINK_COLUMN, ENVIRONMENT_COLUMN)


def is_version_column(name: str | None, manifest_labels: Iterable[str] = ()) -> bool:
    """Return whether ``name`` holds version data.

    Matches ``Version <env>`` (health lookup), legacy ``version_*``, the
    ``<prefix>_version_*`` family of any known manifest, and any
    ``<token>_version_*`` whose token has no underscore (manifest columns
    left over from an earlier run).
    """

    if not name:
        return False
    if VERSION_ENV_RE.match(name):
        return True
    if name.startswith("version_"):
        return True

    for label in manifest_labels:
        prefix = manifest_prefix(label)
        if prefix and name.startswith(f"{prefix}_version_"):
            return True

    version_index = name.find("_version_")
    return version_index > 0 and "_" not in name[:version_index]


def is_bundle_column(name: str | None) -> bool:
    return bool(name) and bool(BUNDLE_ENV_RE.match(name))


def is_health_column(name: str | None) -> bool:
    return bool(name) and bool(HEALTH_RE.search(name))


def is_build_column(name: str | None) -> bool:
    return name in (BUILD_IMAGES_COLUMN, BUILD_BUNDLE_COLUMN)


def is_auto_visible_column(name: str | None) -> bool:
    """Columns shown by default when they first appear after a refresh."""

    return bool(name) and (
        bool(VERSION_ENV_RE.match(name)) or is_bundle_column(name) or is_health_column(name) or is_build_column(name)
    )


def collect_columns(records: ServiceSet) -> list[str]:
    """Order-preserving union of the keys of all records."""

    seen: dict[str, None] = {}
    for record in records:
        for key in record:
            seen.setdefault(key, None)
    return list(seen)


def organize_headers(
    all_columns: Iterable[str],
    has_tracker_data: bool,
    tracker_columns: Sequence[str] = (),
    manifest_labels: Sequence[str] = (),
) -> list[str]:
    """Return the display order for ``all_columns``.

    Zones, in order: identity, link, environment (when present), tracker
    columns in the tracker file's order, everything else, version columns.
    Pass ``all_columns`` in a stable order (a list or dict keys) for a
    reproducible result.
    """

    columns = list(dict.fromkeys(all_columns))
    ordered = [IDENTITY_COLUMN, LINK_COLUMN]
    placed = set(ordered)

    if ENVIRONMENT_COLUMN in columns:
        ordered.append(ENVIRONMENT_COLUMN)
        placed.add(ENVIRONMENT_COLUMN)

    if has_tracker_data:
        for column in tracker_columns:
            if column in placed or column in FIXED_LEADING_COLUMNS:
                continue
            if is_version_column(column, manifest_labels):
                continue
            ordered.append(column)
            placed.add(column)

    other_columns: list[str] = []
    version_columns: list[str] = []
    for column in columns:
        if column in placed:
            continue
        placed.add(column)
        if is_version_column(column, manifest_labels):
            version_columns.append(column)
        else:
            other_columns.append(column)

    return [*ordered, *other_columns, *version_columns]
