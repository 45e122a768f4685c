"""Parsers for uploaded inputs: deployment links, CSV exports, version manifests."""

from __future__ import annotations

import csv
import json
import re
from typing import Any

from .errors import InputValidationError
from .models import IDENTITY_COLUMN, SUMMARY_COLUMN, Table, VersionManifest

HEADER_SEARCH_LINES = 10

_DEPLOY_LINK_RE = re.compile(r"/deploy_([^/]+)/?$")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


def extract_service_name_from_link(link: str | None) -> str:
    """Return the ``<name>`` of a ``.../deploy_<name>/`` URL, or ``""``."""

    if not link:
        return ""
    match = _DEPLOY_LINK_RE.search(link.strip())
    return match.group(1) if match else ""


def parse_deployment_links(text: str | None) -> list[str]:
    """Split newline-separated links, dropping blank lines."""

    if not text:
        return []
    return [line.strip() for line in _LINE_SPLIT_RE.split(text) if line.strip()]


def _split_csv_line(line: str) -> list[str]:
    """Split one line on commas outside quotes; ``""`` inside quotes is a quote."""

    # skipinitialspace lets `a, "b,c"` keep the quoted field intact.
    fields = next(csv.reader([line], skipinitialspace=True), [])
    return [value.strip() for value in fields]


def parse_csv(text: str | None, key_column: str) -> Table:
    """Parse CSV text whose header row contains ``key_column``.

    Exports often carry a title block, so the header is searched for in the
    first ``HEADER_SEARCH_LINES`` lines. Returns ``[]`` when no header is found.
    """

    if not text or not text.strip():
        return []
    lines = _LINE_SPLIT_RE.split(text.strip())

    header: list[str] = []
    header_index = -1
    for index, line in enumerate(lines[:HEADER_SEARCH_LINES]):
        candidate = _split_csv_line(line)
        if key_column in candidate:
            header = candidate
            header_index = index
            break

    if header_index == -1:
        return []

    rows: Table = []
    for line in lines[header_index + 1:]:
        if not line.strip():
            continue
        values = _split_csv_line(line)
        row: dict[str, str] = {}
        for index, column in enumerate(header):
            if not column:
                continue
            row[column] = values[index] if index < len(values) else ""
        rows.append(row)
    return rows


def load_service_table(text: str | None, source_name: str) -> Table:
    """Parse a services CSV; reject it when ``Service0`` cannot be found."""

    rows = parse_csv(text, IDENTITY_COLUMN)
    if not rows:
        raise InputValidationError(
            f'Services CSV "{source_name}" is missing data or the "{IDENTITY_COLUMN}" column could not be found.'
        )
    return rows


def load_tracker_table(text: str | None, source_name: str) -> Table:
    """Parse an issue-tracker CSV; reject it when ``Summary`` cannot be found."""

    rows = parse_csv(text, SUMMARY_COLUMN)
    if not rows:
        raise InputValidationError(
            f'Tracker CSV "{source_name}" is missing data or the "{SUMMARY_COLUMN}" column could not be found.'
        )
    return rows


def parse_version_manifest(text: str | None, file_name: str) -> VersionManifest:
    """Parse and validate a ``{"service_versions": [...]}`` document."""

    try:
        document: Any = json.loads(text or "")
    except json.JSONDecodeError as e:
        raise InputValidationError(f"Versions JSON error ({file_name}): Invalid JSON format: {e}") from e

    if not isinstance(document, dict) or not isinstance(document.get("service_versions"), list):
        raise InputValidationError(
            f'Versions JSON error ({file_name}): JSON file must contain a "service_versions" array'
        )

    entries = document["service_versions"]
    if not entries:
        raise InputValidationError(f"Versions JSON error ({file_name}): service_versions array cannot be empty")

    for position, entry in enumerate(entries):
        if not isinstance(entry, dict) or "service" not in entry:
            raise InputValidationError(
                f'Versions JSON error ({file_name}): entry {position} must be an object with a "service" key'
            )

    return VersionManifest(file_label=file_name, rows=entries)


def table_label_from_filename(file_name: str) -> str:
    """Environment label for a services CSV (file name without ``.csv``)."""

    return re.sub(r"\.csv$", "", file_name or "", flags=re.IGNORECASE)


def manifest_prefix(file_label: str) -> str:
    """Column prefix for a version manifest label.

    ``prod_versions.json`` gives ``prod``; ``staging.json`` gives ``staging``.
    A leading underscore does not count as a separator.
    """

    base_name = re.sub(r"\.json$", "", file_label or "", flags=re.IGNORECASE)
    underscore_index = base_name.find("_")
    if underscore_index > 0:
        return base_name[:underscore_index]
    return base_name
