"""Reconciliation engine: base records from deployment links, then enrichment.

Every stage is additive. A column already present on a record is never
overwritten by a later stage (first writer wins), and no stage mutates its
inputs; records that gain columns are copied.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Sequence
from typing import Any

from .ingest import extract_service_name_from_link, manifest_prefix
from .logging_utils import logger
from .models import (
    ENVIRONMENT_COLUMN,
    IDENTITY_COLUMN,
    LINK_COLUMN,
    SUMMARY_COLUMN,
    AddMissingResult,
    ServiceRecord,
    ServiceSet,
    Table,
    VersionManifest,
)
from .names import names_match, normalize_service_name


def _base_record(service_name: str, link: str) -> ServiceRecord:
    return {IDENTITY_COLUMN: service_name, LINK_COLUMN: link}


def _merge_absent(record: ServiceRecord, extra: dict[str, Any]) -> ServiceRecord:
    """Copy of ``record`` with the keys of ``extra`` it does not have yet."""

    merged = dict(record)
    for key, value in extra.items():
        if key not in merged:
            merged[key] = "" if value is None else value
    return merged


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_base(deployment_links: Iterable[str]) -> ServiceSet:
    """One record per distinct service found in the deployment links.

    Links without a ``deploy_<name>`` segment are skipped. Duplicates are
    detected case-insensitively and the first link wins.
    """

    records: ServiceSet = []
    seen: set[str] = set()
    for link in deployment_links:
        service_name = extract_service_name_from_link(link)
        if not service_name:
            continue
        key = service_name.lower()
        if key in seen:
            continue
        seen.add(key)
        records.append(_base_record(service_name, link.strip()))
    return records


def enrich_with_tabular(base: ServiceSet, tables: Sequence[Table], table_labels: Sequence[str]) -> ServiceSet:
    """Join services CSV tables onto the base records.

    A record matching rows in N tables becomes N records, each tagged with that
    table's label in ``Environment``. A record matching nothing passes through
    as the same object.
    """

    if len(tables) != len(table_labels):
        raise ValueError(f"Got {len(tables)} tables but {len(table_labels)} labels")
    if not tables:
        return base

    enriched: ServiceSet = []
    fanned_out = 0
    for record in base:
        service_name = record.get(IDENTITY_COLUMN, "")
        matches = 0
        for table, label in zip(tables, table_labels):
            matching_row = next(
                (row for row in table if names_match(row.get(IDENTITY_COLUMN, ""), service_name)),
                None,
            )
            if matching_row is None:
                continue
            merged = _merge_absent(record, matching_row)
            merged[ENVIRONMENT_COLUMN] = label
            enriched.append(merged)
            matches += 1

        if matches == 0:
            enriched.append(record)
        elif matches > 1:
            fanned_out += 1

    logger.debug("tabular_enrichment_done", records=len(enriched), tables=len(tables), fanned_out=fanned_out)
    return enriched


def tracker_name_pattern(service_name: str) -> re.Pattern[str] | None:
    """Whole-token pattern for a service name inside free text.

    The token must be bounded by string edges, whitespace, ``-`` or ``_``;
    hyphens in the name also match underscores.
    """

    key = normalize_service_name(service_name)
    if not key:
        return None
    body = re.escape(key).replace(r"\-", "-").replace("-", "[-_]")
    return re.compile(rf"(?:^|[\s_-]){body}(?:[\s_-]|$)", re.IGNORECASE)


def enrich_with_tracker_data(records: ServiceSet, tracker_rows: Table) -> ServiceSet:
    """Attach the first tracker row whose ``Summary`` mentions the service."""

    if not tracker_rows:
        return records

    enriched: ServiceSet = []
    matched = 0
    for record in records:
        pattern = tracker_name_pattern(record.get(IDENTITY_COLUMN, ""))
        matching_row = None
        if pattern is not None:
            matching_row = next(
                (row for row in tracker_rows if pattern.search(row.get(SUMMARY_COLUMN) or "")),
                None,
            )
        if matching_row is None:
            enriched.append(record)
            continue
        enriched.append(_merge_absent(record, matching_row))
        matched += 1

    logger.debug("tracker_enrichment_done", records=len(records), matched=matched)
    return enriched


def enrich_with_version_manifests(records: ServiceSet, manifests: Sequence[VersionManifest]) -> ServiceSet:
    """Add ``<prefix>_version_<field>`` columns from each matching manifest entry."""

    if not manifests:
        return records

    enriched: ServiceSet = []
    for record in records:
        service_name = record.get(IDENTITY_COLUMN, "")
        updated = record
        for manifest in manifests:
            entry = next(
                (item for item in manifest.rows if names_match(_cell_text(item.get("service")), service_name)),
                None,
            )
            if entry is None:
                continue
            prefix = manifest_prefix(manifest.file_label)
            for field_name, value in entry.items():
                if field_name == "service":
                    continue
                column = f"{prefix}_version_{field_name}"
                if column in updated:
                    continue
                if updated is record:
                    updated = dict(record)
                updated[column] = _cell_text(value)
        enriched.append(updated)
    return enriched


def add_missing_from_deployment_links(
    records: ServiceSet,
    all_headers: Sequence[str],
    deployment_links: Iterable[str],
) -> AddMissingResult:
    """Base-shaped rows for deployment-link services not yet in ``records``.

    Presence is checked on the normalized name, so ``svc-headless`` in the
    table covers ``deploy_svc``. Appending ``added`` and calling again yields
    nothing new.
    """

    extracted: dict[str, str] = {}
    for link in deployment_links:
        service_name = extract_service_name_from_link(link)
        if service_name and service_name not in extracted:
            extracted[service_name] = link.strip()

    present = {normalize_service_name(record.get(IDENTITY_COLUMN, "")) for record in records}
    present.discard("")

    added: ServiceSet = []
    for service_name, link in extracted.items():
        key = normalize_service_name(service_name)
        if key in present:
            continue
        present.add(key)
        row = _base_record(service_name, link)
        for header in all_headers:
            row.setdefault(header, "")
        added.append(row)

    return AddMissingResult(added=added, count=len(added), service_names=list(extracted))
