"""Full reconciliation run: parse every input, then build a fresh TableState."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

from .columns import collect_columns, organize_headers
from .errors import InputValidationError
from .ingest import (
    load_service_table,
    load_tracker_table,
    parse_deployment_links,
    parse_version_manifest,
    table_label_from_filename,
)
from .logging_utils import logger
from .models import ServiceSet
from .reconcile import build_base, enrich_with_tabular, enrich_with_tracker_data, enrich_with_version_manifests
from .table_state import TableState

NamedText = Tuple[str, str]


def _links_list(deployment_links) -> list[str]:
    if isinstance(deployment_links, str):
        return parse_deployment_links(deployment_links)
    return [link.strip() for link in deployment_links or [] if link and link.strip()]


def process_inputs(
    deployment_links,
    service_files: Sequence[NamedText] = (),
    tracker_file: Optional[NamedText] = None,
    manifest_files: Sequence[NamedText] = (),
    *,
    env_filter: str = "",
) -> TableState:
    """Reconcile all inputs into a new table.

    ``deployment_links`` is newline-separated text or a list of URLs; files
    are ``(name, text)`` pairs. Every file is validated before any record is
    built, so a bad upload leaves nothing half-processed.
    """

    links = _links_list(deployment_links)
    if not links:
        raise InputValidationError("Deployment links are not configured; add at least one deploy_<name> URL.")

    tables = [load_service_table(text, name) for name, text in service_files]
    labels = [table_label_from_filename(name) for name, _ in service_files]
    tracker_rows = load_tracker_table(tracker_file[1], tracker_file[0]) if tracker_file else []
    manifests = [parse_version_manifest(text, name) for name, text in manifest_files]

    records: ServiceSet = build_base(links)
    if not records:
        raise InputValidationError("No service names could be extracted from the deployment links.")
    records = enrich_with_tabular(records, tables, labels)
    records = enrich_with_tracker_data(records, tracker_rows)
    records = enrich_with_version_manifests(records, manifests)

    has_tracker_data = bool(tracker_rows)
    tracker_columns = collect_columns(tracker_rows)
    manifest_labels = [manifest.file_label for manifest in manifests]
    headers = organize_headers(collect_columns(records), has_tracker_data, tracker_columns, manifest_labels)

    state = TableState()
    state.load(records, headers, manifest_labels, tracker_columns, has_tracker_data)
    state.env_filter = env_filter or ""
    if has_tracker_data:
        state.filters.only_changes = True

    logger.info(
        "reconciliation_done",
        links=len(links),
        services=len(records),
        service_tables=len(tables),
        tracker_rows=len(tracker_rows),
        manifests=len(manifests),
        columns=len(headers),
    )
    return state
