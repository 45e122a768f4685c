"""Service inventory reconciliation: merge deployment links, CSV exports and
version manifests into one table, then enrich it from CI, health and
source-control APIs."""

from .columns import organize_headers
from .drift import DriftStatus, classify_drift, expected_tag, extract_build_number, versions_equal
from .errors import AdapterRequestError, InputValidationError, MissingConfigError, ServiceMatcherError
from .names import names_match, normalize_service_name
from .pipeline import process_inputs
from .reconcile import (
    add_missing_from_deployment_links,
    build_base,
    enrich_with_tabular,
    enrich_with_tracker_data,
    enrich_with_version_manifests,
)
from .table_state import TableState

__version__ = "0.1.0"

__all__ = [
    "AdapterRequestError",
    "DriftStatus",
    "InputValidationError",
    "MissingConfigError",
    "ServiceMatcherError",
    "TableState",
    "add_missing_from_deployment_links",
    "build_base",
    "classify_drift",
    "enrich_with_tabular",
    "enrich_with_tracker_data",
    "enrich_with_version_manifests",
    "expected_tag",
    "extract_build_number",
    "names_match",
    "normalize_service_name",
    "organize_headers",
    "process_inputs",
    "versions_equal",
]
