"""Typed containers shared by the ingestors, the engine and the adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeAlias

# Column names with fixed meaning across the pipeline.
IDENTITY_COLUMN = "Service0"
LINK_COLUMN = "Jenkins Link"
ENVIRONMENT_COLUMN = "Environment"
SUMMARY_COLUMN = "Summary"
SUMMARY_FALLBACK_COLUMN = "Summary0"
STATUS_COLUMN = "Status0"
BUILD_IMAGES_COLUMN = "build_images"
BUILD_BUNDLE_COLUMN = "build_bundle"

# Sentinel cell values written by adapters when a lookup does not resolve.
NOT_FOUND = "Not found"
ERROR = "Error"
BUILD_NOT_FOUND = "Build not found"

ServiceRecord: TypeAlias = Dict[str, str]
ServiceSet: TypeAlias = List[ServiceRecord]
Table: TypeAlias = List[Dict[str, str]]
ProgressCallback: TypeAlias = Callable[[int, int, str], None]


@dataclass(slots=True)
class VersionManifest:
    """Parsed ``service_versions`` document and the file label it came from."""

    file_label: str
    rows: list[dict[str, Any]]


@dataclass(slots=True)
class AddMissingResult:
    """New base-shaped rows for deployment-link services absent from a table."""

    added: ServiceSet
    count: int
    service_names: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AdapterResult:
    """Output of an enrichment adapter call."""

    updated_data: ServiceSet
    updated_headers: list[str]


class ProgressTracker:
    """Reports ``(completed, total, message)`` with monotonic counters.

    ``completed`` strictly increases on every report and ``total`` only grows,
    so a caller can drive a progress bar without clamping.
    """

    def __init__(self, total: int, callback: Optional[ProgressCallback] = None):
        self.total = max(int(total), 0)
        self.completed = 0
        self._callback = callback

    def extend(self, extra: int) -> None:
        if extra > 0:
            self.total += extra

    def advance(self, message: str = "") -> None:
        self.completed += 1
        if self.completed > self.total:
            self.total = self.completed
        if self._callback is not None:
            self._callback(self.completed, self.total, message)
