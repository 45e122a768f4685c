"""Helpers shared by the enrichment adapters."""

from __future__ import annotations

from html import escape
from typing import Iterable, Sequence

import requests

from ..names import normalize_service_name, underscore_form

# Per-record failures that degrade to a sentinel instead of aborting the batch.
LOOKUP_ERRORS = (requests.RequestException, ValueError, KeyError, TypeError)


def anchor(href: str, text: str) -> str:
    """Link markup stored in build/commit cells."""

    return f'<a href="{escape(href, quote=True)}" target="_blank" rel="noopener noreferrer">{escape(str(text))}</a>'


def with_columns(headers: Sequence[str], columns: Iterable[str]) -> list[str]:
    """``headers`` plus any of ``columns`` not already present, in order."""

    updated = list(headers)
    for column in columns:
        if column not in updated:
            updated.append(column)
    return updated


def link_mentions(link: str, service_name: str) -> bool:
    """Whether a job URL mentions the service (hyphen or underscore spelling)."""

    key = normalize_service_name(service_name)
    if not key:
        return False
    lowered = link.lower()
    return key in lowered or underscore_form(key) in lowered
