"""CSV export of the reconciled table."""

from __future__ import annotations

from html.parser import HTMLParser
from pathlib import Path
from typing import Optional, Sequence, Union

from .file_utils import atomic_write_text
from .logging_utils import logger
from .models import ServiceSet
from .table_state import TableState

DEFAULT_EXPORT_NAME = "merged_jira_data.csv"


def _quote(value) -> str:
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def convert_to_csv(records: ServiceSet, headers: Sequence[str]) -> str:
    """Every field quoted; rows joined with ``\\n`` and no trailing newline."""

    lines = [",".join(_quote(h) for h in headers)]
    for row in records:
        lines.append(",".join(_quote(row.get(h)) for h in headers))
    return "\n".join(lines)


class _AnchorCollector(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.links: list[str] = []
        self.text_parts: list[str] = []

    def handle_starttag(self, tag, attrs):
        if tag != "a":
            return
        href = dict(attrs).get("href")
        if href:
            self.links.append(href)

    def handle_data(self, data):
        self.text_parts.append(data)


def parse_html_content(content: Optional[str]) -> tuple[str, list[str]]:
    """Return ``(text, hrefs)`` for a cell that may hold anchor markup."""

    if not content or "<" not in content:
        return (content or ""), []
    parser = _AnchorCollector()
    parser.feed(content)
    parser.close()
    return "".join(parser.text_parts).strip(), parser.links


def expand_links_into_columns(records: ServiceSet) -> tuple[ServiceSet, list[str]]:
    """Split anchor cells into their text plus ``<col>_Link`` columns.

    A cell with several anchors gets ``<col>_Link_1``, ``<col>_Link_2``...
    Returns the expanded rows and the link columns in first-seen order.
    """

    expanded: ServiceSet = []
    new_headers: dict[str, None] = {}
    for row in records:
        new_row = {}
        for column, content in row.items():
            text, links = parse_html_content(content)
            if not links:
                new_row[column] = content if content is not None else ""
                continue
            new_row[column] = text
            for index, link in enumerate(links, start=1):
                link_column = f"{column}_Link" if len(links) == 1 else f"{column}_Link_{index}"
                new_row[link_column] = link
                new_headers.setdefault(link_column, None)
        expanded.append(new_row)
    return expanded, list(new_headers)


def _with_link_columns(headers: Sequence[str], link_headers: Sequence[str]) -> list[str]:
    """Place each ``<col>_Link*`` column right after ``<col>``."""

    result: list[str] = []
    for header in headers:
        result.append(header)
        result.extend(
            h for h in link_headers
            if h == f"{header}_Link" or h.startswith(f"{header}_Link_")
        )
    placed = set(result)
    result.extend(h for h in link_headers if h not in placed)
    return result


def export_table(state: TableState, expand_links: bool = False) -> str:
    """CSV of what the table shows: visible columns, current filter and sort."""

    rows = state.view()
    headers = state.display_headers(state.filtered_records())
    if expand_links:
        rows, link_headers = expand_links_into_columns(rows)
        headers = _with_link_columns(headers, link_headers)
    return convert_to_csv(rows, headers)


def write_export(state: TableState, path: Union[str, Path], expand_links: bool = False) -> Path:
    path = Path(path)
    text = export_table(state, expand_links=expand_links)
    atomic_write_text(path, text)
    logger.info("table_exported", path=str(path), rows=len(state.view()), expand_links=expand_links)
    return path
