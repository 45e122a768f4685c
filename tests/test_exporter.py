"""Tests for CSV conversion and link expansion."""

from __future__ import annotations

from service_matcher.exporter import convert_to_csv, expand_links_into_columns, export_table, write_export
from service_matcher.table_state import TableState


def test_convert_to_csv_quotes_everything() -> None:
    records = [{"Service0": 'say "hi"', "Owner": None}, {"Service0": "b"}]
    text = convert_to_csv(records, ["Service0", "Owner"])
    assert text == '"Service0","Owner"\n"say ""hi""",""\n"b",""'


def test_expand_links_single_and_multiple() -> None:
    records = [
        {
            "Service0": "svc",
            "build_images": '<a href="https://ci/job/images">42</a>',
            "Links": '<a href="https://a">A</a> and <a href="https://b?x=1&amp;y=2">B</a>',
            "Plain": "text",
        }
    ]
    expanded, new_headers = expand_links_into_columns(records)
    row = expanded[0]
    assert row["build_images"] == "42"
    assert row["build_images_Link"] == "https://ci/job/images"
    assert row["Links"] == "A and B"
    assert row["Links_Link_1"] == "https://a"
    assert row["Links_Link_2"] == "https://b?x=1&y=2"
    assert row["Plain"] == "text"
    assert new_headers == ["build_images_Link", "Links_Link_1", "Links_Link_2"]


def test_export_table_follows_visible_columns_filter_and_sort() -> None:
    state = TableState()
    state.load(
        [
            {"Service0": "b", "Owner": "x", "Summary": "Deploy b", "build_images": '<a href="https://ci/b">5</a>'},
            {"Service0": "a", "Owner": "y", "Summary": "Deploy a", "build_images": "Build not found"},
            {"Service0": "c", "Owner": "z", "Summary": "", "build_images": ""},
        ],
        ["Service0", "Owner", "Summary", "build_images"],
    )
    state.hide_column("Owner")
    state.set_filters(only_changes=True)
    state.set_sort("Service0", "asc")

    assert export_table(state) == (
        '"Service0","Summary","build_images"\n'
        '"a","Deploy a","Build not found"\n'
        '"b","Deploy b","<a href=""https://ci/b"">5</a>"'
    )
    assert export_table(state, expand_links=True).splitlines()[0] == (
        '"Service0","Summary","build_images","build_images_Link"'
    )


def test_write_export_creates_file(tmp_path) -> None:
    state = TableState()
    state.load([{"Service0": "a"}], ["Service0"])
    path = write_export(state, tmp_path / "out" / "export.csv")
    assert path.read_text(encoding="utf-8") == '"Service0"\n"a"'
