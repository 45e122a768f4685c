"""Tests for column classification and header ordering."""

from __future__ import annotations

import pytest

from service_matcher.columns import (
    collect_columns,
    is_auto_visible_column,
    is_bundle_column,
    is_health_column,
    is_version_column,
    organize_headers,
)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Version prod", True),
        ("version eu-west.1", True),
        ("Version two words", False),
        ("version_tag", True),
        ("prod_version_tag", True),
        ("my_env_version_tag", False),
        ("Owner", False),
        ("", False),
    ],
)
def test_is_version_column(name: str, expected: bool) -> None:
    assert is_version_column(name) is expected


def test_manifest_label_extends_version_family() -> None:
    """A known manifest prefix wins even when the generic rule would not."""
    assert not is_version_column("_x_version_tag")
    assert is_version_column("_x_version_tag", ["_x.json"])


def test_other_predicates() -> None:
    assert is_bundle_column("Bundle prod")
    assert not is_bundle_column("Bundles")
    assert is_health_column("prod Health")
    assert not is_health_column("Health")
    assert is_auto_visible_column("build_images")
    assert is_auto_visible_column("Version prod")
    assert not is_auto_visible_column("prod_version_tag")


def test_collect_columns_preserves_first_seen_order() -> None:
    records = [{"Service0": "a", "B": "1"}, {"C": "2", "Service0": "b", "A": "3"}]
    assert collect_columns(records) == ["Service0", "B", "C", "A"]


def test_organize_headers_zones() -> None:
    columns = ["Owner", "prod_version_tag", "Service0", "Ticket", "Environment", "Jenkins Link", "Version prod", "Summary"]
    headers = organize_headers(columns, True, ["Summary", "Ticket", "Service0", "tracker_version_x", "Priority"])
    assert headers == [
        "Service0",
        "Jenkins Link",
        "Environment",
        "Summary",
        "Ticket",
        "Priority",
        "Owner",
        "prod_version_tag",
        "Version prod",
    ]


def test_organize_headers_always_leads_with_identity_and_link() -> None:
    headers = organize_headers(["Owner"], False)
    assert headers[:2] == ["Service0", "Jenkins Link"]
    assert "Environment" not in headers


def test_organize_headers_is_deterministic_and_distinct() -> None:
    columns = ["X", "prod_version_a", "Service0", "Y", "X", "version_b"]
    first = organize_headers(columns, False)
    second = organize_headers(columns, False)
    assert first == second
    assert len(first) == len(set(first))
    assert first[-2:] == ["prod_version_a", "version_b"]


def test_tracker_columns_ignored_without_tracker_data() -> None:
    headers = organize_headers(["Service0", "Owner"], False, ["Summary"])
    assert "Summary" not in headers
