"""End-to-end reconciliation runs."""

from __future__ import annotations

import json

import pytest

from service_matcher.errors import InputValidationError
from service_matcher.pipeline import process_inputs

LINKS = "https://ci/job/deploy_billing/\nhttps://ci/job/deploy_search/\n\nhttps://ci/job/deploy_auth/\n"
PROD = ("prod.csv", "Service0,Owner\nbilling-headless,team-a\nsearch,team-b\n")
STAGE = ("stage.csv", "Service0,Owner\nbilling,team-c\n")
TRACKER = ("jira.csv", "Summary,Ticket\nDeploy billing to prod_w1_20250101,J-1\n")
MANIFEST = ("prod_versions.json", json.dumps({"service_versions": [{"service": "billing", "tag": "v1"}]}))


def test_full_run() -> None:
    state = process_inputs(LINKS, [PROD, STAGE], TRACKER, [MANIFEST], env_filter="(prod)")

    assert [(r["Service0"], r.get("Environment")) for r in state.records] == [
        ("billing", "prod"),
        ("billing", "stage"),
        ("search", "prod"),
        ("auth", None),
    ]
    billing_prod = state.records[0]
    assert billing_prod["Owner"] == "team-a"
    assert billing_prod["Ticket"] == "J-1"
    assert billing_prod["prod_version_tag"] == "v1"

    assert state.headers[:3] == ["Service0", "Jenkins Link", "Environment"]
    assert state.headers[-1] == "prod_version_tag"
    assert state.has_tracker_data
    assert state.manifest_labels == ["prod_versions.json"]
    assert state.env_filter == "(prod)"


def test_tracker_data_turns_on_only_changes() -> None:
    state = process_inputs(LINKS, [PROD], TRACKER)
    assert state.filters.only_changes
    assert [r["Service0"] for r in state.filtered_records()] == ["billing"]

    without_tracker = process_inputs(LINKS, [PROD])
    assert not without_tracker.filters.only_changes
    assert len(without_tracker.filtered_records()) == 3


def test_links_only_run_accepts_a_list() -> None:
    state = process_inputs(["https://ci/job/deploy_a/", "  ", "https://ci/job/deploy_b/"])
    assert [r["Service0"] for r in state.records] == ["a", "b"]
    assert state.visible_headers == ["Service0", "Jenkins Link"]


@pytest.mark.parametrize("links", ["", "\n  \n", []])
def test_empty_links_are_rejected(links) -> None:
    with pytest.raises(InputValidationError, match="Deployment links"):
        process_inputs(links)


def test_links_without_service_names_are_rejected() -> None:
    with pytest.raises(InputValidationError, match="No service names"):
        process_inputs("https://ci/job/build_billing/")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"service_files": [PROD, ("broken.csv", "Name\nx\n")]},
        {"tracker_file": ("jira.csv", "Key\nJ-1\n")},
        {"manifest_files": [("v.json", "{}")]},
    ],
)
def test_any_bad_file_fails_the_whole_run(kwargs) -> None:
    with pytest.raises(InputValidationError):
        process_inputs(LINKS, **kwargs)
