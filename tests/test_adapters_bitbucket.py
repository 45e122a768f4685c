"""Tests for the last-committer lookup."""

from __future__ import annotations

import pytest
import requests

from service_matcher.adapters import fetch_last_committer
from service_matcher.config import BitbucketConfig
from service_matcher.errors import MissingConfigError

API = "https://bitbucket.example.com/2.0"
LISTING = f"{API}/repositories/acme/platform/src/main/services/"
PAGE_TWO = f"{API}/repositories/acme/platform/src/main/services/?page=2"
COMMITS = f"{API}/repositories/acme/platform/commits/main"

BILLING_COMMIT = {
    "hash": "0123456789abcdef0123",
    "author": {"raw": "Jane Doe <jane@example.com>", "user": {"display_name": "Jane D."}},
    "links": {"html": {"href": "https://bitbucket.example.com/acme/platform/commits/0123456789ab"}},
}


def _config(**overrides) -> BitbucketConfig:
    values = dict(
        workspace="acme",
        repo="platform",
        branch="main",
        path="services",
        api_base=API,
        token="tkn",
        max_retries=1,
    )
    values.update(overrides)
    return BitbucketConfig(**values)


def _commits(kwargs) -> object:
    path = kwargs["params"]["path"]
    if path == "services/billing-api":
        return {"values": [BILLING_COMMIT]}
    if path == "services/auth":
        return {"values": [{"hash": "feedbeef", "author": {"raw": "Build Bot <bot@example.com>"}}]}
    if path == "services/search":
        return requests.ConnectionError("reset")
    return {"values": []}


def _routes() -> dict:
    return {
        LISTING: {
            "values": [
                {"type": "commit_directory", "path": "services/billing-api"},
                {"type": "commit_file", "path": "services/README.md"},
                {"type": "commit_directory", "path": "services/search"},
            ],
            "next": PAGE_TWO,
        },
        PAGE_TWO: {
            "values": [
                {"type": "commit_directory", "path": "services/auth"},
                {"type": "commit_directory", "path": "services/empty"},
            ]
        },
        COMMITS: _commits,
    }


def test_last_committer_per_service(fake_session) -> None:
    records = [
        {"Service0": "billing_api"},
        {"Service0": "auth-headless"},
        {"Service0": "search"},
        {"Service0": "empty"},
        {"Service0": "ghost"},
    ]
    session = fake_session(_routes())

    result = fetch_last_committer(records, ["Service0"], _config(), session=session)

    rows = {row["Service0"]: row for row in result.updated_data}
    assert rows["billing_api"]["Last Committer"] == "Jane D."
    assert rows["billing_api"]["Last Commit"] == (
        '<a href="https://bitbucket.example.com/acme/platform/commits/0123456789ab" '
        'target="_blank" rel="noopener noreferrer">0123456789ab</a>'
    )
    assert rows["auth-headless"]["Last Committer"] == "Build Bot"
    assert rows["auth-headless"]["Last Commit"] == "feedbeef"
    assert rows["search"]["Last Committer"] == "Error"
    assert rows["empty"]["Last Committer"] == "Not found"
    assert rows["ghost"]["Last Commit"] == "Not found"
    assert result.updated_headers == ["Service0", "Last Committer", "Last Commit"]

    # the directory listing follows pagination
    assert session.urls()[:2] == [LISTING, PAGE_TWO]
    _, kwargs = session.calls[0]
    assert kwargs["headers"]["Authorization"] == "Bearer tkn"


def test_listing_failure_marks_every_row(fake_session) -> None:
    session = fake_session({LISTING: ({"error": "forbidden"}, 403)})
    result = fetch_last_committer([{"Service0": "billing-api"}, {"Service0": "auth"}], [], _config(), session=session)
    assert {row["Last Committer"] for row in result.updated_data} == {"Error"}
    assert {row["Last Commit"] for row in result.updated_data} == {"Error"}


def test_basic_auth_when_no_token(fake_session) -> None:
    session = fake_session({LISTING: {"values": []}})
    fetch_last_committer(
        [{"Service0": "billing"}], [], _config(token="", username="me", app_password="pw"), session=session
    )
    _, kwargs = session.calls[0]
    assert kwargs["headers"]["Authorization"].startswith("Basic ")


def test_root_listing_when_no_path(fake_session) -> None:
    root = f"{API}/repositories/acme/platform/src/main/"
    session = fake_session({root: {"values": [{"type": "commit_directory", "path": "billing"}]}, COMMITS: {"values": []}})
    result = fetch_last_committer([{"Service0": "billing"}], [], _config(path=""), session=session)
    assert session.urls()[0] == root
    assert result.updated_data[0]["Last Committer"] == "Not found"


@pytest.mark.parametrize(
    "overrides",
    [{"workspace": ""}, {"repo": ""}, {"branch": ""}, {"token": ""}, {"token": "", "username": "me"}],
)
def test_missing_config_fails_before_any_request(fake_session, overrides) -> None:
    session = fake_session(_routes())
    with pytest.raises(MissingConfigError):
        fetch_last_committer([{"Service0": "billing"}], [], _config(**overrides), session=session)
    assert session.calls == []
