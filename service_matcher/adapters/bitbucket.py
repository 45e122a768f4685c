"""Source-control lookup: last committer per service directory in a Bitbucket repo."""

from __future__ import annotations

import re
from typing import Any, Optional
from urllib.parse import quote

import requests

from ..config import BitbucketConfig
from ..errors import MissingConfigError
from ..http_client import get_json
from ..logging_utils import logger
from ..models import ERROR, IDENTITY_COLUMN, NOT_FOUND, AdapterResult, ProgressCallback, ProgressTracker, ServiceSet
from ..names import normalize_service_name, underscore_form
from .common import LOOKUP_ERRORS, anchor, with_columns

COMMITTER_COLUMN = "Last Committer"
COMMIT_COLUMN = "Last Commit"
DIRECTORY_TYPE = "commit_directory"

# Upper bound on listing pages so a looping ``next`` cannot hang a request.
MAX_PAGES = 50

_EMAIL_RE = re.compile(r"\s*<[^>]*>\s*$")


def _repo_url(config: BitbucketConfig) -> str:
    return f"{config.api_base}/repositories/{quote(config.workspace)}/{quote(config.repo)}"


def _listing_url(config: BitbucketConfig) -> str:
    url = f"{_repo_url(config)}/src/{quote(config.branch, safe='')}/"
    if config.path:
        url += f"{quote(config.path)}/"
    return url


def list_service_directories(config: BitbucketConfig, *, session: Optional[requests.Session] = None) -> dict[str, str]:
    """Map each directory basename (underscore form) to its repository path."""

    directories: dict[str, str] = {}
    url: Optional[str] = _listing_url(config)
    pages = 0
    while url and pages < MAX_PAGES:
        data = get_json(
            url, session=session, headers=config.auth_headers(),
            timeout=config.timeout, max_retries=config.max_retries,
        )
        pages += 1
        if not isinstance(data, dict):
            raise ValueError("unexpected directory listing response")
        for entry in data.get("values") or []:
            if not isinstance(entry, dict) or entry.get("type") != DIRECTORY_TYPE:
                continue
            path = str(entry.get("path") or "").rstrip("/")
            key = underscore_form(path.rsplit("/", 1)[-1])
            if key and key not in directories:
                directories[key] = path
        url = data.get("next")
    logger.debug("bitbucket_directories_listed", directories=len(directories), pages=pages)
    return directories


def _author_name(author: Any) -> str:
    if not isinstance(author, dict):
        return ""
    user = author.get("user")
    if isinstance(user, dict) and user.get("display_name"):
        return str(user["display_name"])
    return _EMAIL_RE.sub("", str(author.get("raw") or "")).strip()


def fetch_latest_commit(
    path: str, config: BitbucketConfig, *, session: Optional[requests.Session] = None
) -> Optional[dict[str, Any]]:
    """Newest commit touching ``path`` on the configured branch, or ``None``."""

    data = get_json(
        f"{_repo_url(config)}/commits/{quote(config.branch, safe='')}",
        session=session,
        headers=config.auth_headers(),
        params={"path": path, "pagelen": 1},
        timeout=config.timeout,
        max_retries=config.max_retries,
    )
    if not isinstance(data, dict):
        raise ValueError("unexpected commit listing response")
    values = data.get("values") or []
    return values[0] if values and isinstance(values[0], dict) else None


def _commit_link(commit: dict[str, Any]) -> str:
    href = ((commit.get("links") or {}).get("html") or {}).get("href") or ""
    label = str(commit.get("hash") or "")[:12] or href
    return anchor(href, label) if href else label


def fetch_last_committer(
    records: ServiceSet,
    headers: list[str],
    config: BitbucketConfig,
    *,
    on_progress: Optional[ProgressCallback] = None,
    session: Optional[requests.Session] = None,
) -> AdapterResult:
    """Write ``Last Committer`` and ``Last Commit`` for each service directory."""

    if not config.workspace or not config.repo or not config.branch:
        raise MissingConfigError("Bitbucket workspace, repository and branch must be configured")
    if not config.token and not (config.username and config.app_password):
        raise MissingConfigError("Bitbucket credentials are not configured")

    session = session or requests.Session()
    progress = ProgressTracker(len(records) + 1, on_progress)
    columns = (COMMITTER_COLUMN, COMMIT_COLUMN)

    try:
        directories = list_service_directories(config, session=session)
    except LOOKUP_ERRORS as e:
        logger.error("bitbucket_listing_failed", workspace=config.workspace, repo=config.repo, error=str(e))
        directories = None
    progress.advance("Listed repository directories")

    updated: ServiceSet = []
    for record in records:
        row = dict(record)
        service_name = record.get(IDENTITY_COLUMN) or ""
        if directories is None:
            row[COMMITTER_COLUMN] = row[COMMIT_COLUMN] = ERROR
        elif not normalize_service_name(service_name) or underscore_form(service_name) not in directories:
            row[COMMITTER_COLUMN] = row[COMMIT_COLUMN] = NOT_FOUND
        else:
            path = directories[underscore_form(service_name)]
            try:
                commit = fetch_latest_commit(path, config, session=session)
            except LOOKUP_ERRORS as e:
                logger.warn("bitbucket_commit_lookup_failed", service=service_name, path=path, error=str(e))
                row[COMMITTER_COLUMN] = row[COMMIT_COLUMN] = ERROR
            else:
                if commit is None:
                    row[COMMITTER_COLUMN] = row[COMMIT_COLUMN] = NOT_FOUND
                else:
                    row[COMMITTER_COLUMN] = _author_name(commit.get("author")) or NOT_FOUND
                    row[COMMIT_COLUMN] = _commit_link(commit) or NOT_FOUND
        updated.append(row)
        progress.advance(f"Last committer for {service_name or '(unnamed)'}")

    logger.info("bitbucket_last_committer_done", records=len(records), directories=len(directories or {}))
    return AdapterResult(updated_data=updated, updated_headers=with_columns(headers, columns))
