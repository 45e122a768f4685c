"""CI build lookup: last production build per service job, and job-list refresh."""

from __future__ import annotations

from typing import Collection, Optional

import requests

from ..config import JenkinsBuildConfig, JenkinsJobListConfig
from ..errors import AdapterRequestError, MissingConfigError
from ..http_client import basic_auth_headers, get_json
from ..logging_utils import logger
from ..models import (
    BUILD_BUNDLE_COLUMN,
    BUILD_IMAGES_COLUMN,
    BUILD_NOT_FOUND,
    ERROR,
    IDENTITY_COLUMN,
    AdapterResult,
    ProgressCallback,
    ProgressTracker,
    ServiceSet,
)
from .common import LOOKUP_ERRORS, anchor, link_mentions, with_columns

PRODUCTION_MARKER = "production"


def _job_api_url(link: str) -> str:
    return f"{link.rstrip('/')}/api/json"


def _build_api_url(build_url: str) -> str:
    return build_url if build_url.endswith("api/json") else f"{build_url.rstrip('/')}/api/json"


def fetch_production_build(
    link: str,
    config: JenkinsBuildConfig,
    *,
    session: Optional[requests.Session] = None,
    progress: Optional[ProgressTracker] = None,
) -> str:
    """Return the id of the newest build whose display name says production.

    Only the first ``config.max_builds`` builds of the job are checked. An
    unreadable candidate build is skipped. Returns ``""`` when nothing
    qualifies; errors fetching the job itself propagate.
    """

    headers = basic_auth_headers(config.username, config.password)
    job = get_json(
        _job_api_url(link), session=session, headers=headers,
        timeout=config.timeout, max_retries=config.max_retries,
    )
    builds = job.get("builds") if isinstance(job, dict) else None
    if not isinstance(builds, list):
        return ""

    candidates = builds[: config.max_builds]
    if progress is not None:
        progress.extend(len(candidates))

    for position, build in enumerate(candidates, start=1):
        if progress is not None:
            progress.advance(f"Checking build {position}/{len(candidates)} of {link}")
        build_url = build.get("url") if isinstance(build, dict) else None
        if not build_url:
            continue
        try:
            data = get_json(
                _build_api_url(build_url), session=session, headers=headers,
                timeout=config.timeout, max_retries=config.max_retries,
            )
        except LOOKUP_ERRORS as e:
            logger.debug("jenkins_build_fetch_failed", url=build_url, error=str(e))
            continue
        if not isinstance(data, dict):
            continue
        display_name = str(data.get("displayName") or "")
        if PRODUCTION_MARKER in display_name.lower():
            build_id = data.get("id") or data.get("number")
            return str(build_id) if build_id not in (None, "") else ""
    return ""


def _build_cell(link: Optional[str], config: JenkinsBuildConfig, session, progress, service_name: str, kind: str) -> str:
    if not link:
        return BUILD_NOT_FOUND
    try:
        build_id = fetch_production_build(link, config, session=session, progress=progress)
    except LOOKUP_ERRORS as e:
        logger.warn("jenkins_build_lookup_failed", service=service_name, kind=kind, link=link, error=str(e))
        return ERROR
    return anchor(link, build_id) if build_id else BUILD_NOT_FOUND


def fetch_build_info(
    records: ServiceSet,
    headers: list[str],
    config: JenkinsBuildConfig,
    only_services: Optional[Collection[str]] = None,
    *,
    on_progress: Optional[ProgressCallback] = None,
    session: Optional[requests.Session] = None,
) -> AdapterResult:
    """Fill ``build_images`` / ``build_bundle`` with the production build per service.

    A record's images job is the first build link naming the service and
    containing ``images``; likewise for ``bundle``. With ``only_services``,
    rows for other services are copied untouched.
    """

    if not config.build_links:
        raise MissingConfigError("Jenkins build links are not configured")
    if not config.username or not config.password:
        raise MissingConfigError("Jenkins build API credentials are not configured")

    def selected(record) -> bool:
        name = record.get(IDENTITY_COLUMN) or ""
        return bool(name) and (only_services is None or name in only_services)

    targets = [record for record in records if selected(record)]
    links = [
        link for link in config.build_links
        if any(link_mentions(link, record[IDENTITY_COLUMN]) for record in targets)
    ]
    if not links:
        logger.warn("jenkins_no_matching_build_links", build_links=len(config.build_links), services=len(targets))
        return AdapterResult(updated_data=list(records), updated_headers=list(headers))

    progress = ProgressTracker(len(targets), on_progress)
    session = session or requests.Session()
    updated: ServiceSet = []
    for record in records:
        if not selected(record):
            updated.append(record)
            continue

        service_name = record[IDENTITY_COLUMN]
        images_link = next((l for l in links if link_mentions(l, service_name) and "images" in l.lower()), None)
        bundle_link = next((l for l in links if link_mentions(l, service_name) and "bundle" in l.lower()), None)

        row = dict(record)
        row[BUILD_IMAGES_COLUMN] = _build_cell(images_link, config, session, progress, service_name, "images")
        row[BUILD_BUNDLE_COLUMN] = _build_cell(bundle_link, config, session, progress, service_name, "bundle")
        updated.append(row)
        progress.advance(f"Fetched builds for {service_name}")

    logger.info("jenkins_build_info_done", services=len(targets), build_links=len(links))
    return AdapterResult(
        updated_data=updated,
        updated_headers=with_columns(headers, (BUILD_IMAGES_COLUMN, BUILD_BUNDLE_COLUMN)),
    )


def fetch_deployment_links(config: JenkinsJobListConfig, *, session: Optional[requests.Session] = None) -> list[str]:
    """Job URLs listed by a Jenkins view (``{"jobs": [{"url": ...}]}``)."""

    if not config.url:
        raise MissingConfigError("Jenkins job list URL is not configured")
    if not config.username or not config.password:
        raise MissingConfigError("Jenkins API credentials are not configured")

    try:
        data = get_json(
            config.url,
            session=session,
            headers=basic_auth_headers(config.username, config.password),
            timeout=config.timeout,
            max_retries=config.max_retries,
        )
    except (requests.RequestException, ValueError) as e:
        raise AdapterRequestError(f"Failed to fetch job list from {config.url}: {e}") from e

    jobs = data.get("jobs") if isinstance(data, dict) else None
    if not isinstance(jobs, list):
        raise AdapterRequestError('Invalid response format: "jobs" array not found')

    urls = [job["url"] for job in jobs if isinstance(job, dict) and job.get("url")]
    logger.info("jenkins_job_list_fetched", url=config.url, jobs=len(urls))
    return urls
