"""Health-check API lookups: per-environment status, version and bundle.

Environments are independent, so each one is fetched on its own worker and
all of them are awaited before any row is written.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Optional

import requests

from ..config import HealthConfig
from ..errors import MissingConfigError
from ..http_client import basic_auth_headers, get_json
from ..logging_utils import logger
from ..models import ERROR, IDENTITY_COLUMN, NOT_FOUND, AdapterResult, ProgressCallback, ProgressTracker, ServiceSet
from ..names import normalize_service_name, underscore_form
from .common import LOOKUP_ERRORS, with_columns


def health_column(env: str) -> str:
    return f"{env} Health"


def version_column(env: str) -> str:
    return f"Version {env}"


def bundle_column(env: str) -> str:
    return f"Bundle {env}"


def _check_config(config: HealthConfig) -> None:
    if not config.environments:
        raise MissingConfigError("Health environments are not configured")
    if not config.url_template:
        raise MissingConfigError("Health API URL template is not configured")
    if not config.username or not config.password:
        raise MissingConfigError("Health API credentials are not configured")


def _fetch_env(env: str, config: HealthConfig, session: Optional[requests.Session]) -> list[dict[str, Any]]:
    # requests.Session is not thread-safe; without an injected session each
    # worker opens and closes its own.
    own = requests.Session() if session is None else None
    try:
        data = get_json(
            config.url_for(env),
            session=session or own,
            headers=basic_auth_headers(config.username, config.password),
            timeout=config.timeout,
            max_retries=config.max_retries,
        )
    finally:
        if own is not None:
            own.close()
    if not isinstance(data, list):
        raise ValueError(f"expected a list of applications, got {type(data).__name__}")
    return [app for app in data if isinstance(app, dict)]


def fetch_environments(
    config: HealthConfig,
    *,
    session: Optional[requests.Session] = None,
    progress: Optional[ProgressTracker] = None,
) -> dict[str, Optional[dict[str, dict[str, Any]]]]:
    """Fetch every environment concurrently.

    Returns ``{env: {normalized_name: app}}``; an environment whose call
    failed maps to ``None``. An injected ``session`` is shared by all
    workers and must tolerate concurrent use.
    """

    results: dict[str, Optional[dict[str, dict[str, Any]]]] = {}
    with ThreadPoolExecutor(max_workers=len(config.environments)) as pool:
        futures = {pool.submit(_fetch_env, env, config, session): env for env in config.environments}
        for future in as_completed(futures):
            env = futures[future]
            try:
                apps = future.result()
            except LOOKUP_ERRORS as e:
                logger.warn("health_env_fetch_failed", env=env, error=str(e))
                results[env] = None
            else:
                index: dict[str, dict[str, Any]] = {}
                for app in apps:
                    key = underscore_form(app.get("name"))
                    if key and key not in index:
                        index[key] = app
                results[env] = index
                logger.debug("health_env_fetched", env=env, applications=len(apps))
            if progress is not None:
                progress.advance(f"Fetched {env}")
    return results


def _lookup(index: dict[str, dict[str, Any]], service_name: str) -> Optional[dict[str, Any]]:
    return index.get(underscore_form(service_name))


def _metadata(app: dict[str, Any]) -> dict[str, Any]:
    instances = app.get("instances")
    if not isinstance(instances, list) or not instances or not isinstance(instances[0], dict):
        return {}
    registration = instances[0].get("registration")
    if not isinstance(registration, dict):
        return {}
    metadata = registration.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def fetch_health_status(
    records: ServiceSet,
    headers: list[str],
    config: HealthConfig,
    *,
    on_progress: Optional[ProgressCallback] = None,
    session: Optional[requests.Session] = None,
) -> AdapterResult:
    """Write ``<env> Health`` for every configured environment."""

    _check_config(config)
    progress = ProgressTracker(len(config.environments) + len(records), on_progress)
    by_env = fetch_environments(config, session=session, progress=progress)
    columns = [health_column(env) for env in config.environments]

    updated: ServiceSet = []
    for record in records:
        row = dict(record)
        service_name = record.get(IDENTITY_COLUMN) or ""
        for env, column in zip(config.environments, columns):
            if not normalize_service_name(service_name):
                row[column] = ""
                continue
            index = by_env.get(env)
            if index is None:
                row[column] = ERROR
                continue
            app = _lookup(index, service_name)
            status = app.get("status") if app else None
            row[column] = str(status) if status else NOT_FOUND
        updated.append(row)
        progress.advance(f"Health for {service_name or '(unnamed)'}")

    logger.info("health_status_done", environments=len(config.environments), records=len(records))
    return AdapterResult(updated_data=updated, updated_headers=with_columns(headers, columns))


def fetch_build_versions(
    records: ServiceSet,
    headers: list[str],
    config: HealthConfig,
    *,
    on_progress: Optional[ProgressCallback] = None,
    session: Optional[requests.Session] = None,
) -> AdapterResult:
    """Write ``Version <env>`` and ``Bundle <env>`` from instance metadata."""

    _check_config(config)
    progress = ProgressTracker(len(config.environments) + len(records), on_progress)
    by_env = fetch_environments(config, session=session, progress=progress)

    updated: ServiceSet = []
    for record in records:
        row = dict(record)
        service_name = record.get(IDENTITY_COLUMN) or ""
        for env in config.environments:
            index = by_env.get(env)
            if index is None:
                row[version_column(env)] = ERROR
                row[bundle_column(env)] = ERROR
                continue
            app = _lookup(index, service_name) if normalize_service_name(service_name) else None
            metadata = _metadata(app) if app else {}
            row[version_column(env)] = str(metadata.get(config.version_key) or NOT_FOUND)
            row[bundle_column(env)] = str(metadata.get(config.bundle_key) or NOT_FOUND)
        updated.append(row)
        progress.advance(f"Versions for {service_name or '(unnamed)'}")

    columns = [version_column(env) for env in config.environments]
    columns += [bundle_column(env) for env in config.environments]
    logger.info("build_versions_done", environments=len(config.environments), records=len(records))
    return AdapterResult(updated_data=updated, updated_headers=with_columns(headers, columns))
