"""Pytest configuration and shared fakes for the service matcher tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any
from unittest import mock

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    # Ensure tests can import `service_matcher` without package installation.
    sys.path.insert(0, project_root_str)


def fake_response(payload: Any = None, status: int = 200) -> mock.Mock:
    """A ``requests.Response`` stand-in carrying a JSON payload."""
    import requests

    response = mock.Mock()
    response.status_code = status
    response.headers = {}
    response.content = b"{}" if payload is not None else b""
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    else:
        response.raise_for_status.return_value = None
    return response


class FakeSession:
    """Routes ``request(method, url, ...)`` to canned responses by URL.

    A route value may be a payload, a ``(payload, status)`` tuple, an
    exception instance to raise, or a callable taking the request kwargs and
    returning one of those. Unknown URLs answer 404.
    """

    def __init__(self, routes: dict[str, Any]):
        self.routes = routes
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> mock.Mock:
        self.calls.append((url, kwargs))
        if url not in self.routes:
            return fake_response({"error": "not found"}, status=404)
        route = self.routes[url]
        if callable(route):
            route = route(kwargs)
        if isinstance(route, BaseException):
            raise route
        if isinstance(route, tuple):
            return fake_response(route[0], status=route[1])
        return fake_response(route)

    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def no_sleep(monkeypatch):
    """Make retry backoff instant."""
    monkeypatch.setattr("service_matcher.http_client.time.sleep", lambda seconds: None)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove credential variables that could leak in from the developer's shell."""
    for name in (
        "JENKINS_BUILD_USERNAME", "JENKINS_USERNAME", "JENKINS_USER",
        "JENKINS_BUILD_PASSWORD", "JENKINS_PASSWORD", "JENKINS_API_TOKEN", "JENKINS_TOKEN",
        "JENKINS_DEPLOYS_USERNAME", "JENKINS_DEPLOYS_PASSWORD",
        "HEALTH_API_USERNAME", "HEALTH_USERNAME", "HEALTH_API_PASSWORD", "HEALTH_PASSWORD",
        "BITBUCKET_TOKEN", "BITBUCKET_ACCESS_TOKEN", "BITBUCKET_USERNAME", "BITBUCKET_USER",
        "BITBUCKET_APP_PASSWORD", "BITBUCKET_PASSWORD", "SERVICE_MATCHER_SETTINGS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_session():
    """Factory for :class:`FakeSession` instances."""
    return FakeSession
