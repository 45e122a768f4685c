"""
Admin API: test connections (read-only) and validate settings.
Credentials are accepted only in request body for the test call; never stored or logged.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from fastapi import APIRouter
from pydantic import BaseModel, Field, ValidationError

from .config import DEFAULT_BITBUCKET_API, Settings
from .http_client import basic_auth_headers, bearer_headers, safe_json

router = APIRouter(prefix="/api/admin", tags=["admin"])

TEST_TIMEOUT = 15


# ---------------------------------------------------------------------------
# Request/response models
# ---------------------------------------------------------------------------


class TestJenkinsRequest(BaseModel):
    url: str = ""
    username: str = ""
    password: str = ""


class TestHealthRequest(BaseModel):
    urlTemplate: str = ""
    environment: str = ""
    username: str = ""
    password: str = ""


class TestBitbucketRequest(BaseModel):
    apiBase: str = DEFAULT_BITBUCKET_API
    workspace: str = ""
    repo: str = ""
    username: str = ""
    appPassword: str = ""
    token: str = ""


class ValidateRequest(BaseModel):
    config: Dict[str, Any] = Field(default_factory=dict)


def _ok(checked_at: str, message: str = "ok", meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"ok": True, "checkedAt": checked_at, "message": message, "meta": meta or {}}


def _fail(checked_at: str, message: str, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"ok": False, "checkedAt": checked_at, "message": message, "meta": meta or {}}


def _mask_token(t: str) -> str:
    if not t or len(t) < 8:
        return "***"
    return t[:4] + "…" + t[-4:]


# ---------------------------------------------------------------------------
# Test connections (read-only)
# ---------------------------------------------------------------------------


@router.post("/test/jenkins")
def test_jenkins(req: TestJenkinsRequest) -> Dict[str, Any]:
    """Check a Jenkins job/view URL with basic auth. Read-only."""
    ts = datetime.now(tz=timezone.utc).isoformat()
    url = (req.url or "").strip().rstrip("/")
    if not url:
        return _fail(ts, "Jenkins URL is required.")
    if not req.username or not req.password:
        return _fail(ts, "Jenkins username and password/token are required.")

    api_url = url if url.endswith("/api/json") else f"{url}/api/json"
    try:
        r = requests.get(api_url, headers=basic_auth_headers(req.username, req.password), timeout=TEST_TIMEOUT)
        if r.status_code in (401, 403):
            return _fail(ts, "Invalid credentials or insufficient permissions.", {"masked": _mask_token(req.password)})
        if r.status_code == 404:
            return _fail(ts, "Job or view not found.", {"url": url})
        r.raise_for_status()
        data = safe_json(r)
        jobs = data.get("jobs") if isinstance(data, dict) else None
        meta = {"url": url, "masked": _mask_token(req.password)}
        if isinstance(jobs, list):
            meta["jobs"] = len(jobs)
        return _ok(ts, "Jenkins reachable, credentials valid.", meta)
    except requests.RequestException as e:
        return _fail(ts, f"Request failed: {str(e)}", {"error": str(e)})


@router.post("/test/health")
def test_health(req: TestHealthRequest) -> Dict[str, Any]:
    """Fetch the application list of one environment. Read-only."""
    ts = datetime.now(tz=timezone.utc).isoformat()
    template = (req.urlTemplate or "").strip()
    env = (req.environment or "").strip()
    if not template or "{env}" not in template:
        return _fail(ts, "Health URL template with an {env} placeholder is required.")
    if not env:
        return _fail(ts, "Environment is required.")
    if not req.username or not req.password:
        return _fail(ts, "Health API username and password are required.")

    try:
        url = template.format(env=env)
    except (KeyError, IndexError, ValueError) as e:
        return _fail(ts, f"Invalid URL template: {e!r}. Only the {{env}} placeholder is supported.")
    try:
        r = requests.get(url, headers=basic_auth_headers(req.username, req.password), timeout=TEST_TIMEOUT)
        if r.status_code in (401, 403):
            return _fail(ts, "Invalid credentials.", {"env": env, "masked": _mask_token(req.password)})
        r.raise_for_status()
        data = safe_json(r)
        if not isinstance(data, list):
            return _fail(ts, "Unexpected response: expected a list of applications.", {"env": env})
        return _ok(ts, "Health API reachable.", {"env": env, "applications": len(data)})
    except requests.RequestException as e:
        return _fail(ts, f"Request failed: {str(e)}", {"error": str(e)})


@router.post("/test/bitbucket")
def test_bitbucket(req: TestBitbucketRequest) -> Dict[str, Any]:
    """Check repository access with a token or app password. Read-only."""
    ts = datetime.now(tz=timezone.utc).isoformat()
    workspace = (req.workspace or "").strip()
    repo = (req.repo or "").strip()
    if not workspace or not repo:
        return _fail(ts, "Bitbucket workspace and repository are required.")
    if req.token:
        headers = bearer_headers(req.token)
        secret = req.token
    elif req.username and req.appPassword:
        headers = basic_auth_headers(req.username, req.appPassword)
        secret = req.appPassword
    else:
        return _fail(ts, "Bitbucket token or username/app password is required.")

    base = (req.apiBase or DEFAULT_BITBUCKET_API).strip().rstrip("/")
    url = f"{base}/repositories/{workspace}/{repo}"
    try:
        r = requests.get(url, headers=headers, timeout=TEST_TIMEOUT)
        if r.status_code in (401, 403):
            return _fail(ts, "Invalid credentials or no access.", {"masked": _mask_token(secret)})
        if r.status_code == 404:
            return _fail(ts, "Repository not found or no access.", {"workspace": workspace, "repo": repo})
        r.raise_for_status()
        return _ok(ts, "Repository accessible.", {"workspace": workspace, "repo": repo, "masked": _mask_token(secret)})
    except requests.RequestException as e:
        return _fail(ts, f"Request failed: {str(e)}", {"error": str(e)})


@router.post("/validate")
def validate_settings(req: ValidateRequest) -> Dict[str, Any]:
    """Validate a settings document without saving it."""
    ts = datetime.now(tz=timezone.utc).isoformat()
    try:
        settings = Settings.model_validate(req.config)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        return _fail(ts, "Settings are invalid.", {"errors": errors})

    warnings = []
    if not settings.deployment_links:
        warnings.append("deployment_links is empty; processing will be rejected.")
    if settings.health_url_template and "{env}" not in settings.health_url_template:
        warnings.append("health_url_template has no {env} placeholder.")
    return _ok(ts, "Settings are valid.", {"warnings": warnings})
