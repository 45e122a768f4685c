"""Settings file handling and per-adapter configuration.

Non-secret settings (links, environments, repository coordinates) live in a
YAML or JSON file. Credentials are read from the environment only (a local
``.env`` is honored) and are never written back to the settings file.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import InputValidationError, MissingConfigError
from .file_utils import atomic_write_json, safe_read_json
from .http_client import basic_auth_headers, bearer_headers
from .logging_utils import logger

DEFAULT_SETTINGS_PATH = "service_matcher_settings.json"
DEFAULT_VERSION_KEY = "app.kubernetes.io/version"
DEFAULT_BUNDLE_KEY = "config-bundle-version"
DEFAULT_BITBUCKET_API = "https://api.bitbucket.org/2.0"


def load_environment(env_path: Optional[Union[str, Path]] = None) -> None:
    """Load ``.env`` if present (local dev); real env vars win."""
    if env_path:
        load_dotenv(env_path)
    else:
        load_dotenv()


def _env_any(*names: str) -> Optional[str]:
    """Return first non-empty environment variable value from given names."""
    for n in names:
        v = os.getenv(n)
        if v and str(v).strip():
            return str(v).strip()
    return None


def _split_lines(value: Any) -> Any:
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    if value is None:
        return []
    return value


class Settings(BaseModel):
    deployment_links: List[str] = Field(default_factory=list)
    build_links: List[str] = Field(default_factory=list)
    env_filter_regex: str = ""

    jenkins_job_list_url: str = ""
    jenkins_build_job_list_url: str = ""
    max_builds_to_check: int = 20

    health_environments: List[str] = Field(default_factory=list)
    health_url_template: str = ""
    health_version_key: str = DEFAULT_VERSION_KEY
    health_bundle_key: str = DEFAULT_BUNDLE_KEY

    bitbucket_api_base: str = DEFAULT_BITBUCKET_API
    bitbucket_workspace: str = ""
    bitbucket_repo: str = ""
    bitbucket_branch: str = "master"
    bitbucket_path: str = ""

    request_timeout: float = 30.0
    max_retries: int = 3

    @field_validator("deployment_links", "build_links", "health_environments", mode="before")
    @classmethod
    def _lines(cls, value: Any) -> Any:
        return _split_lines(value)


def settings_path_from_env() -> Path:
    return Path(os.getenv("SERVICE_MATCHER_SETTINGS") or DEFAULT_SETTINGS_PATH)


def _validate(data: Any, source: str) -> Settings:
    if not isinstance(data, dict):
        raise InputValidationError(f"Settings file {source} must contain a mapping")
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise InputValidationError(f"Invalid settings in {source}: {e}") from e


def parse_settings(text: str, *, fmt: str = "json", source: str = "<input>") -> Settings:
    """Parse settings from text (used for settings import)."""
    if fmt in ("yaml", "yml"):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise InputValidationError(f"Invalid YAML in {source}: {e}") from e
    else:
        try:
            data = json.loads(text or "{}")
        except json.JSONDecodeError as e:
            raise InputValidationError(f"Invalid JSON in {source}: {e}") from e
    return _validate(data, source)


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings from YAML or JSON; a missing file yields defaults."""
    p = Path(path) if path else settings_path_from_env()
    if not p.exists():
        logger.debug("settings_file_missing", path=str(p))
        return Settings()

    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    else:
        data = safe_read_json(p, default={})
    settings = _validate(data, str(p))
    logger.info("settings_loaded", path=str(p))
    return settings


def save_settings(settings: Settings, path: Optional[Union[str, Path]] = None) -> Path:
    p = Path(path) if path else settings_path_from_env()
    atomic_write_json(p, settings.model_dump())
    logger.info("settings_saved", path=str(p))
    return p


# ------------------------------------------------------------
# Adapter configs
# ------------------------------------------------------------

@dataclass
class JenkinsBuildConfig:
    build_links: List[str]
    username: str
    password: str
    max_builds: int = 20
    timeout: float = 30.0
    max_retries: int = 3


@dataclass
class JenkinsJobListConfig:
    url: str
    username: str
    password: str
    timeout: float = 30.0
    max_retries: int = 3


@dataclass
class HealthConfig:
    environments: List[str]
    url_template: str
    username: str
    password: str
    version_key: str = DEFAULT_VERSION_KEY
    bundle_key: str = DEFAULT_BUNDLE_KEY
    timeout: float = 30.0
    max_retries: int = 3

    def url_for(self, env: str) -> str:
        return self.url_template.format(env=env)


@dataclass
class BitbucketConfig:
    workspace: str
    repo: str
    branch: str
    path: str
    api_base: str = DEFAULT_BITBUCKET_API
    username: str = ""
    app_password: str = ""
    token: str = ""
    timeout: float = 30.0
    max_retries: int = 3

    def auth_headers(self) -> Dict[str, str]:
        if self.token:
            return bearer_headers(self.token)
        return basic_auth_headers(self.username, self.app_password)


def _require(missing: List[str], what: str) -> None:
    if missing:
        raise MissingConfigError(f"{what} is not configured: missing {', '.join(missing)}")


def jenkins_build_config(settings: Settings) -> JenkinsBuildConfig:
    username = _env_any("JENKINS_BUILD_USERNAME", "JENKINS_USERNAME", "JENKINS_USER")
    password = _env_any("JENKINS_BUILD_PASSWORD", "JENKINS_PASSWORD", "JENKINS_API_TOKEN", "JENKINS_TOKEN")
    missing = []
    if not settings.build_links:
        missing.append("build_links")
    if not username:
        missing.append("JENKINS_USERNAME")
    if not password:
        missing.append("JENKINS_PASSWORD")
    _require(missing, "Jenkins build lookup")
    return JenkinsBuildConfig(
        build_links=list(settings.build_links),
        username=username,
        password=password,
        max_builds=settings.max_builds_to_check,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
    )


def jenkins_job_list_config(settings: Settings, *, for_build_links: bool = False) -> JenkinsJobListConfig:
    """Config for refreshing deployment links (or build links) from a Jenkins view."""
    url = settings.jenkins_build_job_list_url if for_build_links else settings.jenkins_job_list_url
    username = _env_any("JENKINS_DEPLOYS_USERNAME", "JENKINS_USERNAME", "JENKINS_USER")
    password = _env_any("JENKINS_DEPLOYS_PASSWORD", "JENKINS_PASSWORD", "JENKINS_API_TOKEN", "JENKINS_TOKEN")
    missing = []
    if not url:
        missing.append("jenkins_build_job_list_url" if for_build_links else "jenkins_job_list_url")
    if not username:
        missing.append("JENKINS_USERNAME")
    if not password:
        missing.append("JENKINS_PASSWORD")
    _require(missing, "Jenkins job list")
    return JenkinsJobListConfig(
        url=url,
        username=username,
        password=password,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
    )


def health_config(settings: Settings) -> HealthConfig:
    username = _env_any("HEALTH_API_USERNAME", "HEALTH_USERNAME")
    password = _env_any("HEALTH_API_PASSWORD", "HEALTH_PASSWORD")
    missing = []
    if not settings.health_environments:
        missing.append("health_environments")
    if not settings.health_url_template:
        missing.append("health_url_template")
    elif "{env}" not in settings.health_url_template:
        raise MissingConfigError("health_url_template must contain an {env} placeholder")
    if not username:
        missing.append("HEALTH_API_USERNAME")
    if not password:
        missing.append("HEALTH_API_PASSWORD")
    _require(missing, "Health API")
    return HealthConfig(
        environments=list(settings.health_environments),
        url_template=settings.health_url_template,
        username=username,
        password=password,
        version_key=settings.health_version_key or DEFAULT_VERSION_KEY,
        bundle_key=settings.health_bundle_key or DEFAULT_BUNDLE_KEY,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
    )


def bitbucket_config(settings: Settings) -> BitbucketConfig:
    token = _env_any("BITBUCKET_TOKEN", "BITBUCKET_ACCESS_TOKEN") or ""
    username = _env_any("BITBUCKET_USERNAME", "BITBUCKET_USER") or ""
    app_password = _env_any("BITBUCKET_APP_PASSWORD", "BITBUCKET_PASSWORD") or ""
    missing = []
    if not settings.bitbucket_workspace:
        missing.append("bitbucket_workspace")
    if not settings.bitbucket_repo:
        missing.append("bitbucket_repo")
    if not settings.bitbucket_branch:
        missing.append("bitbucket_branch")
    if not token and not (username and app_password):
        missing.append("BITBUCKET_TOKEN or BITBUCKET_USERNAME/BITBUCKET_APP_PASSWORD")
    _require(missing, "Bitbucket")
    return BitbucketConfig(
        workspace=settings.bitbucket_workspace,
        repo=settings.bitbucket_repo,
        branch=settings.bitbucket_branch,
        path=settings.bitbucket_path.strip("/"),
        api_base=(settings.bitbucket_api_base or DEFAULT_BITBUCKET_API).rstrip("/"),
        username=username,
        app_password=app_password,
        token=token,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
    )
