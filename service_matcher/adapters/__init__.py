"""External-API enrichment adapters (CI builds, health checks, source control)."""

from .bitbucket import fetch_last_committer
from .health import fetch_build_versions, fetch_health_status
from .jenkins import fetch_build_info, fetch_deployment_links

__all__ = [
    "fetch_build_info",
    "fetch_build_versions",
    "fetch_deployment_links",
    "fetch_health_status",
    "fetch_last_committer",
]
