"""Configuration loading for gitlab-mr-mcp.

Configuration is supplied by the host environment (e.g., MCP client config), not by the agent.
The GitLab access token is a secret and must never be emitted to agents, logs, or audit events.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import SafeError

DEFAULT_GITLAB_HOST = "https://gitlab.com"


@dataclass(frozen=True, slots=True)
class LimitsConfig:
    """Network limits for GitLab calls."""

    total_timeout_s: float = 60.0
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 30.0

    # Single round trip per list call; no pagination walk.
    per_page: int = 100


@dataclass(frozen=True, slots=True)
class ProjectFilterConfig:
    """Host-controlled filters applied when listing projects."""

    min_access_level: int | None = None
    search: str | None = None


@dataclass(frozen=True, slots=True)
class AppConfig:
    """GitLab connection configuration."""

    gitlab_token: str
    gitlab_host: str
    project_filter: ProjectFilterConfig
    audit_log_path: Path | None
    limits: LimitsConfig

    def __repr__(self) -> str:
        return f"AppConfig(gitlab_host={self.gitlab_host!r}, gitlab_token=<redacted>)"


def _parse_optional_int(name: str, value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError as exc:
        raise SafeError(code="Config", message=f"{name} must be an integer") from exc


def _parse_host(value: str | None) -> str:
    if value is None or not value.strip():
        return DEFAULT_GITLAB_HOST
    host = value.strip().rstrip("/")
    if not host.startswith(("http://", "https://")):
        raise SafeError(code="Config", message="MR_MCP_GITLAB_HOST must start with http:// or https://")
    return host


def load_config_from_env() -> AppConfig:
    """Load and validate configuration from environment variables.

    Raises:
        SafeError: If configuration is missing/invalid.
    """
    token = os.getenv("MR_MCP_GITLAB_TOKEN")
    if not token or not token.strip():
        raise SafeError(code="Config", message="Missing required configuration (MR_MCP_GITLAB_TOKEN)")

    host = _parse_host(os.getenv("MR_MCP_GITLAB_HOST"))
    min_access_level = _parse_optional_int("MR_MCP_MIN_ACCESS_LEVEL", os.getenv("MR_MCP_MIN_ACCESS_LEVEL"))

    search_raw = os.getenv("MR_MCP_PROJECT_SEARCH_TERM")
    search = search_raw.strip() if search_raw and search_raw.strip() else None

    audit_path_raw = os.getenv("MR_MCP_AUDIT_LOG_PATH")
    audit_path: Path | None = None
    if audit_path_raw:
        p = Path(audit_path_raw)
        if not p.is_absolute():
            raise SafeError(code="Config", message="MR_MCP_AUDIT_LOG_PATH must be an absolute path when set")
        audit_path = p

    return AppConfig(
        gitlab_token=token.strip(),
        gitlab_host=host,
        project_filter=ProjectFilterConfig(min_access_level=min_access_level, search=search),
        audit_log_path=audit_path,
        limits=LimitsConfig(),
    )
