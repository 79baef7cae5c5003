"""GitLab REST (v4) client wrapper.

Provides:
- typed operations for the projects, merge requests, discussions and issues endpoints
- finite timeouts
- safe error translation

Each operation is exactly one HTTP round trip. There is no retry and no pagination walk.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

import httpx

from .config import LimitsConfig
from .errors import provider_error


def _encode_id(value: int | str) -> str:
    # Numeric ids and "group/project" paths are both valid project identifiers.
    return quote(str(value), safe="")


def _error_detail(resp: httpx.Response) -> str | None:
    try:
        payload = resp.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    for key in ("message", "error_description", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, (dict, list)) and value:
            return json.dumps(value, ensure_ascii=False)
    return None


class GitLabClient:
    """Minimal GitLab REST client."""

    def __init__(
        self,
        *,
        token: str,
        host: str,
        limits: LimitsConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create a GitLab REST client.

        Args:
            token: Personal/project access token sent as PRIVATE-TOKEN.
            host: GitLab base URL, e.g. https://gitlab.com.
            limits: Timeouts and page size.
            transport: Optional httpx transport for tests.
        """
        self._token = token
        self._api_base_url = f"{host.rstrip('/')}/api/v4"
        self._limits = limits
        self._transport = transport

    @property
    def api_base_url(self) -> str:
        return self._api_base_url

    def _headers(self) -> dict[str, str]:
        return {
            "PRIVATE-TOKEN": self._token,
            "Accept": "application/json",
        }

    async def request_json(
        self,
        *,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a request and return decoded JSON.

        GitLab returns either an object (dict) or an array (list).
        """
        url = f"{self._api_base_url}{path}"
        timeout = httpx.Timeout(
            timeout=self._limits.total_timeout_s,
            connect=self._limits.connect_timeout_s,
            read=self._limits.read_timeout_s,
        )

        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                resp = await client.request(
                    method,
                    url,
                    headers=self._headers(),
                    json=json_body,
                    params=params,
                )
            except httpx.HTTPError as exc:
                raise provider_error("Network request failed", detail=str(exc) or type(exc).__name__) from exc

        if resp.status_code >= 400:
            raise provider_error(
                f"{resp.status_code} {resp.reason_phrase}".strip(),
                detail=_error_detail(resp),
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise provider_error("GitLab returned invalid JSON", status_code=resp.status_code) from exc

    async def list_projects(self, filters: dict[str, Any] | None = None) -> Any:
        params: dict[str, Any] = {"membership": "true", "per_page": self._limits.per_page}
        for key, value in (filters or {}).items():
            if value is not None:
                params[key] = value
        return await self.request_json(method="GET", path="/projects", params=params)

    async def list_merge_requests(self, project_id: int | str, *, state: str) -> Any:
        return await self.request_json(
            method="GET",
            path=f"/projects/{_encode_id(project_id)}/merge_requests",
            params={"state": state, "per_page": self._limits.per_page},
        )

    async def show_merge_request(self, project_id: int | str, merge_request_iid: int) -> Any:
        return await self.request_json(
            method="GET",
            path=f"/projects/{_encode_id(project_id)}/merge_requests/{merge_request_iid}",
        )

    async def list_discussions(self, project_id: int | str, merge_request_iid: int) -> Any:
        return await self.request_json(
            method="GET",
            path=f"/projects/{_encode_id(project_id)}/merge_requests/{merge_request_iid}/discussions",
            params={"per_page": self._limits.per_page},
        )

    async def create_discussion(
        self,
        project_id: int | str,
        merge_request_iid: int,
        body: str,
        position: dict[str, Any] | None = None,
    ) -> Any:
        payload: dict[str, Any] = {"body": body}
        if position is not None:
            payload["position"] = position
        return await self.request_json(
            method="POST",
            path=f"/projects/{_encode_id(project_id)}/merge_requests/{merge_request_iid}/discussions",
            json_body=payload,
        )

    async def list_merge_request_diffs(self, project_id: int | str, merge_request_iid: int) -> Any:
        return await self.request_json(
            method="GET",
            path=f"/projects/{_encode_id(project_id)}/merge_requests/{merge_request_iid}/diffs",
            params={"per_page": self._limits.per_page},
        )

    async def show_issue(self, issue_iid: int, *, project_id: int | str) -> Any:
        return await self.request_json(
            method="GET",
            path=f"/projects/{_encode_id(project_id)}/issues/{issue_iid}",
        )

    async def edit_merge_request(
        self,
        project_id: int | str,
        merge_request_iid: int,
        fields: dict[str, Any],
    ) -> Any:
        return await self.request_json(
            method="PUT",
            path=f"/projects/{_encode_id(project_id)}/merge_requests/{merge_request_iid}",
            json_body=dict(fields),
        )
