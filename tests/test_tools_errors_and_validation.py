"""Error-path and validation coverage for tools dispatch.

These tests ensure dispatch rejects unknown tools and invalid arguments before any
GitLab call is attempted, and that GitLab failures come back in the uniform error shape.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import gitlab_mr_mcp.tools as tools
import pytest
from gitlab_mr_mcp.audit import AuditEvent
from gitlab_mr_mcp.config import AppConfig, LimitsConfig, ProjectFilterConfig
from gitlab_mr_mcp.errors import SafeError, provider_error


@dataclass
class DummyAudit:
    events: list[AuditEvent]

    def write_event(self, event: AuditEvent) -> None:
        self.events.append(event)

    def measure_start(self) -> float:
        return time.monotonic()

    def measure_duration_ms(self, start: float) -> int:
        return int((time.monotonic() - start) * 1000)


class NoCallGitLab:
    """Fails the test if any GitLab operation is attempted."""

    def __getattr__(self, name: str) -> Any:
        async def _fail(*_args: Any, **_kwargs: Any) -> Any:  # pragma: no cover
            raise AssertionError(f"GitLab should not be called ({name})")

        return _fail


class FailingGitLab:
    def __init__(self, err: Exception) -> None:
        self._err = err

    def __getattr__(self, name: str) -> Any:
        async def _raise(*_args: Any, **_kwargs: Any) -> Any:
            raise self._err

        return _raise


def _runtime(gitlab: object) -> tools.Runtime:
    cfg = AppConfig(
        gitlab_token="tok",
        gitlab_host="https://gitlab.example.com",
        project_filter=ProjectFilterConfig(),
        audit_log_path=None,
        limits=LimitsConfig(),
    )
    return tools.Runtime(
        config=cfg,
        audit=DummyAudit(events=[]),  # type: ignore[arg-type]
        gitlab=gitlab,  # type: ignore[arg-type]
    )


_VALID_ARGS: dict[str, dict[str, Any]] = {
    "get_projects": {},
    "list_open_merge_requests": {"project_id": 7},
    "get_merge_request_details": {"project_id": 7, "merge_request_iid": 3},
    "get_merge_request_comments": {"project_id": 7, "merge_request_iid": 3},
    "add_merge_request_comment": {"project_id": 7, "merge_request_iid": 3, "comment": "hi"},
    "add_merge_request_diff_comment": {
        "project_id": 7,
        "merge_request_iid": 3,
        "comment": "hi",
        "base_sha": "a1",
        "start_sha": "b2",
        "head_sha": "c3",
        "file_path": "src/main.ts",
        "line_number": "42",
    },
    "get_merge_request_diff": {"project_id": 7, "merge_request_iid": 3},
    "get_issue_details": {"project_id": 7, "issue_iid": 9},
    "set_merge_request_description": {"project_id": 7, "merge_request_iid": 3, "description": "d"},
    "set_merge_request_title": {"project_id": 7, "merge_request_iid": 3, "title": "t"},
}

_MISSING_CASES = [
    (name, field)
    for name, meta in tools.TOOL_METADATA.items()
    for field in meta["inputSchema"]["required"]
]


def test_valid_args_cover_every_tool() -> None:
    assert set(_VALID_ARGS) == set(tools.TOOL_METADATA)


@pytest.mark.asyncio
@pytest.mark.parametrize("tool_name,field", _MISSING_CASES)
async def test_missing_required_argument_fails_before_gitlab_call(
    monkeypatch: pytest.MonkeyPatch, tool_name: str, field: str
) -> None:
    built: list[tools.Runtime] = []

    def _build() -> tools.Runtime:
        built.append(_runtime(NoCallGitLab()))
        return built[-1]

    monkeypatch.setattr(tools, "initialize_runtime_from_env", _build)
    args = dict(_VALID_ARGS[tool_name])
    del args[field]

    out = await tools.dispatch_tool(tool_name, args)

    assert out.is_error is True
    assert out.text.startswith("Error: Missing required argument(s):")
    assert field in out.text
    assert built == []


@pytest.mark.asyncio
async def test_diff_comment_reports_every_missing_argument(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tools, "initialize_runtime_from_env", lambda: _runtime(NoCallGitLab()))

    out = await tools.dispatch_tool("add_merge_request_diff_comment", {"project_id": 7, "merge_request_iid": 3})

    for field in ("comment", "base_sha", "start_sha", "head_sha", "file_path", "line_number"):
        assert field in out.text


@pytest.mark.asyncio
async def test_null_required_argument_counts_as_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tools, "initialize_runtime_from_env", lambda: _runtime(NoCallGitLab()))

    out = await tools.dispatch_tool("list_open_merge_requests", {"project_id": None})

    assert out.is_error is True
    assert "project_id" in out.text


@pytest.mark.asyncio
async def test_dispatch_tool_rejects_unknown_tool(monkeypatch: pytest.MonkeyPatch) -> None:
    built: list[tools.Runtime] = []

    def _build() -> tools.Runtime:
        built.append(_runtime(NoCallGitLab()))
        return built[-1]

    monkeypatch.setattr(tools, "initialize_runtime_from_env", _build)

    out = await tools.dispatch_tool("not_a_tool", {"project_id": 7})

    assert out.is_error is True
    assert out.text.startswith("Error: Unknown tool: not_a_tool - Available tools: get_projects,")
    assert built == []


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_even_without_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    def _no_config() -> tools.Runtime:
        raise SafeError(code="Config", message="Missing required configuration (MR_MCP_GITLAB_TOKEN)")

    monkeypatch.setattr(tools, "initialize_runtime_from_env", _no_config)

    out = await tools.dispatch_tool("not_a_tool", {})

    assert out.is_error is True
    assert out.text.startswith("Error: Unknown tool: not_a_tool - ")


@pytest.mark.asyncio
async def test_undeclared_arguments_are_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []

    class EditGitLab:
        async def edit_merge_request(self, project_id: int, merge_request_iid: int, fields: dict[str, Any]) -> Any:
            calls.append(fields)
            return {"iid": merge_request_iid, "project_id": project_id, **fields}

    monkeypatch.setattr(tools, "initialize_runtime_from_env", lambda: _runtime(EditGitLab()))

    out = await tools.dispatch_tool(
        "set_merge_request_title",
        {"project_id": 7, "merge_request_iid": 3, "title": "x", "verbose": True, "extra": 1},
    )

    assert out.is_error is False
    assert calls == [{"title": "x"}]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tool_name,args,fragment",
    [
        ("list_open_merge_requests", {"project_id": "7"}, "'project_id' must be an integer"),
        ("list_open_merge_requests", {"project_id": True}, "'project_id' must be an integer"),
        ("list_open_merge_requests", {"project_id": 0}, "'project_id' must be >= 1"),
        ("get_projects", {"verbose": "yes"}, "'verbose' must be a boolean"),
        ("add_merge_request_comment", {"project_id": 7, "merge_request_iid": 3, "comment": ""}, "at least 1"),
        ("set_merge_request_title", {"project_id": 7, "merge_request_iid": 3, "title": 5}, "must be a string"),
    ],
)
async def test_invalid_argument_shapes_are_rejected(
    monkeypatch: pytest.MonkeyPatch, tool_name: str, args: dict[str, Any], fragment: str
) -> None:
    monkeypatch.setattr(tools, "initialize_runtime_from_env", lambda: _runtime(NoCallGitLab()))

    out = await tools.dispatch_tool(tool_name, args)

    assert out.is_error is True
    assert fragment in out.text


@pytest.mark.asyncio
async def test_non_dict_arguments_are_treated_as_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tools, "initialize_runtime_from_env", lambda: _runtime(NoCallGitLab()))

    out = await tools.dispatch_tool("list_open_merge_requests", None)  # type: ignore[arg-type]

    assert out.is_error is True
    assert "project_id" in out.text


@pytest.mark.asyncio
async def test_provider_error_is_translated(monkeypatch: pytest.MonkeyPatch) -> None:
    err = provider_error("404 Not Found", detail="404 Merge Request Not Found", status_code=404)
    runtime = _runtime(FailingGitLab(err))
    monkeypatch.setattr(tools, "initialize_runtime_from_env", lambda: runtime)

    out = await tools.dispatch_tool("get_merge_request_details", {"project_id": 7, "merge_request_iid": 3})

    assert out.is_error is True
    assert out.text == "Error: 404 Not Found - 404 Merge Request Not Found"
    assert runtime.audit.events[0].outcome == "failed"
    assert runtime.audit.events[0].target_project == "7"


@pytest.mark.asyncio
async def test_unexpected_exception_is_translated(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = _runtime(FailingGitLab(RuntimeError("boom")))
    monkeypatch.setattr(tools, "initialize_runtime_from_env", lambda: runtime)

    out = await tools.dispatch_tool("get_projects", {})

    assert out.is_error is True
    assert out.text == "Error: boom - No additional details"
    assert runtime.audit.events[0].reason == "Internal error"


@pytest.mark.asyncio
async def test_config_error_is_translated(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom() -> tools.Runtime:
        raise SafeError(code="Config", message="Missing required configuration (MR_MCP_GITLAB_TOKEN)")

    monkeypatch.setattr(tools, "initialize_runtime_from_env", _boom)

    out = await tools.dispatch_tool("get_projects", {})

    assert out.is_error is True
    assert "MR_MCP_GITLAB_TOKEN" in out.text


def test_contract_describes_types_required_and_defaults() -> None:
    c = tools.contract("get_merge_request_details")
    assert c == {
        "project_id": {"type": "integer", "required": True},
        "merge_request_iid": {"type": "integer", "required": True},
        "verbose": {"type": "boolean", "required": False, "default": False},
    }


def test_contract_unknown_tool_raises() -> None:
    with pytest.raises(SafeError) as exc:
        tools.contract("not_a_tool")
    assert exc.value.code == "UnknownOperation"
