"""Tool registry and dispatch layer.

This module:
- defines the tools exposed to agents (public contract surface)
- validates tool arguments against each tool's declared input schema
- builds a per-server runtime from host-provided config
- shapes GitLab responses into filtered projections unless verbose output is requested
- converts every failure into the uniform error result, once, in dispatch_tool
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .audit import AuditLogger, build_event, new_correlation_id
from .config import AppConfig, load_config_from_env
from .errors import SafeError, ToolResult, to_error_result, unknown_operation_error, validation_error
from .gitlab_client import GitLabClient
from .shaping import ISSUE, MERGE_REQUEST, MERGE_REQUEST_DETAILS, PROJECT, partition_comments, shape, to_text

logger = logging.getLogger(__name__)

NO_PROJECTS_TEXT = "No projects found."
NO_DIFFS_TEXT = "No diff data available for this merge request."

_PROJECT_ID = {"type": "integer", "minimum": 1}
_MR_IID = {"type": "integer", "minimum": 1}
_VERBOSE = {"type": "boolean", "default": False}

TOOL_METADATA: dict[str, dict[str, Any]] = {
    "get_projects": {
        "title": "Get Projects",
        "description": "Get a list of projects with id, name, description, web_url and other useful information.",
        "inputSchema": {
            "type": "object",
            "required": [],
            "properties": {
                "verbose": _VERBOSE,
            },
            "additionalProperties": False,
        },
    },
    "list_open_merge_requests": {
        "title": "List Open Merge Requests",
        "description": "List all open merge requests in the project",
        "inputSchema": {
            "type": "object",
            "required": ["project_id"],
            "properties": {
                "project_id": _PROJECT_ID,
                "verbose": _VERBOSE,
            },
            "additionalProperties": False,
        },
    },
    "get_merge_request_details": {
        "title": "Get Merge Request Details",
        "description": (
            "Get details about a specific merge request of a project like title, source-branch, "
            "target-branch, web_url, ..."
        ),
        "inputSchema": {
            "type": "object",
            "required": ["project_id", "merge_request_iid"],
            "properties": {
                "project_id": _PROJECT_ID,
                "merge_request_iid": _MR_IID,
                "verbose": _VERBOSE,
            },
            "additionalProperties": False,
        },
    },
    "get_merge_request_comments": {
        "title": "Get Merge Request Comments",
        "description": "Get general and file diff comments of a certain merge request",
        "inputSchema": {
            "type": "object",
            "required": ["project_id", "merge_request_iid"],
            "properties": {
                "project_id": _PROJECT_ID,
                "merge_request_iid": _MR_IID,
                "verbose": _VERBOSE,
            },
            "additionalProperties": False,
        },
    },
    "add_merge_request_comment": {
        "title": "Add Merge Request Comment",
        "description": "Add a general comment to a merge request",
        "inputSchema": {
            "type": "object",
            "required": ["project_id", "merge_request_iid", "comment"],
            "properties": {
                "project_id": _PROJECT_ID,
                "merge_request_iid": _MR_IID,
                "comment": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
    },
    "add_merge_request_diff_comment": {
        "title": "Add Merge Request Diff Comment",
        "description": "Add a comment of a merge request at a specific line in a file diff",
        "inputSchema": {
            "type": "object",
            "required": [
                "project_id",
                "merge_request_iid",
                "comment",
                "base_sha",
                "start_sha",
                "head_sha",
                "file_path",
                "line_number",
            ],
            "properties": {
                "project_id": _PROJECT_ID,
                "merge_request_iid": _MR_IID,
                "comment": {"type": "string", "minLength": 1},
                "base_sha": {"type": "string", "minLength": 1},
                "start_sha": {"type": "string", "minLength": 1},
                "head_sha": {"type": "string", "minLength": 1},
                "file_path": {"type": "string", "minLength": 1},
                "line_number": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
    },
    "get_merge_request_diff": {
        "title": "Get Merge Request Diff",
        "description": "Get the file diffs of a certain merge request",
        "inputSchema": {
            "type": "object",
            "required": ["project_id", "merge_request_iid"],
            "properties": {
                "project_id": _PROJECT_ID,
                "merge_request_iid": _MR_IID,
            },
            "additionalProperties": False,
        },
    },
    "get_issue_details": {
        "title": "Get Issue Details",
        "description": "Get details of an issue within a certain project",
        "inputSchema": {
            "type": "object",
            "required": ["project_id", "issue_iid"],
            "properties": {
                "project_id": _PROJECT_ID,
                "issue_iid": {"type": "integer", "minimum": 1},
                "verbose": _VERBOSE,
            },
            "additionalProperties": False,
        },
    },
    "set_merge_request_description": {
        "title": "Set Merge Request Description",
        "description": "Set the description of a merge request",
        "inputSchema": {
            "type": "object",
            "required": ["project_id", "merge_request_iid", "description"],
            "properties": {
                "project_id": _PROJECT_ID,
                "merge_request_iid": _MR_IID,
                "description": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
    },
    "set_merge_request_title": {
        "title": "Set Merge Request Title",
        "description": "Set the title of a merge request",
        "inputSchema": {
            "type": "object",
            "required": ["project_id", "merge_request_iid", "title"],
            "properties": {
                "project_id": _PROJECT_ID,
                "merge_request_iid": _MR_IID,
                "title": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
    },
}


@dataclass(frozen=True, slots=True)
class Runtime:
    """Per-server runtime dependencies shared across tool calls."""

    config: AppConfig
    audit: AuditLogger
    gitlab: GitLabClient


_RUNTIME: Runtime | None = None


def contract(tool_name: str) -> dict[str, dict[str, Any]]:
    """Describe a tool's arguments as field -> {type, required, default}."""
    if tool_name not in TOOL_METADATA:
        raise unknown_operation_error(tool_name, list(TOOL_METADATA))

    schema = TOOL_METADATA[tool_name]["inputSchema"]
    required = set(schema.get("required", []))
    out: dict[str, dict[str, Any]] = {}
    for k, spec in schema.get("properties", {}).items():
        field: dict[str, Any] = {"type": spec.get("type"), "required": k in required}
        if "default" in spec:
            field["default"] = spec["default"]
        out[k] = field
    return out


def validate_tool_arguments(tool_name: str, arguments: dict[str, Any]) -> None:
    """Validate tool arguments against the tool's declared input schema.

    This is intentionally a minimal validator that enforces:
    - required fields (all missing ones are reported)
    - undeclared arguments are ignored, never forwarded to handlers
    - primitive JSON types (string/integer/boolean)
    - minLength for strings, minimum for integers

    It does NOT implement full JSON Schema.
    """
    if tool_name not in TOOL_METADATA:
        raise unknown_operation_error(tool_name, list(TOOL_METADATA))

    schema = TOOL_METADATA[tool_name]["inputSchema"]
    props: dict[str, Any] = schema.get("properties", {})
    required: list[str] = schema.get("required", [])

    missing = [k for k in required if arguments.get(k) is None]
    if missing:
        raise validation_error(f"Missing required argument(s): {', '.join(missing)}")

    for k, spec in props.items():
        if k not in arguments:
            continue
        expected = spec.get("type")
        v = arguments[k]
        # bool is a subclass of int; never accept it as an integer.
        if expected == "integer" and (not isinstance(v, int) or isinstance(v, bool)):
            raise validation_error(f"Argument '{k}' must be an integer")
        if expected == "string" and not isinstance(v, str):
            raise validation_error(f"Argument '{k}' must be a string")
        if expected == "boolean" and not isinstance(v, bool):
            raise validation_error(f"Argument '{k}' must be a boolean")

        min_len = spec.get("minLength")
        if expected == "string" and isinstance(min_len, int) and len(v) < min_len:
            raise validation_error(f"Argument '{k}' must be at least {min_len} characters")

        minimum = spec.get("minimum")
        if expected == "integer" and isinstance(minimum, int) and v < minimum:
            raise validation_error(f"Argument '{k}' must be >= {minimum}")


def initialize_runtime_from_env() -> Runtime:
    """Initialize and cache runtime from environment.

    Called at server startup (fail-fast), and can also be used lazily.
    """
    global _RUNTIME  # pylint: disable=global-statement
    if _RUNTIME is not None:
        return _RUNTIME

    config = load_config_from_env()
    audit = AuditLogger(sink_path=config.audit_log_path)
    gitlab = GitLabClient(token=config.gitlab_token, host=config.gitlab_host, limits=config.limits)

    _RUNTIME = Runtime(config=config, audit=audit, gitlab=gitlab)
    logger.info("GitLab runtime initialized for %s", config.gitlab_host)
    return _RUNTIME


def _require_int(arguments: dict[str, Any], key: str) -> int:
    v = arguments.get(key)
    if not isinstance(v, int) or isinstance(v, bool):
        raise validation_error(f"Missing required argument(s): {key}")
    return v


def _require_str(arguments: dict[str, Any], key: str) -> str:
    v = arguments.get(key)
    if not isinstance(v, str) or not v:
        raise validation_error(f"Missing required argument(s): {key}")
    return v


def _verbose(arguments: dict[str, Any]) -> bool:
    return arguments.get("verbose", False) is True


def _project_filters(config: AppConfig) -> dict[str, Any]:
    filters: dict[str, Any] = {}
    if config.project_filter.min_access_level is not None:
        filters["min_access_level"] = config.project_filter.min_access_level
    if config.project_filter.search:
        filters["search"] = config.project_filter.search
    return filters


async def _tool_get_projects(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    projects = await runtime.gitlab.list_projects(_project_filters(runtime.config))
    shaped = shape(projects, PROJECT, verbose=_verbose(arguments))
    if not isinstance(shaped, list) or not shaped:
        return ToolResult(text=NO_PROJECTS_TEXT)
    return ToolResult(text=to_text(shaped))


async def _tool_list_open_merge_requests(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    project_id = _require_int(arguments, "project_id")

    merge_requests = await runtime.gitlab.list_merge_requests(project_id, state="opened")
    return ToolResult(text=to_text(shape(merge_requests, MERGE_REQUEST, verbose=_verbose(arguments))))


async def _tool_get_merge_request_details(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    project_id = _require_int(arguments, "project_id")
    mr_iid = _require_int(arguments, "merge_request_iid")

    mr = await runtime.gitlab.show_merge_request(project_id, mr_iid)
    return ToolResult(text=to_text(shape(mr, MERGE_REQUEST_DETAILS, verbose=_verbose(arguments))))


async def _tool_get_merge_request_comments(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    project_id = _require_int(arguments, "project_id")
    mr_iid = _require_int(arguments, "merge_request_iid")

    discussions = await runtime.gitlab.list_discussions(project_id, mr_iid)
    if _verbose(arguments):
        return ToolResult(text=to_text(discussions))
    return ToolResult(text=to_text(partition_comments(discussions)))


async def _tool_add_merge_request_comment(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    project_id = _require_int(arguments, "project_id")
    mr_iid = _require_int(arguments, "merge_request_iid")
    comment = _require_str(arguments, "comment")

    discussion = await runtime.gitlab.create_discussion(project_id, mr_iid, comment)
    return ToolResult(text=to_text(discussion))


def build_diff_position(
    *,
    base_sha: str,
    start_sha: str,
    head_sha: str,
    file_path: str,
    line_number: str,
) -> dict[str, Any]:
    """Position of a single-line annotation on the new version of a file."""
    return {
        "base_sha": base_sha,
        "start_sha": start_sha,
        "head_sha": head_sha,
        "old_path": file_path,
        "new_path": file_path,
        "position_type": "text",
        "new_line": line_number,
    }


async def _tool_add_merge_request_diff_comment(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    project_id = _require_int(arguments, "project_id")
    mr_iid = _require_int(arguments, "merge_request_iid")
    comment = _require_str(arguments, "comment")
    position = build_diff_position(
        base_sha=_require_str(arguments, "base_sha"),
        start_sha=_require_str(arguments, "start_sha"),
        head_sha=_require_str(arguments, "head_sha"),
        file_path=_require_str(arguments, "file_path"),
        line_number=_require_str(arguments, "line_number"),
    )

    discussion = await runtime.gitlab.create_discussion(project_id, mr_iid, comment, position=position)
    return ToolResult(text=to_text(discussion))


async def _tool_get_merge_request_diff(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    project_id = _require_int(arguments, "project_id")
    mr_iid = _require_int(arguments, "merge_request_iid")

    diffs = await runtime.gitlab.list_merge_request_diffs(project_id, mr_iid)
    if not isinstance(diffs, list) or not diffs:
        return ToolResult(text=NO_DIFFS_TEXT)
    return ToolResult(text=to_text(diffs))


async def _tool_get_issue_details(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    project_id = _require_int(arguments, "project_id")
    issue_iid = _require_int(arguments, "issue_iid")

    issue = await runtime.gitlab.show_issue(issue_iid, project_id=project_id)
    return ToolResult(text=to_text(shape(issue, ISSUE, verbose=_verbose(arguments))))


async def _tool_set_merge_request_description(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    project_id = _require_int(arguments, "project_id")
    mr_iid = _require_int(arguments, "merge_request_iid")
    description = _require_str(arguments, "description")

    mr = await runtime.gitlab.edit_merge_request(project_id, mr_iid, {"description": description})
    return ToolResult(text=to_text(mr))


async def _tool_set_merge_request_title(runtime: Runtime, arguments: dict[str, Any]) -> ToolResult:
    project_id = _require_int(arguments, "project_id")
    mr_iid = _require_int(arguments, "merge_request_iid")
    title = _require_str(arguments, "title")

    mr = await runtime.gitlab.edit_merge_request(project_id, mr_iid, {"title": title})
    return ToolResult(text=to_text(mr))


_TOOL_FUNCS = {
    "get_projects": _tool_get_projects,
    "list_open_merge_requests": _tool_list_open_merge_requests,
    "get_merge_request_details": _tool_get_merge_request_details,
    "get_merge_request_comments": _tool_get_merge_request_comments,
    "add_merge_request_comment": _tool_add_merge_request_comment,
    "add_merge_request_diff_comment": _tool_add_merge_request_diff_comment,
    "get_merge_request_diff": _tool_get_merge_request_diff,
    "get_issue_details": _tool_get_issue_details,
    "set_merge_request_description": _tool_set_merge_request_description,
    "set_merge_request_title": _tool_set_merge_request_title,
}


def _target_project_from_args(arguments: dict[str, Any]) -> str | None:
    project_id = arguments.get("project_id")
    if isinstance(project_id, (int, str)) and not isinstance(project_id, bool):
        return str(project_id)
    return None


async def dispatch_tool(name: str, arguments: dict[str, Any]) -> ToolResult:
    """Run a tool by name. Never raises; failures come back as error results."""
    correlation_id = new_correlation_id()
    if not isinstance(arguments, dict):
        arguments = {}
    target_project = _target_project_from_args(arguments)

    runtime: Runtime | None = None
    start: float | None = None

    try:
        func = _TOOL_FUNCS.get(name)
        if func is None:
            raise unknown_operation_error(name, list(TOOL_METADATA))

        validate_tool_arguments(name, arguments)

        runtime = initialize_runtime_from_env()
        start = runtime.audit.measure_start()

        result = await func(runtime, arguments)

        runtime.audit.write_event(
            build_event(
                correlation_id=correlation_id,
                operation=name,
                target_project=target_project,
                outcome="succeeded",
                duration_ms=runtime.audit.measure_duration_ms(start),
            )
        )
        return result

    except Exception as exc:  # pylint: disable=broad-exception-caught
        if isinstance(exc, SafeError):
            outcome = "denied" if exc.code in {"Validation", "UnknownOperation", "Config"} else "failed"
            logger.warning("Tool %s %s: %s", name, outcome, exc.message)
        else:
            outcome = "failed"
            logger.exception("Tool %s raised an unexpected error", name)

        audit = runtime.audit if runtime is not None else AuditLogger(sink_path=None)
        audit.write_event(
            build_event(
                correlation_id=correlation_id,
                operation=name,
                target_project=target_project,
                outcome=outcome,
                reason=exc.message if isinstance(exc, SafeError) else "Internal error",
                duration_ms=audit.measure_duration_ms(start) if start is not None else None,
            )
        )
        return to_error_result(exc)
