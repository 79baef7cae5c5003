"""Error types and the uniform tool error result.

Every recoverable failure (bad arguments, unknown tool, GitLab errors) is raised as a
SafeError and converted into a tool result in exactly one place: to_error_result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

NO_DETAILS = "No additional details"


@dataclass(frozen=True, slots=True)
class SafeError(Exception):
    """An error safe to expose to agents.

    code is one of: Validation, Provider, UnknownOperation, Config.
    Must never include the GitLab access token.
    """

    code: str
    message: str
    detail: str | None = None
    status_code: int | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Normalized tool result: a single text content item plus an error flag."""

    text: str
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"content": [{"type": "text", "text": self.text}]}
        if self.is_error:
            out["isError"] = True
        return out


def validation_error(message: str, detail: str | None = None) -> SafeError:
    """Error for missing or malformed tool arguments."""
    return SafeError(code="Validation", message=message, detail=detail)


def unknown_operation_error(name: str, available: list[str]) -> SafeError:
    """Error for a tool name that is not in the registry."""
    return SafeError(
        code="UnknownOperation",
        message=f"Unknown tool: {name}",
        detail=f"Available tools: {', '.join(available)}",
    )


def provider_error(message: str, detail: str | None = None, status_code: int | None = None) -> SafeError:
    """Error for a failed GitLab API call."""
    return SafeError(code="Provider", message=message, detail=detail, status_code=status_code)


def _detail_of(exc: BaseException) -> str | None:
    if isinstance(exc, SafeError):
        return exc.detail
    for candidate in (exc.__cause__, exc):
        description = getattr(candidate, "description", None)
        if isinstance(description, str) and description:
            return description
    return None


def format_error_text(exc: BaseException) -> str:
    """Render an exception as "Error: <message> - <detail>"."""
    message = exc.message if isinstance(exc, SafeError) else str(exc)
    return f"Error: {message} - {_detail_of(exc) or NO_DETAILS}"


def to_error_result(exc: BaseException) -> ToolResult:
    """Convert any exception into the standard failed tool result."""
    return ToolResult(text=format_error_text(exc), is_error=True)
