"""Response shaping.

GitLab payloads are treated as opaque mappings. Each entity kind has its own fixed
projection; fields missing upstream come back as None. Inputs are never mutated.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

# (output key, dotted source path)
Projection = tuple[tuple[str, str], ...]


def _fields(*names: str) -> Projection:
    return tuple((name, name) for name in names)


PROJECT: Projection = _fields(
    "id",
    "description",
    "name",
    "path",
    "path_with_namespace",
    "web_url",
    "default_branch",
)

MERGE_REQUEST: Projection = _fields("iid", "project_id", "title", "description", "state", "web_url")

MERGE_REQUEST_DETAILS: Projection = _fields(
    "title",
    "description",
    "state",
    "web_url",
    "target_branch",
    "source_branch",
    "merge_status",
    "detailed_merge_status",
    "diff_refs",
)

DISCUSSION_NOTE: Projection = (
    ("id", "id"),
    ("noteable_id", "noteable_id"),
    ("body", "body"),
    ("author_name", "author.name"),
)

DIFF_NOTE: Projection = DISCUSSION_NOTE + (("position", "position"),)

ISSUE: Projection = _fields("title", "description")


def get_field(raw: Any, path: str) -> Any:
    """Read a dotted path from a mapping, returning None when any step is absent."""
    current = raw
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def project(raw: Any, projection: Projection) -> dict[str, Any]:
    """Build a new dict holding exactly the projection's keys."""
    return {key: get_field(raw, path) for key, path in projection}


def shape(raw: Any, projection: Projection | None, *, verbose: bool = False) -> Any:
    """Apply a projection to an object or list unless verbose output was requested."""
    if verbose or projection is None:
        return raw
    if isinstance(raw, list):
        return [project(item, projection) for item in raw]
    return project(raw, projection)


def partition_comments(discussions: Any) -> dict[str, list[dict[str, Any]]]:
    """Flatten discussions into unresolved discussion notes and diff notes."""
    discussion_notes: list[dict[str, Any]] = []
    diff_notes: list[dict[str, Any]] = []

    for discussion in discussions if isinstance(discussions, list) else []:
        notes = get_field(discussion, "notes")
        if not isinstance(notes, list):
            continue
        for note in notes:
            if not isinstance(note, Mapping) or note.get("resolved") is not False:
                continue
            kind = note.get("type")
            if kind == "DiscussionNote":
                discussion_notes.append(project(note, DISCUSSION_NOTE))
            elif kind == "DiffNote":
                diff_notes.append(project(note, DIFF_NOTE))

    return {"discussionNotes": discussion_notes, "diffNotes": diff_notes}


def to_text(obj: Any) -> str:
    """Serialize a shaped result as a complete, indented JSON document."""
    return json.dumps(obj, indent=2, ensure_ascii=False, default=str)
