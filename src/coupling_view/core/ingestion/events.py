"""Parsing of inbound commit payloads into :class:`CommitEvent` objects.

Two payload shapes are accepted:

- the commit-stream envelope::

    {"project": {"projectId": "p1"},
     "projectEvent": {"payload": {"commit": {"id": "...",
                                             "files": [{"fileName": "a.js"}]}}}}

- a flat form::

    {"projectId": "p1", "commitId": "...", "files": ["a.js", {"fileName": "b.js"}]}
"""

from __future__ import annotations

from typing import Any

from coupling_view.core.errors import MalformedEventError
from coupling_view.core.view.model import CommitEvent


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _file_name(item: Any) -> str:
    if isinstance(item, str):
        name = item
    elif isinstance(item, dict):
        name = item.get("fileName")
    else:
        name = None
    if not isinstance(name, str) or not name:
        raise MalformedEventError(f"Invalid changed-file entry: {item!r}")
    return name


def parse_commit_event(payload: Any) -> CommitEvent:
    """Build a :class:`CommitEvent` from a raw payload.

    Raises:
        MalformedEventError: If the payload has no project id, no file list,
            an empty file list, or a file entry without a name.
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Commit payload must be a JSON object")

    if "projectEvent" in payload or "project" in payload:
        project = _mapping(payload.get("project"))
        commit = _mapping(_mapping(_mapping(payload.get("projectEvent")).get("payload")).get("commit"))
        project_id = project.get("projectId")
        files = commit.get("files")
        commit_id = commit.get("id") or commit.get("sha") or ""
    else:
        project_id = payload.get("projectId")
        files = payload.get("files")
        commit_id = payload.get("commitId") or ""

    if project_id is None or str(project_id) == "":
        raise MalformedEventError("Commit payload has no projectId")
    if not isinstance(files, list):
        raise MalformedEventError("Commit payload has no file list")
    if not files:
        raise MalformedEventError("Commit payload has an empty file list")

    return CommitEvent(
        project_id=str(project_id),
        files=tuple(_file_name(item) for item in files),
        commit_id=str(commit_id),
    )


def normalize_files(event: CommitEvent) -> list[str]:
    """Lower-case the changed files of *event*, dropping repeats.

    First occurrences keep their position.

    Raises:
        MalformedEventError: If the event has no project id or no files.
    """
    if not event.project_id:
        raise MalformedEventError("Commit event has no project id")
    if not event.files:
        raise MalformedEventError(
            f"Commit event for project {event.project_id!r} has no changed files"
        )

    seen: set[str] = set()
    files: list[str] = []
    for path in event.files:
        if not isinstance(path, str) or not path:
            raise MalformedEventError(f"Invalid changed-file entry: {path!r}")
        lowered = path.lower()
        if lowered not in seen:
            seen.add(lowered)
            files.append(lowered)
    return files
