"""Data model for co-change views.

Defines the inbound :class:`CommitEvent` and the persisted :class:`View`
together with its counter state, :class:`ViewModel`.  A view is addressed by
a single string key (see :mod:`coupling_view.core.view.identity`) and is
never deleted by the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

FileGroup = tuple[str, ...]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialise *value* as an ISO-8601 string, assuming UTC when naive."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def from_iso(value: str | datetime | None) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime.

    Raises:
        ValueError: If *value* is missing or not ISO-8601.
    """
    if value is None or value == "":
        raise ValueError("timestamp is missing")
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class CommitEvent:
    """One commit observed for a project.

    ``files`` holds the changed paths exactly as delivered; normalisation
    happens in the event processor.
    """

    project_id: str
    files: tuple[str, ...]
    commit_id: str = ""


@dataclass
class ViewModel:
    """Counter state of a view.

    ``file_ids`` is the full file list of the commit that created the view.
    It is informational only and is never re-derived on update.
    """

    project_id: str
    file_ids: list[str] = field(default_factory=list)
    matches: int = 0
    captures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectId": self.project_id,
            "fileIds": list(self.file_ids),
            "matches": self.matches,
            "captures": self.captures,
        }


@dataclass
class View:
    """The persisted materialized state for one view key."""

    id: str
    view_name: str
    model: ViewModel
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "viewName": self.view_name,
            "model": self.model.to_dict(),
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }


def initial_model(project_id: str, file_ids: list[str]) -> ViewModel:
    """Build the state of a freshly created view.

    A new view already counts the observation that created it, so it starts
    at one match and no captures.
    """
    return ViewModel(
        project_id=project_id,
        file_ids=list(file_ids),
        matches=1,
        captures=0,
    )
