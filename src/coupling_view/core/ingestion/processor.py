"""Event processor for Coupling View.

Applies one commit event to the view store:

    1. Validate and normalise the changed files (lower-case, no repeats)
    2. Enumerate every non-empty file group
    3. Derive the view key of each group
    4. Find-or-create the view; when it already existed, advance its
       counters and persist them

Each file group is an independent unit of work.  Units run concurrently on
worker threads, bounded by ``max_concurrency``, and the event is only
reported once every unit has finished.  A failing unit never cancels the
others; the first failure is reported for the whole event.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from coupling_view.config.settings import ProcessorSettings, ViewOptions
from coupling_view.core.errors import PartialUpdateFailure
from coupling_view.core.ingestion.events import normalize_files
from coupling_view.core.storage.base import ViewStore
from coupling_view.core.view.identity import derive_view_key
from coupling_view.core.view.model import CommitEvent, FileGroup, View, utc_now
from coupling_view.core.view.state import advance, is_capture
from coupling_view.core.view.subsets import power_set

logger = logging.getLogger(__name__)


class UpdateKind(Enum):
    """What happened to a view while processing one file group."""

    CREATED = "created"
    MATCHED = "matched"
    CAPTURED = "captured"


@dataclass
class GroupUpdate:
    """Outcome of one file group."""

    key: str
    files: FileGroup
    kind: UpdateKind
    view: View


@dataclass
class ProcessResult:
    """Summary of one processed commit event."""

    project_id: str
    commit_id: str = ""
    files: int = 0
    groups: int = 0
    created: int = 0
    matched: int = 0
    captured: int = 0
    updates: list[GroupUpdate] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def views(self) -> list[View]:
        return [u.view for u in self.updates]

    @property
    def last_view(self) -> View | None:
        """The view touched by the last file group, in enumeration order."""
        return self.updates[-1].view if self.updates else None

    def to_dict(self) -> dict[str, Any]:
        last = self.last_view
        return {
            "projectId": self.project_id,
            "commitId": self.commit_id,
            "files": self.files,
            "groups": self.groups,
            "created": self.created,
            "matched": self.matched,
            "captured": self.captured,
            "lastView": last.to_dict() if last is not None else None,
            "durationSeconds": round(self.duration_seconds, 4),
        }


class EventProcessor:
    """Applies commit events to a :class:`ViewStore`.

    Parameters
    ----------
    store:
        An already-open view store.  The processor never opens or closes it.
    options:
        View kind and match threshold.  Defaults to :class:`ViewOptions`.
    settings:
        Concurrency limits.  Defaults to :class:`ProcessorSettings`.
    """

    def __init__(
        self,
        store: ViewStore,
        options: ViewOptions | None = None,
        settings: ProcessorSettings | None = None,
    ) -> None:
        self._store = store
        self._options = options or ViewOptions()
        self._settings = settings or ProcessorSettings()

    @property
    def options(self) -> ViewOptions:
        return self._options

    async def process(self, event: CommitEvent) -> ProcessResult:
        """Apply *event* to the store and wait for every file group.

        Returns:
            A :class:`ProcessResult` when every group was applied.

        Raises:
            MalformedEventError: The event has no project id or no files.
                Nothing is written.
            StoreError: Every group failed; the first error is raised.
            PartialUpdateFailure: Some groups were applied and some failed.
                Chained from the first failure.
        """
        start = time.monotonic()
        files = normalize_files(event)

        if len(files) > self._settings.warn_files_per_commit:
            logger.warning(
                "Commit %s in project %s changes %d files; %d view updates follow",
                event.commit_id or "?",
                event.project_id,
                len(files),
                (1 << len(files)) - 1,
            )

        groups = power_set(files)
        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def _run(group: FileGroup) -> GroupUpdate:
            async with semaphore:
                return await asyncio.to_thread(self._apply_group, event.project_id, files, group)

        outcomes = await asyncio.gather(*(_run(g) for g in groups), return_exceptions=True)

        updates: list[GroupUpdate] = []
        errors: list[BaseException] = []
        for outcome in outcomes:
            if isinstance(outcome, GroupUpdate):
                updates.append(outcome)
            elif isinstance(outcome, Exception):
                errors.append(outcome)
            else:
                raise outcome

        if errors:
            logger.error(
                "Project %s commit %s: %d of %d view updates failed: %s",
                event.project_id,
                event.commit_id or "?",
                len(errors),
                len(groups),
                errors[0],
            )
            if not updates:
                raise errors[0]
            raise PartialUpdateFailure(
                errors[0],
                applied=len(updates),
                failed=len(errors),
                project_id=event.project_id,
            ) from errors[0]

        result = ProcessResult(
            project_id=event.project_id,
            commit_id=event.commit_id,
            files=len(files),
            groups=len(groups),
            updates=updates,
        )
        for update in updates:
            if update.kind is UpdateKind.CREATED:
                result.created += 1
            elif update.kind is UpdateKind.CAPTURED:
                result.captured += 1
            else:
                result.matched += 1
        result.duration_seconds = time.monotonic() - start

        logger.info(
            "Project %s commit %s: %d groups (%d created, %d matched, %d captured)",
            result.project_id,
            result.commit_id or "?",
            result.groups,
            result.created,
            result.matched,
            result.captured,
        )
        return result

    def process_sync(self, event: CommitEvent) -> ProcessResult:
        """Blocking wrapper around :meth:`process` for synchronous callers.

        Inside a running event loop the event is processed on a helper thread
        with its own loop, since loops cannot be nested.  The calling loop is
        blocked until the event finishes; async callers should await
        :meth:`process` instead.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.process(event))

        with ThreadPoolExecutor(max_workers=1) as executor:
            return executor.submit(lambda: asyncio.run(self.process(event))).result()

    def _apply_group(self, project_id: str, files: list[str], group: FileGroup) -> GroupUpdate:
        """Find-or-create the view of *group* and advance it when it existed."""
        key = derive_view_key(self._options.view_name, project_id, group)
        now = utc_now()
        template = View(
            id=key,
            view_name=self._options.view_name,
            model=self._options.template(project_id, files),
            created_at=now,
            updated_at=now,
        )

        prior = self._store.upsert_and_fetch_original(key, template)
        if prior is None:
            return GroupUpdate(key=key, files=group, kind=UpdateKind.CREATED, view=template)

        advanced = advance(prior, self._options.match_threshold)
        persisted = self._store.apply_update(key, advanced.model)
        kind = UpdateKind.CAPTURED if is_capture(prior, advanced) else UpdateKind.MATCHED
        logger.debug(
            "View %s %s: matches=%d captures=%d",
            key,
            kind.value,
            persisted.model.matches,
            persisted.model.captures,
        )
        return GroupUpdate(key=key, files=group, kind=kind, view=persisted)
