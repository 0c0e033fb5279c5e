"""In-memory view store.

Keeps views in a dict.  The find-or-insert primitive runs inside one critical
section, which gives it the same single-creation guarantee as the database
stores.  Useful for tests and one-off replays that do not need persistence.
"""

from __future__ import annotations

import copy
import logging
import threading

from coupling_view.core.errors import StoreError
from coupling_view.core.view.model import View, ViewModel, utc_now

logger = logging.getLogger(__name__)


class MemoryViewStore:
    """ViewStore implementation backed by a plain dictionary.

    Views are copied on the way in and out, so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._views: dict[str, View] = {}
        self._guard = threading.Lock()
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def __len__(self) -> int:
        return len(self._views)

    def upsert_and_fetch_original(self, key: str, template: View) -> View | None:
        self._check_open(key)
        with self._guard:
            existing = self._views.get(key)
            if existing is None:
                created = copy.deepcopy(template)
                created.id = key
                self._views[key] = created
                logger.debug("Created view %s", key)
                return None
            return copy.deepcopy(existing)

    def apply_update(self, key: str, model: ViewModel) -> View:
        self._check_open(key)
        with self._guard:
            existing = self._views.get(key)
            if existing is None:
                raise StoreError(f"No view stored at {key}", key=key)
            existing.model = copy.deepcopy(model)
            existing.updated_at = utc_now()
            return copy.deepcopy(existing)

    def get_view(self, key: str) -> View | None:
        self._check_open(key)
        with self._guard:
            view = self._views.get(key)
            return copy.deepcopy(view) if view is not None else None

    def list_views(self, project_id: str, limit: int = 50) -> list[View]:
        self._check_open()
        with self._guard:
            views = [
                copy.deepcopy(v) for v in self._views.values()
                if v.model.project_id == project_id
            ]
        views.sort(key=lambda v: (-v.model.captures, -v.model.matches, v.id))
        return views[:limit]

    def _check_open(self, key: str | None = None) -> None:
        if self._closed:
            raise StoreError("Memory view store is closed", key=key)
