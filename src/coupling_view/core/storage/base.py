"""View store abstraction for Coupling View.

Defines the :class:`ViewStore` protocol that every concrete store (KuzuDB,
Neo4j, in-memory) must satisfy.

The write side is deliberately two-phase.  :meth:`ViewStore.upsert_and_fetch_original`
is the store's atomic find-or-insert primitive: it creates a view from the
template when none exists and otherwise hands back the existing state
untouched.  The caller then computes the new counters and persists them with
:meth:`ViewStore.apply_update`.  Only one creation can ever happen per key,
even when several writers touch a new key at the same moment.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from coupling_view.core.view.model import View, ViewModel


@runtime_checkable
class ViewStore(Protocol):
    """Protocol that every Coupling View store must implement.

    Stores receive already-established connections and own them until
    :meth:`close` is called.  Communication failures are raised as
    :class:`~coupling_view.core.errors.StoreError` and are never retried.
    """

    def close(self) -> None:
        """Release resources held by the store."""
        ...

    def upsert_and_fetch_original(self, key: str, template: View) -> View | None:
        """Insert *template* at *key* if absent, atomically.

        Returns:
            ``None`` when the view was just created, otherwise the view as
            it was before the call (left unmodified).
        """
        ...

    def apply_update(self, key: str, model: ViewModel) -> View:
        """Overwrite the model fields at *key* and refresh ``updated_at``.

        Returns:
            The view as persisted.
        """
        ...

    def get_view(self, key: str) -> View | None:
        """Return the view stored at *key*, or ``None`` if there is none."""
        ...

    def list_views(self, project_id: str, limit: int = 50) -> list[View]:
        """Return views of *project_id*, most captures first."""
        ...
