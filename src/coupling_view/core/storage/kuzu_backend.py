"""KuzuDB view store for Coupling View.

Implements the :class:`ViewStore` protocol using KuzuDB, an embedded graph
database that speaks Cypher.  All views live in a single ``View`` node table
keyed by the view key.  Creation uses ``MERGE ... ON CREATE SET`` so the
find-or-insert step is one atomic statement.
"""

from __future__ import annotations

import logging
import threading
import uuid
from pathlib import Path
from typing import Any

import kuzu

from coupling_view.core.errors import StoreError, StoreUnavailableError
from coupling_view.core.view.model import View, ViewModel, from_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

_VIEW_PROPERTIES = (
    "id STRING, "
    "view_name STRING, "
    "project_id STRING, "
    "file_ids STRING[], "
    "matches INT64, "
    "captures INT64, "
    "created_at STRING, "
    "updated_at STRING, "
    "nonce STRING, "
    "PRIMARY KEY (id)"
)

_VIEW_COLUMNS = (
    "v.id, v.view_name, v.project_id, v.file_ids, v.matches, "
    "v.captures, v.created_at, v.updated_at, v.nonce"
)

_UPSERT_QUERY = (
    "MERGE (v:View {id: $id}) "
    "ON CREATE SET "
    "v.view_name = $view_name, "
    "v.project_id = $project_id, "
    "v.file_ids = $file_ids, "
    "v.matches = $matches, "
    "v.captures = $captures, "
    "v.created_at = $created_at, "
    "v.updated_at = $updated_at, "
    "v.nonce = $nonce "
    f"RETURN {_VIEW_COLUMNS}"
)

_UPDATE_QUERY = (
    "MATCH (v:View) WHERE v.id = $id "
    "SET v.project_id = $project_id, "
    "v.file_ids = $file_ids, "
    "v.matches = $matches, "
    "v.captures = $captures, "
    "v.updated_at = $updated_at "
    f"RETURN {_VIEW_COLUMNS}"
)


class KuzuViewStore:
    """ViewStore implementation backed by KuzuDB.

    Usage::

        store = KuzuViewStore()
        store.initialize(Path(".coupling-view/kuzu"))
        prior = store.upsert_and_fetch_original(key, template)
        store.close()
    """

    def __init__(self) -> None:
        self._db: kuzu.Database | None = None
        self._conn: kuzu.Connection | None = None
        # A Kuzu connection runs one statement at a time.
        self._lock = threading.Lock()

    def initialize(self, path: Path, *, read_only: bool = False) -> None:
        """Open or create the KuzuDB database at *path* and set up the schema.

        Args:
            path: Filesystem path to the KuzuDB database.
            read_only: If ``True``, open the database in read-only mode so
                several readers can inspect it while a writer holds it.
                Schema creation is skipped.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        try:
            self._db = kuzu.Database(str(path), read_only=read_only)
            self._conn = kuzu.Connection(self._db)
        except Exception as exc:
            raise StoreUnavailableError(f"Cannot open Kuzu database at {path}: {exc}") from exc
        if not read_only:
            self._create_schema()
        logger.debug("Opened Kuzu view store at %s (read_only=%s)", path, read_only)

    def close(self) -> None:
        """Release the connection and database handles.

        Closing the database releases KuzuDB's file lock and flushes data.
        """
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            if self._db is not None:
                self._db.close()
                self._db = None

    def upsert_and_fetch_original(self, key: str, template: View) -> View | None:
        nonce = uuid.uuid4().hex
        params = {
            "id": key,
            "view_name": template.view_name,
            "project_id": template.model.project_id,
            "file_ids": list(template.model.file_ids),
            "matches": template.model.matches,
            "captures": template.model.captures,
            "created_at": to_iso(template.created_at),
            "updated_at": to_iso(template.updated_at),
            "nonce": nonce,
        }
        rows = self._execute(_UPSERT_QUERY, params, key=key)
        if not rows:
            raise StoreError(f"MERGE returned no row for {key}", key=key)
        row = rows[0]
        if row[8] == nonce:
            logger.debug("Created view %s", key)
            return None
        return self._row_to_view(row)

    def apply_update(self, key: str, model: ViewModel) -> View:
        params = {
            "id": key,
            "project_id": model.project_id,
            "file_ids": list(model.file_ids),
            "matches": model.matches,
            "captures": model.captures,
            "updated_at": to_iso(utc_now()),
        }
        rows = self._execute(_UPDATE_QUERY, params, key=key)
        if not rows:
            raise StoreError(f"No view stored at {key}", key=key)
        return self._row_to_view(rows[0])

    def get_view(self, key: str) -> View | None:
        rows = self._execute(
            f"MATCH (v:View) WHERE v.id = $id RETURN {_VIEW_COLUMNS}",
            {"id": key},
            key=key,
        )
        return self._row_to_view(rows[0]) if rows else None

    def list_views(self, project_id: str, limit: int = 50) -> list[View]:
        rows = self._execute(
            f"MATCH (v:View) WHERE v.project_id = $pid RETURN {_VIEW_COLUMNS} "
            f"ORDER BY v.captures DESC, v.matches DESC, v.id LIMIT {int(limit)}",
            {"pid": project_id},
        )
        return [self._row_to_view(row) for row in rows]

    def _create_schema(self) -> None:
        self._execute(f"CREATE NODE TABLE IF NOT EXISTS View({_VIEW_PROPERTIES})", {})

    def _execute(
        self, query: str, parameters: dict[str, Any], *, key: str | None = None
    ) -> list[list[Any]]:
        """Run *query* and return all rows, wrapping driver failures in StoreError."""
        if self._conn is None:
            raise StoreUnavailableError("Kuzu view store is not initialised", key=key)
        try:
            with self._lock:
                result = self._conn.execute(query, parameters=parameters)
                rows: list[list[Any]] = []
                while result.has_next():
                    rows.append(result.get_next())
        except Exception as exc:
            raise StoreError(f"Kuzu query failed: {exc}", key=key) from exc
        return rows

    @staticmethod
    def _row_to_view(row: list[Any]) -> View:
        """Convert a row of ``_VIEW_COLUMNS`` into a View.

        Column order: 0=id, 1=view_name, 2=project_id, 3=file_ids,
        4=matches, 5=captures, 6=created_at, 7=updated_at, 8=nonce

        Raises:
            StoreError: If the stored timestamps are missing or unreadable.
        """
        try:
            created_at = from_iso(row[6])
            updated_at = from_iso(row[7])
        except ValueError as exc:
            raise StoreError(f"View {row[0]} has a bad timestamp: {exc}", key=row[0]) from exc
        return View(
            id=row[0],
            view_name=row[1] or "",
            model=ViewModel(
                project_id=row[2] or "",
                file_ids=list(row[3] or []),
                matches=int(row[4] or 0),
                captures=int(row[5] or 0),
            ),
            created_at=created_at,
            updated_at=updated_at,
        )
