"""Neo4j view store for Coupling View.

Persists views as ``:View`` nodes in a shared Neo4j database so several
processors (and outside observers polling capture counts) can work against
the same counters.  A uniqueness constraint on ``View.id`` backs the
``MERGE`` used for find-or-insert, which makes concurrent first touches of a
key create exactly one node.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from coupling_view.core.errors import StoreError, StoreUnavailableError
from coupling_view.core.view.model import View, ViewModel, from_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

_CONSTRAINT_QUERY = (
    "CREATE CONSTRAINT view_id IF NOT EXISTS "
    "FOR (v:View) REQUIRE v.id IS UNIQUE"
)

_UPSERT_QUERY = """
MERGE (v:View {id: $id})
ON CREATE SET v.view_name = $view_name,
              v.project_id = $project_id,
              v.file_ids = $file_ids,
              v.matches = $matches,
              v.captures = $captures,
              v.created_at = $created_at,
              v.updated_at = $updated_at,
              v.nonce = $nonce
RETURN v {.*} AS view
"""

_UPDATE_QUERY = """
MATCH (v:View {id: $id})
SET v.project_id = $project_id,
    v.file_ids = $file_ids,
    v.matches = $matches,
    v.captures = $captures,
    v.updated_at = $updated_at
RETURN v {.*} AS view
"""


class Neo4jViewStore:
    """ViewStore implementation powered by Neo4j."""

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        user: str = "neo4j",
        password: str = "password",
        *,
        driver: Any | None = None,
    ) -> None:
        if driver is not None:
            self._driver = driver
            return
        try:
            from neo4j import GraphDatabase
        except ImportError:
            raise ImportError(
                "The 'neo4j' package is required for this backend. "
                "Install it with: pip install coupling-view[neo4j]"
            )
        try:
            self._driver = GraphDatabase.driver(uri, auth=(user, password))
        except Exception as exc:
            raise StoreUnavailableError(f"Cannot connect to Neo4j at {uri}: {exc}") from exc

    def initialize(self) -> None:
        """Verify connectivity and create the ``View.id`` uniqueness constraint."""
        try:
            self._driver.verify_connectivity()
            with self._driver.session() as session:
                session.run(_CONSTRAINT_QUERY).consume()
        except Exception as exc:
            raise StoreUnavailableError(f"Neo4j is unavailable: {exc}") from exc

    def close(self) -> None:
        """Close the Neo4j driver connection."""
        self._driver.close()

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
        data = self._write(self._single_view, _UPSERT_QUERY, params, key=key)
        if data is None:
            raise StoreError(f"MERGE returned no row for {key}", key=key)
        if data.get("nonce") == nonce:
            logger.debug("Created view %s", key)
            return None
        return self._data_to_view(data)

    def apply_update(self, key: str, model: ViewModel) -> View:
        params = {
            "id": key,
            "project_id": model.project_id,
            "file_ids": list(model.file_ids),
            "matches": model.matches,
            "captures": model.captures,
            "updated_at": to_iso(utc_now()),
        }
        data = self._write(self._single_view, _UPDATE_QUERY, params, key=key)
        if data is None:
            raise StoreError(f"No view stored at {key}", key=key)
        return self._data_to_view(data)

    def get_view(self, key: str) -> View | None:
        records = self.query("MATCH (v:View {id: $id}) RETURN v {.*} AS view", {"id": key})
        return self._data_to_view(records[0]["view"]) if records else None

    def list_views(self, project_id: str, limit: int = 50) -> list[View]:
        records = self.query(
            "MATCH (v:View {project_id: $pid}) RETURN v {.*} AS view "
            "ORDER BY v.captures DESC, v.matches DESC, v.id LIMIT $limit",
            {"pid": project_id, "limit": int(limit)},
        )
        return [self._data_to_view(r["view"]) for r in records]

    def query(self, cypher: str, parameters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            with self._driver.session() as session:
                result = session.run(cypher, parameters or {})
                return [dict(record) for record in result]
        except Exception as exc:
            if _is_unavailable(exc):
                raise StoreUnavailableError(f"Neo4j is unavailable: {exc}") from exc
            raise StoreError(f"Neo4j query failed: {exc}") from exc

    def _write(self, work, cypher: str, params: dict[str, Any], *, key: str) -> dict[str, Any] | None:
        try:
            with self._driver.session() as session:
                return session.execute_write(work, cypher, params)
        except Exception as exc:
            if _is_unavailable(exc):
                raise StoreUnavailableError(f"Neo4j is unavailable: {exc}", key=key) from exc
            raise StoreError(f"Neo4j write failed for {key}: {exc}", key=key) from exc

    @staticmethod
    def _single_view(tx, cypher: str, params: dict[str, Any]) -> dict[str, Any] | None:
        record = tx.run(cypher, params).single()
        return dict(record["view"]) if record is not None else None

    @staticmethod
    def _data_to_view(data: dict[str, Any]) -> View:
        try:
            created_at = from_iso(data.get("created_at"))
            updated_at = from_iso(data.get("updated_at"))
        except ValueError as exc:
            raise StoreError(f"View {data['id']} has a bad timestamp: {exc}", key=data["id"]) from exc
        return View(
            id=data["id"],
            view_name=data.get("view_name") or "",
            model=ViewModel(
                project_id=data.get("project_id") or "",
                file_ids=list(data.get("file_ids") or []),
                matches=int(data.get("matches") or 0),
                captures=int(data.get("captures") or 0),
            ),
            created_at=created_at,
            updated_at=updated_at,
        )


def _is_unavailable(exc: BaseException) -> bool:
    try:
        from neo4j.exceptions import ServiceUnavailable, SessionExpired
    except ImportError:
        return False
    return isinstance(exc, (ServiceUnavailable, SessionExpired))
