"""Tests for the Neo4j view store.

The driver is mocked; these tests pin the Cypher contract and the error
mapping rather than talking to a live database.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from neo4j.exceptions import ServiceUnavailable

from coupling_view.core.errors import StoreError, StoreUnavailableError
from coupling_view.core.storage.neo4j_backend import Neo4jViewStore
from coupling_view.core.view.model import View, ViewModel, initial_model


def _template() -> View:
    return View(id="tcq_p1_abc", view_name="tcq", model=initial_model("p1", ["a.js"]))


def _stored(**overrides) -> dict:
    data = {
        "id": "tcq_p1_abc",
        "view_name": "tcq",
        "project_id": "p1",
        "file_ids": ["a.js"],
        "matches": 1,
        "captures": 0,
        "created_at": "2024-05-01T12:00:00+00:00",
        "updated_at": "2024-05-01T12:00:00+00:00",
        "nonce": "someone-else",
    }
    data.update(overrides)
    return data


@pytest.fixture()
def driver() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def session(driver: MagicMock) -> MagicMock:
    s = MagicMock()
    driver.session.return_value.__enter__.return_value = s
    return s


class TestUpsertAndFetchOriginal:
    def test_created_when_nonce_matches(self, driver: MagicMock, session: MagicMock) -> None:
        store = Neo4jViewStore(driver=driver)

        def execute_write(work, cypher, params):
            assert "MERGE (v:View {id: $id})" in cypher
            assert "ON CREATE SET" in cypher
            return _stored(nonce=params["nonce"])

        session.execute_write.side_effect = execute_write

        assert store.upsert_and_fetch_original("tcq_p1_abc", _template()) is None

    def test_existing_view_returned(self, driver: MagicMock, session: MagicMock) -> None:
        store = Neo4jViewStore(driver=driver)
        session.execute_write.return_value = _stored(matches=1, captures=4)

        prior = store.upsert_and_fetch_original("tcq_p1_abc", _template())

        assert prior is not None
        assert prior.model.matches == 1
        assert prior.model.captures == 4
        assert prior.model.file_ids == ["a.js"]

    def test_passes_template_fields(self, driver: MagicMock, session: MagicMock) -> None:
        store = Neo4jViewStore(driver=driver)
        session.execute_write.return_value = _stored()

        store.upsert_and_fetch_original("tcq_p1_abc", _template())

        _work, _cypher, params = session.execute_write.call_args.args
        assert params["id"] == "tcq_p1_abc"
        assert params["matches"] == 1
        assert params["captures"] == 0
        assert params["file_ids"] == ["a.js"]

    def test_service_unavailable_maps_to_store_unavailable(
        self, driver: MagicMock, session: MagicMock
    ) -> None:
        store = Neo4jViewStore(driver=driver)
        session.execute_write.side_effect = ServiceUnavailable("down")

        with pytest.raises(StoreUnavailableError) as exc_info:
            store.upsert_and_fetch_original("tcq_p1_abc", _template())
        assert exc_info.value.key == "tcq_p1_abc"

    def test_other_failures_map_to_store_error(self, driver: MagicMock, session: MagicMock) -> None:
        store = Neo4jViewStore(driver=driver)
        session.execute_write.side_effect = RuntimeError("boom")

        with pytest.raises(StoreError) as exc_info:
            store.upsert_and_fetch_original("tcq_p1_abc", _template())
        assert not isinstance(exc_info.value, StoreUnavailableError)


class TestApplyUpdate:
    def test_returns_persisted_view(self, driver: MagicMock, session: MagicMock) -> None:
        store = Neo4jViewStore(driver=driver)
        session.execute_write.return_value = _stored(matches=0, captures=1)

        view = store.apply_update("tcq_p1_abc", ViewModel(project_id="p1", file_ids=["a.js"], captures=1))

        assert view.model.captures == 1
        _work, cypher, params = session.execute_write.call_args.args
        assert "MATCH (v:View {id: $id})" in cypher
        assert params["captures"] == 1
        assert "updated_at" in params

    def test_missing_key_raises(self, driver: MagicMock, session: MagicMock) -> None:
        store = Neo4jViewStore(driver=driver)
        session.execute_write.return_value = None

        with pytest.raises(StoreError):
            store.apply_update("missing", ViewModel(project_id="p1"))


class TestSingleView:
    def test_unwraps_record(self) -> None:
        tx = MagicMock()
        tx.run.return_value.single.return_value = {"view": _stored()}
        assert Neo4jViewStore._single_view(tx, "RETURN 1", {})["id"] == "tcq_p1_abc"

    def test_no_record(self) -> None:
        tx = MagicMock()
        tx.run.return_value.single.return_value = None
        assert Neo4jViewStore._single_view(tx, "RETURN 1", {}) is None


class TestLifecycle:
    def test_initialize_creates_constraint(self, driver: MagicMock, session: MagicMock) -> None:
        Neo4jViewStore(driver=driver).initialize()

        driver.verify_connectivity.assert_called_once()
        cypher = session.run.call_args.args[0]
        assert "REQUIRE v.id IS UNIQUE" in cypher

    def test_initialize_unreachable(self, driver: MagicMock) -> None:
        driver.verify_connectivity.side_effect = ServiceUnavailable("down")
        with pytest.raises(StoreUnavailableError):
            Neo4jViewStore(driver=driver).initialize()

    def test_close(self, driver: MagicMock) -> None:
        Neo4jViewStore(driver=driver).close()
        driver.close.assert_called_once()


class TestReads:
    def test_get_view(self, driver: MagicMock, session: MagicMock) -> None:
        session.run.return_value = [{"view": _stored(captures=2)}]
        view = Neo4jViewStore(driver=driver).get_view("tcq_p1_abc")
        assert view is not None
        assert view.model.captures == 2

    def test_get_view_missing(self, driver: MagicMock, session: MagicMock) -> None:
        session.run.return_value = []
        assert Neo4jViewStore(driver=driver).get_view("missing") is None

    def test_list_views_passes_limit(self, driver: MagicMock, session: MagicMock) -> None:
        session.run.return_value = [{"view": _stored()}]
        views = Neo4jViewStore(driver=driver).list_views("p1", limit=5)

        assert len(views) == 1
        assert session.run.call_args.args[1] == {"pid": "p1", "limit": 5}

    def test_read_outage_maps_to_store_unavailable(self, driver: MagicMock, session: MagicMock) -> None:
        session.run.side_effect = ServiceUnavailable("down")
        with pytest.raises(StoreUnavailableError):
            Neo4jViewStore(driver=driver).get_view("tcq_p1_abc")

    def test_other_read_failures_map_to_store_error(self, driver: MagicMock, session: MagicMock) -> None:
        session.run.side_effect = RuntimeError("bad cypher")
        with pytest.raises(StoreError) as exc_info:
            Neo4jViewStore(driver=driver).list_views("p1")
        assert not isinstance(exc_info.value, StoreUnavailableError)

    def test_missing_timestamp_raises(self, driver: MagicMock, session: MagicMock) -> None:
        session.run.return_value = [{"view": _stored(created_at=None)}]
        with pytest.raises(StoreError, match="timestamp") as exc_info:
            Neo4jViewStore(driver=driver).get_view("tcq_p1_abc")
        assert exc_info.value.key == "tcq_p1_abc"
