"""Runtime configuration for views, the event processor and view stores."""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from coupling_view.core.errors import ConfigError
from coupling_view.core.view.model import ViewModel, initial_model

DEFAULT_VIEW_NAME = "tcq"
DEFAULT_MATCH_THRESHOLD = 2

DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_WARN_FILES_PER_COMMIT = 16

DEFAULT_DATA_DIR = ".coupling-view"
DEFAULT_NEO4J_URI = "bolt://localhost:7687"

BACKENDS: frozenset[str] = frozenset({"kuzu", "neo4j", "memory"})


@dataclass(frozen=True)
class ViewOptions:
    """Options of one materialized view kind.

    ``view_name`` must be unique per view kind since it prefixes every key.
    ``template`` builds the counter state of a newly created view from the
    project id and the full file list of the creating commit.
    """

    view_name: str = DEFAULT_VIEW_NAME
    match_threshold: int = DEFAULT_MATCH_THRESHOLD
    template: Callable[[str, list[str]], ViewModel] = initial_model

    def __post_init__(self) -> None:
        if not self.view_name:
            raise ConfigError("view_name must not be empty")
        if self.match_threshold < 1:
            raise ConfigError(
                f"match_threshold must be at least 1, got {self.match_threshold}"
            )


@dataclass(frozen=True)
class ProcessorSettings:
    """Concurrency limits for processing one commit event."""

    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    warn_files_per_commit: int = DEFAULT_WARN_FILES_PER_COMMIT

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ConfigError(
                f"max_concurrency must be at least 1, got {self.max_concurrency}"
            )


@dataclass
class StoreSettings:
    """Which view store to open and how to reach it.

    Attributes:
        backend: ``"kuzu"`` (embedded, default), ``"neo4j"`` or ``"memory"``.
        path: Database directory for the Kuzu backend.
        uri: Bolt URI for the Neo4j backend.
        user: Neo4j user name.
        password: Neo4j password.
    """

    backend: str = "kuzu"
    path: Path = field(default_factory=lambda: Path(DEFAULT_DATA_DIR) / "kuzu")
    uri: str = DEFAULT_NEO4J_URI
    user: str = "neo4j"
    password: str = "password"

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigError(
                f"Unknown backend {self.backend!r}; expected one of {sorted(BACKENDS)}"
            )
        self.path = Path(self.path)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StoreSettings:
        """Build settings from environment variables.

        ``COUPLING_VIEW_BACKEND`` selects the backend and
        ``COUPLING_VIEW_DB_PATH`` the Kuzu directory.  ``SERVICE_CREDENTIALS``
        is a JSON document carrying the connection ``uri`` (plus optional
        ``user``/``username`` and ``password``); when present it implies the
        Neo4j backend unless a backend is set explicitly.

        Raises:
            ConfigError: If ``SERVICE_CREDENTIALS`` is not valid JSON or has
                no ``uri``.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        raw_credentials = env.get("SERVICE_CREDENTIALS")
        if raw_credentials:
            try:
                credentials = json.loads(raw_credentials)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"SERVICE_CREDENTIALS is not valid JSON: {exc}") from exc
            if not isinstance(credentials, dict) or not credentials.get("uri"):
                raise ConfigError("SERVICE_CREDENTIALS must be a JSON object with a 'uri'")
            kwargs["backend"] = "neo4j"
            kwargs["uri"] = credentials["uri"]
            user = credentials.get("user") or credentials.get("username")
            if user:
                kwargs["user"] = user
            if credentials.get("password"):
                kwargs["password"] = credentials["password"]

        if env.get("COUPLING_VIEW_BACKEND"):
            kwargs["backend"] = env["COUPLING_VIEW_BACKEND"]
        if env.get("COUPLING_VIEW_DB_PATH"):
            kwargs["path"] = Path(env["COUPLING_VIEW_DB_PATH"])

        return cls(**kwargs)  # type: ignore[arg-type]
