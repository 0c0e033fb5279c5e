"""Service lifecycle and invocation wrapper for Coupling View.

:class:`CouplingViewService` owns one view store for the lifetime of a
process: open it once, reuse it for every event, close it on shutdown.
:func:`make_handler` adapts a service to a Lambda-style
``handler(event, context)`` entry point that reports each event as a
success or failure outcome.  :func:`make_async_handler` is the same
entry point for transports that already run an event loop.

Usage::

    service = CouplingViewService(StoreSettings.from_env()).open()
    handler = make_handler(service)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from coupling_view.config.settings import ProcessorSettings, StoreSettings, ViewOptions
from coupling_view.core.errors import (
    MalformedEventError,
    PartialUpdateFailure,
    StoreError,
    StoreUnavailableError,
)
from coupling_view.core.ingestion.events import parse_commit_event
from coupling_view.core.ingestion.processor import EventProcessor, ProcessResult
from coupling_view.core.storage.base import ViewStore

logger = logging.getLogger(__name__)


def open_store(settings: StoreSettings, *, read_only: bool = False) -> ViewStore:
    """Open the view store described by *settings*.

    Raises:
        StoreUnavailableError: If the store cannot be reached or opened.
    """
    if settings.backend == "memory":
        from coupling_view.core.storage.memory_backend import MemoryViewStore

        return MemoryViewStore()

    if settings.backend == "neo4j":
        from coupling_view.core.storage.neo4j_backend import Neo4jViewStore

        neo4j_store = Neo4jViewStore(uri=settings.uri, user=settings.user, password=settings.password)
        try:
            neo4j_store.initialize()
        except StoreUnavailableError:
            neo4j_store.close()
            raise
        logger.info("Connected to Neo4j view store at %s", settings.uri)
        return neo4j_store

    from coupling_view.core.storage.kuzu_backend import KuzuViewStore

    if not read_only:
        settings.path.parent.mkdir(parents=True, exist_ok=True)
    kuzu_store = KuzuViewStore()
    kuzu_store.initialize(settings.path, read_only=read_only)
    logger.info("Opened Kuzu view store at %s", settings.path)
    return kuzu_store


class CouplingViewService:
    """Holds an open view store and the processor bound to it."""

    def __init__(
        self,
        settings: StoreSettings | None = None,
        options: ViewOptions | None = None,
        processor_settings: ProcessorSettings | None = None,
        *,
        store: ViewStore | None = None,
    ) -> None:
        self._settings = settings or StoreSettings()
        self._options = options or ViewOptions()
        self._processor_settings = processor_settings or ProcessorSettings()
        self._store = store
        self._processor: EventProcessor | None = None

    def open(self, *, read_only: bool = False) -> CouplingViewService:
        """Open the store (unless one was injected) and build the processor."""
        if self._store is None:
            self._store = open_store(self._settings, read_only=read_only)
        self._processor = EventProcessor(self._store, self._options, self._processor_settings)
        return self

    def close(self) -> None:
        """Close the store.  Safe to call more than once."""
        if self._store is not None:
            self._store.close()
        self._store = None
        self._processor = None

    def __enter__(self) -> CouplingViewService:
        if self._processor is None:
            self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._processor is not None

    @property
    def store(self) -> ViewStore:
        if self._store is None or self._processor is None:
            raise RuntimeError("CouplingViewService is not open")
        return self._store

    @property
    def processor(self) -> EventProcessor:
        if self._processor is None:
            raise RuntimeError("CouplingViewService is not open")
        return self._processor

    def process_payload(self, payload: Any) -> ProcessResult:
        """Parse a raw commit payload and apply it to the store."""
        event = parse_commit_event(payload)
        return self.processor.process_sync(event)

    async def process_payload_async(self, payload: Any) -> ProcessResult:
        """Async variant of :meth:`process_payload` for callers already in a loop."""
        event = parse_commit_event(payload)
        return await self.processor.process(event)


# Engine failures a handler reports instead of raising.  Most specific first.
_FAILURE_KINDS: tuple[tuple[type[Exception], str, int], ...] = (
    (MalformedEventError, "MalformedEvent", logging.WARNING),
    (PartialUpdateFailure, "PartialUpdateFailure", logging.ERROR),
    (StoreUnavailableError, "StoreUnavailable", logging.ERROR),
    (StoreError, "StoreError", logging.ERROR),
)
_REPORTED = tuple(cls for cls, _, _ in _FAILURE_KINDS)


def _failure(exc: Exception) -> dict[str, Any]:
    for cls, kind, level in _FAILURE_KINDS:
        if isinstance(exc, cls):
            logger.log(level, "Commit event failed (%s): %s", kind, exc)
            return {"ok": False, "error": kind, "message": str(exc)}
    raise exc


def make_handler(service: CouplingViewService) -> Callable[..., dict[str, Any]]:
    """Wrap *service* in a ``handler(event, context=None)`` entry point.

    The handler never raises for engine failures; it returns
    ``{"ok": True, "result": ...}`` or ``{"ok": False, "error": kind,
    "message": ...}`` where *kind* is ``MalformedEvent``,
    ``PartialUpdateFailure``, ``StoreUnavailable`` or ``StoreError``.
    Retrying is left to whatever transport invoked the handler.

    Calling the handler from inside a running event loop works but blocks
    that loop; async transports should use :func:`make_async_handler`.
    """

    def handler(event: Any, context: Any = None) -> dict[str, Any]:
        try:
            result = service.process_payload(event)
        except _REPORTED as exc:
            return _failure(exc)
        return {"ok": True, "result": result.to_dict()}

    return handler


def make_async_handler(service: CouplingViewService) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Coroutine counterpart of :func:`make_handler` with the same outcomes."""

    async def handler(event: Any, context: Any = None) -> dict[str, Any]:
        try:
            result = await service.process_payload_async(event)
        except _REPORTED as exc:
            return _failure(exc)
        return {"ok": True, "result": result.to_dict()}

    return handler
