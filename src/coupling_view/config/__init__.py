"""Coupling View configuration — view options, processor limits and store settings."""

from coupling_view.config.settings import (
    DEFAULT_MATCH_THRESHOLD,
    DEFAULT_VIEW_NAME,
    ProcessorSettings,
    StoreSettings,
    ViewOptions,
)

__all__ = [
    "DEFAULT_MATCH_THRESHOLD",
    "DEFAULT_VIEW_NAME",
    "ProcessorSettings",
    "StoreSettings",
    "ViewOptions",
]
