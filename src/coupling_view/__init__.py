"""Coupling View — materialized co-change views over git commit events."""

__version__ = "0.1.0"
