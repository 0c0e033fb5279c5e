"""Match/capture counter policy for views."""

from __future__ import annotations

from dataclasses import replace

from coupling_view.core.view.model import View


def advance(view: View, threshold: int) -> View:
    """Record one more observation of *view* and return the new state.

    ``matches`` is incremented first.  When it reaches *threshold* it resets
    to zero and ``captures`` goes up by one, so after every call
    ``0 <= matches < threshold``.  The input view is left untouched.
    """
    matches = view.model.matches + 1
    captures = view.model.captures
    if matches >= threshold:
        matches = 0
        captures += 1
    model = replace(view.model, file_ids=list(view.model.file_ids), matches=matches, captures=captures)
    return replace(view, model=model)


def is_capture(before: View, after: View) -> bool:
    """Return ``True`` when *after* recorded a new capture relative to *before*."""
    return after.model.captures > before.model.captures
