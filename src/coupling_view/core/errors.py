"""Exception hierarchy for the view update engine.

Every failure the engine reports derives from :class:`CouplingViewError` so
invocation wrappers can catch the whole family in one place and still
distinguish rejected input from store trouble.
"""

from __future__ import annotations


class CouplingViewError(Exception):
    """Base class for all errors raised by coupling-view."""


class ConfigError(CouplingViewError, ValueError):
    """Invalid configuration value or malformed credentials."""


class MalformedEventError(CouplingViewError, ValueError):
    """A commit event is missing its project id or its changed files.

    Raised before any file group is processed, so a rejected event never
    causes a store write.
    """


class StoreError(CouplingViewError):
    """A view store operation failed.

    The gateway never retries; the error aborts the file group it was raised
    for and is reported to the caller.
    """

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class StoreUnavailableError(StoreError):
    """The view store could not be reached or opened."""


class PartialUpdateFailure(CouplingViewError):
    """Some file groups of an event were applied and at least one failed.

    Views that were already updated stay updated.  Reprocessing the event
    will count those groups again, so callers that retry must accept
    at-least-once counting.
    """

    def __init__(
        self,
        first_error: BaseException,
        *,
        applied: int,
        failed: int,
        project_id: str = "",
    ) -> None:
        super().__init__(
            f"{failed} of {applied + failed} view updates failed for project "
            f"{project_id!r}: {first_error}"
        )
        self.first_error = first_error
        self.applied = applied
        self.failed = failed
        self.project_id = project_id
