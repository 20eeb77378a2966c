"""Exception types raised by the kanban store.

Every error carries a single human-readable message that names the offending
task id, column, sprint or field.
"""

from __future__ import annotations


class KanbnError(Exception):
    """Base class for all store errors."""

    pass


class NotInitialisedError(KanbnError):
    """The operation needs an initialised project folder."""

    def __init__(self, message: str = "Not initialised in this folder") -> None:
        super().__init__(message)


class NotFoundError(KanbnError):
    """A task file, task id, column or sprint does not exist."""

    pass


class AlreadyExistsError(KanbnError):
    """A task id collides with an existing task or archived task."""

    pass


class NotIndexedError(KanbnError):
    """A task file exists but its id is not tracked by the index."""

    pass


class ValidationFailure(KanbnError, ValueError):
    """Malformed index/task content, bad options or a blank required field."""

    pass


class ConfigError(KanbnError):
    """The external config file could not be read or parsed."""

    pass
