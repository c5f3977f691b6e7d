"""Persistence layer exceptions.

All of them derive from PersistenceError so callers can catch the whole
family with one except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the engine cannot be created or the database is not initialized."""

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when an update targets a row that does not exist.

    Optional lookups return None instead.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised on constraint violations (duplicate run log rows, NOT NULL, ...)."""

    pass
