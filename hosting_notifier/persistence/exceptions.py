"""Persistence layer exceptions.

Everything raised by this package derives from PersistenceError, so the
dispatcher can treat any storage failure for one item the same way.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the database cannot be opened, validated or initialised."""

    pass


class RecordNotFoundError(PersistenceError):
    """Raised by updates that target a row which does not exist.

    Lookups return None instead.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised on constraint violations (unique, foreign key, not null)."""

    pass


class MalformedRecordError(PersistenceError):
    """Raised when a stored row cannot be turned into a valid domain model.

    Example: a recurring rule row with no frequency, or a template whose
    recipients JSON uses an unknown spec type.
    """

    pass
