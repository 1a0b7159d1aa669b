"""Exception types raised by the bookmark tree."""


class RecordError(ValueError):
    """A bookmark or folder record is malformed."""


class PersistenceError(RuntimeError):
    """Writing the store state to its blob store failed."""
