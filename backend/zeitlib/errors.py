"""Exception hierarchy for the time-tracking engine."""


class ZeitError(Exception):
    """Base class for all engine errors. ``str(exc)`` is user-facing (German)."""


class UnknownStatusCode(ZeitError, ValueError):
    pass


class ShiftPlanError(ZeitError, ValueError):
    pass


class SyntheticEntryError(ZeitError):
    """Raised when a plan-derived virtual day is about to be deleted or overwritten."""


class StorageError(ZeitError):
    pass
