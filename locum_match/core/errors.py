"""Exception types raised by the matching engine and its repositories."""


class MatchingError(Exception):
    """Base class for matching engine errors."""


class RecordNotFoundError(MatchingError, LookupError):
    """A run or outbox item id does not exist."""


class DuplicateRecordError(MatchingError, ValueError):
    """A run or outbox item id is already stored."""


class InvalidTransitionError(MatchingError, ValueError):
    """A run status change would move backwards or out of a terminal state."""


class JobNotFoundError(MatchingError, LookupError):
    """The data source has no job with the requested id."""


class NotShortTermJobError(MatchingError, ValueError):
    """A short-term run was requested for a job that fails the short-term rules."""
