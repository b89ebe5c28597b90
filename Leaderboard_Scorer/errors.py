class LeaderboardError(Exception):
    """Base class for leaderboard engine failures."""


class DataAccessError(LeaderboardError):
    """A read or write against the backing store failed."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        msg = f"{operation} failed"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)


class ConfigurationError(LeaderboardError):
    pass
