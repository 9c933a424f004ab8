"""Session registry exceptions."""


class SessionError(Exception):
    """Base exception for operator session failures."""
    pass


class SessionExpired(SessionError):
    """Session token is unknown, revoked, or expired through inactivity."""

    def __init__(self, message: str = "Session expired due to inactivity"):
        super().__init__(message)
        self.message = message


class SessionStoreUnavailable(SessionError):
    """Session store (Redis) could not be reached."""

    def __init__(self, message: str = "Session store unavailable"):
        super().__init__(message)
        self.message = message
