"""Exceptions raised by the session store."""

from typing import Any


class SessionStoreError(RuntimeError):
    """Base class for session store errors."""


class SessionTooLarge(SessionStoreError):
    """The serialized session exceeds the configured maximum length."""

    def __init__(self, message: str = 'SessionStore: the value to store is '
                                      'too big') -> None:
        super(SessionTooLarge, self).__init__(message)


class SerializationError(SessionStoreError):
    """A session payload could not be encoded or decoded."""


class InvalidToken(SessionStoreError):
    """A session cookie is malformed, forged or expired."""


class SessionLoadFailed(SessionStoreError):
    """
    The session record could not be read.

    The cause (``__cause__``) is the untouched error from the backend or the
    serializer. ``session`` is the fresh, empty session that the request can
    continue with.
    """

    def __init__(self, message: str, session: Any) -> None:
        super(SessionLoadFailed, self).__init__(message)
        self.session = session


class ConfigurationError(SessionStoreError):
    """Raised when a required configuration parameter is missing."""
