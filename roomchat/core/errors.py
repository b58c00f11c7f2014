"""Domain errors raised by the messaging services. Routers map them to HTTP/WebSocket responses."""


class MessagingError(Exception):
    pass


class InvalidArgument(MessagingError):
    """Malformed caller input (missing or equal identities, blank ids)."""


class ValidationError(InvalidArgument):
    """Message content rejected before anything is written."""


class Unauthorized(MessagingError):
    """Caller is not signed in, or not a participant of the conversation."""

    def __init__(self, message: str = "Not signed in", *, signed_in: bool = False):
        super().__init__(message)
        self.signed_in = signed_in


class NotFound(MessagingError):
    pass


class PersistenceError(MessagingError):
    """An underlying read, write or subscribe operation failed."""
