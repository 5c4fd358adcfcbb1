"""Exception types for the relay."""


class RelayError(Exception):
    """Base class for relay errors."""


class UnknownSessionError(RelayError, LookupError):
    """Raised when a session id is not in the registry.

    Handlers look sessions up only after registering them on connect, so this
    indicates a registry bug rather than bad client input.
    """

    def __init__(self, session_id: str):
        super().__init__(f"Unknown session: {session_id}")
        self.session_id = session_id
