class ProtocolError(Exception):
    """Raised when a payload does not decode into a known protocol message.

    Recoverable errors describe anomalies a session can survive (a stale
    progress update); everything else is fatal to the session.
    """

    def __init__(self, message: str, *, recoverable: bool = False) -> None:
        super().__init__(message)
        self.recoverable = recoverable
