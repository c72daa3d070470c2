"""Exception taxonomy for miionet.

Every error carries a stable ``code`` so callers can branch on the kind of
failure without matching on message text.
"""


class MiioError(Exception):
    """Base exception for all miionet errors."""

    code = "error"

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ValidationError(MiioError):
    """Input validation error."""

    code = "invalid"


class MalformedPacket(MiioError):
    """Datagram is not a valid miIO frame or carries unreadable JSON."""

    code = "malformed-packet"


class DecryptFailure(MiioError):
    """Frame could not be decrypted with the current token."""

    code = "decrypt-failure"


class MissingToken(MiioError):
    """No token is known for the device."""

    code = "missing-token"


class NoToken(MissingToken):
    """A frame was about to be encoded without a token."""

    def __init__(self, details: str | None = None):
        super().__init__("Cannot encode request without a token", details)


class NoIdentifier(MiioError):
    """Device identifier is unknown, a handshake is needed first."""

    code = "no-identifier"


class HandshakeTimeout(MiioError):
    """Device did not answer the handshake in time."""

    code = "timeout"

    def __init__(self, address: str, timeout: float):
        message = f"Could not connect to device {address}, handshake timeout after {timeout}s"
        super().__init__(message)
        self.address = address
        self.timeout = timeout


class CallTimeout(MiioError):
    """Call to a device exhausted its retry budget."""

    code = "timeout"

    def __init__(self, method: str, attempts: int):
        message = f"Call to device timed out: {method}"
        super().__init__(message, f"no reply after {attempts} attempt(s)")
        self.method = method
        self.attempts = attempts


class ConnectionFailure(MiioError):
    """Device could not be reached even though a token is present."""

    code = "connection-failure"


class RemoteError(MiioError):
    """Device answered a call with an error object."""

    def __init__(self, message: str, code: int | str | None = None, method: str | None = None):
        super().__init__(message)
        self.code = code
        self.method = method


class TransportError(MiioError):
    """Local UDP send failed."""

    code = "transport"


class TokenStoreError(MiioError):
    """Token storage could not be read or written."""

    code = "token-store"
