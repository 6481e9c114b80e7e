from typing import Optional


class CDPError(RuntimeError):
    """Base class for every failure raised by the CDP client."""


class DiscoveryFailure(CDPError):
    """No debugging endpoint answered in the configured port range."""


class TransportFailure(CDPError):
    """The websocket is closed, errored, or was never opened."""


class ProtocolTimeout(CDPError):
    """A command got no response before its deadline.

    Only the call that timed out fails; the connection stays usable.
    """

    def __init__(self, method: str, timeout: float):
        super().__init__(f"CDP timeout after {timeout}s: {method}")
        self.method = method
        self.timeout = timeout


class CommandError(CDPError):
    """The endpoint answered a command with an ``error`` payload."""

    def __init__(self, method: str, error: dict):
        message = error.get('message', str(error)) if isinstance(error, dict) else str(error)
        super().__init__(f"CDP {method}: {message}")
        self.method = method
        self.code: Optional[int] = error.get('code') if isinstance(error, dict) else None
        self.protocol_message = message


class EvaluationFailure(CDPError):
    """An expression evaluated in the page threw, or returned nothing usable."""
