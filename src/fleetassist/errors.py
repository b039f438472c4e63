class FleetAssistError(Exception):
    """Base class for errors raised by fleetassist."""


class TransportError(FleetAssistError):
    """The chat request failed: network error or an unexpected status.

    Args:
        message: Human readable text, suitable for a user notification.
        status_code: HTTP status, or ``None`` for network failures.
    """

    notification = "failed"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(TransportError):
    """The chat backend answered 429."""

    notification = "rate_limited"


class PaymentRequiredError(TransportError):
    """The chat backend answered 402."""

    notification = "payment_required"


class FrameParseError(FleetAssistError):
    """A ``data:`` frame did not contain parseable JSON.

    Internal to the decoder: the frame is re-buffered, never surfaced.
    """


class ToolArgumentError(FleetAssistError):
    """Accumulated tool arguments are not a JSON object."""


class ToolHandlerError(FleetAssistError):
    """Raised by a tool handler to report a domain failure to the model."""


class RecursionLimitExceeded(FleetAssistError):
    """Too many consecutive tool-calling requests within one user turn."""


class ConversationBusyError(FleetAssistError):
    """A turn was submitted while the orchestrator was not idle."""


class TurnCancelled(FleetAssistError):
    """The running turn was cancelled through ``cancel()``."""
