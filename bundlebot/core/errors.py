"""Error taxonomy shared by the stream, execution and order layers."""

from __future__ import annotations


class BundleBotError(Exception):
    """Base application error."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# --- Stream ---

class NetworkError(BundleBotError):
    """Stream transport failure. Non-fatal until reconnect attempts run out."""


class ProtocolError(BundleBotError):
    """Malformed or unrecognized stream message. The connection stays open."""


# --- Execution ---

class ValidationError(BundleBotError):
    """Malformed execution intent or limit order, rejected before any network call."""


class PrepServiceError(BundleBotError):
    """The prep service reported failure for one execution unit."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class SigningError(BundleBotError):
    """No transaction in a bundle could be signed by the unit's wallets."""


class SubmissionError(BundleBotError):
    """The submission service rejected or failed to accept one bundle."""

    def __init__(self, message: str, details: str | None = None) -> None:
        self.details = details
        super().__init__(f"{message}: {details}" if details else message)


# --- Orders ---

class CapacityError(BundleBotError):
    """A feature cap (e.g. maximum active limit orders) was reached."""

    def __init__(self, limit: int, what: str = "active limit orders") -> None:
        self.limit = limit
        super().__init__(f"Maximum {limit} {what}")
