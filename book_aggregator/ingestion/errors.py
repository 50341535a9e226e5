"""Per-exchange fetch failures.

Every failure to obtain a book from one exchange is a FetchError. The
aggregation engine excludes the exchange for that cycle and carries on.
"""


class FetchError(Exception):
    """Base class for a failed snapshot fetch from one exchange."""

    kind = "error"

    def __init__(self, exchange_id: str, message: str = ""):
        self.exchange_id = exchange_id
        self.message = message
        super().__init__(f"[{exchange_id}] {message}" if message else f"[{exchange_id}] {self.kind}")

    @property
    def reason(self) -> str:
        """Short human-readable reason for reports."""
        return f"{self.kind}: {self.message}" if self.message else self.kind


class FetchTimeoutError(FetchError):
    """Deadline expired before the permit was granted or the response arrived."""

    kind = "timeout"


class TransportError(FetchError):
    """Connection failure or non-success HTTP status."""

    kind = "transport"

    def __init__(self, exchange_id: str, message: str = "", status: int | None = None):
        self.status = status
        super().__init__(exchange_id, message)


class DecodeError(FetchError):
    """Payload was absent, non-numeric or structurally malformed."""

    kind = "decode"
