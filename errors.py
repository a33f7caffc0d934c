"""Error taxonomy shared by the relay, the source reader, the automator and the orchestrator.

Every error renders to the {error, details} shape returned by the relay and by
the message dispatcher.
"""


class TransferError(Exception):
    """Base class. `status` is the HTTP status the relay answers with."""

    status = 500

    def __init__(self, message, details=None, status=None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status is not None:
            self.status = status

    def to_dict(self):
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body

    def __str__(self):
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class InvalidRequest(TransferError):
    """Required input missing. Raised before any I/O."""

    status = 400


class AuthError(TransferError):
    """Token exchange/refresh rejected, or the source API refused the token."""

    status = 401


class UpstreamError(TransferError):
    """Non-2xx answer from an upstream API; `status` is forwarded as-is."""


class AutomationError(TransferError):
    """A step against the destination UI surface failed."""


class ElementNotFound(AutomationError):
    def __init__(self, target, details=None):
        super().__init__(f"Element not found: {target}", details)
        self.target = target


class Timeout(AutomationError):
    def __init__(self, target, timeout_ms):
        super().__init__(f"Element {target} not found within {timeout_ms}ms")
        self.target = target
        self.timeout_ms = timeout_ms


class IdExtractionFailed(AutomationError):
    def __init__(self, details=None):
        super().__init__("Could not extract playlist ID", details)


class UnknownRequestType(TransferError):
    status = 400

    def __init__(self, request_type):
        super().__init__("Unknown request type", details=request_type)
        self.request_type = request_type


class TransferAborted(TransferError):
    """Terminal failure of a whole transfer (only playlist creation can cause it)."""

    def __init__(self, message, cause=None):
        super().__init__(message, details=str(cause) if cause else None)
        self.cause = cause
