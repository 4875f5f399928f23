"""Custom exception classes for FHIR Audit Bridge."""

from typing import Optional


class BridgeBaseError(Exception):
    """Base class for all custom exceptions in FHIR Audit Bridge."""

    pass


class ConfigurationError(BridgeBaseError):
    """Raised when process configuration cannot be resolved."""

    pass


class DeliveryError(BridgeBaseError):
    """
    Raised by the synchronous send path when an AuditEvent could not
    be transmitted to the FHIR server.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        orig_exc: Optional[Exception] = None,
    ):
        self.url = url
        self.orig_exc = orig_exc

        full_msg = "Delivery error"
        if url:
            full_msg += f" (url: {url})"
        full_msg += f": {message}"
        if orig_exc:
            full_msg += f" (original error: {type(orig_exc).__name__})"
        super().__init__(full_msg)
