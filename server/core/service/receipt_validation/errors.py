"""Exceptions raised while talking to Apple's verifyReceipt service."""
from typing import List, Optional

from server.core.models.receipt_models import Environment


class ReceiptValidationError(Exception):
    """Base class for receipt validation failures."""


class UpstreamError(ReceiptValidationError):
    """A verifyReceipt call did not produce a usable response."""

    def __init__(self, message: str, environment: Environment):
        super().__init__(message)
        self.environment = environment


class UpstreamTimeoutError(UpstreamError):
    """The call exceeded its deadline."""


class UpstreamNetworkError(UpstreamError):
    """Connection failure or non-2xx HTTP status."""

    def __init__(self, message: str, environment: Environment, http_status: Optional[int] = None):
        super().__init__(message, environment)
        self.http_status = http_status


class UpstreamDecodeError(UpstreamNetworkError):
    """The response body was not a verifyReceipt JSON document."""


class UpstreamUnavailable(ReceiptValidationError):
    """Every attempted verifyReceipt call failed."""

    def __init__(self, failures: List[UpstreamError]):
        super().__init__("validation failed with upstream")
        self.failures = failures

    @property
    def timed_out(self) -> bool:
        return all(isinstance(failure, UpstreamTimeoutError) for failure in self.failures)
