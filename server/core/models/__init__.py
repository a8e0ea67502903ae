"""Data models."""
from server.core.models.receipt_models import (
    Environment,
    SubscriptionInfo,
    UpstreamVerifyResult,
    ValidateReceiptRequest,
    ValidationVerdict,
)

__all__ = [
    "Environment",
    "SubscriptionInfo",
    "UpstreamVerifyResult",
    "ValidateReceiptRequest",
    "ValidationVerdict",
]
