"""
Subscription detection over a verifyReceipt response.

Each method inspects one part of the response and either returns the
subscription it found or None. Methods run in a fixed order and the first
match wins.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import logfire

from server.core.models.receipt_models import (
    ActiveSubscriptionInfo,
    Environment,
    PastPurchaseInfo,
    PendingRenewalInfo,
    ReceiptDebugInfo,
    SandboxFallbackInfo,
    SubscriptionInfo,
    UpstreamVerifyResult,
    millis_to_datetime,
)

AUTO_RENEW_ON = "1"
MILLIS_PER_HOUR = 60 * 60 * 1000


@dataclass(frozen=True)
class DetectionContext:
    """Inputs shared by every detection method."""
    product_id: str
    environment: Environment
    now_ms: int
    grace_period_ms: int
    bundle_id_matched: bool
    sandbox_fallback_enabled: bool = True


DetectionMethod = Callable[[UpstreamVerifyResult, DetectionContext], Optional[SubscriptionInfo]]


def _is_true(flag: Optional[str]) -> bool:
    return flag == "true"


def find_active_subscription(
    result: UpstreamVerifyResult, context: DetectionContext
) -> Optional[SubscriptionInfo]:
    """Latest unexpired latest_receipt_info entry for the product, within the grace period."""
    relevant = [
        record for record in result.latest_receipt_info or []
        if record.product_id == context.product_id and record.expires_at_millis is not None
    ]
    if not relevant:
        return None

    latest = max(relevant, key=lambda record: record.expires_at_millis)
    expires_ms = latest.expires_at_millis

    logfire.debug(
        "Latest transaction in latest_receipt_info",
        extra={
            "product_id": latest.product_id,
            "expires_date": millis_to_datetime(expires_ms).isoformat(),
            "transaction_id": latest.transaction_id,
        }
    )

    if expires_ms <= context.now_ms - context.grace_period_ms:
        hours_ago = round((context.now_ms - expires_ms) / MILLIS_PER_HOUR)
        logfire.info(f"Subscription expired {hours_ago} hours ago")
        return None

    return ActiveSubscriptionInfo(
        product_id=latest.product_id,
        expires_at=millis_to_datetime(expires_ms),
        transaction_id=latest.transaction_id,
        environment=context.environment,
        is_trial_period=_is_true(latest.is_trial_period),
        is_intro_offer_period=_is_true(latest.is_in_intro_offer_period),
    )


def find_past_purchase(
    result: UpstreamVerifyResult, context: DetectionContext
) -> Optional[SubscriptionInfo]:
    """Most recent in_app purchase of the product, regardless of expiry."""
    relevant = [record for record in result.in_app if record.product_id == context.product_id]
    if not relevant:
        return None

    # Records without a purchase date sort first
    latest = max(relevant, key=lambda record: record.purchase_at_millis or -1)
    purchase_ms = latest.purchase_at_millis

    return PastPurchaseInfo(
        product_id=latest.product_id,
        transaction_id=latest.transaction_id,
        environment=context.environment,
        purchase_at=millis_to_datetime(purchase_ms) if purchase_ms is not None else None,
    )


def find_pending_renewal(
    result: UpstreamVerifyResult, context: DetectionContext
) -> Optional[SubscriptionInfo]:
    """Auto-renewing pending_renewal_info entry. Sandbox only."""
    if context.environment != Environment.SANDBOX:
        return None

    renewal = next(
        (record for record in result.pending_renewal_info or []
         if record.product_id == context.product_id),
        None
    )
    if renewal is None or renewal.auto_renew_status != AUTO_RENEW_ON:
        return None

    return PendingRenewalInfo(
        product_id=renewal.product_id,
        environment=context.environment,
        auto_renew_status=renewal.auto_renew_status,
    )


def sandbox_fallback(
    result: UpstreamVerifyResult, context: DetectionContext
) -> Optional[SubscriptionInfo]:
    """Entitle any sandbox receipt for this app. Never applies to production."""
    if context.environment != Environment.SANDBOX:
        return None
    if not context.bundle_id_matched or not context.sandbox_fallback_enabled:
        return None

    return SandboxFallbackInfo(
        product_id=context.product_id,
        environment=context.environment,
    )


DETECTION_METHODS: Tuple[DetectionMethod, ...] = (
    find_active_subscription,
    find_past_purchase,
    find_pending_renewal,
    sandbox_fallback,
)


def detect_subscription(
    result: UpstreamVerifyResult,
    context: DetectionContext,
    methods: Sequence[DetectionMethod] = DETECTION_METHODS
) -> Optional[SubscriptionInfo]:
    """Run the detection methods in order and return the first match."""
    for method in methods:
        info = method(result, context)
        if info is not None:
            logfire.info(
                f"Subscription detected by {method.__name__}",
                extra={"kind": info.kind, "environment": context.environment.value}
            )
            return info
    return None


def build_debug_info(result: UpstreamVerifyResult) -> ReceiptDebugInfo:
    """Report which upstream collections were present and non-empty."""
    return ReceiptDebugInfo(
        has_latest_receipt_info=bool(result.latest_receipt_info),
        has_in_app=bool(result.in_app),
        has_pending_renewal=bool(result.pending_renewal_info),
    )
