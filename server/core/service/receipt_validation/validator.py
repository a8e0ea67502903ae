"""
Receipt validation against Apple's verifyReceipt service.

Flow:
1. Reject requests without a receipt or for a foreign bundle id.
2. Call production. On a network failure, try sandbox once. On status 21007,
   re-send the receipt to sandbox once. At most two upstream calls are made.
3. Classify the upstream status, check the embedded bundle id, then run the
   subscription detection methods.
"""
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

import logfire

from server.core.config.receipt_config import ReceiptValidationSettings
from server.core.models.receipt_models import (
    Environment,
    UpstreamVerifyResult,
    ValidateReceiptRequest,
    ValidationVerdict,
)
from server.core.service.receipt_validation.apple_client import AppleReceiptClient
from server.core.service.receipt_validation.detection import (
    DetectionContext,
    build_debug_info,
    detect_subscription,
)
from server.core.service.receipt_validation.errors import UpstreamError, UpstreamUnavailable
from server.core.service.receipt_validation.status_codes import (
    STATUS_OK,
    STATUS_SANDBOX_RECEIPT_ON_PRODUCTION,
    STATUS_SUBSCRIPTION_EXPIRED,
    describe_status,
)

ERROR_RECEIPT_REQUIRED = "receipt data required"
ERROR_INVALID_APP_ID = "invalid app identifier"
ERROR_UPSTREAM_FAILED = "validation failed with upstream"
ERROR_SUBSCRIPTION_EXPIRED = "subscription expired"
ERROR_APP_ID_MISMATCH = "app identifier mismatch"

HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_REQUEST_TIMEOUT = 408
HTTP_BAD_GATEWAY = 502


@dataclass(frozen=True)
class ValidationOutcome:
    """A verdict plus the transport hints that go with it."""
    verdict: ValidationVerdict
    http_status: int = HTTP_OK
    cache_max_age: Optional[int] = None


def _system_clock() -> int:
    return int(time.time() * 1000)


class ReceiptValidator:
    """Validates App Store receipts and decides whether the subscription is active."""

    def __init__(
        self,
        settings: ReceiptValidationSettings,
        client: Optional[AppleReceiptClient] = None,
        clock: Optional[Callable[[], int]] = None
    ):
        self.settings = settings
        self.client = client or AppleReceiptClient(settings)
        self._clock = clock or _system_clock

    def _timestamp(self, now_ms: int) -> datetime:
        return datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)

    async def validate(self, request: ValidateReceiptRequest) -> ValidationOutcome:
        """
        Validate a receipt.

        Never raises for upstream failures; every outcome is a verdict.

        Args:
            request: Receipt blob and bundle id from the client app

        Returns:
            ValidationOutcome with the verdict, its HTTP status and an optional cache hint
        """
        if not request.receipt_data:
            logfire.warning("Receipt validation rejected: missing receipt data")
            return self._failure(ERROR_RECEIPT_REQUIRED, http_status=HTTP_BAD_REQUEST)

        if request.bundle_id != self.settings.APP_BUNDLE_ID:
            logfire.warning(
                "Receipt validation rejected: invalid bundle id",
                extra={"bundle_id": request.bundle_id}
            )
            return self._failure(ERROR_INVALID_APP_ID, http_status=HTTP_BAD_REQUEST)

        logfire.info(f"Validating receipt for product: {request.product_id}")

        try:
            result, environment = await self._verify_with_fallback(request.receipt_data)
        except UpstreamUnavailable as e:
            logfire.error(
                "Receipt validation failed with upstream",
                extra={"errors": [str(failure) for failure in e.failures]}
            )
            http_status = HTTP_REQUEST_TIMEOUT if e.timed_out else HTTP_BAD_GATEWAY
            return self._failure(ERROR_UPSTREAM_FAILED, http_status=http_status)

        return self._evaluate(result, environment)

    async def _verify_with_fallback(self, receipt_data: str) -> Tuple[UpstreamVerifyResult, Environment]:
        """
        Production first, then at most one sandbox call.

        Sandbox is only tried after a production failure or a 21007 status.
        A failed re-route is not retried.
        """
        try:
            logfire.info("Trying production validation...")
            result = await self.client.verify(receipt_data, Environment.PRODUCTION)
        except UpstreamError as prod_error:
            logfire.error(f"Production validation failed: {str(prod_error)}")
            logfire.info("Falling back to sandbox validation...")
            try:
                result = await self.client.verify(receipt_data, Environment.SANDBOX)
            except UpstreamError as sandbox_error:
                raise UpstreamUnavailable([prod_error, sandbox_error]) from sandbox_error
            return result, Environment.SANDBOX

        if result.status == STATUS_SANDBOX_RECEIPT_ON_PRODUCTION:
            logfire.info("Status 21007: sandbox receipt detected, switching to sandbox...")
            try:
                result = await self.client.verify(receipt_data, Environment.SANDBOX)
            except UpstreamError as sandbox_error:
                raise UpstreamUnavailable([sandbox_error]) from sandbox_error
            return result, Environment.SANDBOX

        return result, Environment.PRODUCTION

    def _evaluate(self, result: UpstreamVerifyResult, environment: Environment) -> ValidationOutcome:
        now_ms = self._clock()
        logfire.info(f"Apple response status: {result.status} ({environment.value})")

        if result.status != STATUS_OK:
            status_meaning = describe_status(result.status)
            logfire.error(
                f"Receipt validation failed with status: {result.status}",
                extra={"status_meaning": status_meaning, "environment": environment.value}
            )
            if result.status == STATUS_SUBSCRIPTION_EXPIRED:
                return ValidationOutcome(verdict=ValidationVerdict(
                    is_valid=False,
                    environment=environment,
                    timestamp=self._timestamp(now_ms),
                    error=ERROR_SUBSCRIPTION_EXPIRED,
                    status_code=result.status,
                    expired=True,
                ))
            return ValidationOutcome(verdict=ValidationVerdict(
                is_valid=False,
                environment=environment,
                timestamp=self._timestamp(now_ms),
                error=f"receipt validation failed: {status_meaning}",
                status_code=result.status,
            ))

        if result.bundle_id != self.settings.APP_BUNDLE_ID:
            logfire.error(
                f"Bundle ID mismatch: expected {self.settings.APP_BUNDLE_ID}, got {result.bundle_id}"
            )
            return ValidationOutcome(verdict=ValidationVerdict(
                is_valid=False,
                environment=environment,
                timestamp=self._timestamp(now_ms),
                error=ERROR_APP_ID_MISMATCH,
            ))

        context = DetectionContext(
            product_id=self.settings.SUBSCRIPTION_PRODUCT_ID,
            environment=environment,
            now_ms=now_ms,
            grace_period_ms=self.settings.GRACE_PERIOD_MS,
            bundle_id_matched=True,
            sandbox_fallback_enabled=self.settings.SANDBOX_FALLBACK_ENABLED,
        )
        subscription_info = detect_subscription(result, context)
        is_valid = subscription_info is not None

        logfire.info(f"Final validation result: {is_valid}", extra={"environment": environment.value})

        verdict = ValidationVerdict(
            is_valid=is_valid,
            environment=environment,
            subscription_info=subscription_info,
            timestamp=self._timestamp(now_ms),
            debug=build_debug_info(result) if environment == Environment.SANDBOX else None,
        )
        return ValidationOutcome(
            verdict=verdict,
            cache_max_age=self.settings.CACHE_MAX_AGE_SECONDS if is_valid else None,
        )

    def _failure(self, error: str, http_status: int) -> ValidationOutcome:
        return ValidationOutcome(
            verdict=ValidationVerdict(
                is_valid=False,
                timestamp=self._timestamp(self._clock()),
                error=error,
            ),
            http_status=http_status,
        )
