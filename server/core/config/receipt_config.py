"""Receipt validation configuration settings."""
from functools import lru_cache

import logfire
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReceiptValidationSettings(BaseSettings):
    """Settings for validating App Store receipts against Apple's verifyReceipt service."""

    model_config = SettingsConfigDict(
        env_file=".env.server", case_sensitive=True, extra="ignore")

    # App identity
    APP_BUNDLE_ID: str = "com.elevenstoic.app"
    SUBSCRIPTION_PRODUCT_ID: str = "com.elevenstoic.monthly"

    # Shared secret from App Store Connect, sent as the "password" field
    APPLE_SHARED_SECRET: str = ""

    # Upstream endpoints
    APPLE_PRODUCTION_URL: str = "https://buy.itunes.apple.com/verifyReceipt"
    APPLE_SANDBOX_URL: str = "https://sandbox.itunes.apple.com/verifyReceipt"

    # Tolerance for clock skew when comparing expiry against now
    GRACE_PERIOD_MS: int = 5 * 60 * 1000
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0

    # Cache-Control max-age attached to valid verdicts
    CACHE_MAX_AGE_SECONDS: int = 300

    # Grant entitlement to sandbox receipts with no usable transaction history
    SANDBOX_FALLBACK_ENABLED: bool = True

    def validate_configuration(self, strict: bool = False) -> None:
        """
        Validate that required configuration is set.

        Args:
            strict: If True, raise exception on missing config. If False, only log warnings.
        """
        errors = []

        if not self.APPLE_SHARED_SECRET:
            msg = (
                "Apple shared secret is not set. "
                "Please set the environment variable APPLE_SHARED_SECRET."
            )
            if strict:
                errors.append(msg)
            else:
                logfire.warning(f"Warning: {msg}")

        if strict and errors:
            raise ValueError(f"Missing required receipt validation configuration: {', '.join(errors)}")


@lru_cache
def get_receipt_settings() -> ReceiptValidationSettings:
    """Return the process-wide receipt validation settings."""
    receipt_settings = ReceiptValidationSettings()
    receipt_settings.validate_configuration(strict=False)
    return receipt_settings
