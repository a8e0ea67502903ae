"""Shared fixtures for the receipt validation tests."""
import logfire
import pytest

from server.core.config.receipt_config import ReceiptValidationSettings
from server.core.service.receipt_validation.apple_client import AppleReceiptClient
from server.core.service.receipt_validation.validator import ReceiptValidator
from server.IT_tests.helpers import (
    BUNDLE_ID,
    NOW_MS,
    PRODUCT_ID,
    PRODUCTION_URL,
    SANDBOX_URL,
    AppleStub,
)

logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def receipt_settings() -> ReceiptValidationSettings:
    return ReceiptValidationSettings(
        _env_file=None,
        APP_BUNDLE_ID=BUNDLE_ID,
        SUBSCRIPTION_PRODUCT_ID=PRODUCT_ID,
        APPLE_SHARED_SECRET="test-shared-secret",
        APPLE_PRODUCTION_URL=PRODUCTION_URL,
        APPLE_SANDBOX_URL=SANDBOX_URL,
    )


@pytest.fixture
def apple() -> AppleStub:
    return AppleStub()


@pytest.fixture
def apple_client(receipt_settings, apple) -> AppleReceiptClient:
    return AppleReceiptClient(receipt_settings, transport=apple.transport())


@pytest.fixture
def validator(receipt_settings, apple_client) -> ReceiptValidator:
    return ReceiptValidator(receipt_settings, client=apple_client, clock=lambda: NOW_MS)
