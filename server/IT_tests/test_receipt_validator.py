"""
Tests for ReceiptValidator: input checks, production/sandbox selection,
status classification and the verdicts it produces.
"""
import httpx
import pytest

from server.core.models.receipt_models import Environment, ValidateReceiptRequest
from server.core.service.receipt_validation.validator import ReceiptValidator

from server.IT_tests.helpers import (
    BUNDLE_ID,
    HOUR_MS,
    NOW_MS,
    PRODUCT_ID,
    purchase_record,
    subscription_record,
    verify_response,
)


def make_request(receipt_data="base64-receipt", bundle_id=BUNDLE_ID, product_id=PRODUCT_ID):
    return ValidateReceiptRequest(receipt_data=receipt_data, bundle_id=bundle_id, product_id=product_id)


class TestInputValidation:
    """Requests rejected before any upstream call."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("receipt_data", [None, ""])
    async def test_missing_receipt(self, apple, validator, receipt_data):
        outcome = await validator.validate(make_request(receipt_data=receipt_data))

        assert outcome.http_status == 400
        assert outcome.verdict.is_valid is False
        assert outcome.verdict.error == "receipt data required"
        assert apple.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bundle_id", [None, "com.other.app", "com.elevenstoic.app.extension"])
    async def test_wrong_app_identifier(self, apple, validator, bundle_id):
        outcome = await validator.validate(make_request(bundle_id=bundle_id))

        assert outcome.http_status == 400
        assert outcome.verdict.is_valid is False
        assert outcome.verdict.error == "invalid app identifier"
        assert outcome.verdict.environment is None
        assert apple.requests == []


class TestEnvironmentSelection:
    """The production-then-sandbox decision."""

    @pytest.mark.asyncio
    async def test_production_success_makes_one_call(self, apple, validator):
        apple.reply("production", verify_response(latest_receipt_info=[subscription_record(NOW_MS + HOUR_MS)]))

        outcome = await validator.validate(make_request())

        assert apple.environments_called == ["production"]
        assert outcome.verdict.environment == Environment.PRODUCTION
        assert outcome.verdict.is_valid is True

    @pytest.mark.asyncio
    async def test_production_failure_falls_back_to_sandbox(self, apple, validator):
        """Production times out, sandbox answers with a matching in_app purchase."""
        apple.reply("production", httpx.ReadTimeout("timed out"))
        apple.reply("sandbox", verify_response(in_app=[purchase_record(NOW_MS - HOUR_MS)]))

        outcome = await validator.validate(make_request())

        assert apple.environments_called == ["production", "sandbox"]
        assert outcome.http_status == 200
        assert outcome.verdict.environment == Environment.SANDBOX
        assert outcome.verdict.is_valid is True
        assert outcome.verdict.subscription_info.kind == "pastPurchase"

    @pytest.mark.asyncio
    async def test_status_21007_reroutes_to_sandbox_once(self, apple, validator):
        apple.reply("production", verify_response(status=21007))
        apple.reply("sandbox", verify_response(status=21003))

        outcome = await validator.validate(make_request())

        assert apple.environments_called == ["production", "sandbox"]
        assert outcome.verdict.environment == Environment.SANDBOX
        assert outcome.verdict.is_valid is False
        assert outcome.verdict.status_code == 21003

    @pytest.mark.asyncio
    async def test_status_21007_from_sandbox_is_not_rerouted_again(self, apple, validator):
        apple.reply("production", verify_response(status=21007))
        apple.reply("sandbox", verify_response(status=21007))

        outcome = await validator.validate(make_request())

        assert len(apple.requests) == 2
        assert outcome.verdict.status_code == 21007
        assert outcome.verdict.environment == Environment.SANDBOX

    @pytest.mark.asyncio
    async def test_other_production_status_does_not_try_sandbox(self, apple, validator):
        apple.reply("production", verify_response(status=21008))

        outcome = await validator.validate(make_request())

        assert apple.environments_called == ["production"]
        assert outcome.verdict.environment == Environment.PRODUCTION
        assert outcome.verdict.is_valid is False

    @pytest.mark.asyncio
    async def test_both_calls_fail(self, apple, validator):
        apple.reply("production", httpx.ConnectError("refused"))
        apple.reply("sandbox", httpx.Response(500))

        outcome = await validator.validate(make_request())

        assert len(apple.requests) == 2
        assert outcome.http_status == 502
        assert outcome.verdict.is_valid is False
        assert outcome.verdict.error == "validation failed with upstream"
        assert outcome.verdict.environment is None

    @pytest.mark.asyncio
    async def test_both_calls_time_out(self, apple, validator):
        apple.reply("production", httpx.ReadTimeout("timed out"))
        apple.reply("sandbox", httpx.ConnectTimeout("timed out"))

        outcome = await validator.validate(make_request())

        assert outcome.http_status == 408
        assert outcome.verdict.error == "validation failed with upstream"

    @pytest.mark.asyncio
    async def test_failed_reroute_is_terminal(self, apple, validator):
        """A sandbox failure after 21007 does not lead to a third call."""
        apple.reply("production", verify_response(status=21007))
        apple.reply("sandbox", httpx.ReadTimeout("timed out"))

        outcome = await validator.validate(make_request())

        assert len(apple.requests) == 2
        assert outcome.http_status == 408
        assert outcome.verdict.error == "validation failed with upstream"


class TestStatusClassification:

    @pytest.mark.asyncio
    async def test_expired_status(self, apple, validator):
        """21006 wins over any receipt contents."""
        apple.reply("production", verify_response(
            status=21006,
            latest_receipt_info=[subscription_record(NOW_MS + HOUR_MS)],
        ))

        outcome = await validator.validate(make_request())

        verdict = outcome.verdict
        assert verdict.is_valid is False
        assert verdict.expired is True
        assert verdict.status_code == 21006
        assert verdict.error == "subscription expired"
        assert outcome.cache_max_age is None

    @pytest.mark.asyncio
    async def test_known_failure_status(self, apple, validator):
        apple.reply("production", verify_response(status=21003))

        outcome = await validator.validate(make_request())

        assert outcome.http_status == 200
        assert outcome.verdict.error == "receipt validation failed: The receipt could not be authenticated."
        assert outcome.verdict.status_code == 21003
        assert outcome.verdict.expired is None

    @pytest.mark.asyncio
    async def test_unknown_failure_status(self, apple, validator):
        apple.reply("production", verify_response(status=21199))

        outcome = await validator.validate(make_request())

        assert outcome.verdict.error == "receipt validation failed: Unknown error"
        assert outcome.verdict.status_code == 21199


class TestBundleIdentity:

    @pytest.mark.asyncio
    async def test_receipt_for_another_app(self, apple, validator):
        apple.reply("production", verify_response(
            bundle_id="com.someone.else",
            latest_receipt_info=[subscription_record(NOW_MS + HOUR_MS)],
        ))

        outcome = await validator.validate(make_request())

        assert outcome.verdict.is_valid is False
        assert outcome.verdict.error == "app identifier mismatch"

    @pytest.mark.asyncio
    async def test_sandbox_receipt_without_bundle_gets_no_fallback(self, apple, validator):
        apple.reply("production", verify_response(status=21007))
        apple.reply("sandbox", verify_response(bundle_id=None))

        outcome = await validator.validate(make_request())

        assert outcome.verdict.is_valid is False
        assert outcome.verdict.error == "app identifier mismatch"


class TestVerdicts:

    @pytest.mark.asyncio
    async def test_latest_expiry_decides_validity(self, apple, validator):
        apple.reply("production", verify_response(latest_receipt_info=[
            subscription_record(NOW_MS - 10 * HOUR_MS, transaction_id="t1"),
            subscription_record(NOW_MS + 10 * HOUR_MS, transaction_id="t2"),
        ]))

        outcome = await validator.validate(make_request())

        info = outcome.verdict.subscription_info
        assert outcome.verdict.is_valid is True
        assert info.kind == "activeSubscription"
        assert info.transaction_id == "t2"
        assert outcome.cache_max_age == 300

    @pytest.mark.asyncio
    async def test_sandbox_without_history_is_lenient(self, apple, validator):
        apple.reply("production", verify_response(status=21007))
        apple.reply("sandbox", verify_response())

        outcome = await validator.validate(make_request())

        assert outcome.verdict.is_valid is True
        assert outcome.verdict.subscription_info.kind == "sandboxFallback"
        assert outcome.verdict.debug.has_latest_receipt_info is False
        assert outcome.verdict.debug.has_in_app is False
        assert outcome.verdict.debug.has_pending_renewal is False

    @pytest.mark.asyncio
    async def test_production_without_history_is_not_valid(self, apple, validator):
        apple.reply("production", verify_response())

        outcome = await validator.validate(make_request())

        assert outcome.http_status == 200
        assert outcome.verdict.is_valid is False
        assert outcome.verdict.subscription_info is None
        assert outcome.verdict.error is None
        assert outcome.verdict.debug is None
        assert outcome.cache_max_age is None

    @pytest.mark.asyncio
    async def test_sandbox_leniency_can_be_disabled(self, apple, receipt_settings, apple_client):
        receipt_settings.SANDBOX_FALLBACK_ENABLED = False
        validator = ReceiptValidator(receipt_settings, client=apple_client, clock=lambda: NOW_MS)
        apple.reply("production", verify_response(status=21007))
        apple.reply("sandbox", verify_response())

        outcome = await validator.validate(make_request())

        assert outcome.verdict.is_valid is False
        assert outcome.verdict.environment == Environment.SANDBOX

    @pytest.mark.asyncio
    async def test_sandbox_pending_renewal(self, apple, validator):
        apple.reply("production", verify_response(status=21007))
        apple.reply("sandbox", verify_response(
            pending_renewal_info=[{"product_id": PRODUCT_ID, "auto_renew_status": "1"}],
        ))

        outcome = await validator.validate(make_request())

        assert outcome.verdict.subscription_info.kind == "pendingRenewal"
        assert outcome.verdict.debug.has_pending_renewal is True

    @pytest.mark.asyncio
    async def test_valid_verdict_always_has_subscription_info(self, apple, validator):
        apple.reply("production", verify_response(in_app=[purchase_record(NOW_MS)]))

        outcome = await validator.validate(make_request())

        assert outcome.verdict.is_valid is True
        assert outcome.verdict.subscription_info is not None

    @pytest.mark.asyncio
    async def test_repeated_validation_is_identical_except_timestamp(self, apple, receipt_settings, apple_client):
        clock_values = iter([NOW_MS, NOW_MS + 1000])
        validator = ReceiptValidator(receipt_settings, client=apple_client, clock=lambda: next(clock_values))
        apple.reply("production", verify_response(latest_receipt_info=[subscription_record(NOW_MS + HOUR_MS)]))

        first = (await validator.validate(make_request())).verdict.to_response_body()
        second = (await validator.validate(make_request())).verdict.to_response_body()

        assert first.pop("timestamp") != second.pop("timestamp")
        assert first == second


class TestLooselyTypedUpstream:
    """Off-type or null values inside a status 0 body are not call failures."""

    @pytest.mark.asyncio
    async def test_off_type_flag_in_unrelated_record_stays_in_production(self, apple, validator):
        apple.reply("production", verify_response(latest_receipt_info=[
            subscription_record(NOW_MS + HOUR_MS, transaction_id="paid"),
            subscription_record(NOW_MS + HOUR_MS, product_id="com.other", is_trial_period=True),
        ]))

        outcome = await validator.validate(make_request())

        assert apple.environments_called == ["production"]
        assert outcome.verdict.environment == Environment.PRODUCTION
        assert outcome.verdict.is_valid is True
        assert outcome.verdict.subscription_info.transaction_id == "paid"

    @pytest.mark.asyncio
    async def test_null_renewal_entry_ignored_in_production(self, apple, validator):
        apple.reply("production", verify_response(
            latest_receipt_info=[subscription_record(NOW_MS + HOUR_MS)],
            pending_renewal_info=[None],
        ))

        outcome = await validator.validate(make_request())

        assert len(apple.requests) == 1
        assert outcome.verdict.is_valid is True

    @pytest.mark.asyncio
    async def test_null_renewal_entry_ignored_in_sandbox(self, apple, validator):
        apple.reply("production", verify_response(status=21007))
        apple.reply("sandbox", verify_response(
            pending_renewal_info=[None, {"product_id": PRODUCT_ID, "auto_renew_status": 1}],
        ))

        outcome = await validator.validate(make_request())

        assert outcome.verdict.subscription_info.kind == "pendingRenewal"
        assert outcome.verdict.subscription_info.auto_renew_status == "1"
