"""
Client for Apple's legacy verifyReceipt endpoints.
"""
from typing import Optional

import httpx
import logfire
from pydantic import ValidationError

from server.core.config.receipt_config import ReceiptValidationSettings
from server.core.models.receipt_models import Environment, UpstreamVerifyResult
from server.core.service.receipt_validation.errors import (
    UpstreamDecodeError,
    UpstreamNetworkError,
    UpstreamTimeoutError,
)


class AppleReceiptClient:
    """Posts receipts to the production or sandbox verifyReceipt endpoint."""

    def __init__(
        self,
        settings: ReceiptValidationSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = settings
        self._transport = transport

    def endpoint_for(self, environment: Environment) -> str:
        if environment == Environment.SANDBOX:
            return self.settings.APPLE_SANDBOX_URL
        return self.settings.APPLE_PRODUCTION_URL

    async def verify(self, receipt_data: str, environment: Environment) -> UpstreamVerifyResult:
        """
        Verify a receipt with Apple.

        Args:
            receipt_data: Base64 receipt blob from the device
            environment: Which verifyReceipt deployment to call

        Returns:
            The decoded verifyReceipt response

        Raises:
            UpstreamTimeoutError: If Apple did not answer within the configured timeout
            UpstreamNetworkError: On connection failure or a non-2xx HTTP status
            UpstreamDecodeError: If the body is not a verifyReceipt JSON document
        """
        url = self.endpoint_for(environment)
        payload = {
            "receipt-data": receipt_data,
            "password": self.settings.APPLE_SHARED_SECRET,
            "exclude-old-transactions": True,
        }
        headers = {"Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.settings.UPSTREAM_TIMEOUT_SECONDS
            ) as client:
                logfire.debug(f"Calling Apple verifyReceipt ({environment.value})", extra={"url": url})
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logfire.error(f"Timeout calling Apple verifyReceipt ({environment.value})")
            raise UpstreamTimeoutError(
                f"Apple {environment.value} servers did not respond in time", environment
            ) from e
        except httpx.RequestError as e:
            logfire.error(f"Request error calling Apple verifyReceipt ({environment.value}): {str(e)}")
            raise UpstreamNetworkError(
                f"Unable to connect to Apple {environment.value} servers: {str(e)}", environment
            ) from e

        if not response.is_success:
            logfire.warning(
                f"Apple verifyReceipt returned HTTP {response.status_code} ({environment.value})",
                extra={"status_code": response.status_code}
            )
            raise UpstreamNetworkError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                environment,
                http_status=response.status_code
            )

        try:
            return UpstreamVerifyResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logfire.error(f"Undecodable verifyReceipt response ({environment.value}): {str(e)}")
            raise UpstreamDecodeError(
                f"Invalid response from Apple {environment.value} servers",
                environment,
                http_status=response.status_code
            ) from e
