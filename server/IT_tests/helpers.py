"""Upstream stub and verifyReceipt body builders shared by the tests."""

from typing import Any, Dict, List, Optional, Union

import httpx



BUNDLE_ID = "com.elevenstoic.app"
PRODUCT_ID = "com.elevenstoic.monthly"
PRODUCTION_URL = "https://buy.test/verifyReceipt"
SANDBOX_URL = "https://sandbox.test/verifyReceipt"

# 2025-10-09T08:53:20Z
NOW_MS = 1_760_000_000_000
HOUR_MS = 60 * 60 * 1000

StubReply = Union[Dict[str, Any], httpx.Response, Exception]


class AppleStub:
    """
    Stand-in for the two verifyReceipt deployments.

    Replies are queued per environment; every request is recorded so tests
    can assert how many upstream calls were made and where they went.
    """

    def __init__(self):
        self.replies: Dict[str, List[StubReply]] = {"production": [], "sandbox": []}
        self.requests: List[httpx.Request] = []

    def reply(self, environment: str, *replies: StubReply) -> "AppleStub":
        self.replies[environment].extend(replies)
        return self

    @property
    def environments_called(self) -> List[str]:
        return ["sandbox" if request.url.host == "sandbox.test" else "production" for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        environment = "sandbox" if request.url.host == "sandbox.test" else "production"
        queue = self.replies[environment]
        if not queue:
            raise AssertionError(f"unexpected call to {environment}")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def verify_response(
    status: int = 0,
    bundle_id: Optional[str] = BUNDLE_ID,
    in_app: Optional[List[Dict[str, Any]]] = None,
    latest_receipt_info: Optional[List[Dict[str, Any]]] = None,
    pending_renewal_info: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Build a verifyReceipt JSON body, leaving out whatever is None."""
    body: Dict[str, Any] = {"status": status}
    receipt: Dict[str, Any] = {}
    if bundle_id is not None:
        receipt["bundle_id"] = bundle_id
    if in_app is not None:
        receipt["in_app"] = in_app
    if receipt:
        body["receipt"] = receipt
    if latest_receipt_info is not None:
        body["latest_receipt_info"] = latest_receipt_info
    if pending_renewal_info is not None:
        body["pending_renewal_info"] = pending_renewal_info
    return body


def subscription_record(expires_ms: int, transaction_id: str = "1000", product_id: str = PRODUCT_ID, **extra) -> Dict[str, Any]:
    record = {
        "product_id": product_id,
        "expires_date_ms": str(expires_ms),
        "transaction_id": transaction_id,
        "is_trial_period": "false",
        "is_in_intro_offer_period": "false",
    }
    record.update(extra)
    return record


def purchase_record(purchase_ms: int, transaction_id: str = "2000", product_id: str = PRODUCT_ID) -> Dict[str, Any]:
    return {
        "product_id": product_id,
        "purchase_date_ms": str(purchase_ms),
        "transaction_id": transaction_id,
    }
