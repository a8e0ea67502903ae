"""verifyReceipt status codes."""
from typing import Optional

STATUS_OK = 0
STATUS_SUBSCRIPTION_EXPIRED = 21006
STATUS_SANDBOX_RECEIPT_ON_PRODUCTION = 21007

UNKNOWN_STATUS_MEANING = "Unknown error"

# https://developer.apple.com/documentation/appstorereceipts/status
STATUS_MEANINGS = {
    21000: "The App Store could not read the JSON object you provided.",
    21002: "The data in the receipt-data property was malformed or missing.",
    21003: "The receipt could not be authenticated.",
    21004: "The shared secret you provided does not match the shared secret on file for your account.",
    21005: "The receipt server is not currently available.",
    21006: "This receipt is valid but the subscription has expired.",
    21007: "This receipt is from the sandbox environment, but it was sent to the production environment for verification.",
    21008: "This receipt is from the production environment, but it was sent to the sandbox environment for verification.",
    21010: "This receipt could not be authorized. Treat this the same as if a purchase was never made.",
}


def describe_status(status: Optional[int]) -> str:
    """Human readable meaning of a verifyReceipt status code."""
    return STATUS_MEANINGS.get(status, UNKNOWN_STATUS_MEANING)
