"""Pydantic models for App Store receipt validation."""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Environment(str, Enum):
    """Upstream deployment that authenticated a receipt."""
    PRODUCTION = "production"
    SANDBOX = "sandbox"


def parse_millis(value: Optional[str]) -> Optional[int]:
    """Parse a millisecond timestamp sent as a string, None if absent or malformed."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def millis_to_datetime(value: int) -> datetime:
    """Convert a millisecond epoch timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Inbound request
# ---------------------------------------------------------------------------

class ValidateReceiptRequest(BaseModel):
    """Receipt validation request sent by the client app."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True)

    receipt_data: Optional[str] = Field(None, description="Base64 receipt blob from the device")
    bundle_id: Optional[str] = Field(None, description="Bundle identifier of the calling app")
    product_id: Optional[str] = Field(None, description="Product the client believes it owns (informational)")


# ---------------------------------------------------------------------------
# Upstream verifyReceipt response
# ---------------------------------------------------------------------------

def _scalar_as_str(value: Any) -> Optional[str]:
    """Apple sends scalars as strings; accept bools and numbers, drop anything nested."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return None


def _records_only(value: Any) -> Optional[List[Dict[str, Any]]]:
    """Keep the JSON objects of a record list, None when the field is not a list."""
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, dict)]


class _UpstreamRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def coerce_scalar(cls, value: Any) -> Optional[str]:
        return _scalar_as_str(value)


class SubscriptionRecord(_UpstreamRecord):
    """Entry of latest_receipt_info."""
    product_id: Optional[str] = None
    expires_date_ms: Optional[str] = None
    transaction_id: Optional[str] = None
    is_trial_period: Optional[str] = None
    is_in_intro_offer_period: Optional[str] = None

    @property
    def expires_at_millis(self) -> Optional[int]:
        return parse_millis(self.expires_date_ms)


class PurchaseRecord(_UpstreamRecord):
    """Entry of receipt.in_app."""
    product_id: Optional[str] = None
    purchase_date_ms: Optional[str] = None
    transaction_id: Optional[str] = None

    @property
    def purchase_at_millis(self) -> Optional[int]:
        return parse_millis(self.purchase_date_ms)


class RenewalRecord(_UpstreamRecord):
    """Entry of pending_renewal_info."""
    product_id: Optional[str] = None
    auto_renew_status: Optional[str] = None


class ReceiptBody(BaseModel):
    """The decoded receipt embedded in a verifyReceipt response."""
    model_config = ConfigDict(extra="ignore")

    bundle_id: Optional[str] = None
    in_app: Optional[List[PurchaseRecord]] = None

    @field_validator("bundle_id", mode="before")
    @classmethod
    def coerce_bundle_id(cls, value: Any) -> Optional[str]:
        return _scalar_as_str(value)

    @field_validator("in_app", mode="before")
    @classmethod
    def drop_non_records(cls, value: Any) -> Optional[List[Dict[str, Any]]]:
        return _records_only(value)


class UpstreamVerifyResult(BaseModel):
    """
    Decoded verifyReceipt response.

    Every field is optional: Apple omits most of them on failure statuses and
    sandbox receipts are frequently missing transaction history. Fields of
    an unexpected type are read as absent, so only a body that is not a JSON
    object fails to decode.
    """
    model_config = ConfigDict(extra="ignore")

    status: Optional[int] = None
    receipt: Optional[ReceiptBody] = None
    latest_receipt_info: Optional[List[SubscriptionRecord]] = None
    pending_renewal_info: Optional[List[RenewalRecord]] = None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, value: Any) -> Optional[int]:
        if isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @field_validator("receipt", mode="before")
    @classmethod
    def drop_non_object_receipt(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("latest_receipt_info", "pending_renewal_info", mode="before")
    @classmethod
    def drop_non_records(cls, value: Any) -> Optional[List[Dict[str, Any]]]:
        return _records_only(value)

    @property
    def bundle_id(self) -> Optional[str]:
        return self.receipt.bundle_id if self.receipt else None

    @property
    def in_app(self) -> List[PurchaseRecord]:
        if self.receipt and self.receipt.in_app:
            return self.receipt.in_app
        return []


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------

class _VerdictModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActiveSubscriptionInfo(_VerdictModel):
    """Unexpired entry found in latest_receipt_info."""
    kind: Literal["activeSubscription"] = "activeSubscription"
    product_id: str
    expires_at: datetime
    transaction_id: Optional[str] = None
    environment: Environment
    is_trial_period: bool = False
    is_intro_offer_period: bool = False


class PastPurchaseInfo(_VerdictModel):
    """Most recent matching purchase from receipt.in_app."""
    kind: Literal["pastPurchase"] = "pastPurchase"
    product_id: str
    transaction_id: Optional[str] = None
    environment: Environment
    purchase_at: Optional[datetime] = None


class PendingRenewalInfo(_VerdictModel):
    """Auto-renewing entry from pending_renewal_info (sandbox only)."""
    kind: Literal["pendingRenewal"] = "pendingRenewal"
    product_id: str
    environment: Environment
    is_pending: bool = True
    auto_renew_status: str


class SandboxFallbackInfo(_VerdictModel):
    """Entitlement granted to a sandbox receipt with no usable history."""
    kind: Literal["sandboxFallback"] = "sandboxFallback"
    product_id: str
    environment: Environment
    fallback: bool = True


SubscriptionInfo = Annotated[
    Union[ActiveSubscriptionInfo, PastPurchaseInfo, PendingRenewalInfo, SandboxFallbackInfo],
    Field(discriminator="kind"),
]


class ReceiptDebugInfo(_VerdictModel):
    """Which upstream collections were present and non-empty."""
    has_latest_receipt_info: bool
    has_in_app: bool
    has_pending_renewal: bool


class ValidationVerdict(_VerdictModel):
    """Result returned to the client app."""
    is_valid: bool
    environment: Optional[Environment] = None
    subscription_info: Optional[SubscriptionInfo] = None
    timestamp: datetime
    error: Optional[str] = None
    status_code: Optional[int] = None
    expired: Optional[bool] = None
    debug: Optional[ReceiptDebugInfo] = None

    def to_response_body(self) -> Dict[str, Any]:
        """
        Render the verdict as camelCase JSON.

        Absent optional fields are omitted, except subscriptionInfo which is
        rendered as null when it was explicitly set to None.
        """
        body = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if self.subscription_info is None and "subscription_info" in self.model_fields_set:
            body["subscriptionInfo"] = None
        return body
