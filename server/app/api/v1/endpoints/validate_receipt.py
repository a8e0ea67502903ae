"""
App Store receipt validation endpoint.
"""
from typing import Dict, Optional

import logfire
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from server.core.config.general_config import CORS_HEADERS
from server.core.config.receipt_config import ReceiptValidationSettings, get_receipt_settings
from server.core.models.receipt_models import ValidateReceiptRequest
from server.core.service.receipt_validation.validator import ReceiptValidator, ValidationOutcome

router = APIRouter()


def get_receipt_validator(
    settings: ReceiptValidationSettings = Depends(get_receipt_settings)
) -> ReceiptValidator:
    """FastAPI dependency providing a ReceiptValidator."""
    return ReceiptValidator(settings)


def error_response(status_code: int, error: str) -> JSONResponse:
    """JSON error body in the verdict shape."""
    return JSONResponse(
        status_code=status_code,
        content={"isValid": False, "error": error},
        headers=CORS_HEADERS,
    )


def render_outcome(outcome: ValidationOutcome) -> JSONResponse:
    headers: Dict[str, str] = dict(CORS_HEADERS)
    if outcome.cache_max_age is not None:
        headers["Cache-Control"] = f"private, max-age={outcome.cache_max_age}"
    return JSONResponse(
        status_code=outcome.http_status,
        content=outcome.verdict.to_response_body(),
        headers=headers,
    )


@router.post(
    "/validate",
    summary="Validate App Store Receipt",
    description="Validates an App Store receipt with Apple and reports whether the subscription is currently active"
)
async def validate_receipt(
    request: Optional[ValidateReceiptRequest] = None,
    validator: ReceiptValidator = Depends(get_receipt_validator)
) -> JSONResponse:
    """
    Validate an App Store receipt.

    This endpoint:
    1. Rejects requests without receipt data or for another app's bundle id (400)
    2. Verifies the receipt with Apple production, falling back to sandbox
    3. Reports whether the subscription is active, with the detection details

    Args:
        request: ValidateReceiptRequest containing receiptData, bundleId and productId
        validator: ReceiptValidator (automatically injected by Depends)

    Returns:
        JSONResponse with the validation verdict. A well-formed "not valid"
        verdict is still a 200; 408/502 signal that Apple could not be reached.
    """
    try:
        outcome = await validator.validate(request or ValidateReceiptRequest())
    except Exception as e:
        logfire.exception(f"Receipt validation error: {str(e)}")
        return error_response(500, "internal server error during validation")

    return render_outcome(outcome)


@router.api_route("/validate", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def validate_receipt_method_not_allowed() -> JSONResponse:
    return error_response(405, "method not allowed")


@router.options("/validate", include_in_schema=False)
async def validate_receipt_preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)
