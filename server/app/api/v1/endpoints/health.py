"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends
from typing import Dict, Any

from server.core.config.general_config import settings
from server.core.config.receipt_config import ReceiptValidationSettings, get_receipt_settings

router = APIRouter()


@router.get("/")
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint.
    """
    return {
        "status": "healthy",
        "message": "Service is running",
        "service": "receipt-validation-api"
    }


@router.get("/detailed")
async def detailed_health_check(
    receipt_settings: ReceiptValidationSettings = Depends(get_receipt_settings)
) -> Dict[str, Any]:
    """
    Detailed health check endpoint. Reports the upstream configuration, never the shared secret.
    """
    return {
        "status": "healthy",
        "message": "Service is running",
        "service": "receipt-validation-api",
        "version": settings.VERSION,
        "upstream": {
            "production_url": receipt_settings.APPLE_PRODUCTION_URL,
            "sandbox_url": receipt_settings.APPLE_SANDBOX_URL,
            "timeout_seconds": receipt_settings.UPSTREAM_TIMEOUT_SECONDS,
            "shared_secret_configured": bool(receipt_settings.APPLE_SHARED_SECRET),
        }
    }
