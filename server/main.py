"""
Main FastAPI application entry point.
"""
import os

import logfire
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from server.app.api.v1.api import api_router
from server.core.config.general_config import CORS_HEADERS, settings

from dotenv import load_dotenv

load_dotenv()

LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logfire.configure(
        token=LOGFIRE_TOKEN,
    )
    logfire.instrument_httpx()
    logfire.instrument_fastapi(app)
    logfire.info("Starting up FastAPI application...")
    yield
    # Shutdown
    logfire.info("Shutting down FastAPI application...")


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies get the verdict shape instead of FastAPI's 422."""
    logfire.warning("Invalid request body", extra={"errors": str(exc.errors())})
    return JSONResponse(
        status_code=400,
        content={"isValid": False, "error": "invalid request body"},
        headers=CORS_HEADERS,
    )


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description=settings.DESCRIPTION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    # Receipts are posted from the app, any origin is accepted
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_STR)

    return app


app = create_application()
@app.get("/")
def read_root():
    return {"message": "Welcome to the API. Visit /docs for API documentation."}
