import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Domain error rendered to clients as {"error": kind}."""

    def __init__(self, kind: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(kind)
        self.kind = kind
        self.status_code = status_code


class ProviderError(PaymentError):
    """Outbound provider call failed (timeout, non-2xx, malformed response)."""

    def __init__(self, kind: str, status_code: int = status.HTTP_502_BAD_GATEWAY):
        super().__init__(kind, status_code)


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.kind},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Rejected payload on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "invalid_payload"},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error"},
        )
