"""
Gestionnaires d'exceptions utilisés par la factory.
- HTTPException -> {"error": detail} avec le code d'origine
- Erreurs métier non interceptées par les vues -> {"error", "kind"} avec leur code HTTP
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from backend.catalog.service import CatalogUnavailable
from backend.checkout.errors import CheckoutValidationError
from backend.enrollments.repository import EnrollmentPersistenceError
from backend.ownership.service import OwnershipUnavailable
from backend.payments.stripe_client import PaymentProviderError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(CheckoutValidationError)
    async def checkout_error(request: Request, exc: CheckoutValidationError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(CatalogUnavailable)
    @app.exception_handler(OwnershipUnavailable)
    async def service_unavailable(request: Request, exc):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "kind": exc.kind})

    @app.exception_handler(PaymentProviderError)
    async def payment_error(request: Request, exc: PaymentProviderError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(EnrollmentPersistenceError)
    async def persistence_error(request: Request, exc: EnrollmentPersistenceError):
        logger.error("app.persistence_error path=%s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Internal error", "kind": "EnrollmentPersistenceError"})
