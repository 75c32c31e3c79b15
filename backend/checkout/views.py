import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from backend.cart.models import CartRequest
from backend.catalog.service import CatalogStore, CatalogUnavailable, get_catalog
from backend.config import BASE_URL
from backend.enrollments import service as enrollments_service
from backend.ownership.service import OwnershipUnavailable
from backend.payments import session as payments_session
from backend.payments.metadata import OrderMetadataError
from backend.payments.stripe_client import PaymentProviderError
from backend.utils.rate_limit import optional_rate_limit
from backend.utils.security import require_user
from .errors import CheckoutValidationError
from .validation import validate_checkout

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Checkout API"])

def request_origin(request: Request) -> str:
    """Origine publique du site: en-tête Origin si présent, sinon BASE_URL."""
    origin = (request.headers.get("origin") or "").strip()
    return (origin or BASE_URL).rstrip("/")

# module backend.checkout.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_checkout(
    request: Request,
    user: dict = Depends(require_user),
    catalog: CatalogStore = Depends(get_catalog),
):
    """
    Crée la session de paiement pour le panier de l'utilisateur authentifié.
    - Entrée JSON: {"items": [{courseId, courseName, planLabel, price, enrollmentId, stripePriceId}, ...]}
    - Sécurité: require_user + rate limit (10 req / 60s)
    - Étapes:
      1) Validation du corps (pydantic) -> 400 "Invalid request data"
      2) Re-dérivation de chaque ligne depuis le catalogue + contrôle de possession
      3) Panier entièrement gratuit: inscription directe, pas de session Stripe
      4) Sinon: session Stripe Checkout -> {sessionId, url, isFree: false}
    """
    try:
        body = await request.json()
        cart = CartRequest.model_validate(body)
    except (ValueError, ValidationError):
        return JSONResponse({"error": "Invalid request data", "isFree": False}, status_code=400)

    try:
        lines = await run_in_threadpool(validate_checkout, cart.items, catalog, user.get("id"))
    except CheckoutValidationError as e:
        logger.info("checkout.validate rejected user_id=%s kind=%s", user.get("id"), e.kind)
        return JSONResponse({**e.to_dict(), "isFree": False}, status_code=e.status_code)
    except (CatalogUnavailable, OwnershipUnavailable) as e:
        logger.warning("checkout.validate unavailable user_id=%s kind=%s", user.get("id"), e.kind)
        return JSONResponse({"error": e.message, "kind": e.kind, "isFree": False}, status_code=e.status_code)

    if all(line.price == 0 for line in lines):
        report = await run_in_threadpool(enrollments_service.enroll_free_order, lines, user)
        logger.info("checkout.free user_id=%s %s", user.get("id"), report.to_dict())
        failed = len(report.failed)
        if not failed:
            message = "Free courses enrolled successfully"
        elif report.succeeded:
            message = f"{failed} of {len(report.items)} free courses could not be enrolled. Please contact support."
        else:
            message = "Free course enrollment failed. Please contact support."
        return JSONResponse({
            "sessionId": None,
            "isFree": True,
            "enrollmentIds": [o.line.enrollment_id for o in report.succeeded],
            "failedCount": failed,
            "message": message,
        })

    try:
        session = await run_in_threadpool(
            payments_session.create_payment_session, lines, user, request_origin(request)
        )
    except PaymentProviderError as e:
        logger.error("checkout.session stripe error user_id=%s kind=%s", user.get("id"), e.kind)
        return JSONResponse({"error": e.message, "isFree": False}, status_code=e.status_code)
    except OrderMetadataError as e:
        logger.error("checkout.session metadata error user_id=%s: %s", user.get("id"), e)
        return JSONResponse({"error": "Too many items in cart", "isFree": False}, status_code=400)

    logger.info("checkout.session created user_id=%s session_id=%s items=%s", user.get("id"), session.get("sessionId"), len(lines))
    return JSONResponse({"sessionId": session.get("sessionId"), "url": session.get("url"), "isFree": False})
