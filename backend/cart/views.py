import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from backend.catalog.service import CatalogStore, CatalogUnavailable, get_catalog
from backend.ownership import service as ownership_service
from backend.utils.rate_limit import optional_rate_limit
from backend.utils.security import require_user
from .conflicts import can_add_to_cart, check_cart_conflicts
from .models import CartRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])

VALIDATION_UNAVAILABLE = "Unable to validate cart items. Please verify your purchases before checkout."

# module backend.cart.views
@router.post("/validate", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
async def validate_cart(
    request: Request,
    user: dict = Depends(require_user),
    catalog: CatalogStore = Depends(get_catalog),
):
    """
    Vérifie le panier contre les achats de l'utilisateur (lecture seule).
    - Réponse: {isValid, conflictingItems: [CartItem...], message?}
    - Catalogue indisponible: panier accepté avec un avertissement (le checkout revalide)
    """
    try:
        body = await request.json()
        cart = CartRequest.model_validate(body)
    except (ValueError, ValidationError):
        return JSONResponse({"error": "Invalid request data"}, status_code=400)

    owned = await run_in_threadpool(ownership_service.get_owned_product_ids, user.get("id"))
    try:
        report = await run_in_threadpool(check_cart_conflicts, cart.items, owned, catalog)
    except CatalogUnavailable:
        logger.warning("cart.validate catalog unavailable user_id=%s", user.get("id"))
        return {"isValid": True, "conflictingItems": [], "message": VALIDATION_UNAVAILABLE}

    if not report.has_conflicts:
        return {"isValid": True, "conflictingItems": []}
    return {
        "isValid": False,
        "conflictingItems": [item.model_dump(by_alias=True) for item in report.conflicting_lines],
        "message": report.message,
    }

@router.get("/can-add/{course_id}")
async def can_add(
    course_id: str,
    user: dict = Depends(require_user),
    catalog: CatalogStore = Depends(get_catalog),
):
    owned = await run_in_threadpool(ownership_service.get_owned_product_ids, user.get("id"))
    allowed, reason = await run_in_threadpool(can_add_to_cart, course_id, owned, catalog)
    return {"canAdd": allowed, "reason": reason}
