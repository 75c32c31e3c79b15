"""
Checkout Validator: re-dérive chaque ligne du panier depuis le catalogue.

Le prix, l'enrollment id et la référence de prix Stripe ne sont jamais repris du client.
Validation tout-ou-rien: la première ligne invalide fait échouer toute la requête.
"""
import logging
from typing import List, Optional, Sequence

from pydantic import BaseModel

from backend.cart.conflicts import check_cart_conflicts
from backend.cart.models import CartItem
from backend.catalog.models import FALLBACK_PRODUCT_ID, PRICE_ID_PREFIX
from backend.catalog.service import CatalogStore, CatalogUnavailable
from backend.ownership import service as ownership_service
from .errors import (
    AlreadyOwned,
    EnrollmentIdMismatch,
    InvalidPriceReference,
    PlanNotFound,
    PriceMismatch,
    ProductNotFound,
)

logger = logging.getLogger(__name__)

class ProcessedLine(BaseModel):
    """Ligne canonique, valeurs issues du catalogue."""
    line_id: str
    course_id: str
    course_name: str
    plan_label: str
    price: int
    enrollment_id: str
    stripe_price_id: str
    category: str = "course"
    url: str = "#"

    @property
    def product_type(self) -> str:
        return "bundle" if self.category == "bundle" else "course"

def validate_line(index: int, item: CartItem, catalog: CatalogStore) -> ProcessedLine:
    entry = catalog.get_by_product_id(item.course_id)
    if entry is not None and entry.product.id == FALLBACK_PRODUCT_ID:
        # entrée de secours: visible dans le catalogue, jamais achetable
        raise CatalogUnavailable()
    if entry is None:
        raise ProductNotFound(f"Course not found: {item.course_id}")

    plan = entry.plan(item.plan_label)
    if plan is None:
        raise PlanNotFound(f'Plan "{item.plan_label}" not found for course "{item.course_name}"')

    if plan.price != item.price:
        raise PriceMismatch(
            f'Price mismatch for "{item.course_name}". Expected: {plan.price}, Received: {item.price}'
        )

    if plan.enrollment_id != item.enrollment_id:
        raise EnrollmentIdMismatch(f'Enrollment ID mismatch for "{item.course_name}"')

    # s'applique aussi aux plans gratuits: Stripe exige un objet prix valide même à 0
    if not plan.stripe_price_id.startswith(PRICE_ID_PREFIX):
        raise InvalidPriceReference(
            f'Invalid Stripe price ID format for "{item.course_name}". Must start with "{PRICE_ID_PREFIX}"'
        )

    return ProcessedLine(
        line_id=f"{index}:{item.course_id}:{item.plan_label}",
        course_id=entry.product.id,
        course_name=entry.product.name,
        plan_label=plan.label,
        price=plan.price,
        enrollment_id=plan.enrollment_id,
        stripe_price_id=plan.stripe_price_id,
        category=plan.category or "course",
        url=plan.url or "#",
    )

def validate_checkout(
    raw_lines: Sequence[CartItem],
    catalog: CatalogStore,
    user_id: Optional[str] = None,
) -> List[ProcessedLine]:
    """
    Retourne les lignes canoniques ou lève la première CheckoutValidationError.
    - user_id fourni: la possession est re-résolue côté serveur et tout conflit lève AlreadyOwned.
    - Base indisponible pendant ce contrôle: OwnershipUnavailable (jamais "ne possède rien").
    """
    processed = [validate_line(i, item, catalog) for i, item in enumerate(raw_lines)]

    if user_id:
        owned = ownership_service.get_owned_product_ids(user_id, strict=True)
        report = check_cart_conflicts(processed, owned, catalog)
        if report.has_conflicts:
            logger.info(
                "checkout.validation conflicts user_id=%s items=%s",
                user_id,
                [line.course_id for line in report.conflicting_lines],
            )
            raise AlreadyOwned(
                report.conflicting_names,
                [line.course_id for line in report.conflicting_lines],
            )
    return processed
