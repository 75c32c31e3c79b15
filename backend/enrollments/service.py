"""
Enrollment Orchestrator: traite un paiement confirmé.

Étapes:
  1) lecture des métadonnées de commande (OrderMetadataError si illisibles, aucun effet de bord)
  2) upsert de l'utilisateur local (clé: identifiant du fournisseur d'identité)
  3) achat keyé par l'id de session Stripe; achat déjà 'completed' => arrêt immédiat
  4) purchase_items (réutilisés si l'achat 'pending' a déjà été partiellement traité)
  5) compte LearnWorlds (recherche par email, création sinon), id stocké sur l'utilisateur local
  6) inscriptions séquentielles, une par item; l'échec d'un item n'arrête pas les suivants
  7) débit des appels LearnWorlds régulé par le TokenBucket du client
  8) achat marqué 'completed' dans tous les cas une fois les items tentés
  9) réponse "already owned" de LearnWorlds = succès
Les erreurs locales des étapes 2 à 4 et 8 remontent (EnrollmentPersistenceError, le webhook renvoie 500);
les appels LearnWorlds (étapes 5 à 7) ne lèvent jamais.
"""
import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from backend.config import STRIPE_CURRENCY
from backend.learnworlds.client import LearnWorldsClient, LearnWorldsError, get_learnworlds_client
from backend.payments.metadata import (
    OrderLine,
    OrderMetadataError,
    OrderPayload,
    order_lines_from_processed,
    parse_order_metadata,
)
from backend.users import repository as users_repo
from . import repository
from .repository import EnrollmentPersistenceError

logger = logging.getLogger(__name__)

FREE_SESSION_PREFIX = "free_"

class ItemOutcome:
    def __init__(self, line: OrderLine, success: bool, already_owned: bool = False, error: Optional[str] = None, skipped: bool = False):
        self.line = line
        self.success = success
        self.already_owned = already_owned
        self.error = error
        self.skipped = skipped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lineId": self.line.line_id,
            "productId": self.line.product_id,
            "enrollmentId": self.line.enrollment_id,
            "success": self.success,
            "alreadyOwned": self.already_owned,
            "skipped": self.skipped,
            "error": self.error,
        }

class EnrollmentReport:
    def __init__(self, session_id: str, status: str, purchase_id: Optional[str] = None, items: Optional[List[ItemOutcome]] = None):
        self.session_id = session_id
        self.status = status  # completed | already_processed
        self.purchase_id = purchase_id
        self.items = items or []

    @property
    def succeeded(self) -> List[ItemOutcome]:
        return [o for o in self.items if o.success]

    @property
    def failed(self) -> List[ItemOutcome]:
        return [o for o in self.items if not o.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "status": self.status,
            "purchaseId": self.purchase_id,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "items": [o.to_dict() for o in self.items],
        }

def add_months(start: datetime, months: int) -> datetime:
    """Ajoute des mois calendaires; le jour est ramené à la fin du mois si besoin (31/08 + 6 mois = 28/02)."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)

def compute_expiry(plan_label: str, start: datetime) -> Optional[datetime]:
    if plan_label == "6mo":
        return add_months(start, 6)
    if plan_label == "7day":
        return start + timedelta(days=7)
    return None

def _username(order: OrderPayload) -> str:
    return order.user_name or order.user_email.split("@")[0]

def _item_row(line: OrderLine) -> Dict[str, Any]:
    return {
        "line_id": line.line_id,
        "course_id": line.product_id,
        "course_name": line.product_name,
        "plan_label": line.plan_label,
        "price": line.price,
        "enrollment_id": line.enrollment_id,
        "stripe_price_id": line.price_id,
    }

def _ensure_purchase_items(purchase_id: str, lines: Sequence[OrderLine]) -> List[Tuple[OrderLine, Dict[str, Any]]]:
    existing = {str(r.get("line_id")): r for r in repository.get_purchase_items(purchase_id) if r.get("line_id")}
    missing = [line for line in lines if line.line_id not in existing]
    if missing:
        for row in repository.insert_purchase_items(purchase_id, [_item_row(line) for line in missing]):
            existing[str(row.get("line_id"))] = row
    pairs = []
    for line in lines:
        row = existing.get(line.line_id)
        if row is None:
            raise EnrollmentPersistenceError(f"purchase item missing for line {line.line_id}")
        pairs.append((line, row))
    return pairs

def _enroll_item(
    client: LearnWorldsClient,
    user: Dict[str, Any],
    order: OrderPayload,
    line: OrderLine,
    item: Dict[str, Any],
    now: Optional[datetime] = None,
) -> ItemOutcome:
    try:
        result = client.enroll(order.user_email, line.enrollment_id, line.product_type, line.price)
    except LearnWorldsError as e:
        logger.exception("enrollments.service.enroll failed email=%s product=%s", order.user_email, line.enrollment_id)
        return ItemOutcome(line, False, error=str(e))

    if not result.success:
        logger.error(
            "enrollments.service.enroll rejected email=%s product=%s message=%s",
            order.user_email, line.enrollment_id, result.message,
        )
        return ItemOutcome(line, False, error=result.message)

    enrolled_at = now or datetime.now(timezone.utc)
    expires_at = compute_expiry(line.plan_label, enrolled_at)
    row = {
        "user_id": user.get("id"),
        "purchase_item_id": item.get("id"),
        "learnworlds_enrollment_id": result.enrollment_id or line.enrollment_id,
        "course_id": line.product_id,
        "course_name": line.product_name,
        "course_url": line.url,
        "plan_label": line.plan_label,
        "status": "active",
        "enrolled_at": enrolled_at.isoformat(),
        "expires_at": expires_at.isoformat() if expires_at else None,
    }
    try:
        repository.upsert_enrollment(row)
    except Exception as e:
        logger.exception(
            "enrollments.service enrolled remotely but local record failed item=%s product=%s",
            item.get("id"), line.product_id,
        )
        return ItemOutcome(line, False, already_owned=result.already_owned, error=f"local enrollment record failed: {e}")
    return ItemOutcome(line, True, already_owned=result.already_owned)

def fulfil_order(
    order: OrderPayload,
    *,
    session_id: str,
    payment_intent_id: Optional[str] = None,
    amount: Optional[int] = None,
    currency: Optional[str] = None,
    client: Optional[LearnWorldsClient] = None,
    now: Optional[datetime] = None,
) -> EnrollmentReport:
    """Étapes 2 à 9 pour une commande déjà décodée."""
    try:
        user = users_repo.upsert_user(
            auth_user_id=order.user_id,
            email=order.user_email,
            full_name=order.user_name or None,
        )
    except Exception as e:
        logger.exception("enrollments.service user upsert failed auth_user_id=%s", order.user_id)
        raise EnrollmentPersistenceError(f"user upsert failed: {e}") from e

    existing = repository.get_purchase_by_session(session_id)
    if existing and existing.get("status") == "completed":
        logger.info("enrollments.service session already processed session_id=%s", session_id)
        return EnrollmentReport(session_id, "already_processed", existing.get("id"))

    purchase = repository.upsert_pending_purchase(
        user_id=user["id"],
        session_id=session_id,
        payment_intent_id=payment_intent_id,
        amount=order.total if amount is None else amount,
        currency=(currency or STRIPE_CURRENCY).lower(),
    )
    pairs = _ensure_purchase_items(purchase["id"], order.lines)
    done = set(repository.get_enrolled_item_ids([str(item.get("id")) for _, item in pairs]))

    report = EnrollmentReport(session_id, "completed", purchase.get("id"))
    todo = []
    for line, item in pairs:
        if str(item.get("id")) in done:
            report.items.append(ItemOutcome(line, True, skipped=True))
        else:
            todo.append((line, item))

    if todo:
        client = client or get_learnworlds_client()
        try:
            lw_user = client.ensure_user(order.user_email, _username(order))
        except LearnWorldsError as e:
            logger.exception("enrollments.service learnworlds user unavailable email=%s", order.user_email)
            report.items.extend(ItemOutcome(line, False, error=f"learnworlds user unavailable: {e}") for line, _ in todo)
        else:
            try:
                users_repo.set_learnworlds_user_id(str(user["id"]), lw_user.id)
            except Exception:
                logger.exception("enrollments.service could not store learnworlds id user=%s", user.get("id"))
            for line, item in todo:
                report.items.append(_enroll_item(client, user, order, line, item, now))

    try:
        repository.complete_purchase(session_id)
    except Exception as e:
        # achat laissé pending: la relivraison Stripe reprend sans réinscrire les items déjà faits
        logger.exception("enrollments.service complete_purchase failed session_id=%s", session_id)
        raise EnrollmentPersistenceError(f"complete_purchase failed: {e}") from e

    logger.info(
        "enrollments.service summary session_id=%s succeeded=%s failed=%s",
        session_id, len(report.succeeded), len(report.failed),
    )
    for outcome in report.failed:
        logger.warning(
            "enrollments.service manual follow-up needed session_id=%s product=%s error=%s",
            session_id, outcome.line.product_id, outcome.error,
        )
    return report

def process_enrollment(session: Dict[str, Any], client: Optional[LearnWorldsClient] = None, now: Optional[datetime] = None) -> EnrollmentReport:
    """
    Point d'entrée du webhook pour une session Checkout payée.
    - Lève OrderMetadataError si la session est inexploitable (rien n'est écrit)
    - Lève EnrollmentPersistenceError si la base locale échoue avant tout appel externe
    """
    session_id = str(session.get("id") or "")
    order = parse_order_metadata(session.get("metadata"))
    if not session_id:
        raise OrderMetadataError("checkout session without id")
    amount = session.get("amount_total")
    return fulfil_order(
        order,
        session_id=session_id,
        payment_intent_id=session.get("payment_intent"),
        amount=int(amount) if amount is not None else None,
        currency=session.get("currency"),
        client=client,
        now=now,
    )

def enroll_free_order(lines: Sequence[Any], user: Dict[str, Any], client: Optional[LearnWorldsClient] = None) -> EnrollmentReport:
    """Panier entièrement gratuit: inscription directe, sans session Stripe."""
    order = OrderPayload(
        user_id=str(user.get("id") or ""),
        user_email=str(user.get("email") or ""),
        user_name=str(user.get("full_name") or ""),
        lines=order_lines_from_processed(lines),
    )
    session_id = f"{FREE_SESSION_PREFIX}{uuid4().hex}"
    logger.info("enrollments.service free order session_id=%s user=%s items=%s", session_id, order.user_id, len(order.lines))
    return fulfil_order(order, session_id=session_id, amount=0, client=client)
