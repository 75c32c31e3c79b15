"""
Ownership Resolver: ensemble des produits qu'un utilisateur possède actuellement.
Possédé = enrollment 'active' + achat 'completed' + non expiré (expires_at nul ou futur).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from backend.users import repository as users_repo
from . import repository

logger = logging.getLogger(__name__)

def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def _purchase_completed(row: Dict[str, Any]) -> bool:
    item = row.get("purchase_items")
    if isinstance(item, list):
        item = item[0] if item else None
    if not isinstance(item, dict):
        return False
    purchase = item.get("purchases")
    if isinstance(purchase, list):
        purchase = purchase[0] if purchase else None
    return isinstance(purchase, dict) and purchase.get("status") == "completed"

def is_row_owned(row: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    if row.get("status") != "active" or not _purchase_completed(row):
        return False
    try:
        expires_at = _parse_ts(row.get("expires_at"))
    except ValueError:
        # date illisible: on considère l'accès toujours valide (bloque un double achat)
        logger.warning("ownership.service unparseable expires_at=%s course_id=%s", row.get("expires_at"), row.get("course_id"))
        expires_at = None
    now = now or datetime.now(timezone.utc)
    return expires_at is None or expires_at > now

class OwnershipUnavailable(Exception):
    kind = "OwnershipUnavailable"
    status_code = 503

    def __init__(self, message: str = "Unable to verify your purchases. Please try again later."):
        super().__init__(message)
        self.message = message

def get_owned_product_ids(auth_user_id: str, now: Optional[datetime] = None, strict: bool = False) -> Set[str]:
    """
    Produits possédés par l'utilisateur du fournisseur d'identité.
    - Aucun utilisateur local: ensemble vide (nouvel utilisateur, rien acheté).
    - strict=False (affichage, panier): une erreur de lecture donne un ensemble vide.
    - strict=True (checkout): une erreur de lecture lève OwnershipUnavailable (503).
    """
    try:
        user = users_repo.get_user_by_auth_id(auth_user_id, strict=strict)
        if not user:
            return set()
        rows = repository.fetch_active_enrollment_rows(str(user.get("id")), strict=strict)
    except Exception as e:
        logger.error("ownership.service lookup failed auth_user_id=%s: %s", auth_user_id, e)
        raise OwnershipUnavailable() from e
    return {str(r["course_id"]) for r in rows if r.get("course_id") and is_row_owned(r, now)}
