"""
Payment Session Builder: transforme les lignes validées en session Stripe Checkout.
Aucune écriture locale ici: l'achat n'est enregistré qu'à la confirmation du paiement (webhook).
"""
import time
from typing import Any, Dict, Optional, Sequence

from backend.config import CHECKOUT_SUCCESS_PATH, CHECKOUT_CANCEL_PATH, CHECKOUT_SESSION_TTL_MINUTES
from . import stripe_client
from .metadata import build_order_metadata, order_lines_from_processed

def to_line_items(lines: Sequence[Any]) -> list:
    """Une ligne Stripe par ligne validée (référence de prix + quantité 1)."""
    return [{"price": line.stripe_price_id, "quantity": 1} for line in lines]

def session_expires_at(now: Optional[float] = None) -> int:
    return int(now if now is not None else time.time()) + CHECKOUT_SESSION_TTL_MINUTES * 60

def create_payment_session(lines: Sequence[Any], user: Dict[str, Any], origin: str) -> Dict[str, Any]:
    """
    Crée la session de paiement et retourne {sessionId, url}.
    - user: {id, email, full_name} issu de require_user
    - origin: origine publique du site (préfixe des URLs de succès/annulation)
    """
    origin = origin.rstrip("/")
    metadata = build_order_metadata(
        user_id=str(user.get("id") or ""),
        user_email=str(user.get("email") or ""),
        user_name=str(user.get("full_name") or ""),
        lines=order_lines_from_processed(lines),
    )
    session = stripe_client.create_session(
        line_items=to_line_items(lines),
        success_url=f"{origin}{CHECKOUT_SUCCESS_PATH}?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{origin}{CHECKOUT_CANCEL_PATH}",
        metadata=metadata,
        expires_at=session_expires_at(),
        customer_email=user.get("email") or None,
        payment_intent_metadata={
            "userId": str(user.get("id") or ""),
            "userEmail": str(user.get("email") or ""),
            "type": "course_purchase",
        },
    )
    return {"sessionId": session.get("id"), "url": session.get("url")}
