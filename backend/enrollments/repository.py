"""
Accès aux données du pipeline d'inscription (purchases, purchase_items, enrollments).
Écritures via le client service-role. Toute erreur est remontée sous forme
d'EnrollmentPersistenceError pour que le webhook renvoie 500 et que Stripe relivre l'événement.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import backend.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

class EnrollmentPersistenceError(Exception):
    """Échec d'écriture/lecture locale pendant le traitement d'un achat."""

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

# module backend.enrollments.repository
def get_purchase_by_session(session_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("purchases")
            .select("*")
            .eq("stripe_session_id", session_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.exception("enrollments.repository.get_purchase_by_session failed session_id=%s", session_id)
        raise EnrollmentPersistenceError(str(e)) from e
    rows = res.data or []
    return rows[0] if rows else None

def upsert_pending_purchase(
    *,
    user_id: str,
    session_id: str,
    payment_intent_id: Optional[str],
    amount: int,
    currency: str,
) -> Dict[str, Any]:
    """Crée (ou reprend) l'achat keyé par stripe_session_id, statut 'pending'."""
    row = {
        "user_id": user_id,
        "stripe_session_id": session_id,
        "stripe_payment_intent_id": payment_intent_id,
        "amount": int(amount),
        "currency": currency,
        "status": "pending",
    }
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("purchases")
            .upsert(row, on_conflict="stripe_session_id")
            .execute()
        )
    except Exception as e:
        logger.exception("enrollments.repository.upsert_pending_purchase failed session_id=%s", session_id)
        raise EnrollmentPersistenceError(str(e)) from e
    rows = res.data or []
    if not rows:
        raise EnrollmentPersistenceError(f"purchase upsert returned no row session_id={session_id}")
    return rows[0]

def get_purchase_items(purchase_id: str) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("purchase_items")
            .select("*")
            .eq("purchase_id", purchase_id)
            .execute()
        )
    except Exception as e:
        logger.exception("enrollments.repository.get_purchase_items failed purchase_id=%s", purchase_id)
        raise EnrollmentPersistenceError(str(e)) from e
    return res.data or []

def insert_purchase_items(purchase_id: str, items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    rows = [dict(item, purchase_id=purchase_id) for item in items]
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("purchase_items")
            .insert(rows)
            .execute()
        )
    except Exception as e:
        logger.exception("enrollments.repository.insert_purchase_items failed purchase_id=%s", purchase_id)
        raise EnrollmentPersistenceError(str(e)) from e
    created = res.data or []
    if len(created) != len(rows):
        raise EnrollmentPersistenceError(
            f"purchase_items insert returned {len(created)} rows, expected {len(rows)} (purchase_id={purchase_id})"
        )
    return created

def upsert_enrollment(row: Dict[str, Any]) -> Dict[str, Any]:
    """Enrollment unique par purchase_item_id (relivraison idempotente)."""
    res = (
        supabase_client.get_service_supabase()
        .table("enrollments")
        .upsert(row, on_conflict="purchase_item_id")
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else row

def complete_purchase(session_id: str) -> None:
    (
        supabase_client.get_service_supabase()
        .table("purchases")
        .update({"status": "completed", "completed_at": _now_iso()})
        .eq("stripe_session_id", session_id)
        .execute()
    )

def fetch_user_enrollments(user_id: str) -> List[Dict[str, Any]]:
    """Enrollments actifs d'un utilisateur, les plus récents d'abord ([] en cas d'erreur)."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("enrollments")
            .select("*")
            .eq("user_id", user_id)
            .eq("status", "active")
            .order("enrolled_at", desc=True)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("enrollments.repository.fetch_user_enrollments failed user_id=%s", user_id)
        return []

def get_enrolled_item_ids(purchase_item_ids: Sequence[str]) -> List[str]:
    """purchase_item_id déjà couverts par un enrollment (reprise d'un achat resté 'pending')."""
    ids = [str(i) for i in purchase_item_ids if i]
    if not ids:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("enrollments")
            .select("purchase_item_id")
            .in_("purchase_item_id", ids)
            .execute()
        )
    except Exception as e:
        logger.exception("enrollments.repository.get_enrolled_item_ids failed ids=%s", ids)
        raise EnrollmentPersistenceError(str(e)) from e
    return [str(r.get("purchase_item_id")) for r in (res.data or []) if r.get("purchase_item_id")]
