"""
Lectures des droits d'accès d'un utilisateur (enrollments joints à purchase_items -> purchases).
"""
import logging
from typing import Any, Dict, List
import backend.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

ACTIVE_ENROLLMENTS_SELECT = (
    "course_id, status, expires_at, "
    "purchase_items!inner(purchases!inner(status))"
)

# module backend.ownership.repository
def fetch_active_enrollment_rows(user_id: str, strict: bool = False) -> List[Dict[str, Any]]:
    """
    Enrollments actifs dont l'achat parent est 'completed'.
    - Filtre côté base (jointures !inner) puis re-vérifié côté service.
    - Retourne [] en cas d'erreur, sauf strict=True (l'erreur est remontée).
    """
    if not user_id:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("enrollments")
            .select(ACTIVE_ENROLLMENTS_SELECT)
            .eq("user_id", user_id)
            .eq("status", "active")
            .eq("purchase_items.purchases.status", "completed")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("ownership.repository.fetch_active_enrollment_rows failed user_id=%s", user_id)
        if strict:
            raise
        return []
