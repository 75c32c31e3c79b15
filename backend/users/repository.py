"""Couche d'accès aux données (Supabase) pour la table users.
La ligne locale est une projection de l'utilisateur du fournisseur d'identité (clé: auth_user_id)
et porte l'identifiant LearnWorlds une fois le compte créé là-bas.
Accès via le client service-role (RLS active sur users). Les lectures sont tolérantes (None en cas d'erreur); les écritures lèvent l'exception Supabase.
"""
import logging
from typing import Any, Dict, Optional
import backend.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def get_user_by_auth_id(auth_user_id: str, strict: bool = False) -> Optional[Dict[str, Any]]:
    """Retourne la ligne users pour l'identifiant du fournisseur d'identité, ou None.
    - strict=True: l'erreur Supabase est remontée au lieu de None (contrôle de possession au checkout)
    """
    if not auth_user_id:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("users")
            .select("*")
            .eq("auth_user_id", auth_user_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("users.repository.get_user_by_auth_id failed auth_user_id=%s", auth_user_id)
        if strict:
            raise
        return None

def upsert_user(
    *,
    auth_user_id: str,
    email: str,
    full_name: Optional[str] = None,
    username: Optional[str] = None,
    learnworlds_user_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Upsert idempotent keyé sur auth_user_id; retourne la ligne écrite.
    - Les champs optionnels absents ne sont pas écrasés.
    """
    row: Dict[str, Any] = {"auth_user_id": auth_user_id, "email": email}
    if full_name:
        row["full_name"] = full_name
    if username:
        row["username"] = username
    if learnworlds_user_id:
        row["learnworlds_user_id"] = learnworlds_user_id
    res = (
        supabase_client.get_service_supabase()
        .table("users")
        .upsert(row, on_conflict="auth_user_id")
        .execute()
    )
    rows = res.data or []
    if not rows:
        raise RuntimeError(f"users upsert returned no row for auth_user_id={auth_user_id}")
    return rows[0]

def set_learnworlds_user_id(user_id: str, learnworlds_user_id: str) -> None:
    (
        supabase_client.get_service_supabase()
        .table("users")
        .update({"learnworlds_user_id": learnworlds_user_id})
        .eq("id", user_id)
        .execute()
    )
