"""
Accès aux données pour la feature 'catalog' (tables courses, course_plans, bundle_items).
Les lectures complètes propagent les erreurs: c'est le CatalogStore qui décide du repli.
"""
from typing import Any, Dict, List, Optional
import logging
import backend.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

# module backend.catalog.repository
def fetch_catalog_rows() -> Dict[str, List[Dict[str, Any]]]:
    """
    Lit les trois tables du catalogue en une passe.
    - Retour: {"courses": [...], "plans": [...], "bundles": [...]}
    - Lève l'exception Supabase telle quelle en cas d'échec.
    """
    client = supabase_client.get_supabase()
    courses = client.table("courses").select("*").execute()
    plans = client.table("course_plans").select("*").execute()
    bundles = client.table("bundle_items").select("*").execute()
    return {
        "courses": courses.data or [],
        "plans": plans.data or [],
        "bundles": bundles.data or [],
    }

def fetch_course_unique_ids(course_ids: List[str]) -> Dict[str, str]:
    """
    Résout des UUID de la table courses vers leur unique_id.
    - Utilisé par le webhook de revalidation (course_plans, bundle_items).
    - Retourne {} en cas d'erreur.
    """
    ids = [str(i) for i in course_ids if i]
    if not ids:
        return {}
    try:
        res = (
            supabase_client.get_supabase()
            .table("courses")
            .select("id, unique_id")
            .in_("id", ids)
            .execute()
        )
        return {str(r.get("id")): r.get("unique_id") for r in (res.data or []) if r.get("unique_id")}
    except Exception:
        logger.exception("catalog.repository.fetch_course_unique_ids failed ids=%s", ids)
        return {}

def fetch_course_unique_id(course_id: Optional[str]) -> Optional[str]:
    if not course_id:
        return None
    return fetch_course_unique_ids([course_id]).get(str(course_id))
