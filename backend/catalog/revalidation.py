"""
Calcul des tags de cache à invalider à partir d'une notification de changement Supabase
(database webhook: {table, type, record|new, old_record|old}).
"""
from typing import Any, Dict, List, Optional

from . import repository

COURSES_TAG = "courses"

def _row(payload: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    for k in keys:
        v = payload.get(k)
        if isinstance(v, dict):
            return v
    return {}

def revalidation_tags(payload: Dict[str, Any]) -> List[str]:
    """
    Retourne les tags à invalider, toujours en commençant par "courses".
    - courses: course:<unique_id> (+ bundle:<unique_id> si is_bundle)
    - course_plans: course:<unique_id> du cours parent (résolu depuis course_id)
    - bundle_items: bundle:<unique_id du bundle> et course:<unique_id de l'enfant>
    Les lignes nouvelle et ancienne sont toutes deux prises en compte (DELETE n'a que l'ancienne).
    """
    table = str(payload.get("table") or "")
    rows = [r for r in (_row(payload, "record", "new"), _row(payload, "old_record", "old")) if r]
    tags: List[str] = [COURSES_TAG]

    def add(tag: Optional[str]) -> None:
        if tag and tag not in tags:
            tags.append(tag)

    if table == "courses":
        for r in rows:
            uid = r.get("unique_id")
            if uid:
                add(f"course:{uid}")
                if r.get("is_bundle"):
                    add(f"bundle:{uid}")
    elif table == "course_plans":
        course_ids = [r.get("course_id") for r in rows if r.get("course_id")]
        uniques = repository.fetch_course_unique_ids(course_ids)
        for cid in course_ids:
            uid = uniques.get(str(cid))
            if uid:
                add(f"course:{uid}")
    elif table == "bundle_items":
        ids: List[str] = []
        for r in rows:
            ids.extend(str(x) for x in (r.get("bundle_course_id"), r.get("child_course_id")) if x)
        uniques = repository.fetch_course_unique_ids(ids)
        for r in rows:
            bundle_uid = uniques.get(str(r.get("bundle_course_id")))
            child_uid = uniques.get(str(r.get("child_course_id")))
            if bundle_uid:
                add(f"bundle:{bundle_uid}")
            if child_uid:
                add(f"course:{child_uid}")
    return tags
