import hmac
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from backend.config import REVALIDATE_TOKEN
from .service import CatalogStore, get_catalog
from .revalidation import revalidation_tags

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Catalog API"])

CACHE_CONTROL = "public, s-maxage=300, stale-while-revalidate=600"

# module backend.catalog.views
@router.get("/courses")
async def list_courses(catalog: CatalogStore = Depends(get_catalog)):
    """
    Catalogue complet (produits + plans) servi depuis le cache du CatalogStore.
    - 503 si le catalogue est indisponible et qu'aucun repli n'est encore servi.
    """
    entries = await run_in_threadpool(catalog.get_all)
    return JSONResponse(
        [e.model_dump() for e in entries],
        headers={"Cache-Control": CACHE_CONTROL},
    )

@router.get("/courses/{course_id}")
async def get_course(course_id: str, catalog: CatalogStore = Depends(get_catalog)):
    entry = await run_in_threadpool(catalog.get_by_product_id, course_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Course not found: {course_id}")
    return JSONResponse(entry.model_dump(), headers={"Cache-Control": CACHE_CONTROL})

@router.post("/catalog/revalidate", include_in_schema=False)
async def revalidate_catalog(request: Request, catalog: CatalogStore = Depends(get_catalog)):
    """
    Webhook de changement de données (Supabase database webhook).
    - Sécurité: en-tête x-revalidate-token comparé à REVALIDATE_TOKEN
    - Invalide toujours "courses" puis les tags ciblés du produit/bundle touché
    - Réponses: {ok, table, type, tags} | 401 | 500 {ok: false, error: "revalidate_failed"}
    """
    token = request.headers.get("x-revalidate-token") or ""
    if not REVALIDATE_TOKEN or not hmac.compare_digest(token, REVALIDATE_TOKEN):
        return JSONResponse({"ok": False, "error": "unauthorized"}, status_code=401)

    try:
        payload: Dict[str, Any] = await request.json()
        if not isinstance(payload, dict):
            raise ValueError("payload must be an object")
        tags = await run_in_threadpool(revalidation_tags, payload)
        catalog.invalidate(*tags)
        logger.info("catalog.revalidate table=%s type=%s tags=%s", payload.get("table"), payload.get("type"), tags)
        return {"ok": True, "table": payload.get("table"), "type": payload.get("type"), "tags": tags}
    except Exception:
        logger.exception("catalog.revalidate failed")
        return JSONResponse({"ok": False, "error": "revalidate_failed"}, status_code=500)
