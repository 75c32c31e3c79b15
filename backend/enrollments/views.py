import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from backend.ownership import service as ownership_service
from backend.users import repository as users_repo
from backend.utils.security import require_user
from . import repository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/me", tags=["My Courses API"])

# module backend.enrollments.views
@router.get("/enrollments")
async def my_enrollments(user: Dict[str, Any] = Depends(require_user)):
    """Inscriptions actives de l'utilisateur, les plus récentes d'abord (404 si aucun profil local)."""
    local_user = await run_in_threadpool(users_repo.get_user_by_auth_id, str(user.get("id") or ""))
    if not local_user:
        raise HTTPException(status_code=404, detail="User not found")
    enrollments = await run_in_threadpool(repository.fetch_user_enrollments, str(local_user.get("id")))
    return {"enrollments": enrollments}

@router.get("/purchases")
async def my_purchases(user: Dict[str, Any] = Depends(require_user)):
    owned = await run_in_threadpool(ownership_service.get_owned_product_ids, str(user.get("id") or ""))
    ids = sorted(owned)
    return {"purchasedCourseIds": ids, "count": len(ids)}
