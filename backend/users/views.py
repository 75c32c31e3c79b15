# module backend.users.views

"""Endpoints du domaine Utilisateurs.
- Webhook du fournisseur d'identité: synchronise la table users (création / mise à jour)
- /me: profil de l'utilisateur authentifié
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from backend.config import IDENTITY_WEBHOOK_SECRET
from backend.utils.security import require_user
from .service import InvalidIdentitySignature, get_profile, handle_identity_event, verify_identity_signature

logger = logging.getLogger(__name__)
api_router = APIRouter(prefix="/api/v1", tags=["Users API"])

@api_router.post("/webhooks/identity", include_in_schema=False)
async def identity_webhook(request: Request):
    """Réception des événements utilisateur.
    - 400 "Invalid signature" si les en-têtes svix-*/webhook-* sont absents ou invalides (SDK svix)
    - 500 si l'écriture en base échoue (le fournisseur relivre)
    - 200 {received: true, type}
    """
    body = await request.body()
    try:
        event: Dict[str, Any] = verify_identity_signature(body, request.headers, IDENTITY_WEBHOOK_SECRET)
    except InvalidIdentitySignature as e:
        logger.warning("users.identity_webhook rejected: %s", e)
        return JSONResponse({"error": "Invalid signature"}, status_code=400)

    try:
        await run_in_threadpool(handle_identity_event, event)
    except Exception:
        logger.exception("users.identity_webhook sync failed type=%s", event.get("type"))
        return JSONResponse({"error": "Database error"}, status_code=500)
    return {"received": True, "type": event.get("type")}

@api_router.get("/me")
async def me(user: Dict[str, Any] = Depends(require_user)):
    return await run_in_threadpool(get_profile, user)
