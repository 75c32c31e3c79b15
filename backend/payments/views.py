import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from backend.payments import stripe_client
from backend.payments import webhook as payments_webhook

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

# module backend.payments.views
@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe (Checkout).
    - Signature: corps brut + Stripe-Signature vérifiés avec STRIPE_WEBHOOK_SECRET
    - Dispatch: payments.webhook.dispatch_event (inscriptions pour les sessions payées)
    - Réponses: 200 {received, eventId, eventType, outcome} pour tout événement traité ou ignoré,
      400 si signature/corps invalide, 500 si le traitement échoue de façon inattendue (Stripe relivre)
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = stripe_client.construct_event(payload, sig_header)
    except stripe_client.InvalidSignature as e:
        logger.warning("payments.webhook invalid signature: %s", e)
        return JSONResponse({"error": "Invalid signature"}, status_code=400)

    event_id = event.get("id")
    event_type = event.get("type")
    try:
        outcome = await run_in_threadpool(payments_webhook.dispatch_event, event)
    except Exception:
        logger.exception("payments.webhook dispatch failed event_id=%s type=%s", event_id, event_type)
        return JSONResponse({"error": "Webhook handler failed"}, status_code=500)

    return JSONResponse({"received": True, "eventId": event_id, "eventType": event_type, "outcome": outcome})
