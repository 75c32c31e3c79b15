"""
Webhook Event Handler: aiguillage d'un événement Stripe déjà vérifié.

- checkout.session.completed / checkout.session.async_payment_succeeded -> Enrollment Orchestrator
- checkout.session.expired / checkout.session.async_payment_failed / payment_intent.payment_failed -> log
- autres types -> acquittés sans action
Retourne un libellé d'issue (outcome) pour la réponse 200; seules les erreurs inattendues remontent.
"""
import logging
from typing import Any, Dict

from backend.enrollments import service as enrollments_service
from .metadata import OrderMetadataError

logger = logging.getLogger(__name__)

ENROLL_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
LOG_ONLY_EVENTS = {
    "checkout.session.expired",
    "checkout.session.async_payment_failed",
    "payment_intent.payment_failed",
}

def _handle_paid_session(event_type: str, session: Dict[str, Any]) -> str:
    if event_type == "checkout.session.completed" and session.get("payment_status") == "unpaid":
        # paiement asynchrone: on attend async_payment_succeeded
        logger.info("payments.webhook session completed but unpaid session_id=%s", session.get("id"))
        return "awaiting_payment"
    try:
        report = enrollments_service.process_enrollment(session)
    except OrderMetadataError as e:
        logger.error(
            "payments.webhook unusable session metadata session_id=%s missing=%s error=%s",
            session.get("id"), e.missing, e,
        )
        return "ignored_invalid_metadata"
    logger.info("payments.webhook enrollment %s", report.to_dict())
    return "already_processed" if report.status == "already_processed" else "enrolled"

def dispatch_event(event: Dict[str, Any]) -> str:
    event_type = str(event.get("type") or "")
    data_object = ((event.get("data") or {}).get("object")) or {}

    if event_type in ENROLL_EVENTS:
        return _handle_paid_session(event_type, data_object)
    if event_type in LOG_ONLY_EVENTS:
        logger.info(
            "payments.webhook %s object_id=%s email=%s",
            event_type, data_object.get("id"), (data_object.get("metadata") or {}).get("userEmail"),
        )
        return "logged"
    logger.info("payments.webhook unhandled event type=%s id=%s", event_type, event.get("id"))
    return "ignored"
