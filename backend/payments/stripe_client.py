"""
Adaptateur Stripe: centralise la configuration, les appels et la traduction des erreurs Stripe.
Les erreurs SDK sont converties une seule fois ici en PaymentProviderError (kind, status, message sûr).
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import stripe

from backend.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

logger = logging.getLogger(__name__)

class PaymentProviderError(Exception):
    def __init__(self, kind: str, status_code: int, message: str):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}

class InvalidSignature(Exception):
    """Signature webhook absente, secret non configuré ou signature invalide."""

# (classe d'erreur SDK, kind Stripe, statut HTTP, message utilisateur)
_ERROR_KINDS: List[Tuple[type, str, int, str]] = [
    (stripe.error.CardError, "card_error", 400, "Payment failed. Please check your card details."),
    (stripe.error.RateLimitError, "rate_limit_error", 429, "Too many requests. Please try again later."),
    (stripe.error.IdempotencyError, "idempotency_error", 400, "Duplicate request detected. Please try again."),
    (stripe.error.InvalidRequestError, "invalid_request_error", 400, "Invalid payment request. Please try again."),
    (stripe.error.AuthenticationError, "authentication_error", 401, "Authentication failed. Please try again."),
    (stripe.error.APIConnectionError, "api_error", 503, "Payment service temporarily unavailable. Please try again."),
    (stripe.error.APIError, "api_error", 503, "Payment service temporarily unavailable. Please try again."),
]
_UNKNOWN = ("unknown_error", 500, "An unexpected error occurred. Please try again.")

def map_stripe_error(exc: Exception) -> PaymentProviderError:
    for cls, kind, status, message in _ERROR_KINDS:
        if isinstance(exc, cls):
            return PaymentProviderError(kind, status, message)
    kind, status, message = _UNKNOWN
    return PaymentProviderError(kind, status, message)

# module backend.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    """
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe

def create_session(
    *,
    line_items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, str],
    expires_at: int,
    customer_email: Optional[str] = None,
    payment_intent_metadata: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout (mode payment, carte uniquement).
    Retour: dict session ({"id": "cs_...", "url": "https://..."}).
    Lève PaymentProviderError pour toute erreur Stripe.
    """
    require_stripe()
    params: Dict[str, Any] = {
        "payment_method_types": ["card"],
        "line_items": line_items,
        "mode": "payment",
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
        "allow_promotion_codes": True,
        "billing_address_collection": "auto",
        "expires_at": expires_at,
    }
    if customer_email:
        params["customer_email"] = customer_email
    if payment_intent_metadata:
        params["payment_intent_data"] = {"metadata": payment_intent_metadata}
    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.error.StripeError as e:
        mapped = map_stripe_error(e)
        logger.exception("payments.stripe_client.create_session failed kind=%s", mapped.kind)
        raise mapped from e
    return dict(session)

def construct_event(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    """
    Vérifie la signature d'un événement webhook et le retourne.
    - Lève InvalidSignature si l'en-tête, le corps ou le secret manque, ou si la signature ne correspond pas.
    """
    if not payload or not sig_header or not STRIPE_WEBHOOK_SECRET:
        raise InvalidSignature("missing signature, body or webhook secret")
    try:
        stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.error.SignatureVerificationError) as e:
        raise InvalidSignature(str(e)) from e
    # signature valide: on relit le corps brut en dicts Python simples
    return json.loads(payload)
