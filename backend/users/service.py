"""Couche service du domaine Utilisateurs.

- Vérification des webhooks du fournisseur d'identité (Svix / Standard Webhooks) via le SDK svix:
  en-têtes svix-* ou webhook-*, secret "whsec_...", tolérance d'horodatage de 5 minutes
- Synchronisation de la table users sur user.created / user.updated
"""
import logging
from typing import Any, Dict, Mapping, Optional

from svix.webhooks import Webhook, WebhookVerificationError

from . import repository

logger = logging.getLogger(__name__)

SYNC_EVENTS = {"user.created", "user.updated"}

class InvalidIdentitySignature(Exception):
    pass

def verify_identity_signature(body: bytes, headers: Mapping[str, str], secret: str) -> Dict[str, Any]:
    """Retourne l'événement décodé; lève InvalidIdentitySignature si les en-têtes manquent, sont expirés ou ne correspondent pas."""
    if not secret:
        raise InvalidIdentitySignature("identity webhook secret not configured")
    try:
        event = Webhook(secret).verify(body, dict(headers))
    except (WebhookVerificationError, ValueError) as e:
        # ValueError: secret, signature ou corps non décodable
        raise InvalidIdentitySignature(str(e)) from e
    if not isinstance(event, dict):
        raise InvalidIdentitySignature("identity event must be a JSON object")
    return event

def primary_email(data: Dict[str, Any]) -> Optional[str]:
    primary_id = data.get("primary_email_address_id")
    for entry in data.get("email_addresses") or []:
        if entry.get("id") == primary_id:
            return entry.get("email_address")
    return None

def handle_identity_event(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Upsert de l'utilisateur local pour user.created / user.updated; None pour les autres événements."""
    event_type = event.get("type")
    if event_type not in SYNC_EVENTS:
        logger.info("users.service identity event ignored type=%s", event_type)
        return None

    data = event.get("data") or {}
    email = primary_email(data)
    if not email:
        logger.warning("users.service identity event without primary email id=%s", data.get("id"))
        return None

    full_name = f"{data.get('first_name') or ''} {data.get('last_name') or ''}".strip() or None
    row = repository.upsert_user(
        auth_user_id=str(data.get("id")),
        email=email,
        full_name=full_name,
        username=data.get("username") or None,
    )
    logger.info("users.service user synced auth_user_id=%s", data.get("id"))
    return row

def get_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    """Profil local si présent, sinon les informations de la session d'identité."""
    row = repository.get_user_by_auth_id(str(user.get("id") or ""))
    if row:
        return {
            "id": row.get("id"),
            "authUserId": row.get("auth_user_id"),
            "email": row.get("email"),
            "fullName": row.get("full_name"),
            "username": row.get("username"),
            "learnworldsUserId": row.get("learnworlds_user_id"),
            "synced": True,
        }
    return {
        "id": None,
        "authUserId": user.get("id"),
        "email": user.get("email"),
        "fullName": user.get("full_name"),
        "username": None,
        "learnworldsUserId": None,
        "synced": False,
    }
