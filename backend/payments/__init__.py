"""
Module 'payments' (feature-first): point d'entrée public.
Réunit le client Stripe, les métadonnées de commande, la session Checkout et le webhook.
"""

from .metadata import OrderLine, OrderMetadataError, OrderPayload, build_order_metadata, parse_order_metadata
from .stripe_client import InvalidSignature, PaymentProviderError, construct_event, create_session, require_stripe
from .session import create_payment_session, to_line_items

__all__ = [
    # metadata
    "OrderLine",
    "OrderPayload",
    "OrderMetadataError",
    "build_order_metadata",
    "parse_order_metadata",
    # stripe
    "InvalidSignature",
    "PaymentProviderError",
    "construct_event",
    "create_session",
    "require_stripe",
    # session
    "create_payment_session",
    "to_line_items",
]
