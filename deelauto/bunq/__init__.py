"""
Module 'bunq': client de l'API bunq (demandes de paiement bunq.me).
Réunit configuration, signature, décodage des réponses, client et helpers haut niveau.
"""
from typing import Any, Optional

from .client import BunqClient, BunqContext, PaymentRequestLink, build_bunq_client, format_amount
from .errors import (
    BunqApiError,
    BunqConfigError,
    BunqDecodeError,
    BunqError,
    BunqHandshakeError,
    IpLookupError,
    PaymentUrlMissingError,
)
from .signing import analyze_private_key, normalize_private_key, sign_body
from .status import ACCEPTED, PENDING, REJECTED, UNKNOWN, normalize_status


def create_bunq_payment_request(
    client: BunqClient,
    amount: Any,
    description: str,
    user_email: str,
    redirect_url: Optional[str] = None,
) -> PaymentRequestLink:
    """Crée la demande bunq.me pour un membre et renvoie (payment_url, request_id)."""
    return client.create_payment_request(amount, description, user_email, redirect_url)


def check_bunq_payment_status(client: BunqClient, request_id: int) -> str:
    """Statut normalisé (PENDING/ACCEPTED/REJECTED/...) d'une demande bunq."""
    inquiry = client.check_payment_request_status(request_id)
    return normalize_status(inquiry.status)


__all__ = [
    # client
    "BunqClient",
    "BunqContext",
    "PaymentRequestLink",
    "build_bunq_client",
    "format_amount",
    # erreurs
    "BunqApiError",
    "BunqConfigError",
    "BunqDecodeError",
    "BunqError",
    "BunqHandshakeError",
    "IpLookupError",
    "PaymentUrlMissingError",
    # signature
    "analyze_private_key",
    "normalize_private_key",
    "sign_body",
    # statuts
    "ACCEPTED",
    "PENDING",
    "REJECTED",
    "UNKNOWN",
    "normalize_status",
    # helpers
    "create_bunq_payment_request",
    "check_bunq_payment_status",
]
