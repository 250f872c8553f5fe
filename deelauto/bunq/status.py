"""
Statuts de paiement internes et normalisation des statuts bunq.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)

PENDING = "PENDING"
ACCEPTED = "ACCEPTED"
REJECTED = "REJECTED"
UNKNOWN = "UNKNOWN"

# Statuts considérés comme payés (PAID: valeur historique encore présente en base)
PAID_STATUSES = (ACCEPTED, "PAID")

_MAPPING = {
    "PENDING": PENDING,
    "ACCEPTED": ACCEPTED,
    "SETTLED": ACCEPTED,
    "REJECTED": REJECTED,
    "CANCELLED": REJECTED,
}


def normalize_status(remote_status: Optional[str]) -> str:
    """
    Ramène un statut bunq à PENDING / ACCEPTED / REJECTED.
    - Valeur inconnue: renvoyée en majuscules, avec un warning.
    - Valeur absente: UNKNOWN.
    """
    value = (remote_status or "").strip().upper()
    if not value:
        logger.warning("bunq.status empty remote status")
        return UNKNOWN
    if value in _MAPPING:
        return _MAPPING[value]
    logger.warning("bunq.status unknown remote status=%s", value)
    return value
