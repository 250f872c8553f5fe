"""
Module 'payments' (feature-first): point d'entrée public.
Réunit repository BD et réconciliation des statuts bunq.
Le service (payer maintenant, admin) s'importe via deelauto.payments.service.
"""

from .repository import (
    get_payment,
    insert_payment,
    is_settled,
    list_payments,
    list_unsettled_with_request,
    list_user_payments,
    paid_reservation_ids,
    update_payment,
)
from .sync import (
    needs_sync,
    reconcile_payment,
    sync_all_bunq_statuses,
    sync_payments_in_background,
    update_payment_bunq_status,
)

__all__ = [
    # repository
    "get_payment",
    "insert_payment",
    "is_settled",
    "list_payments",
    "list_unsettled_with_request",
    "list_user_payments",
    "paid_reservation_ids",
    "update_payment",
    # réconciliation
    "needs_sync",
    "reconcile_payment",
    "sync_all_bunq_statuses",
    "sync_payments_in_background",
    "update_payment_bunq_status",
]
