"""
Accès aux données pour la feature 'payments' (table 'payments').
"""
from typing import Any, Dict, List, Optional, Set
import logging

import deelauto.infra.supabase_client as supabase_client
from deelauto.bunq.status import PAID_STATUSES, PENDING

logger = logging.getLogger(__name__)

TABLE = "payments"

# module deelauto.payments.repository
def insert_payment(data: Dict[str, Any]) -> Optional[dict]:
    try:
        res = supabase_client.get_service_supabase().table(TABLE).insert(data).execute()
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("payments.repository.insert_payment failed user_id=%s", data.get("user_id"))
        return None

def get_payment(payment_id: str) -> Optional[dict]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("id", payment_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("payments.repository.get_payment failed id=%s", payment_id)
        return None

def update_payment(payment_id: str, data: Dict[str, Any]) -> Optional[dict]:
    try:
        res = supabase_client.get_service_supabase().table(TABLE).update(data).eq("id", payment_id).execute()
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("payments.repository.update_payment failed id=%s", payment_id)
        return None

def list_payments(limit: int = 200) -> List[dict]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .order("datetime_created", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("payments.repository.list_payments failed")
        return []

def list_user_payments(user_id: str) -> List[dict]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("datetime_created", desc=True)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("payments.repository.list_user_payments failed user_id=%s", user_id)
        return []

def list_unsettled_with_request() -> List[dict]:
    """Paiements liés à une demande bunq et pas encore finalisés (paid_at vide ou statut PENDING)."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .not_.is_("bunq_request_id", "null")
            .or_(f"paid_at.is.null,bunq_status.eq.{PENDING}")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("payments.repository.list_unsettled_with_request failed")
        return []

def is_settled(payment: Dict[str, Any]) -> bool:
    return bool(payment.get("paid_at")) or str(payment.get("bunq_status") or "").upper() in PAID_STATUSES

def paid_reservation_ids(user_id: str) -> Set[str]:
    """IDs des réservations couvertes par un paiement réglé du membre."""
    paid: Set[str] = set()
    for payment in list_user_payments(user_id):
        if is_settled(payment):
            paid.update(str(r) for r in (payment.get("reservations_paid") or []))
    return paid
