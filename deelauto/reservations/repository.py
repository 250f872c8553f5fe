"""
Accès aux données pour la feature 'reservations'.
"""
from typing import Any, Dict, Iterable, List, Optional
import logging

import deelauto.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

TABLE = "reservations"

# module deelauto.reservations.repository
def insert_reservations(rows: List[Dict[str, Any]]) -> List[dict]:
    """Insertion groupée; retourne les lignes créées ([] en cas d'erreur)."""
    if not rows:
        return []
    try:
        res = supabase_client.get_service_supabase().table(TABLE).insert(rows).execute()
        return res.data or []
    except Exception:
        logger.exception("reservations.repository.insert_reservations failed count=%s", len(rows))
        return []

def get_reservation(reservation_id: str) -> Optional[dict]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("id", reservation_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("reservations.repository.get_reservation failed id=%s", reservation_id)
        return None

def get_reservations_by_ids(ids: Iterable[str]) -> List[dict]:
    unique = sorted({str(i) for i in ids if i})
    if not unique:
        return []
    try:
        res = supabase_client.get_service_supabase().table(TABLE).select("*").in_("id", unique).execute()
        return res.data or []
    except Exception:
        logger.exception("reservations.repository.get_reservations_by_ids failed")
        return []

def list_user_reservations_between(user_id: str, start_iso: str, end_iso: str) -> List[dict]:
    """
    Réservations d'un membre dont le début est dans [start_iso, end_iso[.
    Triées par début de réservation.
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("user_id", user_id)
            .gte("reservation_start", start_iso)
            .lt("reservation_start", end_iso)
            .order("reservation_start")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("reservations.repository.list_user_reservations_between failed user_id=%s", user_id)
        return []

def list_user_reservations_before(user_id: str, before_iso: str) -> List[dict]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("user_id", user_id)
            .lt("reservation_start", before_iso)
            .order("reservation_start")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("reservations.repository.list_user_reservations_before failed user_id=%s", user_id)
        return []

def update_business_flag(reservation_id: str, user_id: str, is_business: bool) -> Optional[dict]:
    """Met à jour le flag professionnel; le filtre user_id garantit la propriété."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .update({"is_business_transaction": bool(is_business)})
            .eq("id", reservation_id)
            .eq("user_id", user_id)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("reservations.repository.update_business_flag failed id=%s", reservation_id)
        return None
