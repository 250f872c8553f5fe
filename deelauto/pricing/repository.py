# module deelauto.pricing.repository
"""
Accès aux données 'price_schemes' (grilles tarifaires).
"""
from typing import Any, Dict, Iterable, List, Optional
import logging

import deelauto.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

TABLE = "price_schemes"

DEFAULT_PRICE_SCHEME: Dict[str, Any] = {
    "title": "Standaard tarief",
    "description": "Standaard tarief voor deelauto gebruik",
    "costs_per_kilometer": 0.25,
    "costs_per_effective_hour": 5.00,
    "costs_per_unused_reserved_hour_start_trip": 2.50,
    "costs_per_unused_reserved_hour_end_trip": 2.50,
}

def get_price_scheme(scheme_id: str) -> Optional[dict]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("id", scheme_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("pricing.repository.get_price_scheme failed id=%s", scheme_id)
        return None

def get_price_schemes_map(ids: Iterable[str]) -> Dict[str, dict]:
    """Retourne {id: grille} pour une liste d'IDs (doublons ignorés)."""
    unique = sorted({str(i) for i in ids if i})
    if not unique:
        return {}
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .in_("id", unique)
            .execute()
        )
        return {str(r.get("id")): r for r in (res.data or [])}
    except Exception:
        logger.exception("pricing.repository.get_price_schemes_map failed ids=%s", unique)
        return {}

def find_by_title(title: str) -> Optional[dict]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("title", title)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("pricing.repository.find_by_title failed title=%s", title)
        return None

def insert_price_scheme(data: Dict[str, Any]) -> Optional[dict]:
    try:
        res = supabase_client.get_service_supabase().table(TABLE).insert(data).execute()
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("pricing.repository.insert_price_scheme failed title=%s", data.get("title"))
        return None

def list_price_schemes() -> List[dict]:
    try:
        res = supabase_client.get_service_supabase().table(TABLE).select("*").order("title").execute()
        return res.data or []
    except Exception:
        logger.exception("pricing.repository.list_price_schemes failed")
        return []

def get_or_create_default() -> Optional[dict]:
    """Grille par défaut, créée au premier import si absente."""
    existing = find_by_title(DEFAULT_PRICE_SCHEME["title"])
    if existing:
        return existing
    logger.info("pricing.repository creating default price scheme")
    return insert_price_scheme(dict(DEFAULT_PRICE_SCHEME))
