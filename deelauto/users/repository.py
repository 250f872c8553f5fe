# module deelauto.users.repository
from typing import Any, Dict, Iterable, Optional
from datetime import datetime, timezone
import logging

import deelauto.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

TABLE = "users"

def _first(res) -> Optional[dict]:
    rows = res.data or []
    return rows[0] if rows else None

def get_user_by_id(user_id: str) -> Optional[dict]:
    try:
        res = supabase_client.get_service_supabase().table(TABLE).select("*").eq("id", user_id).limit(1).execute()
        return _first(res)
    except Exception:
        logger.exception("users.repository.get_user_by_id failed id=%s", user_id)
        return None

def get_user_by_email(email: str) -> Optional[dict]:
    if not email:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("email_address", email.strip().lower())
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("users.repository.get_user_by_email failed")
        return None

def get_user_by_name(name: str) -> Optional[dict]:
    try:
        res = supabase_client.get_service_supabase().table(TABLE).select("*").eq("name", name).limit(1).execute()
        return _first(res)
    except Exception:
        logger.exception("users.repository.get_user_by_name failed name=%s", name)
        return None

def get_users_map(ids: Iterable[str]) -> Dict[str, dict]:
    unique = sorted({str(i) for i in ids if i})
    if not unique:
        return {}
    try:
        res = supabase_client.get_service_supabase().table(TABLE).select("*").in_("id", unique).execute()
        return {str(r.get("id")): r for r in (res.data or [])}
    except Exception:
        logger.exception("users.repository.get_users_map failed")
        return {}

def insert_user(name: str, email_address: str = "") -> Optional[dict]:
    """Crée un membre (l'email est complété plus tard par l'admin si vide)."""
    data: Dict[str, Any] = {
        "name": name,
        "email_address": email_address,
        "datetime_created": datetime.now(timezone.utc).isoformat(),
    }
    try:
        res = supabase_client.get_service_supabase().table(TABLE).insert(data).execute()
        return _first(res)
    except Exception:
        logger.exception("users.repository.insert_user failed name=%s", name)
        return None
