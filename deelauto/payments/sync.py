"""
Réconciliation des statuts de paiement avec bunq.

- reconcile_payment: calcule les champs à mettre à jour (pur, sans I/O).
- update_payment_bunq_status: un paiement (appel bunq + écriture).
- sync_all_bunq_statuses: tous les paiements non finalisés, avec un délai fixe entre appels.
- sync_payments_in_background: variante "fire-and-forget" lancée depuis les lectures;
  les échecs sont seulement journalisés.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging
import time

from deelauto.bunq import BunqClient, check_bunq_payment_status
from deelauto.bunq.status import ACCEPTED
from deelauto.config import BUNQ_SYNC_DELAY_SECONDS

from . import repository

logger = logging.getLogger(__name__)

def reconcile_payment(payment: Dict[str, Any], status: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Champs modifiés par le statut distant (dict vide si rien ne change).
    paid_at est posé la première fois que le statut vaut ACCEPTED, jamais réécrit ensuite.
    """
    changes: Dict[str, Any] = {}
    if payment.get("bunq_status") != status:
        changes["bunq_status"] = status
    if status == ACCEPTED and not payment.get("paid_at"):
        changes["paid_at"] = (now or datetime.now(timezone.utc)).isoformat()
    return changes

def needs_sync(payment: Dict[str, Any]) -> bool:
    if not payment.get("bunq_request_id"):
        return False
    return not payment.get("paid_at") or payment.get("bunq_status") == "PENDING"

def update_payment_bunq_status(client: BunqClient, payment: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """Interroge bunq pour un paiement et enregistre le changement; True si mis à jour."""
    status = check_bunq_payment_status(client, int(payment["bunq_request_id"]))
    changes = reconcile_payment(payment, status, now)
    if not changes:
        return False
    if repository.update_payment(str(payment["id"]), changes) is None:
        raise RuntimeError(f"mise à jour du paiement {payment['id']} impossible")
    logger.info("payments.sync.update payment_id=%s changes=%s", payment.get("id"), sorted(changes))
    return True

def sync_all_bunq_statuses(
    client: BunqClient,
    payments: Optional[Iterable[Dict[str, Any]]] = None,
    delay: float = BUNQ_SYNC_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """
    Synchronise chaque paiement non finalisé; une erreur n'interrompt pas le lot.
    Retour: {"updated_count": int, "errors": [{"payment_id", "error"}, ...]}
    """
    if payments is None:
        payments = repository.list_unsettled_with_request()
    todo = [p for p in payments if needs_sync(p)]
    updated = 0
    errors: List[Dict[str, Any]] = []
    for index, payment in enumerate(todo):
        if index and delay > 0:
            sleep(delay)
        try:
            if update_payment_bunq_status(client, payment):
                updated += 1
        except Exception as e:
            logger.warning("payments.sync.update failed payment_id=%s error=%s", payment.get("id"), e)
            errors.append({"payment_id": str(payment.get("id")), "error": str(e)})
    logger.info("payments.sync done checked=%s updated=%s errors=%s", len(todo), updated, len(errors))
    return {"updated_count": updated, "errors": errors}

def sync_payments_in_background(client: BunqClient, payments: Optional[Iterable[Dict[str, Any]]] = None) -> None:
    """Tâche détachée (BackgroundTasks): ne lève jamais, journalise seulement."""
    try:
        sync_all_bunq_statuses(client, payments)
    except Exception:
        logger.warning("payments.sync.background failed", exc_info=True)
