import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from deelauto.bunq import BunqClient, BunqConfigError, BunqError
from deelauto.config import BASE_URL, PAYMENT_REDIRECT_PATH
from deelauto.users.service import resolve_member
from deelauto.utils.dependencies import get_bunq_client
from deelauto.utils.rate_limit import optional_rate_limit
from deelauto.utils.security import require_user

from . import service as payments_service
from .models import PayNowRequest
from .sync import needs_sync, sync_payments_in_background

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

# module deelauto.payments.views
@router.get("")
def list_my_payments(
    background_tasks: BackgroundTasks,
    user: Dict[str, Any] = Depends(require_user),
    client: BunqClient = Depends(get_bunq_client),
) -> Dict[str, Any]:
    """
    Paiements terminés du membre connecté.
    Déclenche en tâche de fond la synchronisation bunq des paiements encore ouverts
    (la réponse n'attend pas bunq; le résultat sera visible au prochain chargement).
    """
    member = resolve_member(user)
    member_id = str(member["id"])
    pending = payments_service.pending_member_payments(member_id)
    if pending:
        background_tasks.add_task(sync_payments_in_background, client, pending)
    return {"payments": payments_service.list_member_payments(member_id)}

@router.get("/{payment_id}")
def get_my_payment(
    payment_id: str,
    background_tasks: BackgroundTasks,
    user: Dict[str, Any] = Depends(require_user),
    client: BunqClient = Depends(get_bunq_client),
) -> Dict[str, Any]:
    """Détail d'un paiement du membre; synchronisation bunq en arrière-plan si non finalisé."""
    member = resolve_member(user)
    payment = payments_service.get_member_payment(str(member["id"]), payment_id)
    if needs_sync(payment):
        background_tasks.add_task(sync_payments_in_background, client, [payment])
    return {"payment": payment}

@router.get("/{payment_id}/receipt")
def get_my_receipt(payment_id: str, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """Reçu d'un paiement réglé: {payment, reservations, user}; 400 tant qu'il n'est pas réglé."""
    member = resolve_member(user)
    return payments_service.get_member_receipt(member, payment_id)

@router.post("/pay", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
def pay_now(
    body: PayNowRequest,
    user: Dict[str, Any] = Depends(require_user),
    client: BunqClient = Depends(get_bunq_client),
) -> Dict[str, Any]:
    """
    'Payer maintenant' pour un groupe (YYYY-MM-business|personal).
    - Entrée JSON: {"group_key": "2025-09-personal"}
    - Sortie: {payment_id, payment_url, amount_in_euros}
    - Erreurs: 404 groupe vide, 400 email manquant, 502 si bunq échoue, 503 si bunq non configuré
    """
    member = resolve_member(user)
    redirect_url = f"{BASE_URL.rstrip('/')}{PAYMENT_REDIRECT_PATH}"
    try:
        payment = payments_service.pay_outstanding_group(client, member, body.group_key, redirect_url)
    except (HTTPException, BunqConfigError):
        raise
    except BunqError as e:
        logger.warning("payments.pay_now bunq failed member_id=%s error=%s", member.get("id"), e)
        raise HTTPException(status_code=502, detail=f"Betaalverzoek bij bunq mislukt: {e}")
    return {
        "payment_id": payment.get("id"),
        "payment_url": payment.get("bunq_payment_url"),
        "amount_in_euros": payment.get("amount_in_euros"),
    }
