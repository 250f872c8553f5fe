"""
Cas d'usage 'payments': payer un groupe de réservations via bunq, paiements saisis par l'admin,
historique des paiements d'un membre.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException

from deelauto.billing import format_euro, round2
from deelauto.billing.costs import to_decimal
from deelauto.bunq import BunqClient, create_bunq_payment_request
from deelauto.bunq.status import PENDING, REJECTED
from deelauto.reservations import repository as reservations_repo
from deelauto.reservations import service as reservations_service

from . import repository
from .models import PaymentCreate
from .sync import needs_sync

logger = logging.getLogger(__name__)

MONTHS_NL = (
    "januari", "februari", "maart", "april", "mei", "juni",
    "juli", "augustus", "september", "oktober", "november", "december",
)

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def describe_group(group_key: str) -> str:
    """'2025-09-business' -> 'Deelauto september 2025 (zakelijk)'."""
    year, month, kind = group_key.split("-")
    label = "zakelijk" if kind == "business" else "privé"
    return f"Deelauto {MONTHS_NL[int(month) - 1]} {year} ({label})"

def group_amount(reservations: List[Dict[str, Any]]) -> Decimal:
    return round2(sum((to_decimal(r.get("total_costs")) for r in reservations), Decimal("0")))

def _find_open_request(user_id: str, reservation_ids: List[str]) -> Optional[Dict[str, Any]]:
    """Demande bunq déjà ouverte pour exactement ces réservations (évite les doublons)."""
    wanted = set(reservation_ids)
    for payment in repository.list_user_payments(user_id):
        if repository.is_settled(payment) or payment.get("bunq_status") != PENDING:
            continue
        if payment.get("bunq_payment_url") and set(payment.get("reservations_paid") or []) == wanted:
            return payment
    return None

def pay_outstanding_group(
    client: BunqClient,
    member: Dict[str, Any],
    group_key: str,
    redirect_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    'Payer maintenant' pour un groupe de réservations impayées:
    1) total des total_costs du groupe
    2) paiement PENDING enregistré
    3) demande bunq.me créée puis id/url/statut stockés
    """
    user_id = str(member.get("id"))
    email = member.get("email_address") or ""
    if not email:
        raise HTTPException(status_code=400, detail="Adresse email du membre inconnue")

    group = reservations_service.get_outstanding_reservations(user_id).get(group_key) or []
    if not group:
        raise HTTPException(status_code=404, detail="Aucune réservation à payer pour ce groupe")
    reservation_ids = [str(r.get("id")) for r in group]

    existing = _find_open_request(user_id, reservation_ids)
    if existing:
        logger.info("payments.pay_outstanding_group reuse payment_id=%s", existing.get("id"))
        return existing

    amount = group_amount(group)
    if amount <= 0:
        raise HTTPException(status_code=400, detail="Montant nul: rien à payer")

    title = describe_group(group_key)
    payment = repository.insert_payment({
        "datetime_created": _now_iso(),
        "user_id": user_id,
        "title": title,
        "description": f"{len(group)} reservering(en), totaal {format_euro(amount)}",
        "amount_in_euros": float(amount),
        "is_business_transaction": group_key.endswith("-business"),
        "send_at": _now_iso(),
        "reservations_paid": reservation_ids,
        "bunq_status": PENDING,
        "paid_at": None,
    })
    if not payment:
        raise HTTPException(status_code=500, detail="Création du paiement impossible")

    payment_id = str(payment["id"])
    try:
        link = create_bunq_payment_request(client, amount, title, email, redirect_url)
    except Exception:
        # Ligne close: ni réutilisée par _find_open_request ni comptée comme payée
        if repository.update_payment(payment_id, {"bunq_status": REJECTED}) is None:
            logger.error("payments.pay_outstanding_group could not close payment_id=%s", payment_id)
        raise
    updated = repository.update_payment(payment_id, {
        "bunq_request_id": link.request_id,
        "bunq_payment_url": link.payment_url,
        "bunq_status": PENDING,
    })
    if not updated:
        logger.error(
            "payments.pay_outstanding_group request not stored payment_id=%s request_id=%s",
            payment_id, link.request_id,
        )
        raise HTTPException(status_code=500, detail="Enregistrement de la demande bunq impossible")
    logger.info("payments.pay_outstanding_group created payment_id=%s request_id=%s", payment_id, link.request_id)
    return updated

# --- Administration ---

def create_payment(data: PaymentCreate) -> Dict[str, Any]:
    row = repository.insert_payment({
        "datetime_created": _now_iso(),
        "title": data.title,
        "description": data.description,
        "amount_in_euros": data.amount_in_euros,
        "is_business_transaction": data.is_business_transaction,
        "send_at": data.send_at.isoformat(),
        "paid_at": None,
    })
    if not row:
        raise HTTPException(status_code=500, detail="Création du paiement impossible")
    return row

def list_payments() -> List[Dict[str, Any]]:
    return repository.list_payments()

def get_payment(payment_id: str) -> Dict[str, Any]:
    payment = repository.get_payment(payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Paiement introuvable")
    return payment

def mark_paid(payment_id: str, paid_at: datetime) -> Dict[str, Any]:
    get_payment(payment_id)
    if paid_at.tzinfo is None:
        paid_at = paid_at.replace(tzinfo=timezone.utc)
    updated = repository.update_payment(payment_id, {"paid_at": paid_at.isoformat()})
    if not updated:
        raise HTTPException(status_code=500, detail="Mise à jour du paiement impossible")
    return updated

# --- Membre ---

def list_member_payments(user_id: str) -> List[Dict[str, Any]]:
    """Paiements terminés (paid_at renseigné) du membre, les plus récents d'abord."""
    done = [p for p in repository.list_user_payments(user_id) if p.get("paid_at")]
    return sorted(done, key=lambda p: str(p.get("paid_at")), reverse=True)

def get_member_payment(user_id: str, payment_id: str) -> Dict[str, Any]:
    payment = get_payment(payment_id)
    if str(payment.get("user_id")) != str(user_id):
        raise HTTPException(status_code=404, detail="Paiement introuvable")
    return payment

def pending_member_payments(user_id: str) -> List[Dict[str, Any]]:
    return [p for p in repository.list_user_payments(user_id) if needs_sync(p)]

def get_member_receipt(member: Dict[str, Any], payment_id: str) -> Dict[str, Any]:
    """
    Reçu d'un paiement réglé du membre: le paiement, les réservations couvertes
    (tarif et membre joints, triées par début effectif) et le membre.
    404 si le paiement appartient à un autre membre, 400 s'il n'est pas réglé.
    """
    payment = get_member_payment(str(member.get("id")), payment_id)
    if not repository.is_settled(payment):
        raise HTTPException(status_code=400, detail="Paiement non terminé")
    rows = reservations_repo.get_reservations_by_ids(payment.get("reservations_paid") or [])
    reservations = sorted(
        reservations_service.enrich_reservations(rows),
        key=lambda r: str(r.get("effective_start") or ""),
    )
    return {"payment": payment, "reservations": reservations, "user": member}
