import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from deelauto.users.service import resolve_member
from deelauto.utils.security import require_user

from . import service as reservations_service
from .models import BusinessStatusRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/reservations", tags=["Reservations API"])

# module deelauto.reservations.views
@router.get("/months/{year_month}")
def get_month_reservations(year_month: str, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """
    Réservations du membre connecté pour un mois (YYYY-MM), avec grille, membre
    et détail des coûts (lignes texte).
    """
    member = resolve_member(user)
    items = reservations_service.list_month_reservations(str(member["id"]), year_month)
    return {"month": year_month, "reservations": items}

@router.get("/outstanding")
def get_outstanding(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """Réservations impayées des mois précédents, groupées 'YYYY-MM-business|personal'."""
    member = resolve_member(user)
    grouped = reservations_service.get_outstanding_reservations(str(member["id"]))
    count = sum(len(v) for v in grouped.values())
    return {"groups": grouped, "count": count}

@router.patch("/{reservation_id}/business-status")
def update_business_status(
    reservation_id: str,
    body: BusinessStatusRequest,
    user: Dict[str, Any] = Depends(require_user),
) -> Dict[str, Any]:
    """Bascule professionnel/privé; 403 si la réservation appartient à un autre membre."""
    member = resolve_member(user)
    updated = reservations_service.set_business_status(reservation_id, str(member["id"]), body.is_business_transaction)
    logger.info("reservations.business_status id=%s value=%s", reservation_id, body.is_business_transaction)
    return {"reservation": updated}
