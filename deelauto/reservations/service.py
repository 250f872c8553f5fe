"""
Cas d'usage 'reservations': import des trajets, consultation mensuelle,
réservations à payer et statut professionnel.
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
from zoneinfo import ZoneInfo
import logging

from fastapi import HTTPException

from deelauto.billing import (
    calculate_total_costs,
    display_kilometer_costs_calculation,
    display_time_costs_calculation,
)
from deelauto.billing.costs import to_decimal
from deelauto.config import BILLING_TIMEZONE
from deelauto.payments import repository as payments_repo
from deelauto.pricing import repository as pricing_repo
from deelauto.users import repository as users_repo
from deelauto.users.service import find_or_create_member

from . import repository
from .models import ReservationImportRow

logger = logging.getLogger(__name__)

RowLike = Union[ReservationImportRow, Mapping[str, Any]]


class ReservationImportError(ValueError):
    """Lot refusé: au moins une ligne invalide (rien n'est enregistré)."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        super().__init__(f"{len(errors)} ligne(s) invalide(s)")


def billing_tz() -> ZoneInfo:
    return ZoneInfo(BILLING_TIMEZONE)


def parse_datetime(value: Any) -> datetime:
    """ISO 8601 (str) ou datetime; une date naïve est lue dans le fuseau de facturation."""
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=billing_tz())
    return moment


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


def _kilometers(row: ReservationImportRow) -> Decimal:
    if row.kilometers_driven is not None:
        return to_decimal(row.kilometers_driven)
    if row.kilometers_start is not None and row.kilometers_end is not None:
        return to_decimal(row.kilometers_end) - to_decimal(row.kilometers_start)
    raise ValueError("kilometers_driven manquant (ni relevés compteur)")


def _check_row(row: ReservationImportRow) -> Decimal:
    rs, re_ = parse_datetime(row.reserved_start), parse_datetime(row.reserved_end)
    es, ee = parse_datetime(row.effective_start), parse_datetime(row.effective_end)
    if rs >= re_:
        raise ValueError("reserved_start doit précéder reserved_end")
    if es >= ee:
        raise ValueError("effective_start doit précéder effective_end")
    km = _kilometers(row)
    if km < 0:
        raise ValueError("kilometers_driven ne peut pas être négatif")
    return km


def build_reservation(row: ReservationImportRow, user_id: str, scheme: Mapping[str, Any], km: Decimal) -> Dict[str, Any]:
    """Ligne prête à insérer; total_costs est figé au moment de l'import."""
    rs, re_ = parse_datetime(row.reserved_start), parse_datetime(row.reserved_end)
    es, ee = parse_datetime(row.effective_start), parse_datetime(row.effective_end)
    total = calculate_total_costs(km, rs, re_, es, ee, scheme, tz=billing_tz())
    return {
        "datetime_created": datetime.now(timezone.utc).isoformat(),
        "user_id": user_id,
        "reservation_start": _iso(rs),
        "reservation_end": _iso(re_),
        "effective_start": _iso(es),
        "effective_end": _iso(ee),
        "license_plate": row.license_plate,
        "kilometers_start": row.kilometers_start,
        "kilometers_end": row.kilometers_end,
        "kilometers_driven": float(km),
        "price_scheme_id": scheme.get("id"),
        "total_costs": float(total),
        "remarks": row.remarks,
        "is_business_transaction": False,
    }


def import_reservations(rows: Iterable[RowLike]) -> Dict[str, Any]:
    """
    Enregistre un lot de réservations:
    - valide toutes les lignes d'abord (ordre des fenêtres, kilomètres >= 0); une erreur refuse le lot
    - réutilise/crée la grille par défaut et les membres (par nom)
    - calcule total_costs puis insère en une fois
    """
    parsed = [r if isinstance(r, ReservationImportRow) else ReservationImportRow.model_validate(r) for r in rows]
    errors: List[Dict[str, Any]] = []
    kilometers: List[Decimal] = []
    for index, row in enumerate(parsed):
        try:
            kilometers.append(_check_row(row))
        except ValueError as e:
            errors.append({"row": index, "name_user": row.name_user, "error": str(e)})
    if errors:
        raise ReservationImportError(errors)

    scheme = pricing_repo.get_or_create_default()
    if not scheme:
        raise RuntimeError("Grille tarifaire par défaut indisponible")

    members: Dict[str, Dict[str, Any]] = {}
    to_insert: List[Dict[str, Any]] = []
    for row, km in zip(parsed, kilometers):
        member = members.get(row.name_user)
        if member is None:
            member = find_or_create_member(row.name_user)
            members[row.name_user] = member
        to_insert.append(build_reservation(row, str(member.get("id")), scheme, km))

    created = repository.insert_reservations(to_insert)
    if len(created) != len(to_insert):
        raise RuntimeError("Insertion des réservations incomplète")
    logger.info("reservations.import inserted=%s users=%s", len(created), len(members))
    return {
        "inserted_count": len(created),
        "users_count": len(members),
        "user_ids": [str(m.get("id")) for m in members.values()],
    }


# --- Consultation ---

def month_bounds(year_month: str) -> Dict[str, str]:
    """'YYYY-MM' -> bornes ISO (UTC) du mois local [début, début du mois suivant[."""
    try:
        year, month = (int(p) for p in year_month.split("-"))
        first = date(year, month, 1)
    except ValueError:
        raise HTTPException(status_code=400, detail="Mois invalide (format attendu YYYY-MM)")
    following = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    tz = billing_tz()
    return {
        "start": _iso(datetime(first.year, first.month, 1, tzinfo=tz)),
        "end": _iso(datetime(following.year, following.month, 1, tzinfo=tz)),
    }


def enrich_reservation(reservation: Dict[str, Any], scheme: Optional[Mapping[str, Any]], user: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Ajoute grille, membre et le détail de calcul (texte) à une réservation."""
    item = dict(reservation)
    item["price_scheme"] = scheme
    item["user"] = user
    if scheme:
        tz = billing_tz()
        item["time_costs_breakdown"] = display_time_costs_calculation(
            parse_datetime(reservation["reservation_start"]),
            parse_datetime(reservation["reservation_end"]),
            parse_datetime(reservation["effective_start"]),
            parse_datetime(reservation["effective_end"]),
            scheme,
            tz=tz,
        )
        item["kilometer_costs_breakdown"] = display_kilometer_costs_calculation(reservation.get("kilometers_driven") or 0, scheme)
    return item


def enrich_reservations(reservations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Joint tarif et membre à chaque réservation (deux requêtes groupées)."""
    schemes = pricing_repo.get_price_schemes_map(r.get("price_scheme_id") for r in reservations)
    users = users_repo.get_users_map(r.get("user_id") for r in reservations)
    return [
        enrich_reservation(r, schemes.get(str(r.get("price_scheme_id"))), users.get(str(r.get("user_id"))))
        for r in reservations
    ]


def list_month_reservations(user_id: str, year_month: str) -> List[Dict[str, Any]]:
    bounds = month_bounds(year_month)
    rows = repository.list_user_reservations_between(user_id, bounds["start"], bounds["end"])
    return enrich_reservations(rows)


def group_key(reservation: Mapping[str, Any]) -> str:
    """'YYYY-MM-business' ou 'YYYY-MM-personal' (mois local du début de réservation)."""
    start = parse_datetime(reservation["reservation_start"]).astimezone(billing_tz())
    kind = "business" if reservation.get("is_business_transaction") is True else "personal"
    return f"{start.year}-{start.month:02d}-{kind}"


def get_outstanding_reservations(user_id: str, now: Optional[datetime] = None) -> Dict[str, List[Dict[str, Any]]]:
    """
    Réservations antérieures au mois en cours, non couvertes par un paiement réglé,
    groupées par mois et statut professionnel.
    """
    tz = billing_tz()
    now = (now or datetime.now(timezone.utc)).astimezone(tz)
    current_month = datetime(now.year, now.month, 1, tzinfo=tz)
    paid = payments_repo.paid_reservation_ids(user_id)
    rows = [
        r for r in repository.list_user_reservations_before(user_id, _iso(current_month))
        if str(r.get("id")) not in paid
    ]
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for item in enrich_reservations(rows):
        grouped.setdefault(group_key(item), []).append(item)
    return grouped


def set_business_status(reservation_id: str, user_id: str, is_business: bool) -> Dict[str, Any]:
    """Seul le membre propriétaire peut changer le statut professionnel."""
    reservation = repository.get_reservation(reservation_id)
    if not reservation:
        raise HTTPException(status_code=404, detail="Réservation introuvable")
    if str(reservation.get("user_id")) != str(user_id):
        raise HTTPException(status_code=403, detail="Réservation appartenant à un autre membre")
    updated = repository.update_business_flag(reservation_id, user_id, is_business)
    if not updated:
        raise HTTPException(status_code=400, detail="Mise à jour impossible")
    return updated
