"""
Détail lisible du calcul des coûts (textes en néerlandais, format nl-NL).
Construit à partir de time_cost_lines: les montants affichés sont ceux du calcul numérique.
"""
from datetime import datetime, timedelta, tzinfo
from decimal import Decimal, ROUND_DOWN
from typing import List, Optional

from .costs import (
    BUCKET_EFFECTIVE,
    BUCKET_END,
    BUCKET_START,
    CENT,
    CostLine,
    Number,
    SchemeLike,
    as_price_scheme,
    calculate_kilometer_costs,
    round2,
    time_cost_lines,
    to_decimal,
    DEFAULT_TIMEZONE,
)

BUCKET_LABELS = {
    BUCKET_EFFECTIVE: "gebruik",
    BUCKET_START: "ongebruikt begin reservering",
    BUCKET_END: "ongebruikt einde reservering",
}


def _nl_number(value: Decimal, places: int = 2) -> str:
    # 1234.5 -> "1.234,50"
    text = f"{value:,.{places}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_euro(amount: Number) -> str:
    """Montant au format nl-NL: '€ 1.234,50'."""
    return f"€ {_nl_number(round2(to_decimal(amount)))}"


def format_hours(hours: Decimal) -> str:
    q = to_decimal(hours).quantize(CENT)
    if q == q.to_integral_value():
        return str(int(q))
    return _nl_number(q).rstrip("0")


def format_kilometers(km: Number) -> str:
    value = to_decimal(km)
    if value == value.to_integral_value():
        return str(int(value))
    return str(value).replace(".", ",")


def allocate_cents(amounts: List[Decimal]) -> List[Decimal]:
    """
    Arrondit chaque montant au centime (méthode du plus fort reste) de sorte que
    la somme des montants arrondis soit égale à round2(somme des montants).
    """
    floors = [to_decimal(a).quantize(CENT, rounding=ROUND_DOWN) for a in amounts]
    target = round2(sum((to_decimal(a) for a in amounts), Decimal("0")))
    missing = int((target - sum(floors, Decimal("0"))) / CENT)
    by_remainder = sorted(range(len(amounts)), key=lambda i: to_decimal(amounts[i]) - floors[i], reverse=True)
    for i in by_remainder[:missing]:
        floors[i] += CENT
    return floors


def _format_line(line: CostLine, amount: Decimal, tz: tzinfo) -> str:
    start = line.start.astimezone(tz)
    end = line.end.astimezone(tz)
    # Une période qui se termine à minuit s'affiche "24:00" sur la même journée
    if end.date() != line.day and end.time() == datetime.min.time() and end.date() == line.day + timedelta(days=1):
        end_str = "24:00"
    else:
        end_str = end.strftime("%H:%M")
    return (
        f"{line.day.strftime('%d-%m')} {start.strftime('%H:%M')} tot {end_str} "
        f"({BUCKET_LABELS[line.bucket]}): {format_hours(line.hours)} uur maal "
        f"{format_euro(line.rate)}/uur = {format_euro(amount)}"
    )


def display_time_costs_calculation(
    reserved_start: datetime,
    reserved_end: datetime,
    effective_start: datetime,
    effective_end: datetime,
    price_scheme: SchemeLike,
    tz: Optional[tzinfo] = None,
) -> str:
    """
    Une ligne par période facturée (jour + tranche), dans l'ordre chronologique.
    Les heures au-delà du plafond journalier n'apparaissent pas.
    Montants répartis au centime: leur somme vaut le coût arrondi.
    """
    tz = tz or DEFAULT_TIMEZONE
    lines = time_cost_lines(reserved_start, reserved_end, effective_start, effective_end, price_scheme, tz=tz)
    ordered: List[CostLine] = sorted(lines, key=lambda l: (l.day, l.start))
    amounts = allocate_cents([line.amount for line in ordered])
    return "\n".join(_format_line(line, amount, tz) for line, amount in zip(ordered, amounts))


def display_kilometer_costs_calculation(kilometers_driven: Number, price_scheme: SchemeLike) -> str:
    scheme = as_price_scheme(price_scheme)
    total = calculate_kilometer_costs(kilometers_driven, scheme)
    return (
        f"{format_kilometers(kilometers_driven)} km × {format_euro(scheme.costs_per_kilometer)}/km"
        f" = {format_euro(total)}"
    )
