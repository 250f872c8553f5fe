"""
Moteur de calcul des coûts d'une réservation (pur, sans I/O).

Modèle tarifaire:
- kilomètres: km * costs_per_kilometer (sans plafond)
- temps: découpage par journée calendaire locale (minuit à minuit) de l'union
  des fenêtres réservée et effective. Chaque jour, trois tranches disjointes:
    * effective: [effective_start, effective_end]
    * start: [reserved_start, effective_start] si la prise en charge est en retard (ou à l'heure)
    * end: [effective_end, reserved_end] si le retour est en avance (ou à l'heure)
  Un budget de 10 heures par jour est consommé dans l'ordre effective -> start -> end;
  les heures au-delà du budget ne sont pas facturées.
- total: arrondi à 2 décimales (ROUND_HALF_UP) une seule fois, à la fin.

Les fenêtres doivent être ordonnées (start < end); l'appelant valide en amont.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterator, List, Mapping, Optional, Tuple, Union
from zoneinfo import ZoneInfo

DAILY_CAP_HOURS = Decimal("10")
DEFAULT_TIMEZONE = ZoneInfo("Europe/Amsterdam")
CENT = Decimal("0.01")

BUCKET_EFFECTIVE = "effective"
BUCKET_START = "start"
BUCKET_END = "end"

_SECONDS_PER_HOUR = Decimal(3600)

Number = Union[int, float, str, Decimal]


def to_decimal(value: Any) -> Decimal:
    """Convertit int/float/str/Decimal en Decimal (via str pour éviter les artefacts binaires)."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


@dataclass(frozen=True)
class PriceScheme:
    costs_per_kilometer: Decimal
    costs_per_effective_hour: Decimal
    costs_per_unused_reserved_hour_start_trip: Decimal
    costs_per_unused_reserved_hour_end_trip: Decimal
    title: str = ""
    description: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PriceScheme":
        """Construit un PriceScheme depuis une ligne du store (dict)."""
        return cls(
            costs_per_kilometer=to_decimal(data.get("costs_per_kilometer")),
            costs_per_effective_hour=to_decimal(data.get("costs_per_effective_hour")),
            costs_per_unused_reserved_hour_start_trip=to_decimal(data.get("costs_per_unused_reserved_hour_start_trip")),
            costs_per_unused_reserved_hour_end_trip=to_decimal(data.get("costs_per_unused_reserved_hour_end_trip")),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
        )

    def rate_for(self, bucket: str) -> Decimal:
        if bucket == BUCKET_EFFECTIVE:
            return self.costs_per_effective_hour
        if bucket == BUCKET_START:
            return self.costs_per_unused_reserved_hour_start_trip
        if bucket == BUCKET_END:
            return self.costs_per_unused_reserved_hour_end_trip
        raise ValueError(f"Tranche inconnue: {bucket}")


SchemeLike = Union[PriceScheme, Mapping[str, Any]]


def as_price_scheme(scheme: SchemeLike) -> PriceScheme:
    if isinstance(scheme, PriceScheme):
        return scheme
    return PriceScheme.from_mapping(scheme)


@dataclass(frozen=True)
class CostLine:
    """Une période facturée: une tranche d'une journée, déjà plafonnée."""
    day: date
    bucket: str
    start: datetime
    end: datetime
    hours: Decimal
    rate: Decimal

    @property
    def amount(self) -> Decimal:
        return self.hours * self.rate


def _resolve_tz(tz: Optional[tzinfo]) -> tzinfo:
    return tz or DEFAULT_TIMEZONE


def _to_utc(moment: datetime, tz: tzinfo) -> datetime:
    # Une date naïve est une heure locale du fuseau de facturation
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz)
    return moment.astimezone(timezone.utc)


def _day_bounds(day: date, tz: tzinfo) -> Tuple[datetime, datetime]:
    lo = datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)
    hi = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)
    return lo, hi


def _calendar_days(start: datetime, end: datetime, tz: tzinfo) -> Iterator[date]:
    day = start.astimezone(tz).date()
    while _day_bounds(day, tz)[0] < end:
        yield day
        day += timedelta(days=1)


def _clip(start: datetime, end: datetime, lo: datetime, hi: datetime) -> Optional[Tuple[datetime, datetime]]:
    start, end = max(start, lo), min(end, hi)
    if start >= end:
        return None
    return start, end


def _hours(start: datetime, end: datetime) -> Decimal:
    delta = end - start
    seconds = Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1_000_000)
    return seconds / _SECONDS_PER_HOUR


def time_cost_lines(
    reserved_start: datetime,
    reserved_end: datetime,
    effective_start: datetime,
    effective_end: datetime,
    price_scheme: SchemeLike,
    tz: Optional[tzinfo] = None,
) -> List[CostLine]:
    """
    Décompose les coûts de temps en lignes (jour, tranche) plafonnées.
    - Source unique pour calculate_time_costs et display_time_costs_calculation.
    - Les lignes sont en UTC; l'affichage les reconvertit dans le fuseau local.
    """
    tz = _resolve_tz(tz)
    scheme = as_price_scheme(price_scheme)
    rs, re_, es, ee = (_to_utc(m, tz) for m in (reserved_start, reserved_end, effective_start, effective_end))

    lines: List[CostLine] = []
    for day in _calendar_days(min(rs, es), max(re_, ee), tz):
        lo, hi = _day_bounds(day, tz)
        # Ordre = priorité de consommation du budget journalier
        buckets = [(BUCKET_EFFECTIVE, _clip(es, ee, lo, hi))]
        if es >= rs:
            buckets.append((BUCKET_START, _clip(rs, es, lo, hi)))
        if ee <= re_:
            buckets.append((BUCKET_END, _clip(ee, re_, lo, hi)))

        budget = DAILY_CAP_HOURS
        for bucket, span in buckets:
            if span is None or budget <= 0:
                continue
            start, end = span
            hours = _hours(start, end)
            charged = min(hours, budget)
            if charged < hours:
                end = start + timedelta(seconds=float(charged * _SECONDS_PER_HOUR))
            budget -= charged
            lines.append(CostLine(day, bucket, start, end, charged, scheme.rate_for(bucket)))
    return lines


def calculate_kilometer_costs(kilometers_driven: Number, price_scheme: SchemeLike) -> Decimal:
    return to_decimal(kilometers_driven) * as_price_scheme(price_scheme).costs_per_kilometer


def calculate_time_costs(
    reserved_start: datetime,
    reserved_end: datetime,
    effective_start: datetime,
    effective_end: datetime,
    price_scheme: SchemeLike,
    tz: Optional[tzinfo] = None,
) -> Decimal:
    lines = time_cost_lines(reserved_start, reserved_end, effective_start, effective_end, price_scheme, tz=tz)
    return sum((line.amount for line in lines), Decimal("0"))


def round2(amount: Decimal) -> Decimal:
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_total_costs(
    kilometers_driven: Number,
    reserved_start: datetime,
    reserved_end: datetime,
    effective_start: datetime,
    effective_end: datetime,
    price_scheme: SchemeLike,
    tz: Optional[tzinfo] = None,
) -> Decimal:
    """Coût total arrondi au centime: kilomètres + temps, arrondi une seule fois."""
    scheme = as_price_scheme(price_scheme)
    km_costs = calculate_kilometer_costs(kilometers_driven, scheme)
    time_costs = calculate_time_costs(reserved_start, reserved_end, effective_start, effective_end, scheme, tz=tz)
    return round2(km_costs + time_costs)
