"""
Module 'billing': point d'entrée public du moteur de coûts.
Réunit le calcul numérique (costs) et le détail affichable (display).
"""

from .costs import (
    DAILY_CAP_HOURS,
    DEFAULT_TIMEZONE,
    CostLine,
    PriceScheme,
    as_price_scheme,
    calculate_kilometer_costs,
    calculate_time_costs,
    calculate_total_costs,
    round2,
    time_cost_lines,
)
from .display import (
    display_kilometer_costs_calculation,
    display_time_costs_calculation,
    format_euro,
)

__all__ = [
    # costs
    "DAILY_CAP_HOURS",
    "DEFAULT_TIMEZONE",
    "CostLine",
    "PriceScheme",
    "as_price_scheme",
    "calculate_kilometer_costs",
    "calculate_time_costs",
    "calculate_total_costs",
    "round2",
    "time_cost_lines",
    # display
    "display_kilometer_costs_calculation",
    "display_time_costs_calculation",
    "format_euro",
]
