"""
Derived attribute calculators.

Used only when providers leave a field empty. Each calculator raises
CannotCalculate when its inputs are missing; the resolver treats that as
"leave the field unset" and never surfaces it.

UK vehicle excise duty rules (annual, standard rate):
    - electric: 0
    - registered 2017+: 0 if zero CO2, otherwise flat rate, plus the
      expensive-car supplement when the list price is over 40,000
    - registered 2001-2016: graduated CO2 bands
    - registered before 2001: two engine-size bands
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from .errors import CannotCalculate
from .models import DERIVED_TAX, ESTIMATED

logger = logging.getLogger(__name__)

POST_2017_STANDARD_RATE = 190
EXPENSIVE_CAR_SUPPLEMENT = 410
EXPENSIVE_CAR_THRESHOLD = 40000

# (max CO2 g/km inclusive, annual tax)
CO2_BANDS: List[Tuple[float, int]] = [
    (100, 0),
    (110, 20),
    (120, 35),
    (130, 150),
    (140, 180),
    (150, 210),
    (165, 255),
    (175, 295),
    (185, 340),
    (200, 395),
    (225, 650),
    (255, 1030),
    (float("inf"), 1385),
]

PRE_2001_SMALL_ENGINE_LITRES = 1.549
PRE_2001_SMALL_ENGINE_TAX = 200
PRE_2001_LARGE_ENGINE_TAX = 325


def calculate_annual_tax(year: Optional[int], co2: Optional[float] = None,
                         engine_size: Optional[float] = None, fuel_type: Optional[str] = None,
                         list_price: Optional[float] = None) -> int:
    """
    Annual road tax in GBP.

    Raises:
        CannotCalculate: year missing; CO2 missing for a 2001-2016
            registration; engine size missing before 2001.
    """
    if fuel_type and "electric" in fuel_type.lower() and "hybrid" not in fuel_type.lower():
        return 0
    if not year:
        raise CannotCalculate("registration year required")

    if year >= 2017:
        if co2 is not None and co2 == 0:
            return 0
        supplement = EXPENSIVE_CAR_SUPPLEMENT if (list_price or 0) > EXPENSIVE_CAR_THRESHOLD else 0
        return POST_2017_STANDARD_RATE + supplement

    if year >= 2001:
        if co2 is None:
            raise CannotCalculate("CO2 emissions required for 2001-2016 registrations")
        for max_co2, tax in CO2_BANDS:
            if co2 <= max_co2:
                return tax

    if not engine_size:
        raise CannotCalculate("engine size required for pre-2001 registrations")
    if engine_size <= PRE_2001_SMALL_ENGINE_LITRES:
        return PRE_2001_SMALL_ENGINE_TAX
    return PRE_2001_LARGE_ENGINE_TAX


# ---------------------------------------------------------------------------
# Insurance group estimate
# ---------------------------------------------------------------------------

# (max engine litres inclusive, groups for age 0-3 / 4-10 / 11+ years)
INSURANCE_TABLE: List[Tuple[float, Tuple[int, int, int]]] = [
    (1.0, (8, 6, 4)),
    (1.4, (14, 11, 8)),
    (1.6, (19, 16, 12)),
    (2.0, (27, 23, 18)),
    (3.0, (38, 33, 27)),
    (float("inf"), (47, 43, 38)),
]


def _age_bucket(age: int) -> int:
    if age <= 3:
        return 0
    if age <= 10:
        return 1
    return 2


def estimate_insurance_group(engine_size: Optional[float], year: Optional[int],
                             today: Optional[date] = None) -> str:
    """
    Rough insurance group (1-50) from displacement and vehicle age.

    Raises:
        CannotCalculate: engine size or year missing.
    """
    if not engine_size or not year:
        raise CannotCalculate("engine size and year required")
    today = today or date.today()
    age = max(0, today.year - int(year))
    column = _age_bucket(age)
    for max_litres, groups in INSURANCE_TABLE:
        if engine_size <= max_litres:
            return str(groups[column])
    return str(INSURANCE_TABLE[-1][1][column])


def fill_derived(values: Dict[str, Any], sources: Dict[str, str],
                 today: Optional[date] = None) -> None:
    """
    Fill annual tax and insurance group in place when providers omitted them.

    Provenance is tagged "derived:tax" and "estimated" respectively.
    """
    if values.get("annual_tax") is None:
        try:
            values["annual_tax"] = calculate_annual_tax(
                values.get("year"), values.get("co2_emissions"), values.get("engine_size"),
                values.get("fuel_type"), values.get("list_price"),
            )
            sources["annual_tax"] = DERIVED_TAX
        except CannotCalculate as e:
            logger.debug(f"Annual tax not derived: {e}")

    if not values.get("insurance_group"):
        try:
            values["insurance_group"] = estimate_insurance_group(
                values.get("engine_size"), values.get("year"), today
            )
            sources["insurance_group"] = ESTIMATED
        except CannotCalculate as e:
            logger.debug(f"Insurance group not estimated: {e}")
