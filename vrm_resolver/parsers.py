"""
Provider payload parsers.

Each parser turns one provider's raw JSON into a flat dict keyed by
VehicleProfile field names. Parsers only extract; choosing between
providers is the merge step's job and casing/canonical forms are the
normalizer's.

Registry payloads are flat (government vehicle-enquiry response).
Specs payloads are sectioned:
    ModelData, SmmtDetails, VehicleRegistration, VehicleIdentification,
    BodyDetails, Transmission, DvlaTechnicalDetails, Performance,
    Emissions, VehicleExciseDutyDetails, VehicleHistory
"""

import logging
import re
from datetime import date
from typing import Any, Callable, Dict, Optional

from .models import ProviderName

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")

# Fields that count as "usable data" for a provider response
USEFUL_FIELDS = (
    "make", "model", "year", "fuel_type", "color", "engine_size",
    "co2_emissions", "combined_mpg", "insurance_group", "annual_tax",
    "mot_status", "tax_status",
)


def extract_number(value: Any) -> Optional[float]:
    """
    Pull a number out of a provider value.

    Accepts ints/floats or strings with units and thousands separators
    ("1,968 cc", "139 g/km", "£32,500"). Returns None when there is no number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER.search(value.replace(",", ""))
        if match:
            return float(match.group())
    return None


def _int(value: Any) -> Optional[int]:
    number = extract_number(value)
    return int(number) if number is not None else None


def _litres(value: Any) -> Optional[float]:
    """Engine capacity in litres. Values above 50 are taken as cc."""
    number = extract_number(value)
    if number is None:
        return None
    if number > 50:
        number = number / 1000
    return round(number, 1)


def _date(value: Any) -> Optional[date]:
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        logger.debug(f"Unparseable date: {value!r}")
        return None


def _first(*values: Any) -> Any:
    """First value that is not None/empty."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name)
    return value if isinstance(value, dict) else {}


def _drop_none(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def parse_registry(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Parse a government vehicle-enquiry response."""
    return _drop_none({
        "make": raw.get("make"),
        "model": raw.get("model"),
        "color": raw.get("colour"),
        "fuel_type": raw.get("fuelType"),
        "year": _int(raw.get("yearOfManufacture")),
        "engine_size": _litres(raw.get("engineCapacity")),
        "co2_emissions": _int(raw.get("co2Emissions")),
        "tax_status": raw.get("taxStatus"),
        "tax_due_date": _date(raw.get("taxDueDate")),
        "mot_status": raw.get("motStatus"),
        "mot_expiry": _date(raw.get("motExpiryDate")),
        "emission_class": raw.get("euroStatus"),
    })


# ---------------------------------------------------------------------------
# Specs / history
# ---------------------------------------------------------------------------

_CATEGORY_TEXT = re.compile(r"\bCAT(?:EGORY)?\s+([ABCDSN])\b")


def write_off_category(record: Dict[str, Any]) -> str:
    """
    Category letter for a write-off record.

    Uses the explicit `category` field, else looks for "CAT X" /
    "CATEGORY X" in the status text. Returns "unknown" if neither is present.
    """
    category = record.get("category")
    if isinstance(category, str) and category.strip():
        return category.strip().upper()
    status = record.get("status")
    if isinstance(status, str):
        match = _CATEGORY_TEXT.search(status.upper())
        if match:
            return match.group(1)
    return "unknown"


def _parse_history(history: Dict[str, Any]) -> Dict[str, Any]:
    if not history:
        return {}

    fields: Dict[str, Any] = {
        "previous_keepers": _int(history.get("NumberOfPreviousKeepers")),
        "is_stolen": bool(history.get("stolenRecord") or history.get("stolen")),
        "has_outstanding_finance": bool(history.get("financeRecord") or history.get("finance")),
        "is_scrapped": bool(history.get("Scrapped")),
        "is_exported": bool(history.get("Exported")),
        "is_written_off": False,
    }

    if history.get("writeOffRecord") and history.get("writeoff"):
        record = history["writeoff"]
        if isinstance(record, list):
            record = record[0] if record else {}
        fields["is_written_off"] = True
        fields["write_off_category"] = write_off_category(record if isinstance(record, dict) else {})
        logger.info(f"Write-off record found: category {fields['write_off_category']}")

    return fields


def parse_specs(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Parse a commercial specs/history response."""
    model_data = _section(raw, "ModelData")
    smmt = _section(raw, "SmmtDetails")
    registration = _section(raw, "VehicleRegistration")
    identification = _section(raw, "VehicleIdentification")
    body = _section(raw, "BodyDetails")
    transmission = _section(raw, "Transmission")
    dvla_tech = _section(raw, "DvlaTechnicalDetails")
    performance = _section(raw, "Performance")
    economy = performance.get("FuelEconomy") or {}
    statistics = performance.get("Statistics") or {}
    emissions = _section(raw, "Emissions")
    ved = _section(raw, "VehicleExciseDutyDetails")
    ved_rate = ((ved.get("VedRate") or {}).get("Standard") or {})

    fields = {
        "make": _first(model_data.get("Make"), smmt.get("Marque"), registration.get("Make")),
        "model": _first(model_data.get("Model"), smmt.get("Range"), registration.get("Model")),
        "variant": _first(smmt.get("Variant"), model_data.get("ModelVariant")),
        "year": _int(_first(identification.get("YearOfManufacture"),
                            registration.get("YearOfManufacture"))),
        "color": registration.get("Colour"),
        "fuel_type": _first(model_data.get("FuelType"), smmt.get("FuelType"),
                            registration.get("FuelType")),
        "transmission": _first(smmt.get("Transmission"), transmission.get("TransmissionType")),
        "body_type": _first(smmt.get("BodyStyle"), body.get("BodyStyle")),
        "doors": _int(_first(smmt.get("NumberOfDoors"), body.get("NumberOfDoors"))),
        "seats": _int(_first(smmt.get("NumberOfSeats"), body.get("NumberOfSeats"),
                             dvla_tech.get("SeatCountIncludingDriver"))),
        "engine_size": _litres(_first(smmt.get("EngineCapacity"),
                                      dvla_tech.get("EngineCapacityCc"))),
        "urban_mpg": extract_number(_first(smmt.get("UrbanColdMpg"),
                                           economy.get("UrbanColdMpg"))),
        "extra_urban_mpg": extract_number(_first(smmt.get("ExtraUrbanMpg"),
                                                 economy.get("ExtraUrbanMpg"))),
        "combined_mpg": extract_number(_first(smmt.get("CombinedMpg"),
                                              economy.get("CombinedMpg"))),
        "co2_emissions": _int(_first(smmt.get("Co2"), emissions.get("ManufacturerCo2"),
                                     ved.get("DvlaCo2"))),
        "annual_tax": extract_number(ved_rate.get("TwelveMonths")),
        "insurance_group": _first(smmt.get("InsuranceGroup"), raw.get("InsuranceGroup")),
        "emission_class": _first(smmt.get("EmissionClass"), emissions.get("EmissionClass"),
                                 identification.get("EmissionClass")),
        "power_bhp": extract_number(_first((performance.get("Power") or {}).get("Bhp"),
                                           smmt.get("PowerBhp"))),
        "torque_nm": extract_number(_first((performance.get("Torque") or {}).get("Nm"),
                                           smmt.get("TorqueNm"))),
        "top_speed_mph": extract_number(statistics.get("MaxSpeedMph")),
        "list_price": extract_number(_first(smmt.get("ListPrice"), model_data.get("ListPrice"))),
    }
    if fields["insurance_group"] is not None:
        fields["insurance_group"] = str(fields["insurance_group"])

    fields.update(_parse_history(_section(raw, "VehicleHistory")))
    return _drop_none(fields)


PARSERS: Dict[ProviderName, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    ProviderName.REGISTRY: parse_registry,
    ProviderName.SPECS: parse_specs,
}


def parse_payload(provider: ProviderName, raw: Dict[str, Any]) -> Dict[str, Any]:
    """Parse a raw payload with the parser registered for its provider."""
    return PARSERS[provider](raw or {})


def has_useful_data(fields: Dict[str, Any]) -> bool:
    """True if any identity, running-cost or status field has a real value."""
    for name in USEFUL_FIELDS:
        value = fields.get(name)
        if value is None:
            continue
        if isinstance(value, str) and value.strip().lower() in ("", "null", "undefined"):
            continue
        return True
    return False
