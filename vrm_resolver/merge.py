"""
Field merge resolver.

Combines parsed provider fields into one set of values using a declarative
per-field priority table. A lower-priority provider only contributes a
field when every provider ahead of it omitted the field or returned a
null-equivalent sentinel. Merge order depends on the table, never on the
order payloads were supplied in.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .models import ProviderName

logger = logging.getLogger(__name__)

SPECS_FIRST: Tuple[str, ...] = (ProviderName.SPECS.value, ProviderName.REGISTRY.value)
REGISTRY_FIRST: Tuple[str, ...] = (ProviderName.REGISTRY.value, ProviderName.SPECS.value)

DEFAULT_PRIORITY: Dict[str, Tuple[str, ...]] = {
    # Specs provider is authoritative for model detail and running costs
    "make": SPECS_FIRST,
    "model": SPECS_FIRST,
    "variant": SPECS_FIRST,
    "body_type": SPECS_FIRST,
    "transmission": SPECS_FIRST,
    "fuel_type": SPECS_FIRST,
    "doors": SPECS_FIRST,
    "seats": SPECS_FIRST,
    "urban_mpg": SPECS_FIRST,
    "extra_urban_mpg": SPECS_FIRST,
    "combined_mpg": SPECS_FIRST,
    "insurance_group": SPECS_FIRST,
    "annual_tax": SPECS_FIRST,
    "emission_class": SPECS_FIRST,
    "power_bhp": SPECS_FIRST,
    "torque_nm": SPECS_FIRST,
    "top_speed_mph": SPECS_FIRST,
    "list_price": SPECS_FIRST,
    "previous_keepers": SPECS_FIRST,
    "is_stolen": SPECS_FIRST,
    "is_written_off": SPECS_FIRST,
    "write_off_category": SPECS_FIRST,
    "has_outstanding_finance": SPECS_FIRST,
    "is_scrapped": SPECS_FIRST,
    "is_exported": SPECS_FIRST,
    # Registry is authoritative for legal status and registration facts
    "tax_status": REGISTRY_FIRST,
    "tax_due_date": REGISTRY_FIRST,
    "mot_status": REGISTRY_FIRST,
    "mot_expiry": REGISTRY_FIRST,
    "co2_emissions": REGISTRY_FIRST,
    "color": REGISTRY_FIRST,
    "year": REGISTRY_FIRST,
    "engine_size": REGISTRY_FIRST,
}

# Fields where 0 is a real value rather than "missing"
ZERO_IS_VALID = frozenset({"co2_emissions", "annual_tax", "previous_keepers"})

_NULL_STRINGS = frozenset({"", "null", "undefined"})

# "2.0 Diesel", "1.6L" - an engine description where a model should be
# Bare integers ("208", "911", "3008") are real model names and stay.
_ENGINE_ONLY_MODEL = re.compile(
    r"^\d+\.\d+\s*(L|litre|liter)?\s*(petrol|diesel|hybrid|electric)?$"
    r"|^\d+(\.\d+)?\s*(L|litre|liter)\s*(petrol|diesel|hybrid|electric)?$"
    r"|^\d+(\.\d+)?\s*(petrol|diesel|hybrid|electric)$",
    re.IGNORECASE,
)


def is_null(name: str, value: Any) -> bool:
    """True if `value` should be treated as absent for field `name`."""
    if value is None:
        return True
    if isinstance(value, str):
        text = value.strip()
        if text.lower() in _NULL_STRINGS:
            return True
        if name == "model" and _ENGINE_ONLY_MODEL.match(text):
            return True
        return False
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)) and value == 0:
        return name not in ZERO_IS_VALID
    return False


@dataclass
class MergedFields:
    """Merged values with per-field provenance."""
    values: Dict[str, Any] = field(default_factory=dict)
    sources: Dict[str, str] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)


class FieldMergeResolver:
    """Merges parsed provider fields under a priority table."""

    def __init__(self, priority_table: Optional[Mapping[str, Sequence[str]]] = None,
                 default_order: Sequence[str] = SPECS_FIRST):
        self.priority_table = dict(priority_table or DEFAULT_PRIORITY)
        self.default_order = tuple(default_order)

    def order_for(self, name: str, available: Sequence[str]) -> Tuple[str, ...]:
        """Provider order for a field; providers outside the table go last, sorted."""
        preferred = tuple(self.priority_table.get(name, self.default_order))
        extra = tuple(sorted(p for p in available if p not in preferred))
        return preferred + extra

    def merge(self, payloads: Mapping[str, Dict[str, Any]]) -> MergedFields:
        """
        Merge parsed fields.

        Args:
            payloads: Provider name -> parsed fields (see parsers).

        Returns:
            MergedFields holding only non-null values and their source.
        """
        merged = MergedFields()
        providers = list(payloads)
        names = sorted({name for fields in payloads.values() for name in fields})

        for name in names:
            for provider in self.order_for(name, providers):
                fields = payloads.get(provider)
                if not fields:
                    continue
                value = fields.get(name)
                if is_null(name, value):
                    continue
                if isinstance(value, str):
                    value = value.strip()
                merged.values[name] = value
                merged.sources[name] = provider
                break

        logger.debug(f"Merged {len(merged.values)} fields from {sorted(providers)}")
        return merged
