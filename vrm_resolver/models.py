"""
Data model for vehicle resolution.

VehicleProfile is what callers get back; CacheEntry is what gets persisted;
ProviderResult, PaidCall and CostReport are transient values passed between
the orchestrator, the accountant and the resolver.
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import FailureKind


class ProviderName(Enum):
    """Upstream data providers."""
    REGISTRY = "registry"
    SPECS = "specs"


# Provenance tags for values that did not come from a provider
DERIVED_TAX = "derived:tax"
ESTIMATED = "estimated"


@dataclass
class ProviderResult:
    """
    Outcome of one provider fetch.

    Either `payload` is set (raw provider JSON) or `failure` is.
    """
    provider: ProviderName
    payload: Optional[Dict[str, Any]] = None
    failure: Optional[FailureKind] = None
    message: str = ""
    billable: bool = False
    cost: float = 0.0

    @property
    def ok(self) -> bool:
        return self.failure is None and self.payload is not None

    @classmethod
    def success(cls, provider: ProviderName, payload: Dict[str, Any], cost: float) -> "ProviderResult":
        return cls(provider=provider, payload=payload, billable=True, cost=cost)

    @classmethod
    def failed(cls, provider: ProviderName, kind: FailureKind, message: str = "") -> "ProviderResult":
        return cls(provider=provider, failure=kind, message=message)


@dataclass
class CacheEntry:
    """Raw provider payloads for one plate, as of `fetched_at`."""
    plate: str
    payloads: Dict[str, Dict[str, Any]]
    fetched_at: datetime

    @property
    def providers(self) -> List[str]:
        return sorted(self.payloads)

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at


@dataclass(frozen=True)
class PaidCall:
    """One billable provider request."""
    plate: str
    provider: str
    cost: float
    timestamp: datetime


@dataclass
class CostReport:
    """Provider spend attributable to one resolution."""
    paid_calls: Tuple[PaidCall, ...] = ()
    cache_hit: bool = False
    saved_cost: float = 0.0

    @property
    def call_count(self) -> int:
        return len(self.paid_calls)

    @property
    def total_cost(self) -> float:
        return round(sum(c.cost for c in self.paid_calls), 4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'paid_calls': [
                {'provider': c.provider, 'cost': c.cost, 'timestamp': c.timestamp.isoformat()}
                for c in self.paid_calls
            ],
            'call_count': self.call_count,
            'total_cost': self.total_cost,
            'cache_hit': self.cache_hit,
            'saved_cost': self.saved_cost,
        }


@dataclass
class VehicleProfile:
    """
    Resolved, normalized vehicle profile.

    Every populated field has an entry in `sources` naming the provider
    (or derived tag) it came from.
    """
    plate: str

    # Identity
    make: Optional[str] = None
    model: Optional[str] = None
    variant: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    body_type: Optional[str] = None
    doors: Optional[int] = None
    seats: Optional[int] = None
    engine_size: Optional[float] = None  # litres

    # Running costs
    urban_mpg: Optional[float] = None
    extra_urban_mpg: Optional[float] = None
    combined_mpg: Optional[float] = None
    co2_emissions: Optional[int] = None
    annual_tax: Optional[float] = None
    insurance_group: Optional[str] = None
    emission_class: Optional[str] = None

    # Status
    mot_status: Optional[str] = None
    mot_expiry: Optional[date] = None
    tax_status: Optional[str] = None
    tax_due_date: Optional[date] = None

    # History
    previous_keepers: Optional[int] = None
    is_stolen: Optional[bool] = None
    is_written_off: Optional[bool] = None
    write_off_category: Optional[str] = None
    has_outstanding_finance: Optional[bool] = None
    is_scrapped: Optional[bool] = None
    is_exported: Optional[bool] = None

    # Performance
    power_bhp: Optional[float] = None
    torque_nm: Optional[float] = None
    top_speed_mph: Optional[float] = None
    list_price: Optional[float] = None

    # Derived
    display_title: Optional[str] = None
    is_mild_hybrid: bool = False
    is_plug_in_hybrid: bool = False

    # Provenance
    sources: Dict[str, str] = field(default_factory=dict)
    resolved_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            elif isinstance(value, dict):
                value = dict(value)
            out[f.name] = value
        return out


@dataclass
class ResolveResult:
    """What `VehicleResolver.resolve` returns."""
    profile: VehicleProfile
    cost: CostReport
    entry: Optional[CacheEntry] = field(default=None, repr=False, compare=False)
