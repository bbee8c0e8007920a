"""
Cost accountant - one paid-call event per billable provider fetch.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .models import PaidCall

logger = logging.getLogger(__name__)


class CostAccountant:
    """
    Records provider spend.

    The accountant is append-only; it never decides whether a call should
    happen, only what it cost once it did.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._events: List[PaidCall] = []
        self._savings: Dict[str, float] = defaultdict(float)

    def record(self, plate: str, provider: str, cost: float) -> PaidCall:
        call = PaidCall(plate=plate, provider=provider, cost=cost, timestamp=self._clock())
        self._events.append(call)
        logger.info(f"Paid call: {provider} for {plate} (£{cost:.2f})")
        return call

    def record_saving(self, plate: str, amount: float) -> None:
        """Record spend avoided by serving a plate from cache."""
        if amount > 0:
            self._savings[plate] += amount

    @property
    def events(self) -> List[PaidCall]:
        return list(self._events)

    @property
    def total_cost(self) -> float:
        return round(sum(e.cost for e in self._events), 4)

    @property
    def saved_cost(self) -> float:
        return round(sum(self._savings.values()), 4)

    def calls_for(self, plate: str) -> List[PaidCall]:
        return [e for e in self._events if e.plate == plate]

    def summary(self) -> Dict[str, Any]:
        by_provider: Dict[str, Dict[str, Any]] = {}
        for event in self._events:
            entry = by_provider.setdefault(event.provider, {'calls': 0, 'cost': 0.0})
            entry['calls'] += 1
            entry['cost'] = round(entry['cost'] + event.cost, 4)
        return {
            'total_calls': len(self._events),
            'total_cost': self.total_cost,
            'saved_cost': self.saved_cost,
            'by_provider': by_provider,
        }
