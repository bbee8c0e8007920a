"""Shared test doubles: scripted provider clients, a settable clock, a fake aiohttp session."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import pytest

from vrm_resolver.cache import MemoryCacheStore
from vrm_resolver.costs import CostAccountant
from vrm_resolver.errors import FailureKind
from vrm_resolver.models import ProviderName, ProviderResult
from vrm_resolver.orchestrator import ProviderOrchestrator
from vrm_resolver.providers import ProviderClient
from vrm_resolver.resolver import VehicleResolver

HANG = "hang"


class FakeClock:
    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeClient(ProviderClient):
    """
    Provider client that replays scripted responses.

    Each response is a payload dict, a FailureKind, an exception to raise,
    or HANG to sleep past any timeout. The last response repeats.
    """

    def __init__(self, name: ProviderName, responses: List[Any], cost: float = 1.0,
                 delay: float = 0.0):
        super().__init__(api_key="test-key", cost=cost)
        self.name = name
        self.responses = list(responses)
        self.delay = delay
        self.calls = 0
        self.closed = False

    async def fetch(self, plate: str, mileage: Optional[int] = None) -> ProviderResult:
        self.calls += 1
        response = self.responses[min(self.calls, len(self.responses)) - 1]
        if self.delay:
            await asyncio.sleep(self.delay)
        if response == HANG:
            await asyncio.sleep(3600)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, FailureKind):
            return ProviderResult.failed(self.name, response, response.value)
        return ProviderResult.success(self.name, response, self.cost)

    async def close(self):
        self.closed = True


# ---------------------------------------------------------------------------
# aiohttp doubles
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status: int = 200, body: Any = None, error: Optional[BaseException] = None):
        self.status = status
        self.body = body
        self.error = error

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if isinstance(self.body, str):
            return json.loads(self.body)
        return self.body

    async def text(self):
        return self.body if isinstance(self.body, str) else json.dumps(self.body)


class FakeSession:
    """Records requests and returns one canned response."""

    def __init__(self, response: FakeResponse):
        self.response = response
        self.requests: List[dict] = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        return self.response

    async def close(self):
        self.closed = True


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

REGISTRY_GOLF = {
    "registrationNumber": "AB12CDE",
    "make": "VOLKSWAGEN",
    "colour": "WHITE",
    "fuelType": "PETROL",
    "yearOfManufacture": 2019,
    "engineCapacity": 1395,
    "co2Emissions": 36,
    "taxStatus": "Taxed",
    "taxDueDate": "2025-03-01",
    "motStatus": "Valid",
    "motExpiryDate": "2025-02-14",
    "euroStatus": "EURO 6",
}

SPECS_GOLF = {
    "ModelData": {"Make": "VOLKSWAGEN", "Model": "GOLF", "FuelType": "PETROL/ELECTRIC"},
    "SmmtDetails": {
        "Variant": "GTE Advance",
        "BodyStyle": "HATCHBACK",
        "Transmission": "AUTOMATIC",
        "NumberOfDoors": 5,
        "NumberOfSeats": 5,
        "EngineCapacity": 1395,
        "CombinedMpg": 156.9,
        "InsuranceGroup": "29E",
        "Co2": 40,
    },
    "VehicleRegistration": {"Colour": "PURE WHITE"},
    "Performance": {"Power": {"Bhp": 201}, "Torque": {"Nm": 350},
                    "Statistics": {"MaxSpeedMph": 138}},
    "VehicleHistory": {"NumberOfPreviousKeepers": 2},
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def accountant(clock):
    return CostAccountant(clock=clock)


@pytest.fixture
def cache():
    return MemoryCacheStore()


def make_resolver(clients, cache, accountant, clock, timeout=0.2, max_retries=1):
    orchestrator = ProviderOrchestrator(
        clients, accountant, timeout=timeout, max_retries=max_retries, retry_backoff=0.0
    )
    return VehicleResolver(cache=cache, orchestrator=orchestrator, accountant=accountant, clock=clock)
