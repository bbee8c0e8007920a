"""
Provider clients - one async HTTP wrapper per upstream data source.

Each client performs exactly one request per `fetch()` and returns a
ProviderResult: the raw JSON payload on success, or a classified
FailureKind. Clients never retry; the orchestrator owns retry policy.

Usage:
    async with RegistryClient(api_key="...") as registry:
        result = await registry.fetch("AB12CDE")
        if result.ok:
            print(result.payload["make"])
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from .errors import FailureKind
from .models import ProviderName, ProviderResult

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://driver-vehicle-licensing.api.gov.uk/vehicle-enquiry/v1/vehicles"
DEFAULT_SPECS_URL = "https://api.checkcardetails.co.uk"

DEFAULT_REGISTRY_COST = 0.02
DEFAULT_SPECS_COST = 1.96


def key_preview(key: Optional[str]) -> str:
    """First 8 characters of an API key, safe to log."""
    return f"{key[:8]}..." if key else "NOT SET"


class ProviderClient(ABC):
    """
    Base class for provider clients.

    Owns an aiohttp session unless one is injected; an injected session is
    never closed by the client.
    """

    name: ProviderName
    STATUS_MAP: Dict[int, FailureKind] = {}

    def __init__(self, api_key: str, cost: float, timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.api_key = api_key
        self.cost = cost
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def classify_status(self, status: int) -> FailureKind:
        """Map a non-2xx HTTP status to a failure kind."""
        return self.STATUS_MAP.get(status, FailureKind.NETWORK_ERROR)

    @abstractmethod
    async def fetch(self, plate: str, mileage: Optional[int] = None) -> ProviderResult:
        """Fetch the raw payload for a canonical plate."""
        pass

    async def _send(self, method: str, url: str, plate: str, **kwargs: Any) -> ProviderResult:
        """Issue one request and classify the outcome."""
        session = await self._get_session()
        try:
            async with session.request(
                method, url,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                **kwargs,
            ) as resp:
                if 200 <= resp.status < 300:
                    data = await resp.json(content_type=None)
                    if not isinstance(data, dict):
                        logger.warning(f"{self.name.value}: unexpected payload type for {plate}")
                        return ProviderResult.failed(
                            self.name, FailureKind.NETWORK_ERROR, "unexpected payload"
                        )
                    logger.info(f"{self.name.value}: {plate} OK")
                    return ProviderResult.success(self.name, data, self.cost)

                kind = self.classify_status(resp.status)
                body = await resp.text()
                logger.warning(f"{self.name.value}: {plate} HTTP {resp.status} -> {kind.value}")
                logger.debug(f"{self.name.value} error body: {body[:200]}")
                return ProviderResult.failed(self.name, kind, f"HTTP {resp.status}")

        except asyncio.TimeoutError:
            logger.warning(f"{self.name.value}: {plate} timed out after {self.timeout}s")
            return ProviderResult.failed(self.name, FailureKind.NETWORK_ERROR, "timeout")
        except aiohttp.ClientError as e:
            logger.warning(f"{self.name.value}: {plate} transport error: {e}")
            return ProviderResult.failed(self.name, FailureKind.NETWORK_ERROR, str(e))
        except ValueError as e:
            # Body claimed success but was not JSON
            logger.warning(f"{self.name.value}: {plate} bad JSON: {e}")
            return ProviderResult.failed(self.name, FailureKind.NETWORK_ERROR, "invalid JSON")


# ---------------------------------------------------------------------------
# Government vehicle-enquiry registry
# ---------------------------------------------------------------------------

class RegistryClient(ProviderClient):
    """Government vehicle-enquiry service (POST, x-api-key header)."""

    name = ProviderName.REGISTRY
    STATUS_MAP = {
        400: FailureKind.INVALID_INPUT,
        404: FailureKind.NOT_FOUND,
        401: FailureKind.AUTH_ERROR,
        403: FailureKind.AUTH_ERROR,
        429: FailureKind.RATE_LIMITED,
    }

    def __init__(self, api_key: str, url: str = DEFAULT_REGISTRY_URL,
                 cost: float = DEFAULT_REGISTRY_COST, timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(api_key, cost, timeout, session)
        self.url = url

    async def fetch(self, plate: str, mileage: Optional[int] = None) -> ProviderResult:
        if not self.api_key:
            logger.error("Registry API key not configured")
            return ProviderResult.failed(self.name, FailureKind.AUTH_ERROR, "API key not configured")

        logger.debug(f"Registry lookup {plate} (key {key_preview(self.api_key)})")
        return await self._send(
            "POST", self.url, plate,
            json={"registrationNumber": plate},
            headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
        )


# ---------------------------------------------------------------------------
# Commercial specs / history provider
# ---------------------------------------------------------------------------

class SpecsClient(ProviderClient):
    """
    Commercial vehicle specs and history provider.

    GET {base}/vehicledata/{datapoint}?apikey=..&vrm=..[&mileage=..]

    The provider reports exhausted quota as 403, so 403 is RATE_LIMITED
    rather than AUTH_ERROR. In test mode the sandbox only knows plates
    containing the letter "A"; anything else is rejected locally.
    """

    name = ProviderName.SPECS
    STATUS_MAP = {
        400: FailureKind.INVALID_INPUT,
        404: FailureKind.NOT_FOUND,
        401: FailureKind.AUTH_ERROR,
        403: FailureKind.RATE_LIMITED,
        429: FailureKind.RATE_LIMITED,
    }

    def __init__(self, api_key: str, base_url: str = DEFAULT_SPECS_URL,
                 datapoint: str = "ukvehicledata", cost: float = DEFAULT_SPECS_COST,
                 timeout: float = 10.0, test_mode: bool = False,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(api_key, cost, timeout, session)
        self.base_url = base_url.rstrip("/")
        self.datapoint = datapoint
        self.test_mode = test_mode

    def endpoint(self) -> str:
        return f"{self.base_url}/vehicledata/{self.datapoint}"

    async def fetch(self, plate: str, mileage: Optional[int] = None) -> ProviderResult:
        if not self.api_key:
            logger.error("Specs API key not configured")
            return ProviderResult.failed(self.name, FailureKind.AUTH_ERROR, "API key not configured")

        if self.test_mode and "A" not in plate.upper():
            logger.info(f"Specs test mode: {plate} has no 'A', skipping request")
            return ProviderResult.failed(
                self.name, FailureKind.INVALID_INPUT,
                "test mode only accepts registrations containing 'A'"
            )

        params = {"apikey": self.api_key, "vrm": plate}
        if mileage is not None:
            params["mileage"] = str(mileage)

        logger.debug(f"Specs lookup {plate} via {self.datapoint} (key {key_preview(self.api_key)})")
        return await self._send("GET", self.endpoint(), plate, params=params)
