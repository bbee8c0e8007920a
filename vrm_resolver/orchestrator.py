"""
Provider orchestrator - parallel fan-out with settle-all join.

All providers are queried concurrently. A provider failing does not stop
the others; the orchestration only fails when no provider produced usable
data. Network errors (including per-call timeouts) are retried with
exponential backoff; every other failure kind is final.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .costs import CostAccountant
from .errors import AllProvidersFailedError, FailureKind, ProviderError
from .models import PaidCall, ProviderResult
from .parsers import has_useful_data, parse_payload
from .providers import ProviderClient

logger = logging.getLogger(__name__)


@dataclass
class OrchestrationResult:
    """Outcome of one fan-out."""
    results: List[ProviderResult] = field(default_factory=list)
    failures: List[ProviderError] = field(default_factory=list)
    paid_calls: List[PaidCall] = field(default_factory=list)

    @property
    def payloads(self) -> Dict[str, Dict]:
        """Raw payloads keyed by provider name, for the cache entry."""
        return {r.provider.value: r.payload for r in self.results}


class ProviderOrchestrator:
    """Fans out to provider clients and owns the retry policy."""

    def __init__(
        self,
        clients: Sequence[ProviderClient],
        accountant: CostAccountant,
        timeout: float = 10.0,
        max_retries: int = 1,
        retry_backoff: float = 1.0,
    ):
        self.clients = list(clients)
        self.accountant = accountant
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    async def fetch_all(self, plate: str, mileage: Optional[int] = None) -> OrchestrationResult:
        """
        Query every provider for a canonical plate.

        Returns:
            OrchestrationResult with the usable results, the per-provider
            failures and the paid calls incurred.

        Raises:
            AllProvidersFailedError: no provider returned usable data.
        """
        logger.info(f"Fetching {plate} from {len(self.clients)} provider(s)")
        outcomes = await asyncio.gather(
            *(self._fetch_with_retry(client, plate, mileage) for client in self.clients)
        )

        result = OrchestrationResult()
        for outcome in outcomes:
            if outcome.billable:
                result.paid_calls.append(
                    self.accountant.record(plate, outcome.provider.value, outcome.cost)
                )

            if outcome.ok and not has_useful_data(parse_payload(outcome.provider, outcome.payload)):
                logger.warning(f"{outcome.provider.value}: response for {plate} has no usable data")
                result.failures.append(ProviderError(
                    FailureKind.NOT_FOUND, outcome.provider.value, "empty response"
                ))
            elif outcome.ok:
                result.results.append(outcome)
            else:
                result.failures.append(ProviderError(
                    outcome.failure, outcome.provider.value, outcome.message
                ))

        if not result.results:
            error = AllProvidersFailedError(plate, result.failures)
            logger.warning(str(error))
            raise error

        logger.info(
            f"Fetched {plate}: {len(result.results)} ok, {len(result.failures)} failed, "
            f"{len(result.paid_calls)} paid"
        )
        return result

    async def _fetch_with_retry(self, client: ProviderClient, plate: str,
                                mileage: Optional[int]) -> ProviderResult:
        attempt = 0
        while True:
            outcome = await self._attempt(client, plate, mileage)
            if outcome.ok or outcome.failure != FailureKind.NETWORK_ERROR:
                return outcome
            if attempt >= self.max_retries:
                return outcome
            delay = self.retry_backoff * (2 ** attempt)
            attempt += 1
            logger.warning(
                f"{client.name.value}: network error for {plate} ({outcome.message}), "
                f"retry {attempt}/{self.max_retries} in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

    async def _attempt(self, client: ProviderClient, plate: str,
                       mileage: Optional[int]) -> ProviderResult:
        try:
            return await asyncio.wait_for(client.fetch(plate, mileage), timeout=self.timeout)
        except asyncio.TimeoutError:
            return ProviderResult.failed(client.name, FailureKind.NETWORK_ERROR, "timeout")
        except Exception as e:
            logger.exception(f"{client.name.value}: unexpected error fetching {plate}")
            return ProviderResult.failed(client.name, FailureKind.NETWORK_ERROR, str(e))

