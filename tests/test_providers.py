import asyncio

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession
from vrm_resolver.errors import FailureKind
from vrm_resolver.models import ProviderName
from vrm_resolver.providers import RegistryClient, SpecsClient, key_preview


async def test_registry_success():
    session = FakeSession(FakeResponse(200, {"make": "FORD"}))
    client = RegistryClient(api_key="secret-key", url="https://registry.test/v1", cost=0.02,
                            session=session)
    result = await client.fetch("AB12CDE")

    assert result.ok
    assert result.provider == ProviderName.REGISTRY
    assert result.payload == {"make": "FORD"}
    assert result.billable and result.cost == 0.02

    request = session.requests[0]
    assert request["method"] == "POST"
    assert request["url"] == "https://registry.test/v1"
    assert request["json"] == {"registrationNumber": "AB12CDE"}
    assert request["headers"]["x-api-key"] == "secret-key"


@pytest.mark.parametrize("status, kind", [
    (400, FailureKind.INVALID_INPUT),
    (404, FailureKind.NOT_FOUND),
    (401, FailureKind.AUTH_ERROR),
    (403, FailureKind.AUTH_ERROR),
    (429, FailureKind.RATE_LIMITED),
    (500, FailureKind.NETWORK_ERROR),
    (502, FailureKind.NETWORK_ERROR),
])
async def test_registry_status_mapping(status, kind):
    client = RegistryClient(api_key="k", session=FakeSession(FakeResponse(status, {"errors": []})))
    result = await client.fetch("AB12CDE")
    assert not result.ok
    assert result.failure == kind
    assert not result.billable


async def test_registry_missing_key_skips_network():
    session = FakeSession(FakeResponse(200, {"make": "FORD"}))
    result = await RegistryClient(api_key="", session=session).fetch("AB12CDE")
    assert result.failure == FailureKind.AUTH_ERROR
    assert session.requests == []


@pytest.mark.parametrize("error", [
    asyncio.TimeoutError(),
    aiohttp.ClientConnectionError("connection refused"),
])
async def test_transport_errors_are_network_errors(error):
    client = RegistryClient(api_key="k", session=FakeSession(FakeResponse(error=error)))
    result = await client.fetch("AB12CDE")
    assert result.failure == FailureKind.NETWORK_ERROR


async def test_non_json_success_is_network_error():
    client = RegistryClient(api_key="k", session=FakeSession(FakeResponse(200, "<html>")))
    result = await client.fetch("AB12CDE")
    assert result.failure == FailureKind.NETWORK_ERROR


async def test_specs_request_shape():
    session = FakeSession(FakeResponse(200, {"ModelData": {"Make": "FORD"}}))
    client = SpecsClient(api_key="specs-key", base_url="https://specs.test/", cost=1.96,
                         session=session)
    result = await client.fetch("AB12CDE", mileage=42000)

    assert result.ok and result.cost == 1.96
    request = session.requests[0]
    assert request["method"] == "GET"
    assert request["url"] == "https://specs.test/vehicledata/ukvehicledata"
    assert request["params"] == {"apikey": "specs-key", "vrm": "AB12CDE", "mileage": "42000"}


@pytest.mark.parametrize("status, kind", [
    (400, FailureKind.INVALID_INPUT),
    (404, FailureKind.NOT_FOUND),
    (401, FailureKind.AUTH_ERROR),
    (403, FailureKind.RATE_LIMITED),
    (429, FailureKind.RATE_LIMITED),
    (503, FailureKind.NETWORK_ERROR),
])
async def test_specs_status_mapping(status, kind):
    client = SpecsClient(api_key="k", session=FakeSession(FakeResponse(status, {})))
    result = await client.fetch("AB12CDE")
    assert result.failure == kind


async def test_specs_test_mode_rejects_plates_without_a():
    session = FakeSession(FakeResponse(200, {}))
    client = SpecsClient(api_key="k", test_mode=True, session=session)
    result = await client.fetch("XY12XYZ")
    assert result.failure == FailureKind.INVALID_INPUT
    assert session.requests == []

    await client.fetch("AB12CDE")
    assert len(session.requests) == 1


async def test_injected_session_is_not_closed():
    session = FakeSession(FakeResponse(200, {}))
    async with SpecsClient(api_key="k", session=session) as client:
        await client.fetch("AB12CDE")
    assert session.closed is False


def test_key_preview():
    assert key_preview("1234567890abcdef") == "12345678..."
    assert key_preview(None) == "NOT SET"
