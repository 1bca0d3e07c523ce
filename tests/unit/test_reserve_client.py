"""
Tests for the reserve service HTTP client.

Runs a local aiohttp server standing in for the reserve.
"""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from app.services.payments.reserve_client import ReserveClient, SweepRequest
from app.utils.exceptions import ReserveServiceError


class ReserveStub:
    """Configurable fake reserve."""

    def __init__(self) -> None:
        self.status = 200
        self.body: dict = {
            "sweepTxHash": "0x" + "aa" * 32,
            "fundingTxHash": "0x" + "bb" * 32,
            "sweptAt": "2026-01-01T12:00:00Z",
            "fundedAt": "2026-01-01T11:59:00Z",
        }
        self.delay = 0.0
        self.requests: list[tuple[dict, dict]] = []

    async def sweep(self, request: web.Request) -> web.Response:
        self.requests.append((dict(request.headers), await request.json()))
        if self.delay:
            await asyncio.sleep(self.delay)
        return web.json_response(self.body, status=self.status)

    async def health(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": self.status == 200}, status=self.status)


@pytest_asyncio.fixture
async def reserve_server():
    stub = ReserveStub()
    app = web.Application()
    app.router.add_post("/sweep", stub.sweep)
    app.router.add_get("/health", stub.health)
    server = TestServer(app)
    await server.start_server()
    yield stub, f"http://{server.host}:{server.port}"
    await server.close()


@pytest_asyncio.fixture
async def reserve_client(reserve_server, payments_config):
    _stub, url = reserve_server
    config = payments_config.model_copy(
        update={"reserve_url": url, "sweep_timeout_seconds": 0.5}
    )
    client = ReserveClient(config)
    yield client
    await client.close()


def _request() -> SweepRequest:
    return SweepRequest(
        payment_id="pay-1",
        derivation_index=7,
        from_address="0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb0",
        min_usdt_units="100000000",
    )


class TestReserveSweep:
    """POST /sweep."""

    @pytest.mark.asyncio
    async def test_success(self, reserve_server, reserve_client):
        """Receipt is parsed and the request carries key and camelCase body."""
        stub, _url = reserve_server

        receipt = await reserve_client.sweep(_request())

        assert receipt.sweep_tx_hash == "0x" + "aa" * 32
        assert receipt.funding_tx_hash == "0x" + "bb" * 32
        assert receipt.swept_at.year == 2026
        headers, body = stub.requests[0]
        assert headers["x-reserve-key"] == "test-reserve-key"
        assert body == {
            "paymentId": "pay-1",
            "derivationIndex": 7,
            "fromAddress": "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb0",
            "minUsdtUnits": "100000000",
        }

    @pytest.mark.asyncio
    async def test_optional_funding_fields(self, reserve_server, reserve_client):
        """Funding hash and time may be absent."""
        stub, _url = reserve_server
        stub.body = {"sweepTxHash": "0x" + "cc" * 32, "sweptAt": "2026-01-02T00:00:00Z"}

        receipt = await reserve_client.sweep(_request())

        assert receipt.funding_tx_hash is None
        assert receipt.funded_at is None

    @pytest.mark.asyncio
    async def test_server_error(self, reserve_server, reserve_client):
        """Non-2xx status raises with the status attached."""
        stub, _url = reserve_server
        stub.status = 500
        stub.body = {"error": "boom"}

        with pytest.raises(ReserveServiceError) as exc_info:
            await reserve_client.sweep(_request())

        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_missing_sweep_hash(self, reserve_server, reserve_client):
        """A 200 without sweepTxHash is a failure."""
        stub, _url = reserve_server
        stub.body = {"sweptAt": "2026-01-01T12:00:00Z"}

        with pytest.raises(ReserveServiceError):
            await reserve_client.sweep(_request())

    @pytest.mark.asyncio
    async def test_timeout(self, reserve_server, reserve_client):
        """Slow reserve is cut off by the client timeout."""
        stub, _url = reserve_server
        stub.delay = 2.0

        with pytest.raises(ReserveServiceError):
            await reserve_client.sweep(_request())

    @pytest.mark.asyncio
    async def test_connection_refused(self, payments_config):
        """Unreachable reserve raises ReserveServiceError."""
        config = payments_config.model_copy(
            update={"reserve_url": "http://127.0.0.1:9", "sweep_timeout_seconds": 0.5}
        )
        client = ReserveClient(config)
        try:
            with pytest.raises(ReserveServiceError):
                await client.sweep(_request())
        finally:
            await client.close()


class TestReserveHealth:
    """GET /health."""

    @pytest.mark.asyncio
    async def test_healthy(self, reserve_client):
        assert await reserve_client.health() is True

    @pytest.mark.asyncio
    async def test_unhealthy(self, reserve_server, reserve_client):
        stub, _url = reserve_server
        stub.status = 503

        assert await reserve_client.health() is False
