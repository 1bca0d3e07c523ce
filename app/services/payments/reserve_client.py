"""
Reserve service client.

HTTP client for the custodial reserve service that funds deposit
addresses with gas and sweeps received tokens into treasury.
"""

from datetime import datetime

import aiohttp
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from app.config.constants import RESERVE_API_KEY_HEADER
from app.config.settings import PaymentsConfig
from app.utils.exceptions import ReserveServiceError
from app.utils.security import mask_address


class SweepRequest(BaseModel):
    """POST /sweep body."""

    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(alias="paymentId")
    derivation_index: int = Field(alias="derivationIndex")
    from_address: str = Field(alias="fromAddress")
    min_usdt_units: str = Field(alias="minUsdtUnits")


class SweepReceipt(BaseModel):
    """POST /sweep response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sweep_tx_hash: str = Field(alias="sweepTxHash", min_length=1)
    funding_tx_hash: str | None = Field(default=None, alias="fundingTxHash")
    swept_at: datetime = Field(alias="sweptAt")
    funded_at: datetime | None = Field(default=None, alias="fundedAt")


class ReserveClient:
    """Reserve service HTTP client with a bounded request timeout."""

    def __init__(self, config: PaymentsConfig) -> None:
        """
        Initialize reserve client.

        Args:
            config: Payments configuration (reserve_url, reserve_api_key,
                sweep_timeout_seconds)
        """
        self.base_url = config.reserve_url
        self._api_key = config.reserve_api_key
        self._timeout = aiohttp.ClientTimeout(total=config.sweep_timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={RESERVE_API_KEY_HEADER: self._api_key},
            )
        return self._session

    async def sweep(self, request: SweepRequest) -> SweepReceipt:
        """
        Ask the reserve to sweep a deposit address.

        Args:
            request: Sweep request

        Returns:
            SweepReceipt

        Raises:
            ReserveServiceError: Timeout, connection error, non-2xx status
                or a response without sweepTxHash
        """
        session = await self._get_session()
        payload = request.model_dump(by_alias=True)

        logger.debug(
            f"Reserve sweep request for {request.payment_id} "
            f"from {mask_address(request.from_address)}"
        )

        try:
            async with session.post(f"{self.base_url}/sweep", json=payload) as response:
                if response.status < 200 or response.status >= 300:
                    body = await response.text()
                    raise ReserveServiceError(
                        f"Reserve returned HTTP {response.status}: {body[:200]}",
                        status=response.status,
                    )
                data = await response.json(content_type=None)
        except TimeoutError as e:
            raise ReserveServiceError("Reserve sweep request timed out") from e
        except aiohttp.ClientError as e:
            raise ReserveServiceError(f"Reserve sweep request failed: {e}") from e

        if not isinstance(data, dict):
            raise ReserveServiceError("Reserve response is not a JSON object")
        try:
            return SweepReceipt.model_validate(data)
        except PydanticValidationError as e:
            raise ReserveServiceError(
                f"Malformed reserve response: {e.error_count()} invalid fields"
            ) from e

    async def health(self) -> bool:
        """Check reserve availability via GET /health."""
        session = await self._get_session()
        try:
            async with session.get(f"{self.base_url}/health") as response:
                return 200 <= response.status < 300
        except (TimeoutError, aiohttp.ClientError) as e:
            logger.warning("Reserve health check failed", extra={"error": str(e)})
            return False

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
