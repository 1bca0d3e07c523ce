"""
Chain RPC client.

Runs synchronous Web3 calls in a thread pool with a hard timeout so a
stuck provider can never hang a pipeline tick.
"""

import asyncio
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger
from web3 import Web3

from app.config.constants import BLOCKCHAIN_RPC_TIMEOUT
from app.config.settings import PaymentsConfig
from app.utils.exceptions import ChainConnectionError, LogFetchError


class ChainRpcClient:
    """
    Async facade over a Web3 HTTP provider.

    Handles:
    - Thread pool execution of sync Web3 calls
    - Per-call timeout (asyncio.wait_for)
    - Mapping provider failures to pipeline errors
    """

    def __init__(
        self,
        config: PaymentsConfig,
        web3: Web3 | None = None,
        max_workers: int = 4,
    ) -> None:
        """
        Initialize RPC client.

        Args:
            config: Payments configuration (rpc_url, rpc_timeout_seconds)
            web3: Preconfigured Web3 instance (tests)
            max_workers: Maximum thread pool workers
        """
        self.timeout = config.rpc_timeout_seconds
        self.web3 = web3 or Web3(
            Web3.HTTPProvider(
                config.rpc_url,
                request_kwargs={"timeout": BLOCKCHAIN_RPC_TIMEOUT},
            )
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="web3",
        )

    async def _run(self, sync_func: Callable[[], Any], operation: str) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, sync_func),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise TimeoutError(
                f"{operation} timed out after {self.timeout}s"
            ) from e

    async def get_block_number(self) -> int:
        """
        Get latest block height.

        Raises:
            ChainConnectionError: Provider unreachable or timed out
        """
        try:
            return int(
                await self._run(lambda: self.web3.eth.block_number, "eth_blockNumber")
            )
        except Exception as e:
            logger.error(f"Failed to connect to RPC provider: {e}")
            raise ChainConnectionError(f"RPC connection failed: {e}") from e

    async def get_logs(
        self,
        address: str,
        topics: list[Any],
        from_block: int,
        to_block: int,
    ) -> list[Any]:
        """
        Query event logs.

        Args:
            address: Emitting contract address
            topics: Topic filter (None entries match anything)
            from_block: First block (inclusive)
            to_block: Last block (inclusive)

        Returns:
            Raw log entries

        Raises:
            LogFetchError: Request failed or timed out
        """
        filter_params = {
            "address": to_checksum_address(address),
            "topics": topics,
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        try:
            logs = await self._run(
                lambda: self.web3.eth.get_logs(filter_params), "eth_getLogs"
            )
        except Exception as e:
            raise LogFetchError(str(e), from_block, to_block) from e
        return list(logs)

    def close(self) -> None:
        """Release worker threads."""
        self._executor.shutdown(wait=False, cancel_futures=True)
