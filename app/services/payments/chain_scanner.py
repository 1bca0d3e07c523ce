"""
Chain scanner.

Polls the token contract for Transfer events into pending deposit
addresses and confirms the matching payment intents.

Window selection:
    finalized = latest - confirmations
    from      = cursor + 1 (or finalized - fallback + 1 on first run)
    to        = min(from + scan_max_blocks - 1, finalized)

The window is split into block chunks and every chunk is queried once
per address group, so each eth_getLogs call stays within provider
filter limits.
"""

from collections.abc import Iterator
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import PaymentsConfig
from app.models.membership_payment import MembershipPayment
from app.repositories.membership_payment_repository import (
    MembershipPaymentRepository,
)
from app.repositories.payment_chain_cursor_repository import (
    PaymentChainCursorRepository,
)
from app.services.blockchain.rpc_client import ChainRpcClient
from app.services.blockchain.transfer_events import (
    build_transfer_topics,
    decode_transfer_log,
)
from app.services.payments.intents import usd_cents_to_units
from app.services.payments.results import ScanResult
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import LogFetchError, ScanWindowError
from app.utils.security import mask_address, mask_tx_hash


def _chunks(items: list[Any], size: int) -> Iterator[list[Any]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class ChainScanner:
    """Confirms pending payment intents from on-chain transfers."""

    def __init__(
        self,
        session: AsyncSession,
        config: PaymentsConfig,
        rpc: ChainRpcClient,
        clock=utc_now,
    ) -> None:
        """
        Initialize scanner.

        Args:
            session: Async database session
            config: Payments configuration
            rpc: Chain RPC client
            clock: Callable returning current aware datetime
        """
        self.session = session
        self.config = config
        self.rpc = rpc
        self.clock = clock
        self.payment_repo = MembershipPaymentRepository(session)
        self.cursor_repo = PaymentChainCursorRepository(session)

    async def _advance_cursor(self, block: int) -> int:
        value = await self.cursor_repo.advance(
            self.config.chain, self.config.usdt_contract, block
        )
        await self.session.commit()
        return value

    async def scan(self) -> ScanResult:
        """
        Scan the next block window.

        Returns:
            ScanResult(scanned_from_block, scanned_to_block, confirmed_count)

        Raises:
            ChainConnectionError: Latest block height unavailable
            ScanWindowError: A log query failed; cursor was advanced only
                up to the last fully scanned block chunk
        """
        latest_block = await self.rpc.get_block_number()
        finalized_block = max(latest_block - self.config.confirmations, 0)

        pending = await self.payment_repo.get_pending_with_address()
        if not pending:
            await self._advance_cursor(finalized_block)
            logger.debug(
                f"No pending payments, cursor moved to finalized block "
                f"{finalized_block}"
            )
            return ScanResult(
                scanned_from_block=finalized_block,
                scanned_to_block=finalized_block,
                confirmed_count=0,
            )

        last_scanned = await self.cursor_repo.get_last_scanned(
            self.config.chain, self.config.usdt_contract
        )
        if last_scanned is None:
            from_block = max(
                finalized_block - self.config.scan_fallback_blocks + 1, 0
            )
        else:
            from_block = last_scanned + 1
        to_block = min(from_block + self.config.scan_max_blocks - 1, finalized_block)

        if from_block > to_block:
            return ScanResult()

        by_address: dict[str, MembershipPayment] = {
            p.deposit_address.lower(): p for p in pending
        }
        addresses = [p.deposit_address for p in pending]
        confirmed_addresses: set[str] = set()
        confirmed_count = 0

        logger.info(
            f"Scanning blocks {from_block}-{to_block} "
            f"for {len(addresses)} deposit addresses"
        )

        block_chunk = self.config.scan_block_chunk_size
        for block_start in range(from_block, to_block + 1, block_chunk):
            block_end = min(block_start + block_chunk - 1, to_block)

            for group in _chunks(addresses, self.config.scan_address_chunk_size):
                try:
                    logs = await self.rpc.get_logs(
                        self.config.usdt_contract,
                        build_transfer_topics(group),
                        block_start,
                        block_end,
                    )
                except LogFetchError as e:
                    await self._abort_window(
                        e, from_block, block_start, block_end, len(addresses)
                    )

                for log in logs:
                    if await self._process_log(log, by_address, confirmed_addresses):
                        confirmed_count += 1

            logger.debug(
                f"Scanned chunk {block_start}-{block_end}, "
                f"{confirmed_count} confirmed so far"
            )

        await self._advance_cursor(to_block)

        logger.success(
            f"Scan complete: blocks {from_block}-{to_block}, "
            f"{confirmed_count} payments confirmed"
        )
        return ScanResult(
            scanned_from_block=from_block,
            scanned_to_block=to_block,
            confirmed_count=confirmed_count,
        )

    async def _abort_window(
        self,
        error: LogFetchError,
        from_block: int,
        block_start: int,
        block_end: int,
        address_count: int,
    ) -> None:
        """Persist progress up to the previous chunk and raise."""
        last_good_block = block_start - 1
        if last_good_block >= from_block:
            last_scanned = await self._advance_cursor(last_good_block)
        else:
            # Keep confirmations made earlier in this chunk
            await self.session.commit()
            last_scanned = from_block - 1

        logger.error(
            "Log fetch failed, scan window aborted",
            extra={
                "block_from": block_start,
                "block_to": block_end,
                "address_count": address_count,
                "last_scanned": last_scanned,
                "error": str(error),
            },
        )
        raise ScanWindowError(
            "eth_getLogs failed",
            block_from=block_start,
            block_to=block_end,
            address_count=address_count,
            last_scanned=last_scanned,
        ) from error

    async def _process_log(
        self,
        log: Any,
        by_address: dict[str, MembershipPayment],
        confirmed_addresses: set[str],
    ) -> bool:
        """
        Match one Transfer log to a pending payment and confirm it.

        Returns:
            True if this call confirmed a payment
        """
        try:
            event = decode_transfer_log(log)
        except ValueError as e:
            logger.warning("Skipping undecodable log", extra={"error": str(e)})
            return False

        address_key = event.to_address.lower()
        if address_key in confirmed_addresses:
            logger.warning(
                f"Extra transfer to already confirmed address "
                f"{mask_address(event.to_address)} in tx "
                f"{mask_tx_hash(event.tx_hash)}, ignoring"
            )
            return False

        payment = by_address.get(address_key)
        if payment is None:
            return False

        expected_units = usd_cents_to_units(payment.amount_usd_cents, self.config)
        if event.value < expected_units:
            logger.info(
                f"Underpayment for {payment.id}: received {event.value}, "
                f"expected {expected_units}; leaving pending"
            )
            return False

        if event.value > expected_units:
            logger.info(
                f"Overpayment for {payment.id}: received {event.value}, "
                f"expected {expected_units} (+{event.value - expected_units})"
            )

        confirmed = await self.payment_repo.confirm_pending(
            payment.id,
            chain=self.config.chain,
            tx_hash=event.tx_hash,
            from_address=event.from_address,
            to_address=event.to_address,
            received_units=event.value,
            expected_units=expected_units,
            now=self.clock(),
        )
        if not confirmed:
            logger.debug(f"Payment {payment.id} already confirmed elsewhere")
            return False

        confirmed_addresses.add(address_key)
        del by_address[address_key]

        logger.info(
            f"Payment {payment.id} confirmed: tx {mask_tx_hash(event.tx_hash)} "
            f"from {mask_address(event.from_address)}"
        )
        return True
