"""Test data helpers shared by unit and integration tests."""

from datetime import UTC, datetime, timedelta

from eth_utils import encode_hex

from app.models import (
    Membership,
    MembershipPayment,
    MembershipStatus,
    PaymentStatus,
    Referral,
    SweepStatus,
    User,
)
from app.services.blockchain.transfer_events import TRANSFER_TOPIC, address_to_topic
from app.services.membership.service import MembershipService
from app.utils.exceptions import LogFetchError

# BIP32 test vector 1 master public key
TEST_XPUB = (
    "xpub661MyMwAqRbcFtXgS5sYJABqqG9YLmC4Q1Rdap9gSE8NqtwybGhePY2gZ29ESFjq"
    "JoCu1Rupje8YtGqsefD265TMg7usUDFdp6W1EGMcet8"
)
USDT_CONTRACT = "0x55d398326f99059fF775485246999027B3197955"
PAYER_ADDRESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb0"
START = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Controllable clock passed to services instead of utc_now."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_transfer_log(
    to_address: str,
    value: int,
    block_number: int,
    from_address: str = PAYER_ADDRESS,
    tx_index: int = 1,
) -> dict:
    """Build a raw Transfer log as returned by eth_getLogs."""
    return {
        "address": USDT_CONTRACT,
        "topics": [
            TRANSFER_TOPIC,
            address_to_topic(from_address),
            address_to_topic(to_address),
        ],
        "data": "0x" + format(value, "064x"),
        "transactionHash": encode_hex(
            block_number.to_bytes(16, "big") + tx_index.to_bytes(16, "big")
        ),
        "blockNumber": block_number,
        "logIndex": 0,
    }


async def create_user(session, email: str, sponsor_id: int | None = None) -> User:
    """Insert user and optional referral edge."""
    user = User(email=email, username=email.split("@")[0])
    session.add(user)
    await session.flush()
    if sponsor_id is not None:
        session.add(Referral(user_id=user.id, sponsor_id=sponsor_id))
    await session.commit()
    return user


async def create_chain(session, length: int) -> list[User]:
    """Create a referral chain; result[0] is the root, result[-1] the leaf."""
    users: list[User] = []
    sponsor_id = None
    for i in range(length):
        user = await create_user(session, f"user{i}@example.com", sponsor_id)
        users.append(user)
        sponsor_id = user.id
    return users


async def set_membership(
    session,
    user_id: int,
    status: str = MembershipStatus.ACTIVE,
    tier: str = "annual",
    expires_at: datetime | None = None,
    inactive_at: datetime | None = None,
) -> Membership:
    """Insert membership row directly."""
    membership = Membership(
        user_id=user_id,
        tier=tier,
        status=status,
        starts_at=START,
        activated_at=START,
        expires_at=expires_at,
        inactive_at=inactive_at,
    )
    session.add(membership)
    await session.commit()
    return membership


async def compress_member(session, user_id: int, membership_config, clock) -> None:
    """Run the compression job over a member who lapsed long ago."""
    await set_membership(
        session,
        user_id,
        status=MembershipStatus.INACTIVE,
        expires_at=START - timedelta(days=60),
        inactive_at=START - timedelta(days=30),
    )
    await MembershipService(
        session, membership_config, clock=clock
    ).compress_inactive_users()


async def create_payment(
    session,
    user_id: int,
    *,
    tier: str = "annual",
    amount_usd_cents: int = 10000,
    deposit_address: str | None = None,
    derivation_index: int | None = None,
    status: str = PaymentStatus.PENDING,
    sweep_status: str | None = SweepStatus.PENDING,
    sweep_retry_count: int = 0,
    confirmed_at: datetime | None = None,
    swept_at: datetime | None = None,
) -> MembershipPayment:
    """Insert payment row directly."""
    payment = MembershipPayment(
        user_id=user_id,
        tier=tier,
        amount_usd_cents=amount_usd_cents,
        status=status,
        chain="bsc",
        deposit_address=deposit_address,
        derivation_index=derivation_index,
        sweep_status=sweep_status,
        sweep_retry_count=sweep_retry_count,
        confirmed_at=confirmed_at,
        swept_at=swept_at,
    )
    session.add(payment)
    await session.commit()
    return payment


class FakeRpc:
    """In-memory chain: serves stored Transfer logs filtered like eth_getLogs."""

    def __init__(self, latest_block: int, logs: list[dict] | None = None) -> None:
        self.latest_block = latest_block
        self.logs = list(logs or [])
        self.failing_chunks: set[int] = set()
        self.calls: list[tuple[int, int, int]] = []

    async def get_block_number(self) -> int:
        return self.latest_block

    async def get_logs(
        self, address: str, topics: list, from_block: int, to_block: int
    ) -> list[dict]:
        self.calls.append((from_block, to_block, len(topics[2])))
        if from_block in self.failing_chunks:
            raise LogFetchError("query returned more than 10000 results", from_block, to_block)
        wanted = {t.lower() for t in topics[2]}
        return [
            log
            for log in self.logs
            if from_block <= log["blockNumber"] <= to_block
            and log["topics"][2].lower() in wanted
        ]
