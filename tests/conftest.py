"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment so get_settings() works in job modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-settings.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("PAYMENTS__RPC_URL", "http://localhost:8545")
os.environ.setdefault(
    "PAYMENTS__USDT_CONTRACT", "0x55d398326f99059fF775485246999027B3197955"
)
os.environ.setdefault("PAYMENTS__RESERVE_URL", "http://reserve.test")
os.environ.setdefault("PAYMENTS__RESERVE_API_KEY", "test-reserve-key")
os.environ.setdefault(
    "PAYMENTS__XPUB",
    "xpub661MyMwAqRbcFtXgS5sYJABqqG9YLmC4Q1Rdap9gSE8NqtwybGhePY2gZ29ESFjq"
    "JoCu1Rupje8YtGqsefD265TMg7usUDFdp6W1EGMcet8",
)

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from loguru import logger

from app.config.database import create_engine, create_session_maker
from app.config.settings import MembershipConfig, PaymentsConfig
from app.models import Base
from app.services.membership.plans import MembershipPlanService
from tests.factories import TEST_XPUB, USDT_CONTRACT, FakeClock


@pytest.fixture
def clock():
    """Clock fixed at 2026-01-01 12:00 UTC."""
    return FakeClock()


@pytest.fixture
def payments_config():
    """Payments config with small windows so tests span several chunks."""
    return PaymentsConfig(
        chain="bsc",
        rpc_url="http://localhost:8545",
        usdt_contract=USDT_CONTRACT,
        token_decimals=6,
        confirmations=12,
        rpc_timeout_seconds=1,
        scan_fallback_blocks=100,
        scan_max_blocks=100,
        scan_block_chunk_size=50,
        scan_address_chunk_size=5,
        reserve_url="http://reserve.test/",
        reserve_api_key="test-reserve-key",
        sweep_max_retries=3,
        sweep_base_delay_seconds=5,
        sweep_backoff_multiplier=2,
        sweep_max_delay_seconds=3600,
        sweep_record_attempts=3,
        sweep_record_retry_delay_seconds=0,
        xpub=TEST_XPUB,
    )


@pytest.fixture
def membership_config():
    """Default membership config (50% pool, 20% sponsor, 5% x 6 network)."""
    return MembershipConfig()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with all tables created."""
    db_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as db_session:
        yield db_session


@pytest_asyncio.fixture
async def plans(session):
    """Seed the default membership plans."""
    service = MembershipPlanService(session)
    await service.seed_default_plans()
    return await service.list_plans()


@pytest.fixture
def mock_reserve():
    """Reserve client double."""
    reserve = AsyncMock()
    reserve.sweep = AsyncMock()
    reserve.health = AsyncMock(return_value=True)
    reserve.close = AsyncMock()
    return reserve


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
