"""
Custodia Test Configuration
===========================

[QA] Central pytest configuration with fixtures for all test types:
- Unit tests: one component on an in-memory host
- E2E tests: full scenarios and the CLI entry point

[FIXTURES]
- host: Host on an isolated in-memory state store
- keypair_factory: fresh Ed25519 identities
- bank: AssetBank on the host
- as_built_ledger / hardened_ledger: FungibleLedger per security mode
- as_built_vault / hardened_vault: Vault per security mode, initialized

Usage:
    pytest tests/unit/          # Fast unit tests
    pytest tests/e2e/           # End-to-end scenarios
"""

import sys
import shutil
import tempfile
import logging
from pathlib import Path
from typing import Callable, Generator

import pytest
import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "e2e: End-to-end tests (full stack)")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their path."""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "/e2e/" in str(item.fspath):
            item.add_marker(pytest.mark.e2e)


# ============================================================================
# Logging Configuration
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


# ============================================================================
# Temporary Directory Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp(prefix="custodia_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


# ============================================================================
# Host Fixtures (Isolated)
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def store():
    """Isolated in-memory StateStore."""
    from core.storage import StateStore

    store_instance = StateStore(":memory:")
    await store_instance.initialize()
    yield store_instance
    await store_instance.close()


@pytest_asyncio.fixture(scope="function")
async def host():
    """Host on an isolated in-memory store."""
    from core.host import Host

    host_instance = await Host.create(":memory:")
    yield host_instance
    await host_instance.close()


@pytest.fixture(scope="function")
def bank(host):
    from core.assets import AssetBank
    return AssetBank(host)


# ============================================================================
# Identity Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def keypair_factory() -> Callable[[], "Keypair"]:
    """Factory for fresh Ed25519 keypairs."""
    from core.identity import Keypair

    def _create():
        return Keypair()
    return _create


@pytest.fixture(scope="function")
def keypair():
    from core.identity import Keypair
    return Keypair()


@pytest.fixture(scope="function")
def ctx():
    """CallContext factory: ctx(keypair_or_identity, fee_payer=..., tx_source=...)."""
    from core.host import CallContext

    def _as_identity(value):
        if value is None:
            return None
        return getattr(value, "identity", value)

    def _create(invoker, fee_payer=None, tx_source=None):
        return CallContext(
            invoker=_as_identity(invoker),
            fee_payer=_as_identity(fee_payer),
            tx_source=_as_identity(tx_source),
        )
    return _create


# ============================================================================
# Program Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def as_built_ledger(host):
    from config import SecurityMode
    from programs.token import FungibleLedger
    return FungibleLedger(host, program_id="ledger-as-built", mode=SecurityMode.AS_BUILT)


@pytest.fixture(scope="function")
def hardened_ledger(host):
    from config import SecurityMode
    from programs.token import FungibleLedger
    return FungibleLedger(host, program_id="ledger-hardened", mode=SecurityMode.HARDENED)


class VaultWorld:
    """An initialized vault with an admin, a funded user and a mint."""

    def __init__(self, vault, bank, admin, user, mint):
        self.vault = vault
        self.bank = bank
        self.admin = admin
        self.user = user
        self.mint = mint


async def _make_vault_world(host, bank, mode) -> VaultWorld:
    from core.host import CallContext
    from core.identity import Keypair
    from programs.vault import Vault

    admin, user = Keypair(), Keypair()
    mint = Keypair().identity
    vault = Vault(host, bank, program_id=f"vault-{mode.value}", mode=mode)
    await bank.issue(mint, user.identity, 10_000)
    await vault.initialize(CallContext(admin.identity), mint, 254)
    return VaultWorld(vault, bank, admin, user, mint)


@pytest_asyncio.fixture(scope="function")
async def as_built_vault(host, bank):
    from config import SecurityMode
    return await _make_vault_world(host, bank, SecurityMode.AS_BUILT)


@pytest_asyncio.fixture(scope="function")
async def hardened_vault(host, bank):
    from config import SecurityMode
    return await _make_vault_world(host, bank, SecurityMode.HARDENED)
