"""
Shared fixtures: a fresh ledger per test with a deterministic logical clock
"""

import itertools

import pytest

from token_ledger.config import LedgerConfig
from token_ledger.ledger import TokenLedger
from token_ledger.storage import InMemoryStorage

from identities import ALICE, DEPLOYER, MINTER


@pytest.fixture
def config():
    """Default configuration, isolated from any local .env file"""
    return LedgerConfig(_env_file=None)


@pytest.fixture
def clock():
    """Logical clock returning 1, 2, 3, ..."""
    return itertools.count(1).__next__


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def ledger(config, storage, clock):
    return TokenLedger(config=config, storage=storage, clock=clock)


@pytest.fixture
def funded_ledger(ledger):
    """Ledger with an extra minter and 1,000,000 units minted to ALICE"""
    ledger.add_minter(DEPLOYER, MINTER).unwrap()
    ledger.mint(MINTER, 1_000_000, ALICE, "Test mint").unwrap()
    return ledger
