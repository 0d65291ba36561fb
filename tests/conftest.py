"""
conftest.py - Shared pytest fixtures for CDP ledger tests

Provides common fixtures used across unit, conformance and engine tests:
- Provisioned ledgers (market registered, rate config in place)
- Engines with funded collateral holders
"""

import pytest

from cdp_ledger import CDPMarket

from tests.helpers import make_engine, fund_collateral


@pytest.fixture
def market():
    """Default market wiring."""
    return CDPMarket()


@pytest.fixture
def engine():
    """Provisioned market at 500 bps, no users."""
    return make_engine()


@pytest.fixture
def ledger(engine):
    """The ledger behind the engine fixture."""
    return engine.ledger


@pytest.fixture
def funded_engine():
    """Provisioned market at 500 bps; alice holds 5 and bob holds 3 collateral tokens."""
    eng = make_engine()
    fund_collateral(eng, "alice", 5)
    fund_collateral(eng, "bob", 3)
    return eng
