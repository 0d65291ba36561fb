"""
helpers.py - Shared builders for CDP ledger tests

Plain functions (not fixtures) so property-based tests can build a fresh
market per example.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Tuple

from cdp_ledger import (
    Ledger, CDPEngine, CDPMarket, provision_market,
    SYSTEM_WALLET,
)


T0 = datetime(2025, 1, 1)
ONE_YEAR = timedelta(days=365)
ADMIN = "treasury"


def make_engine(borrow_rate_bps: int = 500, time: datetime = T0, **market_kwargs) -> CDPEngine:
    """Provision a fresh test-mode ledger and return its engine."""
    ledger = Ledger("test", time, verbose=False, test_mode=True)
    return provision_market(ledger, CDPMarket(**market_kwargs), ADMIN, borrow_rate_bps)


def fund_collateral(engine: CDPEngine, owner: str, count: int) -> None:
    """
    Give owner count collateral tokens through bond registration.

    Registers the owner's wallet if needed. Each token comes from its own
    ISIN so issuance stays double-entry.
    """
    if not engine.ledger.is_registered(owner):
        engine.ledger.register_wallet(owner)
    existing = int(engine.ledger.get_balance(owner, engine.market.collateral_symbol))
    for i in range(existing, existing + count):
        engine.register_and_issue(owner, f"{owner[:4].upper()}{i:08d}")


def verify_conservation(ledger: Ledger, unit_symbol: str) -> Tuple[bool, Decimal]:
    """
    Check that a unit's balances sum to zero (system wallet included).

    Returns:
        Tuple of (is_conserved, outstanding supply)
    """
    total = ledger.total_supply(unit_symbol)
    return total == Decimal("0"), -ledger.get_balance(SYSTEM_WALLET, unit_symbol)
