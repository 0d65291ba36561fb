#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the CDP Ledger Step by Step

A walk through one CDP market, from provisioning to a year of interest.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - Provisioning, bond registration, first borrow
  4-5:  Guard Rails  - Insufficient collateral, admin-only rate changes
  6-8:  Interest     - Accrual, rate changes, sweeps over all vaults
  9-10: Safety       - Stale snapshots, conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from cdp_ledger import (
    Ledger, CDPEngine, CDPMarket, provision_market,
    ExecuteResult, SYSTEM_WALLET,
    vault_symbol, calculate_mintable, calculate_debt_ceiling, compute_deposit_and_borrow,
    InsufficientCollateral, Unauthorized,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1)
    admin: str = "treasury"
    initial_rate_bps: int = 500
    raised_rate_bps: int = 800

    alice_bonds: int = 3
    bob_bonds: int = 2


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_vault(engine: CDPEngine, owner: str):
    vault = engine.get_vault(owner)
    print(f"{vault_symbol(owner)}: collateral_units={vault.collateral_units} "
          f"borrowed={vault.borrowed} last_event_timestamp={vault.last_event_timestamp}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_provision() -> CDPEngine:
    step_header(1, "Provisioning a Market",
        "Register the credit token, the collateral token, the reward sink and the rate.")

    ledger = Ledger("cdp", CONFIG.start_time, verbose=True)
    engine = provision_market(ledger, CDPMarket(), CONFIG.admin, CONFIG.initial_rate_bps)

    section_header("Rate configuration")
    print(engine.get_rate_config())
    return engine


def step_02_register_bonds(engine: CDPEngine) -> CDPEngine:
    step_header(2, "Registering Bonds",
        "Each bond registration issues exactly one collateral token.")

    for owner, count in (("alice", CONFIG.alice_bonds), ("bob", CONFIG.bob_bonds)):
        engine.ledger.register_wallet(owner)
        for i in range(count):
            engine.register_and_issue(owner, f"{owner[:2].upper()}{i:010d}")

    section_header("Collateral balances")
    for owner in ("alice", "bob"):
        print(f"{owner}: {engine.ledger.get_balance(owner, 'BOND')} BOND")
    return engine


def step_03_first_borrow(engine: CDPEngine) -> CDPEngine:
    step_header(3, "Deposit and Borrow",
        "A deposit of n units authorizes 1000 * n * 95% of new credit.")

    print(f"calculate_mintable(1) = {calculate_mintable(1)}")
    print(f"calculate_mintable(3) = {calculate_mintable(3)}")

    engine.deposit_collateral_and_borrow("alice", 3)
    engine.deposit_collateral_and_borrow("bob", 1)

    section_header("Vaults")
    show_vault(engine, "alice")
    show_vault(engine, "bob")
    print(f"\nalice holds {engine.ledger.get_balance('alice', 'CUSD')} CUSD")
    return engine


# ============================================================================
# PHASE 2: GUARD RAILS (Steps 4-5)
# ============================================================================

def step_04_insufficient_collateral(engine: CDPEngine) -> CDPEngine:
    step_header(4, "Insufficient Collateral",
        "A deposit larger than the caller's collateral balance changes nothing.")

    try:
        engine.deposit_collateral_and_borrow("bob", 5)
    except InsufficientCollateral as e:
        print(f"InsufficientCollateral: {e}")
    show_vault(engine, "bob")
    return engine


def step_05_unauthorized_rate(engine: CDPEngine) -> CDPEngine:
    step_header(5, "Admin-Only Rate Changes",
        "Only the RateConfig admin may change the borrow rate.")

    try:
        engine.set_borrow_rate("bob", 0)
    except Unauthorized as e:
        print(f"Unauthorized: {e}")
    print(engine.get_rate_config())
    return engine


# ============================================================================
# PHASE 3: INTEREST (Steps 6-8)
# ============================================================================

def step_06_accrue(engine: CDPEngine) -> CDPEngine:
    step_header(6, "One Year of Interest",
        "Interest is issued to the reward sink; the vault's debt is unchanged.")

    engine.ledger.advance_time(CONFIG.start_time + timedelta(days=365))
    engine.accrue_interest(vault_symbol("alice"))

    show_vault(engine, "alice")
    print(f"\nstaking_rewards holds {engine.ledger.get_balance('staking_rewards', 'CUSD')} CUSD")

    section_header("Accruing again in the same second")
    print(f"accrue_interest -> {engine.accrue_interest(vault_symbol('alice'))}")
    return engine


def step_07_rate_change(engine: CDPEngine) -> CDPEngine:
    step_header(7, "Changing the Rate",
        "The current rate applies to the whole interval since the last event.")

    engine.set_borrow_rate(CONFIG.admin, CONFIG.raised_rate_bps)
    print(engine.get_rate_config())
    return engine


def step_08_sweep(engine: CDPEngine) -> CDPEngine:
    step_header(8, "Sweeping All Vaults",
        "accrue_all() visits every vault in symbol order.")

    engine.ledger.advance_time(engine.ledger.current_time + timedelta(days=180))
    executed = engine.accrue_all()
    print(f"{len(executed)} vault(s) accrued")
    print(f"staking_rewards holds {engine.ledger.get_balance('staking_rewards', 'CUSD')} CUSD")
    return engine


# ============================================================================
# PHASE 4: SAFETY (Steps 9-10)
# ============================================================================

def step_09_stale_snapshot(engine: CDPEngine) -> CDPEngine:
    step_header(9, "Stale Snapshots",
        "Two operations computed from the same vault snapshot cannot both apply.")

    first = compute_deposit_and_borrow(engine.ledger, engine.market, "bob", 1)
    engine.deposit_collateral_and_borrow("bob", 1)
    result = engine.ledger.execute(first)
    print(f"Executing the older computation: {result.value}")
    print(f"Reason: {engine.ledger.last_rejection}")
    assert result == ExecuteResult.REJECTED
    return engine


def step_10_conservation(engine: CDPEngine) -> None:
    step_header(10, "Conservation Proof",
        "Every credit token in circulation is debt or paid interest.")

    ledger = engine.ledger
    borrowed = sum(engine.get_vault(o).borrowed for o in ("alice", "bob"))
    interest = ledger.get_balance("staking_rewards", "CUSD")
    outstanding = -ledger.get_balance(SYSTEM_WALLET, "CUSD")

    print(f"Total debt:        {borrowed}")
    print(f"Interest paid:     {interest}")
    print(f"Outstanding CUSD:  {outstanding}")
    print(f"Sum of balances:   {ledger.total_supply('CUSD')}")
    assert outstanding == Decimal(borrowed) + interest

    section_header("Debt ceilings")
    for owner in ("alice", "bob"):
        vault = engine.get_vault(owner)
        print(f"{owner}: borrowed {vault.borrowed} <= ceiling {calculate_debt_ceiling(vault.collateral_units)}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       CDP LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    engine = step_01_provision()
    wait_for_enter()
    for step in (
        step_02_register_bonds,
        step_03_first_borrow,
        step_04_insufficient_collateral,
        step_05_unauthorized_rate,
        step_06_accrue,
        step_07_rate_change,
        step_08_sweep,
        step_09_stale_snapshot,
    ):
        engine = step(engine)
        wait_for_enter()
    step_10_conservation(engine)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See cdp_ledger/units/*.py for the record implementations
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
