"""
test_engine.py - Unit tests for CDPEngine

Tests:
- provision_market: registered units, wallets and rate config
- Issuance end to end (register bond, deposit, credit received)
- Accrual end to end (reward sink, rate changes, sweeps)
- Error propagation (typed compute errors, ledger rejections)
- Conservation across a full scenario
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from cdp_ledger import (
    Ledger, CDPMarket, VaultState, RateConfig, BondRecord, provision_market,
    vault_symbol, calculate_debt_ceiling, unix_timestamp,
    UNIT_TYPE_CREDIT, UNIT_TYPE_COLLATERAL, UNIT_TYPE_RATE_CONFIG,
    Unauthorized, InsufficientCollateral, InvalidClockOrdering,
    InstrumentAlreadyRegistered, TransactionRejected, UnitNotRegistered,
)
from tests.helpers import T0, ONE_YEAR, ADMIN, make_engine, fund_collateral, verify_conservation


# ============================================================================
# PROVISIONING
# ============================================================================

class TestProvisionMarket:

    def test_registers_market(self, engine):
        ledger = engine.ledger
        assert ledger.get_unit("CUSD").unit_type == UNIT_TYPE_CREDIT
        assert ledger.get_unit("BOND").unit_type == UNIT_TYPE_COLLATERAL
        assert ledger.get_unit("CDP_CONFIG").unit_type == UNIT_TYPE_RATE_CONFIG
        assert ledger.is_registered("staking_rewards")

    def test_rate_config(self, engine):
        assert engine.get_rate_config() == RateConfig(admin=ADMIN, borrow_rate_bps=500)

    def test_custom_market(self):
        eng = make_engine(credit_symbol="USDX", collateral_symbol="GILT", reward_sink="stakers")
        assert eng.ledger.get_unit("USDX").unit_type == UNIT_TYPE_CREDIT
        assert eng.ledger.is_registered("stakers")

    def test_existing_reward_sink_wallet_is_reused(self):
        ledger = Ledger("test", T0, verbose=False, test_mode=True)
        ledger.register_wallet("staking_rewards")
        provision_market(ledger, CDPMarket(), ADMIN)
        assert ledger.is_registered("staking_rewards")

    def test_provisioning_twice_raises(self, engine):
        with pytest.raises(ValueError):
            provision_market(engine.ledger, engine.market, ADMIN)


# ============================================================================
# BOND REGISTRY
# ============================================================================

class TestRegisterAndIssue:

    def test_caller_receives_one_token(self, engine):
        engine.ledger.register_wallet("alice")
        tx = engine.register_and_issue("alice", "US0378331005")

        assert tx is not None
        assert engine.ledger.get_balance("alice", "BOND") == Decimal("1")
        assert engine.get_bond("US0378331005") == BondRecord("US0378331005", "BOND", "alice")

    def test_duplicate_raises(self, engine):
        engine.ledger.register_wallet("alice")
        engine.register_and_issue("alice", "US0378331005")
        with pytest.raises(InstrumentAlreadyRegistered):
            engine.register_and_issue("alice", "US0378331005")

    def test_unregistered_caller_rejected_by_ledger(self, engine):
        with pytest.raises(TransactionRejected, match="wallet not registered: carol"):
            engine.register_and_issue("carol", "US0378331005")


# ============================================================================
# ISSUANCE
# ============================================================================

class TestDepositCollateralAndBorrow:

    def test_single_unit(self, funded_engine):
        funded_engine.deposit_collateral_and_borrow("alice", 1)

        assert funded_engine.ledger.get_balance("alice", "CUSD") == Decimal("950")
        assert funded_engine.get_vault("alice") == VaultState(
            owner="alice", collateral_units=1, borrowed=950,
            last_event_timestamp=unix_timestamp(T0),
        )

    def test_three_units(self, funded_engine):
        funded_engine.deposit_collateral_and_borrow("alice", 3)
        assert funded_engine.ledger.get_balance("alice", "CUSD") == Decimal("2850")
        assert funded_engine.get_vault("alice").borrowed == 2850

    def test_vault_record_held_by_owner(self, funded_engine):
        funded_engine.deposit_collateral_and_borrow("alice", 1)
        assert funded_engine.ledger.get_balance("alice", "VAULT_alice") == Decimal("1")

    def test_repeated_deposits_in_same_second(self, funded_engine):
        """Each deposit builds on the previous snapshot, so none is a replay."""
        funded_engine.deposit_collateral_and_borrow("alice", 1)
        funded_engine.deposit_collateral_and_borrow("alice", 1)

        vault = funded_engine.get_vault("alice")
        assert vault.collateral_units == 2
        assert vault.borrowed == 1900
        assert funded_engine.ledger.get_balance("alice", "CUSD") == Decimal("1900")

    def test_collateral_stays_in_wallet(self, funded_engine):
        funded_engine.deposit_collateral_and_borrow("alice", 2)
        assert funded_engine.ledger.get_balance("alice", "BOND") == Decimal("5")

    def test_insufficient_collateral_changes_nothing(self, funded_engine):
        log_size = len(funded_engine.ledger.transaction_log)
        with pytest.raises(InsufficientCollateral):
            funded_engine.deposit_collateral_and_borrow("bob", 4)

        assert "VAULT_bob" not in funded_engine.ledger.list_units()
        assert funded_engine.ledger.get_balance("bob", "CUSD") == Decimal("0")
        assert len(funded_engine.ledger.transaction_log) == log_size

    def test_unregistered_identity_has_no_collateral(self, funded_engine):
        log_size = len(funded_engine.ledger.transaction_log)
        with pytest.raises(InsufficientCollateral):
            funded_engine.deposit_collateral_and_borrow("newcomer", 1)

        assert "VAULT_newcomer" not in funded_engine.ledger.list_units()
        assert len(funded_engine.ledger.transaction_log) == log_size

    def test_zero_units_raises(self, funded_engine):
        with pytest.raises(ValueError):
            funded_engine.deposit_collateral_and_borrow("alice", 0)

    def test_unknown_vault(self, funded_engine):
        with pytest.raises(UnitNotRegistered):
            funded_engine.get_vault("alice")

    def test_borrowed_within_debt_ceiling(self, funded_engine):
        for n in (1, 2, 2):
            funded_engine.deposit_collateral_and_borrow("alice", n)
        vault = funded_engine.get_vault("alice")
        assert vault.borrowed <= calculate_debt_ceiling(vault.collateral_units)


# ============================================================================
# RATE CONFIGURATION
# ============================================================================

class TestSetBorrowRate:

    def test_admin_sets_rate(self, engine):
        engine.set_borrow_rate(ADMIN, 750)
        assert engine.get_rate_config().borrow_rate_bps == 750

    def test_non_admin_rejected(self, engine):
        with pytest.raises(Unauthorized):
            engine.set_borrow_rate("mallory", 10_000)
        assert engine.get_rate_config().borrow_rate_bps == 500

    def test_same_rate_is_noop(self, engine):
        assert engine.set_borrow_rate(ADMIN, 500) is None
        assert engine.ledger.transaction_log == []


# ============================================================================
# ACCRUAL
# ============================================================================

class TestAccrueInterest:

    def test_one_year(self, funded_engine):
        """950 borrowed at 5% for a year: floor(47.5) = 47 to the reward sink."""
        funded_engine.deposit_collateral_and_borrow("alice", 1)
        funded_engine.ledger.advance_time(T0 + ONE_YEAR)
        funded_engine.accrue_interest(vault_symbol("alice"))

        ledger = funded_engine.ledger
        assert ledger.get_balance("staking_rewards", "CUSD") == Decimal("47")
        vault = funded_engine.get_vault("alice")
        assert vault.borrowed == 950
        assert vault.last_event_timestamp == unix_timestamp(T0 + ONE_YEAR)

    def test_back_to_back_accruals(self, funded_engine):
        """The second accrual in the same second finds nothing to do."""
        funded_engine.deposit_collateral_and_borrow("alice", 1)
        funded_engine.ledger.advance_time(T0 + ONE_YEAR)

        assert funded_engine.accrue_interest("VAULT_alice") is not None
        assert funded_engine.accrue_interest("VAULT_alice") is None
        assert funded_engine.ledger.get_balance("staking_rewards", "CUSD") == Decimal("47")

    def test_split_interval_floors_each_part(self, funded_engine):
        """Two half-year accruals floor separately: 23 + 23 instead of 47."""
        funded_engine.deposit_collateral_and_borrow("alice", 1)
        half = timedelta(seconds=ONE_YEAR.total_seconds() / 2)
        funded_engine.ledger.advance_time(T0 + half)
        funded_engine.accrue_interest("VAULT_alice")
        funded_engine.ledger.advance_time(T0 + ONE_YEAR)
        funded_engine.accrue_interest("VAULT_alice")

        assert funded_engine.ledger.get_balance("staking_rewards", "CUSD") == Decimal("46")

    def test_rate_change_applies_to_whole_interval(self, funded_engine):
        funded_engine.deposit_collateral_and_borrow("alice", 1)
        funded_engine.ledger.advance_time(T0 + timedelta(days=180))
        funded_engine.set_borrow_rate(ADMIN, 1000)
        funded_engine.ledger.advance_time(T0 + ONE_YEAR)
        funded_engine.accrue_interest("VAULT_alice")

        assert funded_engine.ledger.get_balance("staking_rewards", "CUSD") == Decimal("95")

    def test_zero_rate_advances_timestamp_only(self):
        eng = make_engine(borrow_rate_bps=0)
        fund_collateral(eng, "alice", 1)
        eng.deposit_collateral_and_borrow("alice", 1)
        eng.ledger.advance_time(T0 + ONE_YEAR)

        tx = eng.accrue_interest("VAULT_alice")
        assert tx is not None
        assert tx.moves == ()
        assert eng.ledger.get_balance("staking_rewards", "CUSD") == Decimal("0")
        assert eng.get_vault("alice").last_event_timestamp == unix_timestamp(T0 + ONE_YEAR)

    def test_clock_behind_vault_raises(self, funded_engine):
        funded_engine.deposit_collateral_and_borrow("alice", 1)
        future = unix_timestamp(T0) + 3600
        funded_engine.ledger.update_unit_state("VAULT_alice", {'last_event_timestamp': future})
        with pytest.raises(InvalidClockOrdering):
            funded_engine.accrue_interest("VAULT_alice")

    def test_unknown_vault(self, engine):
        with pytest.raises(UnitNotRegistered):
            engine.accrue_interest("VAULT_nobody")

    @pytest.mark.parametrize("symbol", ["CUSD", "BOND", "CDP_CONFIG"])
    def test_non_vault_unit_raises(self, engine, symbol):
        with pytest.raises(UnitNotRegistered):
            engine.accrue_interest(symbol)
        assert engine.ledger.transaction_log == []


class TestAccrueAll:

    def test_sweeps_every_vault(self, funded_engine):
        funded_engine.deposit_collateral_and_borrow("alice", 1)
        funded_engine.deposit_collateral_and_borrow("bob", 3)
        funded_engine.ledger.advance_time(T0 + ONE_YEAR)

        executed = funded_engine.accrue_all()

        assert [tx.origin.unit_symbol for tx in executed] == ["VAULT_alice", "VAULT_bob"]
        # 47 (alice) + floor(2850 * 0.05) = 142 (bob)
        assert funded_engine.ledger.get_balance("staking_rewards", "CUSD") == Decimal("189")

    def test_second_sweep_is_empty(self, funded_engine):
        funded_engine.deposit_collateral_and_borrow("alice", 1)
        funded_engine.ledger.advance_time(T0 + ONE_YEAR)
        funded_engine.accrue_all()
        assert funded_engine.accrue_all() == []

    def test_no_vaults(self, engine):
        assert engine.accrue_all() == []


# ============================================================================
# CONSERVATION AND OUTPUT
# ============================================================================

class TestScenario:

    def test_full_scenario_conserves_supply(self, funded_engine):
        funded_engine.deposit_collateral_and_borrow("alice", 2)
        funded_engine.deposit_collateral_and_borrow("bob", 1)
        funded_engine.ledger.advance_time(T0 + ONE_YEAR)
        funded_engine.accrue_all()

        ok, outstanding = verify_conservation(funded_engine.ledger, "CUSD")
        assert ok
        borrowed = sum(funded_engine.get_vault(o).borrowed for o in ("alice", "bob"))
        interest = funded_engine.ledger.get_balance("staking_rewards", "CUSD")
        assert outstanding == borrowed + interest
        ledger = funded_engine.ledger
        assert all(ledger.total_supply(u) == 0 for u in ledger.list_units())

    def test_verbose_engine_lines(self, capsys):
        ledger = Ledger("loud", T0, verbose=True, test_mode=True)
        eng = provision_market(ledger, CDPMarket(), ADMIN, 500)
        ledger.register_wallet("alice")
        eng.register_and_issue("alice", "US0378331005")
        eng.deposit_collateral_and_borrow("alice", 1)

        out = capsys.readouterr().out
        assert "[CDP] alice registers bond US0378331005" in out
        assert "[CDP] alice deposits 1 BOND" in out
        assert "✓ APPLIED" in out
