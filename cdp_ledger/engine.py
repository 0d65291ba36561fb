"""
engine.py - CDP Engine

Binds a Ledger to one CDP market and runs its operations end to end:

1. The pure compute function reads the ledger and builds a PendingTransaction
2. The ledger executes it atomically
3. A rejection becomes a TransactionRejected exception

Errors raised by a compute function (Unauthorized, InsufficientCollateral,
ArithmeticOverflow, ...) propagate unchanged and leave the ledger untouched.

The transaction log is the audit trail - the engine keeps no state of its own.
"""

from __future__ import annotations
from typing import List, Optional

from .core import (
    PendingTransaction, Transaction, ExecuteResult,
    TransactionRejected, UNIT_TYPE_VAULT,
    credit_token, collateral_token,
)
from .ledger import Ledger
from .units.rate_config import (
    RateConfig, create_rate_config_unit, load_rate_config, compute_set_borrow_rate,
)
from .units.vault import (
    CDPMarket, VaultState, vault_symbol, load_vault,
    compute_deposit_and_borrow, compute_interest_accrual,
)
from .units.bond_registry import BondRecord, get_bond_record, compute_register_and_issue


def provision_market(
    ledger: Ledger,
    market: CDPMarket,
    admin: str,
    borrow_rate_bps: int = 0,
) -> CDPEngine:
    """
    Register everything a market needs and return its engine.

    Registers the credit token, the collateral token, the reward sink wallet
    and the RateConfig record. A one-off step: provisioning the same market
    twice raises ValueError from the ledger.

    Example:
        ledger = Ledger("cdp", datetime(2025, 1, 1))
        engine = provision_market(ledger, CDPMarket(), admin="treasury", borrow_rate_bps=500)
    """
    ledger.register_unit(credit_token(market.credit_symbol, "CDP credit token"))
    ledger.register_unit(collateral_token(market.collateral_symbol, "Bond collateral token"))
    if not ledger.is_registered(market.reward_sink):
        ledger.register_wallet(market.reward_sink)
    ledger.register_unit(create_rate_config_unit(admin, borrow_rate_bps, market.config_symbol))
    return CDPEngine(ledger, market)


class CDPEngine:
    """
    Operations of one CDP market against a shared ledger.

    Safe to share between threads: the ledger serializes execution, and a
    transaction computed from a vault snapshot that changed in the meantime
    is rejected instead of overwriting the newer state.
    """

    def __init__(self, ledger: Ledger, market: CDPMarket):
        self.ledger = ledger
        self.market = market
        self.verbose = ledger.verbose

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def set_borrow_rate(self, caller: str, new_rate_bps: int) -> Optional[Transaction]:
        """Change the market's borrow rate. Only the RateConfig admin may call this."""
        if self.verbose:
            print(f"[CDP] {caller} sets borrow rate to {new_rate_bps} bps")
        pending = compute_set_borrow_rate(
            self.ledger, self.market.config_symbol, caller, new_rate_bps
        )
        return self._submit(pending)

    def deposit_collateral_and_borrow(self, caller: str, unit_count: int) -> Optional[Transaction]:
        """Deposit unit_count collateral units into caller's vault and issue credit against them."""
        if self.verbose:
            print(f"[CDP] {caller} deposits {unit_count} {self.market.collateral_symbol}")
        pending = compute_deposit_and_borrow(self.ledger, self.market, caller, unit_count)
        return self._submit(pending)

    def accrue_interest(self, vault_sym: str) -> Optional[Transaction]:
        """
        Accrue interest on one vault. Any caller may trigger this.

        Returns None when no time has passed since the vault's last event.
        """
        pending = compute_interest_accrual(self.ledger, self.market, vault_sym)
        return self._submit(pending)

    def register_and_issue(self, caller: str, isin: str) -> Optional[Transaction]:
        """Register a bond and issue one collateral token to caller."""
        if self.verbose:
            print(f"[CDP] {caller} registers bond {isin}")
        pending = compute_register_and_issue(
            self.ledger, self.market.collateral_symbol, caller, isin
        )
        return self._submit(pending)

    def accrue_all(self) -> List[Transaction]:
        """
        Accrue interest on every vault, in symbol order.

        An on-demand sweep for a keeper to call; nothing here runs on a timer.

        Returns:
            Transactions executed (vaults with nothing to accrue are skipped)
        """
        executed: List[Transaction] = []
        for symbol in sorted(self.ledger.units.keys()):
            if self.ledger.units[symbol].unit_type != UNIT_TYPE_VAULT:
                continue
            tx = self.accrue_interest(symbol)
            if tx is not None:
                executed.append(tx)
        if self.verbose:
            print(f"[CDP] accrual sweep: {len(executed)} vault(s) updated")
        return executed

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_vault(self, owner: str) -> VaultState:
        """
        Raises:
            UnitNotRegistered: If owner has never deposited
        """
        return load_vault(self.ledger, vault_symbol(owner))

    def get_rate_config(self) -> RateConfig:
        return load_rate_config(self.ledger, self.market.config_symbol)

    def get_bond(self, isin: str) -> BondRecord:
        return get_bond_record(self.ledger, isin)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _submit(self, pending: PendingTransaction) -> Optional[Transaction]:
        """
        Execute pending and return its logged transaction.

        Every engine call computes from a fresh snapshot, so an intent the
        ledger has already seen is a concurrent duplicate, not a retry.

        Raises:
            TransactionRejected: If the ledger rejects the transaction or
                                 already applied the same intent
        """
        if pending.is_empty():
            return None

        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise TransactionRejected(self.ledger.last_rejection)
        if result == ExecuteResult.ALREADY_APPLIED:
            raise TransactionRejected(f"intent {pending.intent_id} already applied")

        # Other threads may have appended since; match on intent
        for tx in reversed(self.ledger.transaction_log):
            if tx.intent_id == pending.intent_id:
                return tx
        return None
