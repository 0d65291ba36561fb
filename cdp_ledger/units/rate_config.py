"""
rate_config.py - Shared Borrow Rate Configuration

One RateConfig record per market, created at provisioning time and owned
by an admin identity. It holds the per-annum borrow rate, in basis points,
that interest accrual reads.

    RateConfig = {admin, borrow_rate_bps, revision}

revision counts rate changes. It keeps every change a distinct intent, so
switching back to an earlier rate is never mistaken for a replay.

Only the admin may change the rate. A change takes effect for every later
accrual, including accruals that span time before the change: no rate
history is kept.
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal

from ..core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    build_transaction, empty_pending_transaction,
    Unauthorized, UNIT_TYPE_RATE_CONFIG, U64_MAX,
    require_int, check_range, _freeze_state,
)


DEFAULT_CONFIG_SYMBOL = "CDP_CONFIG"


@dataclass(frozen=True, slots=True)
class RateConfig:
    """Typed snapshot of the rate configuration record."""
    admin: str
    borrow_rate_bps: int
    revision: int = 0


def _validate_rate(new_rate_bps) -> int:
    require_int("borrow_rate_bps", new_rate_bps)
    if new_rate_bps < 0:
        raise ValueError(f"borrow_rate_bps cannot be negative, got {new_rate_bps}")
    return check_range("borrow_rate_bps", new_rate_bps, U64_MAX)


def create_rate_config_unit(
    admin: str,
    borrow_rate_bps: int = 0,
    symbol: str = DEFAULT_CONFIG_SYMBOL,
) -> Unit:
    """
    Create the RateConfig record unit.

    Args:
        admin: Identity allowed to change the rate
        borrow_rate_bps: Initial per-annum rate in basis points
        symbol: Record symbol

    Returns:
        Unit holding the record state. Register it with the ledger directly;
        creation is a provisioning step, not a user operation.
    """
    if not admin or not admin.strip():
        raise ValueError("admin cannot be empty")
    _validate_rate(borrow_rate_bps)

    return Unit(
        symbol=symbol,
        name=f"Borrow rate configuration (admin {admin})",
        unit_type=UNIT_TYPE_RATE_CONFIG,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),
        decimal_places=0,
        _frozen_state=_freeze_state({
            'admin': admin,
            'borrow_rate_bps': borrow_rate_bps,
            'revision': 0,
        }),
    )


def load_rate_config(view: LedgerView, symbol: str = DEFAULT_CONFIG_SYMBOL) -> RateConfig:
    """Read the RateConfig record from the ledger."""
    raw = view.get_unit_state(symbol)
    return RateConfig(
        admin=raw['admin'],
        borrow_rate_bps=raw['borrow_rate_bps'],
        revision=raw.get('revision', 0),
    )


def compute_set_borrow_rate(
    view: LedgerView,
    config_symbol: str,
    caller: str,
    new_rate_bps: int,
) -> PendingTransaction:
    """
    Change the borrow rate.

    Args:
        view: Read-only ledger access
        config_symbol: RateConfig record symbol
        caller: Identity requesting the change
        new_rate_bps: New per-annum rate in basis points (non-negative)

    Returns:
        PendingTransaction with the record update, or an empty transaction
        if the rate is unchanged.

    Raises:
        Unauthorized: If caller is not the record's admin
        ValueError: If new_rate_bps is not a non-negative integer
        ArithmeticOverflow: If new_rate_bps exceeds u64
    """
    _validate_rate(new_rate_bps)

    old_state = view.get_unit_state(config_symbol)
    if caller != old_state.get('admin'):
        raise Unauthorized(f"{caller} is not the admin of {config_symbol}")

    if old_state.get('borrow_rate_bps') == new_rate_bps:
        return empty_pending_transaction(view)

    new_state = {
        **old_state,
        'borrow_rate_bps': new_rate_bps,
        'revision': old_state.get('revision', 0) + 1,
    }
    return build_transaction(
        view,
        [],
        [UnitStateChange(unit=config_symbol, old_state=old_state, new_state=new_state)],
        origin=TransactionOrigin(
            OriginType.ADMIN, caller, unit_symbol=config_symbol, event_type="SET_BORROW_RATE",
        ),
    )
