"""
vault.py - Collateral Vaults: Credit Issuance and Interest Accrual

A Vault is a per-owner record of collateral deposited and credit issued
against it:

    Vault = {owner, collateral_units, borrowed, last_event_timestamp}

=== ISSUANCE ===

A deposit of n collateral units authorizes new debt valued on THAT deposit
only, never on the cumulative collateral balance:

    mintable = floor(UNIT_VALUE * n * (100 - MARGIN_PERCENT) / 100)

    n = 1  ->  950
    n = 3  ->  2850

The vault's collateral_units grows by n, borrowed grows by mintable, and
mintable credit tokens are issued to the owner. The caller must hold n
collateral tokens; they stay in the caller's wallet.

=== ACCRUAL ===

Anyone may accrue interest on any vault:

    interest = floor(borrowed * borrow_rate_bps * elapsed / (10000 * 365 * 24 * 3600))

Simple interest over a 365-day year at the CURRENT rate. Interest tokens
are issued to the market's reward sink; the vault's borrowed field is not
touched. last_event_timestamp moves to now even when interest is zero.

=== INTEGER RANGES ===

Record fields are u64 (timestamps i64). Products are checked against a
u128 intermediate before the single division. Anything out of range raises
ArithmeticOverflow; a clock reading earlier than the stored timestamp
raises InvalidClockOrdering.

=== PURE FUNCTIONS ===

    calculate_mintable(unit_count) -> int
    calculate_debt_ceiling(collateral_units) -> int
    calculate_elapsed(now, last_event_timestamp) -> int
    calculate_interest(borrowed, rate_bps, elapsed) -> int
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    build_transaction, empty_pending_transaction,
    SYSTEM_WALLET, UNIT_TYPE_VAULT,
    U64_MAX, U128_MAX, I64_MIN, I64_MAX,
    InsufficientCollateral, InvalidClockOrdering, UnitNotRegistered,
    require_int, check_range, check_issuance, unix_timestamp,
    owner_bound_transfer_rule, _freeze_state,
)
from .rate_config import DEFAULT_CONFIG_SYMBOL, load_rate_config


# =============================================================================
# CONSTANTS
# =============================================================================

# Value ascribed to one collateral unit, in credit tokens
UNIT_VALUE = 1000

# Haircut applied to collateral value before it may be borrowed against
MARGIN_PERCENT = 5

BPS_DENOMINATOR = 10_000
SECONDS_PER_YEAR = 365 * 24 * 3600

# 10000 * 365 * 24 * 3600
INTEREST_DENOMINATOR = BPS_DENOMINATOR * SECONDS_PER_YEAR

VAULT_PREFIX = "VAULT_"

VAULT_FIELDS = ('owner', 'collateral_units', 'borrowed', 'last_event_timestamp')


# =============================================================================
# DATACLASSES
# =============================================================================

@dataclass(frozen=True, slots=True)
class CDPMarket:
    """
    Symbols and wallets a market's operations read and write.

    config_symbol: RateConfig record
    credit_symbol: Credit token issued against collateral
    collateral_symbol: Collateral token counted at deposit
    reward_sink: Wallet receiving accrued interest
    """
    credit_symbol: str = "CUSD"
    collateral_symbol: str = "BOND"
    reward_sink: str = "staking_rewards"
    config_symbol: str = DEFAULT_CONFIG_SYMBOL


@dataclass(frozen=True, slots=True)
class VaultState:
    """Typed snapshot of a vault record."""
    owner: str
    collateral_units: int
    borrowed: int
    last_event_timestamp: int


def vault_symbol(owner: str) -> str:
    """Symbol of the vault owned by owner."""
    return f"{VAULT_PREFIX}{owner}"


def _vault_state_or_raise(view: LedgerView, symbol: str) -> Dict[str, Any]:
    # Other registered units (tokens, the rate config) are not vaults
    if not symbol.startswith(VAULT_PREFIX) or symbol not in view.list_units():
        raise UnitNotRegistered(f"Vault {symbol} not registered")
    raw = view.get_unit_state(symbol)
    if not raw or any(key not in raw for key in VAULT_FIELDS):
        raise UnitNotRegistered(f"Vault {symbol} not registered")
    return raw


def _vault_from_dict(raw: Dict[str, Any]) -> VaultState:
    return VaultState(
        owner=raw['owner'],
        collateral_units=raw['collateral_units'],
        borrowed=raw['borrowed'],
        last_event_timestamp=raw['last_event_timestamp'],
    )


def to_state_dict(vault: VaultState) -> Dict[str, Any]:
    """Inverse of load_vault(): the dict stored as unit state."""
    return {
        'owner': vault.owner,
        'collateral_units': vault.collateral_units,
        'borrowed': vault.borrowed,
        'last_event_timestamp': vault.last_event_timestamp,
    }


def load_vault(view: LedgerView, symbol: str) -> VaultState:
    """
    Load a vault record as a typed snapshot.

    Raises:
        UnitNotRegistered: If no vault exists under symbol
    """
    return _vault_from_dict(_vault_state_or_raise(view, symbol))


# =============================================================================
# PURE CALCULATION FUNCTIONS
# =============================================================================

def calculate_debt_ceiling(collateral_units: int) -> int:
    """
    Credit that collateral_units may back after the margin haircut.

        floor(UNIT_VALUE * collateral_units * (100 - MARGIN_PERCENT) / 100)

    The product is formed in the u128 range and the result must fit u64.

    Raises:
        ArithmeticOverflow: If the product or the result leaves its range
    """
    require_int("collateral_units", collateral_units)
    check_range("collateral_units", collateral_units, U64_MAX)
    product = check_range(
        "collateral value product",
        UNIT_VALUE * collateral_units * (100 - MARGIN_PERCENT),
        U128_MAX,
    )
    return check_range("mintable", product // 100, U64_MAX)


def calculate_mintable(unit_count: int) -> int:
    """
    Credit authorized by a single deposit of unit_count collateral units.

    Only the deposit itself is valued. Collateral already in the vault does
    not raise or lower the amount.

    Raises:
        ValueError: If unit_count is not a positive integer
        ArithmeticOverflow: If the amount leaves the u64 range
    """
    require_int("unit_count", unit_count)
    if unit_count <= 0:
        raise ValueError(f"unit_count must be positive, got {unit_count}")
    return calculate_debt_ceiling(unit_count)


def calculate_elapsed(now: int, last_event_timestamp: int) -> int:
    """
    Seconds between the last vault event and now.

    Raises:
        InvalidClockOrdering: If now is earlier than last_event_timestamp
    """
    elapsed = now - last_event_timestamp
    if elapsed < 0:
        raise InvalidClockOrdering(
            f"clock reading {now} is earlier than last event {last_event_timestamp}"
        )
    return elapsed


def calculate_interest(borrowed: int, rate_bps: int, elapsed: int) -> int:
    """
    Simple interest owed on borrowed over elapsed seconds.

        floor(borrowed * rate_bps * elapsed / INTEREST_DENOMINATOR)

    Example:
        borrowed=950, rate_bps=500, elapsed=one year -> floor(47.5) = 47

    Raises:
        ArithmeticOverflow: If the three-way product exceeds u128 or the
                            interest exceeds u64
    """
    product = check_range("interest product", borrowed * rate_bps * elapsed, U128_MAX)
    return check_range("interest", product // INTEREST_DENOMINATOR, U64_MAX)


# =============================================================================
# VAULT FACTORY
# =============================================================================

def create_vault_unit(owner: str) -> Unit:
    """
    Create an empty vault record for owner.

    The record is held by its owner (one unit) and cannot be transferred.
    """
    if not owner or not owner.strip():
        raise ValueError("owner cannot be empty")

    return Unit(
        symbol=vault_symbol(owner),
        name=f"Collateral vault of {owner}",
        unit_type=UNIT_TYPE_VAULT,
        min_balance=Decimal("0"),
        max_balance=Decimal("1"),
        decimal_places=0,
        transfer_rule=owner_bound_transfer_rule,
        _frozen_state=_freeze_state({
            'owner': owner,
            'collateral_units': 0,
            'borrowed': 0,
            'last_event_timestamp': 0,
        }),
    )


def _now(view: LedgerView) -> int:
    return check_range("timestamp", unix_timestamp(view.current_time), I64_MAX, I64_MIN)


# =============================================================================
# ISSUANCE
# =============================================================================

def compute_deposit_and_borrow(
    view: LedgerView,
    market: CDPMarket,
    caller: str,
    unit_count: int,
) -> PendingTransaction:
    """
    Deposit collateral units into the caller's vault and borrow against them.

    The vault is created on first use. In one transaction:
    1. collateral_units += unit_count
    2. owner = caller
    3. borrowed += calculate_mintable(unit_count)
    4. last_event_timestamp = now
    5. mintable credit tokens are issued to the caller

    Args:
        view: Read-only ledger access
        market: Market wiring (credit and collateral symbols)
        caller: Identity depositing; also the vault owner
        unit_count: Collateral units deposited (positive)

    Returns:
        PendingTransaction with the vault update and the issuance move

    Raises:
        ValueError: If unit_count is not a positive integer or caller is empty
        InsufficientCollateral: If caller holds fewer than unit_count units
        ArithmeticOverflow: If any amount leaves its integer range

    Example:
        pending = compute_deposit_and_borrow(view, market, "alice", 3)
        ledger.execute(pending)
        # alice receives 2850 credit tokens
    """
    if not caller or not caller.strip():
        raise ValueError("caller cannot be empty")
    mintable = calculate_mintable(unit_count)

    # An identity the ledger has never seen holds nothing
    held = Decimal("0")
    if caller in view.list_wallets():
        held = view.get_balance(caller, market.collateral_symbol)
    if held < unit_count:
        raise InsufficientCollateral(
            f"{caller} holds {held} {market.collateral_symbol}, needs {unit_count}"
        )

    symbol = vault_symbol(caller)
    moves = []
    units_to_create = ()
    if symbol in view.list_units():
        old_state = view.get_unit_state(symbol)
    else:
        unit = create_vault_unit(caller)
        units_to_create = (unit,)
        old_state = unit.state
        moves.append(Move(Decimal("1"), symbol, SYSTEM_WALLET, caller, f"open_{symbol}"))

    vault = _vault_from_dict(old_state)
    updated = VaultState(
        owner=caller,
        collateral_units=check_range(
            "collateral_units", vault.collateral_units + unit_count, U64_MAX
        ),
        borrowed=check_range("borrowed", vault.borrowed + mintable, U64_MAX),
        last_event_timestamp=_now(view),
    )
    check_issuance(view, market.credit_symbol, mintable)

    moves.append(Move(
        Decimal(mintable), market.credit_symbol, SYSTEM_WALLET, caller, f"borrow_{symbol}",
    ))
    new_state = {**old_state, **to_state_dict(updated)}

    return build_transaction(
        view,
        moves,
        [UnitStateChange(unit=symbol, old_state=old_state, new_state=new_state)],
        origin=TransactionOrigin(
            OriginType.USER_ACTION, caller, unit_symbol=symbol, event_type="DEPOSIT_AND_BORROW",
        ),
        units_to_create=units_to_create,
    )


# =============================================================================
# ACCRUAL
# =============================================================================

def compute_interest_accrual(
    view: LedgerView,
    market: CDPMarket,
    vault_sym: str,
) -> PendingTransaction:
    """
    Accrue interest on a vault since its last event.

    Not restricted to the owner: accrual is public maintenance. The current
    rate from the market's RateConfig applies to the whole interval.

    Returns:
        PendingTransaction issuing the interest to the reward sink (no move
        if interest rounds to zero) and resetting last_event_timestamp.
        Empty if no time has passed.

    Raises:
        UnitNotRegistered: If the vault does not exist
        InvalidClockOrdering: If the clock is behind the vault's timestamp
        ArithmeticOverflow: If the interest computation leaves its range
    """
    old_state = _vault_state_or_raise(view, vault_sym)
    vault = _vault_from_dict(old_state)
    config = load_rate_config(view, market.config_symbol)

    now = _now(view)
    elapsed = calculate_elapsed(now, vault.last_event_timestamp)
    interest = calculate_interest(vault.borrowed, config.borrow_rate_bps, elapsed)

    if elapsed == 0:
        return empty_pending_transaction(view)

    moves = []
    if interest > 0:
        check_issuance(view, market.credit_symbol, interest)
        moves.append(Move(
            Decimal(interest), market.credit_symbol, SYSTEM_WALLET, market.reward_sink,
            f"interest_{vault_sym}",
        ))

    new_state = {**old_state, 'last_event_timestamp': now}
    return build_transaction(
        view,
        moves,
        [UnitStateChange(unit=vault_sym, old_state=old_state, new_state=new_state)],
        origin=TransactionOrigin(
            OriginType.MAINTENANCE, "accrual", unit_symbol=vault_sym, event_type="ACCRUE_INTEREST",
        ),
    )


# =============================================================================
# TRANSACT INTERFACE
# =============================================================================

def transact(
    view: LedgerView,
    market: CDPMarket,
    event_type: str,
    **kwargs,
) -> PendingTransaction:
    """
    Event-driven interface for vault operations.

    Args:
        view: Read-only ledger access
        market: Market wiring
        event_type: DEPOSIT_AND_BORROW (requires 'caller', 'unit_count')
                    or ACCRUE_INTEREST (requires 'vault_symbol')

    Raises:
        ValueError: On unknown event type or missing parameters
    """
    if event_type == 'DEPOSIT_AND_BORROW':
        caller = kwargs.get('caller')
        unit_count = kwargs.get('unit_count')
        if caller is None:
            raise ValueError("Missing 'caller' parameter for DEPOSIT_AND_BORROW event")
        if unit_count is None:
            raise ValueError("Missing 'unit_count' parameter for DEPOSIT_AND_BORROW event")
        return compute_deposit_and_borrow(view, market, caller, unit_count)

    elif event_type == 'ACCRUE_INTEREST':
        symbol = kwargs.get('vault_symbol')
        if symbol is None:
            raise ValueError("Missing 'vault_symbol' parameter for ACCRUE_INTEREST event")
        return compute_interest_accrual(view, market, symbol)

    else:
        raise ValueError(f"Unknown event type '{event_type}' for vault")
