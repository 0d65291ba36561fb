"""
bond_registry.py - Bond Registration and Collateral Token Issuance

Registering a bond records its ISIN and issues exactly one collateral token
to the registrant, in one transaction:

    BondRecord = {isin, mint, authority}

mint is the collateral token symbol, authority the identity that
registered the bond. An ISIN has at most 12 characters and may be
registered once.

The vault engine accepts any collateral token balance. It does not check
that the tokens came from here.
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal

from ..core import (
    LedgerView, Move, PendingTransaction, Unit,
    TransactionOrigin, OriginType, build_transaction,
    UNIT_TYPE_BOND_RECORD, SYSTEM_WALLET,
    InvalidIdentifierLength, InstrumentAlreadyRegistered, UnitNotRegistered,
    check_issuance, authority_bound_transfer_rule, _freeze_state,
)


MAX_ISIN_LENGTH = 12

BOND_PREFIX = "BOND_"


@dataclass(frozen=True, slots=True)
class BondRecord:
    """Typed snapshot of a bond registration."""
    isin: str
    mint: str
    authority: str


def bond_symbol(isin: str) -> str:
    return f"{BOND_PREFIX}{isin}"


def _validate_isin(isin: str) -> str:
    if not isinstance(isin, str) or not isin.strip():
        raise ValueError("isin cannot be empty")
    if len(isin) > MAX_ISIN_LENGTH:
        raise InvalidIdentifierLength(
            f"isin {isin!r} has {len(isin)} characters, maximum is {MAX_ISIN_LENGTH}"
        )
    return isin


def create_bond_record_unit(isin: str, mint: str, authority: str) -> Unit:
    """
    Create the record unit for a bond registration.

    The record is held by its authority and cannot be transferred.
    """
    _validate_isin(isin)
    if not authority or not authority.strip():
        raise ValueError("authority cannot be empty")

    return Unit(
        symbol=bond_symbol(isin),
        name=f"Bond registration {isin}",
        unit_type=UNIT_TYPE_BOND_RECORD,
        min_balance=Decimal("0"),
        max_balance=Decimal("1"),
        decimal_places=0,
        transfer_rule=authority_bound_transfer_rule,
        _frozen_state=_freeze_state({
            'isin': isin,
            'mint': mint,
            'authority': authority,
        }),
    )


def get_bond_record(view: LedgerView, isin: str) -> BondRecord:
    """
    Look up a bond registration by ISIN.

    Raises:
        UnitNotRegistered: If the ISIN was never registered
    """
    symbol = bond_symbol(isin)
    if symbol not in view.list_units():
        raise UnitNotRegistered(f"Bond {isin} not registered")
    raw = view.get_unit_state(symbol)
    return BondRecord(isin=raw['isin'], mint=raw['mint'], authority=raw['authority'])


def compute_register_and_issue(
    view: LedgerView,
    collateral_symbol: str,
    caller: str,
    isin: str,
) -> PendingTransaction:
    """
    Register a bond and issue one collateral token to the caller.

    Args:
        view: Read-only ledger access
        collateral_symbol: Collateral token to issue
        caller: Registrant; becomes the record's authority
        isin: Bond identifier, 1 to 12 characters

    Returns:
        PendingTransaction creating the record, handing it to the caller and
        issuing one collateral token.

    Raises:
        ValueError: If isin or caller is empty
        InvalidIdentifierLength: If isin is longer than 12 characters
        InstrumentAlreadyRegistered: If isin already has a record
        ArithmeticOverflow: If collateral supply would exceed u64
    """
    record = create_bond_record_unit(isin, collateral_symbol, caller)
    if record.symbol in view.list_units():
        raise InstrumentAlreadyRegistered(f"Bond {isin} is already registered")
    check_issuance(view, collateral_symbol, 1)

    moves = [
        Move(Decimal("1"), record.symbol, SYSTEM_WALLET, caller, f"register_{record.symbol}"),
        Move(Decimal("1"), collateral_symbol, SYSTEM_WALLET, caller, f"issue_{record.symbol}"),
    ]
    return build_transaction(
        view,
        moves,
        origin=TransactionOrigin(
            OriginType.USER_ACTION, caller, unit_symbol=record.symbol, event_type="REGISTER_AND_ISSUE",
        ),
        units_to_create=(record,),
    )
