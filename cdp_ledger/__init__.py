"""
cdp_ledger - Collateralized Debt Position Ledger

Users lock bond collateral units in a per-owner vault and receive newly
issued credit tokens against them; outstanding debt accrues simple interest
that is paid out to a reward sink.

Usage:
    from cdp_ledger import Ledger, CDPMarket, provision_market

    ledger = Ledger("cdp", datetime(2025, 1, 1))
    market = CDPMarket(credit_symbol="CUSD", collateral_symbol="BOND")
    engine = provision_market(ledger, market, admin="treasury", borrow_rate_bps=500)

    ledger.register_wallet("alice")
    engine.register_and_issue("alice", "US0378331005")   # alice receives 1 BOND
    engine.deposit_collateral_and_borrow("alice", 1)     # alice receives 950 CUSD

    ledger.advance_time(datetime(2026, 1, 1))
    engine.accrue_interest(vault_symbol("alice"))        # 47 CUSD to the reward sink
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    TransactionRejected,
    CDPError,
    Unauthorized,
    InsufficientCollateral,
    ArithmeticOverflow,
    InvalidClockOrdering,
    InvalidIdentifierLength,
    InstrumentAlreadyRegistered,
    owner_bound_transfer_rule,
    authority_bound_transfer_rule,
    credit_token,
    collateral_token,
    outstanding_supply,
    unix_timestamp,
    SYSTEM_WALLET,
    U64_MAX,
    U128_MAX,
    I64_MIN,
    I64_MAX,
    UNIT_TYPE_CREDIT,
    UNIT_TYPE_COLLATERAL,
    UNIT_TYPE_RATE_CONFIG,
    UNIT_TYPE_VAULT,
    UNIT_TYPE_BOND_RECORD,
)

# Ledger
from .ledger import Ledger

# Rate configuration
from .units.rate_config import (
    RateConfig,
    create_rate_config_unit,
    load_rate_config,
    compute_set_borrow_rate,
)

# Vaults
from .units.vault import (
    UNIT_VALUE,
    MARGIN_PERCENT,
    INTEREST_DENOMINATOR,
    CDPMarket,
    VaultState,
    vault_symbol,
    create_vault_unit,
    load_vault,
    calculate_mintable,
    calculate_debt_ceiling,
    calculate_elapsed,
    calculate_interest,
    compute_deposit_and_borrow,
    compute_interest_accrual,
    transact as vault_transact,
)

# Bond registry
from .units.bond_registry import (
    MAX_ISIN_LENGTH,
    BondRecord,
    create_bond_record_unit,
    get_bond_record,
    compute_register_and_issue,
)

# Engine
from .engine import CDPEngine, provision_market

__version__ = "1.0.0"

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction', 'empty_pending_transaction',
    'Unit', 'UnitStateChange', 'ExecuteResult',
    'owner_bound_transfer_rule', 'authority_bound_transfer_rule',
    'credit_token', 'collateral_token',
    'outstanding_supply', 'unix_timestamp',
    'SYSTEM_WALLET', 'U64_MAX', 'U128_MAX', 'I64_MIN', 'I64_MAX',
    'UNIT_TYPE_CREDIT', 'UNIT_TYPE_COLLATERAL', 'UNIT_TYPE_RATE_CONFIG',
    'UNIT_TYPE_VAULT', 'UNIT_TYPE_BOND_RECORD',
    # Errors
    'LedgerError', 'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'TransactionRejected', 'CDPError', 'Unauthorized', 'InsufficientCollateral',
    'ArithmeticOverflow', 'InvalidClockOrdering', 'InvalidIdentifierLength',
    'InstrumentAlreadyRegistered',
    # Ledger
    'Ledger',
    # Rate configuration
    'RateConfig', 'create_rate_config_unit', 'load_rate_config', 'compute_set_borrow_rate',
    # Vaults
    'UNIT_VALUE', 'MARGIN_PERCENT', 'INTEREST_DENOMINATOR',
    'CDPMarket', 'VaultState', 'vault_symbol', 'create_vault_unit', 'load_vault',
    'calculate_mintable', 'calculate_debt_ceiling', 'calculate_elapsed', 'calculate_interest',
    'compute_deposit_and_borrow', 'compute_interest_accrual', 'vault_transact',
    # Bond registry
    'MAX_ISIN_LENGTH', 'BondRecord', 'create_bond_record_unit', 'get_bond_record',
    'compute_register_and_issue',
    # Engine
    'CDPEngine', 'provision_market',
]
