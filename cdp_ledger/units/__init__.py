"""
Units module - Record units of a CDP market.

- RateConfig: shared borrow rate, changed only by its admin
- Vault: per-owner collateral and debt, with issuance and interest accrual
- BondRecord: bond registrations that issue collateral tokens

All factories and compute functions are re-exported here for convenience.
"""

# Rate configuration
from .rate_config import (
    DEFAULT_CONFIG_SYMBOL,
    RateConfig,
    create_rate_config_unit,
    load_rate_config,
    compute_set_borrow_rate,
)

# Vaults
from .vault import (
    UNIT_VALUE,
    MARGIN_PERCENT,
    BPS_DENOMINATOR,
    SECONDS_PER_YEAR,
    INTEREST_DENOMINATOR,
    CDPMarket,
    VaultState,
    vault_symbol,
    create_vault_unit,
    load_vault,
    to_state_dict,
    calculate_mintable,
    calculate_debt_ceiling,
    calculate_elapsed,
    calculate_interest,
    compute_deposit_and_borrow,
    compute_interest_accrual,
    transact as vault_transact,
)

# Bond registry
from .bond_registry import (
    MAX_ISIN_LENGTH,
    BondRecord,
    bond_symbol,
    create_bond_record_unit,
    get_bond_record,
    compute_register_and_issue,
)
