"""
token_ledger - ERC20 token with transfer tax and holder limits on a double-entry ledger

Usage:
    from token_ledger import Ledger, TokenContract, get_signers, parse_ether

    ledger = Ledger("local", verbose=False)
    owner, addr1, addr2 = get_signers(3)

    # Deployment mints the whole supply to the deployer
    token = TokenContract.deploy(ledger, owner)

    # Owner transfers are untaxed
    token.transfer(addr1.address, parse_ether(100))

    # Transfers between other holders pay the tax to the tax receiver
    token.connect(addr1).transfer(addr2.address, parse_ether(50))
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
    TokenError,
    InsufficientBalance,
    MaxTxExceeded,
    MaxWalletExceeded,
    NotOwner,
    InsufficientAllowance,
    InvalidAddress,
    TransactionRejected,
    ZERO_ADDRESS,
    UNIT_TYPE_TOKEN,
    MAX_UINT256,
)

# Ledger
from .ledger import Ledger

# Accounts and amounts
from .accounts import Signer, get_signers, is_address, to_address
from .amounts import parse_units, format_units, parse_ether, format_ether

# Configuration
from .config import TokenSettings, get_settings

# Token
from .units.token import (
    create_token_unit,
    compute_deployment,
    compute_fee,
    compute_transfer,
    compute_transfer_from,
    compute_approve,
    compute_increase_allowance,
    compute_decrease_allowance,
    compute_set_tax_fee,
    compute_set_tax_receiver,
    compute_set_max_tx_amount,
    compute_set_max_wallet_amount,
    renounce_ownership,
    transfer_ownership,
    token_transfer_rule,
)

# Events
from .events import TransferEvent, ApprovalEvent, events_for, query_filter

# Contract handle
from .contract import TokenContract

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType',
    'build_transaction', 'empty_pending_transaction',
    'Unit', 'UnitStateChange', 'ExecuteResult',
    'ZERO_ADDRESS', 'UNIT_TYPE_TOKEN', 'MAX_UINT256',
    # Exceptions
    'LedgerError',
    'TransferRuleViolation', 'UnitNotRegistered',
    'TokenError', 'InsufficientBalance', 'MaxTxExceeded', 'MaxWalletExceeded',
    'NotOwner', 'InsufficientAllowance', 'InvalidAddress', 'TransactionRejected',
    # Ledger
    'Ledger',
    # Accounts and amounts
    'Signer', 'get_signers', 'is_address', 'to_address',
    'parse_units', 'format_units', 'parse_ether', 'format_ether',
    # Configuration
    'TokenSettings', 'get_settings',
    # Token
    'create_token_unit', 'compute_deployment', 'compute_fee',
    'compute_transfer', 'compute_transfer_from',
    'compute_approve', 'compute_increase_allowance', 'compute_decrease_allowance',
    'compute_set_tax_fee', 'compute_set_tax_receiver',
    'compute_set_max_tx_amount', 'compute_set_max_wallet_amount',
    'renounce_ownership', 'transfer_ownership', 'token_transfer_rule',
    # Events
    'TransferEvent', 'ApprovalEvent', 'events_for', 'query_filter',
    # Contract
    'TokenContract',
]
