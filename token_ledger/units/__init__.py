"""
Units module - The token unit and the calls that act on it.

All unit factories and related functions are re-exported here for convenience.
"""

from .token import (
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
    get_allowance,
    renounce_ownership,
    transfer_ownership,
    token_transfer_rule,
)
