"""
helpers.py - Shared values and helpers for token ledger tests
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Sequence

from token_ledger import Ledger, Signer, TokenContract


E = 10 ** 18

OWNER = "0x" + "a" * 40
ALICE = "0x" + "1" * 40
BOB = "0x" + "2" * 40
CAROL = "0x" + "3" * 40


def token_state(owner: str = OWNER, **overrides) -> dict:
    """Unit state of a freshly deployed token with default settings."""
    state = {
        'name': "MyToken",
        'symbol': "MTK",
        'decimals': 18,
        'total_supply': 1_000_000 * E,
        'owner': owner,
        'tax_receiver': owner,
        'tax_fee': 5,
        'max_tx_amount': 10_000 * E,
        'max_wallet_amount': 20_000 * E,
        'allowances': {},
    }
    state.update(overrides)
    return state


def balance_changes(token: TokenContract, accounts: Sequence, action: Callable[[], object]) -> List[int]:
    """
    Run action and return how each account's token balance moved.

    Equivalent of the changeTokenBalances matcher.
    """
    before = [token.balance_of(a) for a in accounts]
    action()
    return [token.balance_of(a) - b for a, b in zip(accounts, before)]


def verify_conservation(ledger: Ledger, symbol: str, expected_total: int) -> bool:
    """Holder balances sum to the supply and double entry holds."""
    return ledger.verify_double_entry({symbol: Decimal(expected_total)})['valid']


@dataclass
class Deployment:
    ledger: Ledger
    token: TokenContract
    owner: Signer
    addr1: Signer
    addr2: Signer
    addr3: Signer
