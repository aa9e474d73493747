"""
contract.py - Caller-facing handle for a deployed token

TokenContract binds a ledger, a token symbol and a calling address. Each
command builds a PendingTransaction with the pure functions in
units/token.py, executes it, and raises if the call reverts. Queries read
the ledger directly.

Usage:
    ledger = Ledger("local", verbose=False)
    owner, addr1, addr2 = get_signers(3)
    token = TokenContract.deploy(ledger, owner)

    token.transfer(addr1.address, parse_ether(100))
    token.connect(addr1).transfer(addr2.address, parse_ether(50))
    token.last_events()   # [Transfer(addr1, addr2, 47.5e18), Transfer(addr1, owner, 2.5e18)]
"""

from __future__ import annotations
from typing import Callable, List, Optional, Union

from .accounts import Signer, to_address
from .config import TokenSettings, get_settings
from .core import (
    ExecuteResult, PendingTransaction, Transaction,
    TransactionRejected, UnitNotRegistered, UnitState,
)
from .events import TokenEvent, events_for, query_filter
from .ledger import Ledger
from .units import token as token_unit

Caller = Union[Signer, str]


def _address_of(caller: Caller) -> str:
    if isinstance(caller, Signer):
        return caller.address
    return to_address(caller)


class TokenContract:
    """
    A deployed token as seen by one caller.

    Commands return True (transfer, approve) or None, and raise a TokenError
    subclass when the call reverts; a reverted call leaves the ledger
    untouched. The Transaction produced by the most recent command is kept in
    last_receipt (None when the call changed nothing).
    """

    def __init__(self, ledger: Ledger, symbol: str, caller: Caller):
        if symbol not in ledger.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        self.ledger = ledger
        self.symbol = symbol
        self.caller = _address_of(caller)
        self.last_receipt: Optional[Transaction] = None

    @classmethod
    def deploy(
        cls,
        ledger: Ledger,
        deployer: Caller,
        settings: Optional[TokenSettings] = None,
    ) -> "TokenContract":
        """
        Register the token and mint the whole supply to the deployer.

        Raises:
            TransactionRejected: If the ledger refuses the deployment
                                 (e.g. the symbol is already deployed)
        """
        settings = settings or get_settings()
        deployer_address = _address_of(deployer)
        if settings.symbol in ledger.units:
            raise TransactionRejected(f"Unit {settings.symbol} already deployed")
        pending = token_unit.compute_deployment(ledger, settings, deployer_address)
        if ledger.execute(pending) != ExecuteResult.APPLIED:
            raise TransactionRejected(ledger.last_rejection_reason)
        contract = cls(ledger, settings.symbol, deployer_address)
        contract.last_receipt = ledger.transaction_log[-1]
        return contract

    def connect(self, caller: Caller) -> "TokenContract":
        """Return a handle to the same token acting as `caller`."""
        return TokenContract(self.ledger, self.symbol, caller)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _call(self, build: Callable[[], PendingTransaction]) -> Optional[Transaction]:
        """Build a pending transaction and execute it; a revert leaves no receipt."""
        self.last_receipt = None
        pending = build()
        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise TransactionRejected(self.ledger.last_rejection_reason)
        if result == ExecuteResult.APPLIED and not pending.is_empty():
            self.last_receipt = self.ledger.transaction_log[-1]
        return self.last_receipt

    def last_events(self) -> List[TokenEvent]:
        """Events emitted by the most recent command of this handle."""
        if self.last_receipt is None:
            return []
        return events_for(self.last_receipt, self.symbol)

    def query_filter(self, event_name: Optional[str] = None, from_sequence: int = 0) -> List[TokenEvent]:
        """All events of this token in the ledger's history."""
        return query_filter(self.ledger.transaction_log, event_name, self.symbol, from_sequence)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def _state(self) -> UnitState:
        return self.ledger.get_unit_state(self.symbol)

    def name(self) -> str:
        return self._state()['name']

    def decimals(self) -> int:
        return self._state()['decimals']

    def total_supply(self) -> int:
        return self._state()['total_supply']

    def balance_of(self, account: Caller) -> int:
        return int(self.ledger.get_balance(_address_of(account), self.symbol))

    def owner(self) -> str:
        return self._state()['owner']

    def tax_receiver(self) -> str:
        return self._state()['tax_receiver']

    def tax_fee(self) -> int:
        return self._state()['tax_fee']

    def max_tx_amount(self) -> int:
        return self._state()['max_tx_amount']

    def max_wallet_amount(self) -> int:
        return self._state()['max_wallet_amount']

    def allowance(self, owner: Caller, spender: Caller) -> int:
        return token_unit.get_allowance(self._state(), _address_of(owner), _address_of(spender))

    # ========================================================================
    # COMMANDS
    # ========================================================================

    def transfer(self, to: Caller, amount: int) -> bool:
        self._call(lambda: token_unit.compute_transfer(
            self.ledger, self.symbol, self.caller, _address_of(to), amount
        ))
        return True

    def transfer_from(self, sender: Caller, to: Caller, amount: int) -> bool:
        self._call(lambda: token_unit.compute_transfer_from(
            self.ledger, self.symbol, self.caller, _address_of(sender), _address_of(to), amount
        ))
        return True

    def approve(self, spender: Caller, amount: int) -> bool:
        self._call(lambda: token_unit.compute_approve(
            self.ledger, self.symbol, self.caller, _address_of(spender), amount
        ))
        return True

    def increase_allowance(self, spender: Caller, added: int) -> bool:
        self._call(lambda: token_unit.compute_increase_allowance(
            self.ledger, self.symbol, self.caller, _address_of(spender), added
        ))
        return True

    def decrease_allowance(self, spender: Caller, subtracted: int) -> bool:
        self._call(lambda: token_unit.compute_decrease_allowance(
            self.ledger, self.symbol, self.caller, _address_of(spender), subtracted
        ))
        return True

    def set_tax_fee(self, tax_fee: int) -> None:
        self._call(lambda: token_unit.compute_set_tax_fee(self.ledger, self.symbol, self.caller, tax_fee))

    def set_tax_receiver(self, receiver: Caller) -> None:
        self._call(lambda: token_unit.compute_set_tax_receiver(
            self.ledger, self.symbol, self.caller, _address_of(receiver)
        ))

    def set_max_tx_amount(self, amount: int) -> None:
        self._call(lambda: token_unit.compute_set_max_tx_amount(self.ledger, self.symbol, self.caller, amount))

    def set_max_wallet_amount(self, amount: int) -> None:
        self._call(lambda: token_unit.compute_set_max_wallet_amount(self.ledger, self.symbol, self.caller, amount))

    def renounce_ownership(self) -> None:
        self._call(lambda: token_unit.renounce_ownership(self.ledger, self.symbol, self.caller))

    def transfer_ownership(self, new_owner: object) -> None:
        self._call(lambda: token_unit.transfer_ownership(self.ledger, self.symbol, self.caller, new_owner))

    def __repr__(self) -> str:
        return f"TokenContract({self.symbol} on {self.ledger.name} as {self.caller})"
