"""
ledger.py - Stateful Double-Entry Token Ledger

The Ledger holds every balance, unit definition and sender nonce, and is the
only object that changes them. Everything else reads it through the LedgerView
protocol and hands it PendingTransactions to execute.

Key responsibilities:
    - Validate a pending transaction completely before touching any state
    - Apply moves and unit state changes together, or not at all
    - Track per-sender nonces and reject stale or duplicate intents
    - Keep an append-only transaction log (clone, replay)
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Set, Optional, Tuple, Any
from decimal import Decimal

from .core import (
    # Types
    Move, Transaction, Unit,
    PendingTransaction,
    ExecuteResult,
    Positions, UnitState, BalanceMap,
    # Constants
    ZERO_ADDRESS,
    # Exceptions
    LedgerError, TransferRuleViolation, UnitNotRegistered,
    # Helper functions
    _freeze_state, render_box,
)

ZERO = Decimal("0")
EPOCH = datetime(1970, 1, 1)


class Ledger:
    """
    Double-entry token ledger with validation, nonces and an audit trail.

    Passed directly to the token functions as their LedgerView. Addresses
    need no setup: an address the ledger has never seen has a zero balance and
    a zero nonce, and becomes known the first time a move touches it.

    Every unit's balances, zero address included, sum to zero. The zero
    address sources every mint and is the only wallet allowed below a unit's
    minimum balance.

    Not thread-safe: transactions are applied one at a time, in call order.

    Example:
        ledger = Ledger("main")
        token = TokenContract.deploy(ledger, owner)
        token.transfer(alice, parse_ether(100))
        assert ledger.verify_double_entry()['valid']
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Args:
            name: Ledger identifier, part of every exec_id
            initial_time: Starting logical time (default: 1970-01-01)
            verbose: Print registrations, applied and rejected transactions
            test_mode: Allow set_balance()
        """
        self.name = name
        self.verbose = verbose
        self._test_mode = test_mode
        self._current_time: datetime = initial_time or EPOCH

        self.units: Dict[str, Unit] = {}
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.registered_wallets: Set[str] = set()
        self.nonces: Dict[str, int] = defaultdict(int)
        # unit -> {wallet -> non-zero balance}
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

        self.transaction_log: List[Transaction] = []
        self.seen_intent_ids: Set[str] = set()
        self.last_rejection_reason: Optional[str] = None
        self._next_sequence: int = 0

        self.register_wallet(ZERO_ADDRESS)

    # ========================================================================
    # READS (LedgerView)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def get_unit(self, symbol: str) -> Unit:
        """
        Raises:
            UnitNotRegistered: If no unit has this symbol
        """
        try:
            return self.units[symbol]
        except KeyError:
            raise UnitNotRegistered(f"Unit {symbol} not registered") from None

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Balance of one unit in one wallet; zero for wallets never seen.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        self.get_unit(unit_symbol)
        return self.balances.get(wallet_id, {}).get(unit_symbol, ZERO)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Deep copy of a unit's state; editing it changes nothing."""
        return self.get_unit(unit_symbol).state

    def get_positions(self, unit_symbol: str) -> Positions:
        """Every wallet holding a non-zero balance of the unit."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def get_nonce(self, wallet_id: str) -> int:
        """Number of transactions applied on behalf of this address."""
        return self.nonces.get(wallet_id, 0)

    def list_wallets(self) -> Set[str]:
        return set(self.registered_wallets)

    def list_units(self) -> List[str]:
        return sorted(self.units)

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        return dict(self.balances.get(wallet_id, {}))

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Sum of a unit's balances over holders, the zero address excluded.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        self.get_unit(unit_symbol)
        holders = self._positions_by_unit.get(unit_symbol, {})
        return sum(
            (qty for wallet, qty in sorted(holders.items()) if wallet != ZERO_ADDRESS),
            ZERO,
        )

    def verify_double_entry(
        self,
        expected_supplies: Optional[Dict[str, Decimal]] = None,
    ) -> Dict[str, Any]:
        """
        Check conservation for every unit.

        Holder supply must equal what the zero address has issued (so all
        balances sum to zero), and must match expected_supplies where given.

        Returns:
            {'valid': bool,
             'supplies': {unit: holder supply},
             'discrepancies': [{'unit', 'expected', 'actual', 'difference', 'error'}]}

        Example:
            result = ledger.verify_double_entry({"MTK": Decimal(token.total_supply())})
            assert result['valid'], result['discrepancies']
        """
        supplies = {symbol: self.total_supply(symbol) for symbol in sorted(self.units)}
        discrepancies = []

        def mismatch(unit: str, expected: Decimal, actual: Decimal, error: str) -> None:
            discrepancies.append({
                'unit': unit,
                'expected': expected,
                'actual': actual,
                'difference': actual - expected,
                'error': error,
            })

        for symbol, supply in supplies.items():
            issued = -self.balances[ZERO_ADDRESS].get(symbol, ZERO)
            if supply != issued:
                mismatch(symbol, issued, supply, "holder balances do not match issuance")

        for symbol, expected in (expected_supplies or {}).items():
            if symbol not in supplies:
                mismatch(symbol, expected, ZERO, "unit not registered")
            elif supplies[symbol] != expected:
                mismatch(symbol, expected, supplies[symbol], "supply differs from expected")

        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # TIME
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._current_time}")
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION AND TEST SETUP
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """Make a wallet known. Registering a known wallet does nothing."""
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id not in self.registered_wallets:
            self.registered_wallets.add(wallet_id)
            self.balances[wallet_id] = {}
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Raises:
            ValueError: If the symbol is already taken
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            rule = f", rule={unit.transfer_rule.__name__}" if unit.transfer_rule else ""
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]{rule}")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Overwrite a balance directly, outside double entry and outside the log.

        Raises:
            LedgerError: Unless the ledger was created with test_mode=True
            UnitNotRegistered: If unit is not registered
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() bypasses double entry and needs a ledger created with "
                "test_mode=True; use execute() to move balances."
            )
        self.get_unit(unit_symbol)
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        self.register_wallet(wallet_id)
        self._store_balance(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Validate and apply a PendingTransaction as one atomic step.

        Checked before anything changes:
        - timestamp not after the ledger's clock
        - origin nonce equal to the sender's current nonce
        - every state change starts from the unit's current state
        - every unit registered, every transfer rule satisfied
        - no wallet but the zero address leaves its unit's balance limits

        A pending transaction whose intent_id was already applied is not
        applied again. On rejection the reason is kept in last_rejection_reason.

        Returns:
            APPLIED, ALREADY_APPLIED or REJECTED
        """
        self.last_rejection_reason = None

        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        staged = [u.symbol for u in pending.units_to_create if u.symbol not in self.units]
        for unit in pending.units_to_create:
            if unit.symbol in staged:
                self.register_unit(unit)

        reason = self._rejection_reason(pending)
        if reason:
            for symbol in staged:
                del self.units[symbol]
            self.last_rejection_reason = reason
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        tx = self._record(pending)
        if self.verbose:
            print(render_box(tx.sections() + [[" ✓ APPLIED"]]))
        return ExecuteResult.APPLIED

    def _rejection_reason(self, pending: PendingTransaction) -> Optional[str]:
        """Why the pending transaction cannot be applied, or None if it can."""
        if pending.timestamp > self._current_time:
            return "future timestamp"

        origin = pending.origin
        if origin.nonce is not None and origin.nonce != self.get_nonce(origin.source_id):
            return (f"nonce mismatch for {origin.source_id}: "
                    f"got {origin.nonce}, expected {self.get_nonce(origin.source_id)}")

        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return f"unit not registered: {sc.unit}"
            if sc.old_state is not None and self.units[sc.unit].state != sc.old_state:
                return f"stale state for {sc.unit}"

        for move in pending.moves:
            unit = self.units.get(move.unit_symbol)
            if unit is None:
                return f"unit not registered: {move.unit_symbol}"
            if unit.transfer_rule:
                try:
                    unit.transfer_rule(self, move)
                except TransferRuleViolation as e:
                    return str(e)

        for (wallet, symbol), delta in self._net_changes(pending.moves).items():
            if wallet == ZERO_ADDRESS:
                continue
            unit = self.units[symbol]
            proposed = unit.round(self.get_balance(wallet, symbol) + delta)
            if proposed < unit.min_balance:
                return f"{wallet} {symbol}: {proposed} < min {unit.min_balance}"
            if proposed > unit.max_balance:
                return f"{wallet} {symbol}: {proposed} > max {unit.max_balance}"

        return None

    def _net_changes(self, moves) -> Dict[Tuple[str, str], Decimal]:
        """Net balance change per (wallet, unit) over all moves."""
        net: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        for move in moves:
            net[(move.source, move.unit_symbol)] -= move.quantity
            net[(move.dest, move.unit_symbol)] += move.quantity
        return net

    def _record(self, pending: PendingTransaction) -> Transaction:
        """Apply an already validated pending transaction and log it."""
        sequence = self._next_sequence
        self._next_sequence += 1
        micros = int(self._current_time.timestamp() * 1_000_000)

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=f"exec:{self.name}:{sequence:012d}:{micros}",
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
        )

        for move in tx.moves:
            self._apply_move(move)

        # Units are frozen: a state change swaps in a new Unit
        for sc in tx.state_changes:
            new_state = sc.new_state if isinstance(sc.new_state, dict) else {}
            self.units[sc.unit] = replace(self.units[sc.unit], _frozen_state=_freeze_state(new_state))

        if pending.origin.nonce is not None:
            self.nonces[pending.origin.source_id] += 1

        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)
        return tx

    def _apply_move(self, move: Move) -> None:
        unit = self.units[move.unit_symbol]
        for wallet, sign in ((move.source, -1), (move.dest, 1)):
            self.register_wallet(wallet)
            current = self.balances[wallet].get(move.unit_symbol, ZERO)
            self._store_balance(wallet, move.unit_symbol, unit.round(current + sign * move.quantity))

    def _store_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """Write a balance and keep the position index in step (zeros dropped)."""
        self.balances[wallet_id][unit_symbol] = quantity
        if quantity != 0:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    # ========================================================================
    # SNAPSHOT AND REPLAY
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Independent copy of this ledger, for snapshots.

        Units are shared: they are frozen and hand out deep copies of state.
        """
        cloned = Ledger(self.name, self._current_time, verbose=self.verbose, test_mode=self._test_mode)
        cloned.units = dict(self.units)
        cloned.balances = {wallet: dict(bals) for wallet, bals in self.balances.items()}
        cloned.registered_wallets = set(self.registered_wallets)
        cloned.nonces = defaultdict(int, self.nonces)
        cloned._positions_by_unit = defaultdict(
            dict, {symbol: dict(pos) for symbol, pos in self._positions_by_unit.items()}
        )
        cloned.transaction_log = list(self.transaction_log)
        cloned.seen_intent_ids = set(self.seen_intent_ids)
        cloned.last_rejection_reason = self.last_rejection_reason
        cloned._next_sequence = self._next_sequence
        return cloned

    def replay(self) -> Ledger:
        """
        Build a new ledger by re-executing the transaction log in order.

        Units created by logged transactions are recreated by them. Other
        units start from the state they had before their first logged change.
        Balances written with set_balance() are not in the log and are not
        reproduced.

        Raises:
            LedgerError: If a logged transaction is rejected during replay
        """
        replayed = Ledger(
            name=f"{self.name}_replayed",
            initial_time=EPOCH,
            verbose=self.verbose,
            test_mode=self._test_mode,
        )

        created_in_log = {u.symbol for tx in self.transaction_log for u in tx.units_to_create}
        for symbol, unit in self.units.items():
            if symbol not in created_in_log:
                replayed.units[symbol] = replace(
                    unit, _frozen_state=_freeze_state(self._initial_state(symbol))
                )

        for wallet in sorted(self.registered_wallets):
            replayed.register_wallet(wallet)

        for tx in self.transaction_log:
            if tx.timestamp > replayed.current_time:
                replayed.advance_time(tx.timestamp)
            pending = PendingTransaction(
                moves=tx.moves,
                state_changes=tx.state_changes,
                origin=tx.origin,
                timestamp=tx.timestamp,
                units_to_create=tx.units_to_create,
            )
            if replayed.execute(pending) == ExecuteResult.REJECTED:
                raise LedgerError(f"Replay failed at tx {tx.exec_id}: {replayed.last_rejection_reason}")

        if self._current_time > replayed.current_time:
            replayed.advance_time(self._current_time)
        return replayed

    def _initial_state(self, symbol: str) -> UnitState:
        """State a unit had before the first logged change to it."""
        for tx in self.transaction_log:
            for sc in tx.state_changes:
                if sc.unit == symbol and isinstance(sc.old_state, dict):
                    return sc.old_state
        return self.units[symbol].state
