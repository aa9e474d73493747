"""
core.py - Types shared by the token functions and the ledger

Everything here is immutable or pure:
    - LedgerView, the read-only face of a ledger
    - Move, UnitStateChange, PendingTransaction, Transaction, Unit
    - LedgerError and the token errors with their revert reasons
    - The intent hash that makes execution idempotent

Token functions read a LedgerView and return a PendingTransaction. Only the
Ledger applies one.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_DOWN, getcontext
from enum import Enum
import copy
import json
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Token amounts are integers in the smallest unit, up to 2**256 - 1.
# Balances are held as Decimal so the arithmetic must be exact for 78 digits.
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 100
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_DOWN


# ============================================================================
# CONSTANTS
# ============================================================================

# Issuance counterparty. Minting moves value out of the zero address, so it
# is exempt from balance validation and carries a negative balance.
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

UNIT_TYPE_TOKEN = "ERC20"

# Largest value a uint256 allowance can hold; treated as an infinite approval.
MAX_UINT256 = 2 ** 256 - 1

# Tax fee is expressed in whole percent.
PERCENT_DENOMINATOR = 100


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from address to quantity held by that address for a specific unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Internal state for a unit: token parameters, allowances, etc.
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    The token policy functions receive a LedgerView and return a
    PendingTransaction; they never touch the ledger directly. The Ledger class
    implements this protocol, and tests use FakeView for isolated checks.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Return the balance of a specific unit in a wallet.

        Returns Decimal("0") for addresses the ledger has never seen.
        """
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def get_nonce(self, wallet_id: str) -> int:
        """Return the number of transactions applied on behalf of a wallet."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all known wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Transaction intent was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (balance limits, transfer rule,
              stale nonce, unregistered unit).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Signed call by an account
    CONTRACT = "contract"                 # Built by a pure contract function
    SYSTEM = "system"                     # Deployment, minting


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class TransferRuleViolation(LedgerError):
    """Raised when a move violates the unit's transfer rule."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class TokenError(LedgerError):
    """
    A token call was rejected.

    The reason string matches the revert message of the deployed contract,
    so callers can assert on it exactly. Nothing is applied when this is raised.
    """

    default_reason = "Transaction reverted"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class InsufficientBalance(TokenError):
    default_reason = "ERC20: transfer amount exceeds balance"


class MaxTxExceeded(TokenError):
    default_reason = "Transfer amount exceeds the maxTxAmount"


class MaxWalletExceeded(TokenError):
    default_reason = "Max wallet exceeded"


class NotOwner(TokenError):
    default_reason = "Ownable: caller is not the owner"


class InsufficientAllowance(TokenError):
    default_reason = "ERC20: insufficient allowance"


class InvalidAddress(TokenError):
    default_reason = "Invalid address"


class TransactionRejected(TokenError):
    """The ledger refused a transaction the token functions had accepted."""
    default_reason = "Transaction rejected by ledger"


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Address (or component name) on whose behalf the transaction runs
        unit_symbol: Symbol of the unit the call was made against
        event_type: Contract method that produced it (e.g., "transfer", "approve")
        nonce: Sender's nonce when the transaction was built. Part of the
               intent hash, so two identical transfers are distinct intents.
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None
    nonce: Optional[int] = None

    def __repr__(self) -> str:
        extras = [
            f"{label}={value}"
            for label, value in (("unit", self.unit_symbol), ("event", self.event_type), ("nonce", self.nonce))
            if value is not None and value != ""
        ]
        return f"Origin({', '.join([f'{self.origin_type.value}:{self.source_id}'] + extras)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Whole-state snapshot of a unit before and after a transaction.

    old_state is what the builder read from the view; the ledger rejects the
    change if the unit no longer has that state. None skips the check.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """{field: (before, after)} for every field whose value differs."""
        before = self.old_state if isinstance(self.old_state, dict) else {}
        after = self.new_state if isinstance(self.new_state, dict) else {}
        return {
            key: (before.get(key), after.get(key))
            for key in before.keys() | after.keys()
            if before.get(key) != after.get(key)
        }


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer in the smallest unit (non-negative, integral).
        unit_symbol: The symbol of the unit being transferred (e.g., "MTK").
        source: The address debited.
        dest: The address credited.
        contract_id: Identifier of the leg generating this move.
        metadata: Optional additional information about the move.

    A zero quantity is allowed: an ERC20 transfer of 0 is a valid call that
    still emits a Transfer event.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        for name in ('source', 'dest', 'unit_symbol', 'contract_id'):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"Move {name} cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity).__name__}")
        if not self.quantity.is_finite():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity < 0:
            raise ValueError(f"Move quantity cannot be negative, got {self.quantity}")
        if self.quantity != self.quantity.to_integral_value():
            raise ValueError(f"Move quantity must be integral, got {self.quantity}")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _quantity_text(d: Decimal) -> str:
    """Decimal("1.0"), Decimal("1") and Decimal("1E+0") all render as "1"."""
    if d == d.to_integral_value():
        return str(int(d))
    return format(d.normalize(), 'f')


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return _quantity_text(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"cannot canonicalize {type(value).__name__}")


def _canonical_json(value: Any) -> str:
    """Key-sorted compact JSON; equal content always gives equal text."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=_json_default)


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = ()
) -> str:
    """
    Content hash of what a transaction intends to do.

    Covers the origin (nonce included), the units it creates, its moves in
    order and its state changes. Execution data never enters the hash, so the
    same call built twice against the same ledger state has the same id.
    """
    intent = {
        'origin': [origin.origin_type, origin.source_id, origin.unit_symbol,
                   origin.event_type, origin.nonce],
        'create': sorted([u.symbol, u.unit_type] for u in units_to_create),
        'moves': [[m.quantity, m.unit_symbol, m.source, m.dest, m.contract_id] for m in moves],
        'state': [[sc.unit, sc.old_state, sc.new_state]
                  for sc in sorted(state_changes, key=lambda s: s.unit)],
    }
    return hashlib.sha256(_canonical_json(intent).encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    What a command wants to do, built against a view and not yet applied.

    intent_id is filled in from the content when left empty. Executing the
    same pending transaction twice applies it once.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if self.intent_id:
            return
        object.__setattr__(self, 'intent_id', _compute_intent_id(
            self.moves, self.state_changes, self.origin, self.units_to_create
        ))

    def is_empty(self) -> bool:
        return not (self.moves or self.state_changes or self.units_to_create)

    def __repr__(self) -> str:
        return (f"PendingTransaction(moves={len(self.moves)}, "
                f"state_changes={len(self.state_changes)}, {self.origin})")


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Assemble a PendingTransaction stamped with the view's current time.

    Moves keep their order, which is also the order of the Transfer events.
    State snapshots are deep-copied, so the caller may keep editing its dicts.
    Without an origin the transaction is attributed to the contract itself.
    """
    snapshots = tuple(
        UnitStateChange(sc.unit, copy.deepcopy(sc.old_state), copy.deepcopy(sc.new_state))
        for sc in state_changes or ()
    )
    return PendingTransaction(
        moves=tuple(moves),
        state_changes=snapshots,
        origin=origin or TransactionOrigin(OriginType.CONTRACT, "contract"),
        timestamp=view.current_time,
        units_to_create=tuple(units_to_create or ()),
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """Create an empty PendingTransaction for calls that change nothing."""
    return PendingTransaction(
        moves=(),
        state_changes=(),
        origin=TransactionOrigin(OriginType.CONTRACT, "noop"),
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A PendingTransaction after the ledger applied it: one entry of the log.

    Carries the pending content unchanged plus where and when it ran.
    sequence_number counts up from 0 per ledger and plays the part of a
    block number; exec_id is unique per ledger and execution.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not (self.moves or self.state_changes or self.units_to_create):
            raise ValueError("Transaction must have moves, state_changes, or units_to_create")
        if self.contract_ids is None:
            object.__setattr__(self, 'contract_ids', frozenset(m.contract_id for m in self.moves))

    def sections(self) -> List[List[str]]:
        """Rows of the boxed rendering, grouped by section."""
        header = [
            f" Transaction: {self.exec_id}",
            f"   intent_id      : {self.intent_id}",
            f"   timestamp      : {self.timestamp}",
            f"   ledger_name    : {self.ledger_name}",
            f"   sequence       : {self.sequence_number}",
            f"   origin         : {self.origin}",
        ]
        sections = [header]
        if self.units_to_create:
            sections.append(
                [f" Units Created ({len(self.units_to_create)}):"]
                + [f"   {u.symbol} ({u.name})" for u in self.units_to_create]
            )
        sections.append(
            [f" Moves ({len(self.moves)}):"]
            + [f"   [{i}] {m.quantity} {m.unit_symbol}: {m.source} → {m.dest}"
               for i, m in enumerate(self.moves)]
        )
        if self.state_changes:
            rows = [f" State Changes ({len(self.state_changes)}):"]
            for sc in self.state_changes:
                rows.append(f"   [{sc.unit}]")
                rows.extend(f"      {name}: {old!r} → {new!r}"
                            for name, (old, new) in sorted(sc.changed_fields().items()))
            sections.append(rows)
        return sections

    def __repr__(self) -> str:
        return render_box(self.sections())


def render_box(sections: List[List[str]], width: int = 100) -> str:
    """Draw sections of text rows inside a single box, one rule between sections."""
    def row(text: str) -> str:
        if len(text) > width:
            text = text[:width - 3] + "..."
        return f"│{text.ljust(width)}│"

    bar = "─" * width
    lines = ["", f"┌{bar}┐"]
    for i, section in enumerate(sections):
        if i:
            lines.append(f"├{bar}┤")
        lines.extend(row(text) for text in section)
    lines.append(f"└{bar}┘")
    return "\n".join(lines)


# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[[LedgerView, Move], None]


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a tuple of (key, value) pairs sorted by key."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a mutable dict."""
    return copy.deepcopy(dict(frozen_state))


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit (asset type) held on the ledger.

    Attributes:
        symbol: Short identifier for the unit (e.g., "MTK").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (ERC20).
        min_balance: Minimum allowed balance in any wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places the ledger stores (0 for tokens,
                        whose amounts are already in the smallest unit).
        transfer_rule: Optional function to validate moves involving this unit.
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """Return the unit's state as a new mutable dictionary."""
        return _thaw_state(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        """Quantize a value to this unit's decimal places (truncating)."""
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        quantizer = Decimal(10) ** -self.decimal_places
        return value.quantize(quantizer, rounding=ROUND_DOWN)
