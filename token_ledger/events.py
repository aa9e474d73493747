"""
events.py - Token events derived from executed transactions

Events are not stored separately: they are read back from the transaction
log, the same way a chain client decodes logs from a receipt.

- Transfer(sender, recipient, value): one per move of the token, in move
  order. A taxed transfer yields two: the recipient leg, then the tax leg.
- Approval(owner, spender, value): one per allowance that a transaction
  changed, with the new value.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from .core import Transaction


TRANSFER = "Transfer"
APPROVAL = "Approval"


@dataclass(frozen=True, slots=True)
class TransferEvent:
    sender: str
    recipient: str
    value: int
    sequence_number: int = -1

    name = TRANSFER

    @property
    def args(self) -> tuple:
        return (self.sender, self.recipient, self.value)


@dataclass(frozen=True, slots=True)
class ApprovalEvent:
    owner: str
    spender: str
    value: int
    sequence_number: int = -1

    name = APPROVAL

    @property
    def args(self) -> tuple:
        return (self.owner, self.spender, self.value)


TokenEvent = Union[TransferEvent, ApprovalEvent]


def _allowance_changes(old: dict, new: dict) -> List[ApprovalEvent]:
    old_allowances = (old or {}).get('allowances', {})
    new_allowances = (new or {}).get('allowances', {})
    events = []
    for owner in sorted(set(old_allowances) | set(new_allowances)):
        before = old_allowances.get(owner, {})
        after = new_allowances.get(owner, {})
        for spender in sorted(set(before) | set(after)):
            value = after.get(spender, 0)
            if before.get(spender, 0) != value:
                events.append(ApprovalEvent(owner, spender, value))
    return events


def events_for(tx: Transaction, symbol: Optional[str] = None) -> List[TokenEvent]:
    """
    Decode the token events of one transaction.

    Args:
        tx: Executed transaction
        symbol: Only report events for this unit (default: all units)

    Returns:
        Transfer events in move order, followed by Approval events.
    """
    events: List[TokenEvent] = []
    for move in tx.moves:
        if symbol is None or move.unit_symbol == symbol:
            events.append(TransferEvent(move.source, move.dest, int(move.quantity), tx.sequence_number))
    for sc in tx.state_changes:
        if symbol is None or sc.unit == symbol:
            for event in _allowance_changes(sc.old_state, sc.new_state):
                events.append(ApprovalEvent(event.owner, event.spender, event.value, tx.sequence_number))
    return events


def query_filter(
    transactions: Iterable[Transaction],
    event_name: Optional[str] = None,
    symbol: Optional[str] = None,
    from_sequence: int = 0,
) -> List[TokenEvent]:
    """All events named `event_name` (default: any) at or after `from_sequence`."""
    found: List[TokenEvent] = []
    for tx in transactions:
        if tx.sequence_number < from_sequence:
            continue
        for event in events_for(tx, symbol):
            if event_name is None or event.name == event_name:
                found.append(event)
    return found
