"""
token.py - ERC20 Token with Transfer Tax and Holder Limits

This module provides the token unit and every call that can change it:
1. create_token_unit() / compute_deployment() - Unit factory and supply mint
2. compute_transfer() / compute_transfer_from() - Taxed, capped transfers
3. compute_approve() and allowance adjustments
4. Owner-only setters for tax fee, tax receiver and the two caps
5. renounce_ownership() / transfer_ownership() - Inert: ownership never moves
6. token_transfer_rule() - Ledger-level guard for every token move

Transfer policy:
    fee = 0                              if sender or recipient is the owner
    fee = amount * tax_fee // 100        otherwise

    amount > balance(sender)                              -> InsufficientBalance
    sender != owner and amount > max_tx_amount            -> MaxTxExceeded
    recipient != owner and
        balance(recipient) + amount - fee > max_wallet    -> MaxWalletExceeded

    Move(amount - fee, sender -> recipient)       the recipient leg, always present
    Move(fee, sender -> tax_receiver)             the tax leg, only when fee > 0

All functions take LedgerView (read-only) and return a PendingTransaction, or
raise a TokenError subclass before anything is built.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Dict, List

from ..accounts import to_address
from ..config import TokenSettings
from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange, UnitState,
    TransactionOrigin, OriginType,
    ZERO_ADDRESS, UNIT_TYPE_TOKEN, MAX_UINT256, PERCENT_DENOMINATOR,
    InsufficientBalance, MaxTxExceeded, MaxWalletExceeded, NotOwner,
    InsufficientAllowance, InvalidAddress, TransferRuleViolation,
    build_transaction, empty_pending_transaction, _freeze_state,
)


LEG_RECIPIENT = "recipient"
LEG_TAX = "tax"
LEG_MINT = "mint"


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def _check_amount(amount: Any, name: str = "amount") -> int:
    """Amounts are plain ints in [0, 2**256 - 1]."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"{name} must be int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"{name} must be non-negative, got {amount}")
    if amount > MAX_UINT256:
        raise ValueError(f"{name} exceeds uint256")
    return amount


def _require_owner(state: UnitState, caller: str) -> None:
    if caller != state['owner']:
        raise NotOwner()


def _balance(view: LedgerView, wallet: str, symbol: str) -> int:
    return int(view.get_balance(wallet, symbol))


def _origin(symbol: str, caller: str, method: str, view: LedgerView) -> TransactionOrigin:
    return TransactionOrigin(
        origin_type=OriginType.USER_ACTION,
        source_id=caller,
        unit_symbol=symbol,
        event_type=method,
        nonce=view.get_nonce(caller),
    )


# ============================================================================
# UNIT FACTORY AND DEPLOYMENT
# ============================================================================

def token_transfer_rule(view: LedgerView, move: Move) -> None:
    """
    Enforce invariants every token move must satisfy, whoever built it.

    - Nothing is ever sent to the zero address (no burns).
    - The zero address only sources mints, and total minted never exceeds
      the token's fixed total supply.

    Raises:
        TransferRuleViolation: On any violation
    """
    if move.dest == ZERO_ADDRESS:
        raise TransferRuleViolation("ERC20: transfer to the zero address")
    if move.source == ZERO_ADDRESS:
        state = view.get_unit_state(move.unit_symbol)
        minted = -view.get_balance(ZERO_ADDRESS, move.unit_symbol)
        if minted + move.quantity > state['total_supply']:
            raise TransferRuleViolation(
                f"{move.unit_symbol}: mint of {move.quantity} exceeds total supply"
            )


def create_token_unit(settings: TokenSettings, owner: str) -> Unit:
    """
    Create the token unit with its initial policy state.

    The owner is also the initial tax receiver. Balances can never go
    negative (min_balance 0) and amounts are whole smallest units.

    Args:
        settings: Deployment parameters
        owner: Deployer address; fixed for the life of the token
    """
    owner = to_address(owner)
    if owner == ZERO_ADDRESS:
        raise InvalidAddress("Ownable: new owner is the zero address")

    state = {
        'name': settings.name,
        'symbol': settings.symbol,
        'decimals': settings.decimals,
        'total_supply': settings.total_supply,
        'owner': owner,
        'tax_receiver': owner,
        'tax_fee': settings.tax_fee,
        'max_tx_amount': settings.max_tx_amount,
        'max_wallet_amount': settings.max_wallet_amount,
        'allowances': {},
    }
    return Unit(
        symbol=settings.symbol,
        name=settings.name,
        unit_type=UNIT_TYPE_TOKEN,
        min_balance=Decimal("0"),
        decimal_places=0,
        transfer_rule=token_transfer_rule,
        _frozen_state=_freeze_state(state),
    )


def compute_deployment(view: LedgerView, settings: TokenSettings, deployer: str) -> PendingTransaction:
    """
    Build the deployment: register the unit and mint the whole supply to the deployer.

    Returns:
        PendingTransaction creating the unit with a single mint move
        (zero address -> deployer).
    """
    unit = create_token_unit(settings, deployer)
    owner = unit.state['owner']
    mint = Move(
        quantity=Decimal(settings.total_supply),
        unit_symbol=unit.symbol,
        source=ZERO_ADDRESS,
        dest=owner,
        contract_id=f"{unit.symbol}:mint",
        metadata={'leg': LEG_MINT},
    )
    origin = TransactionOrigin(
        origin_type=OriginType.SYSTEM,
        source_id=owner,
        unit_symbol=unit.symbol,
        event_type="deploy",
        nonce=view.get_nonce(owner),
    )
    return build_transaction(view, [mint], origin=origin, units_to_create=(unit,))


# ============================================================================
# TRANSFERS
# ============================================================================

def compute_fee(state: UnitState, sender: str, recipient: str, amount: int) -> int:
    """Tax owed on a transfer. Transfers from or to the owner are untaxed."""
    owner = state['owner']
    if sender == owner or recipient == owner:
        return 0
    return amount * state['tax_fee'] // PERCENT_DENOMINATOR


def _transfer_moves(
    view: LedgerView,
    symbol: str,
    state: UnitState,
    sender: str,
    recipient: str,
    amount: int,
) -> List[Move]:
    """Check the transfer policy and return the recipient and tax legs."""
    if recipient == ZERO_ADDRESS:
        raise InvalidAddress("ERC20: transfer to the zero address")

    owner = state['owner']
    if _balance(view, sender, symbol) < amount:
        raise InsufficientBalance()
    if sender != owner and amount > state['max_tx_amount']:
        raise MaxTxExceeded()

    fee = compute_fee(state, sender, recipient, amount)
    net = amount - fee
    # the tax leg lands on the recipient too when it is the tax receiver
    received = amount if state['tax_receiver'] == recipient else net
    if recipient != owner and _balance(view, recipient, symbol) + received > state['max_wallet_amount']:
        raise MaxWalletExceeded()

    moves = [Move(
        quantity=Decimal(net),
        unit_symbol=symbol,
        source=sender,
        dest=recipient,
        contract_id=f"{symbol}:transfer",
        metadata={'leg': LEG_RECIPIENT},
    )]
    if fee > 0:
        moves.append(Move(
            quantity=Decimal(fee),
            unit_symbol=symbol,
            source=sender,
            dest=state['tax_receiver'],
            contract_id=f"{symbol}:tax",
            metadata={'leg': LEG_TAX},
        ))
    return moves


def compute_transfer(
    view: LedgerView,
    symbol: str,
    sender: str,
    recipient: str,
    amount: int,
) -> PendingTransaction:
    """
    Transfer `amount` from `sender` to `recipient` under the tax and cap policy.

    Args:
        view: Read-only ledger access
        symbol: Token symbol
        sender: Calling address
        recipient: Destination address
        amount: Smallest units to send (the recipient gets amount - fee)

    Returns:
        PendingTransaction with the recipient leg and, if taxed, the tax leg.

    Raises:
        InsufficientBalance, MaxTxExceeded, MaxWalletExceeded, InvalidAddress
        ValueError: If amount is not a non-negative int

    Example:
        # addr1 -> addr2, 50 tokens, 5% tax
        pending = compute_transfer(ledger, "MTK", addr1, addr2, parse_ether(50))
        ledger.execute(pending)
        # addr2 +47.5, tax receiver +2.5, addr1 -50
    """
    amount = _check_amount(amount)
    sender = to_address(sender)
    recipient = to_address(recipient)
    state = view.get_unit_state(symbol)

    moves = _transfer_moves(view, symbol, state, sender, recipient, amount)
    return build_transaction(view, moves, origin=_origin(symbol, sender, "transfer", view))


def compute_transfer_from(
    view: LedgerView,
    symbol: str,
    spender: str,
    sender: str,
    recipient: str,
    amount: int,
) -> PendingTransaction:
    """
    Transfer on behalf of `sender` using the allowance granted to `spender`.

    The allowance is checked first and reduced by `amount` in the same
    transaction; an allowance of MAX_UINT256 is unlimited and never reduced.
    Exemptions are decided by `sender`, not `spender`.

    Raises:
        InsufficientAllowance: If the allowance is below amount
        Everything compute_transfer() raises
    """
    amount = _check_amount(amount)
    spender = to_address(spender)
    sender = to_address(sender)
    recipient = to_address(recipient)
    state = view.get_unit_state(symbol)

    current = get_allowance(state, sender, spender)
    if current < amount:
        raise InsufficientAllowance()

    moves = _transfer_moves(view, symbol, state, sender, recipient, amount)

    changes = []
    if current != MAX_UINT256:
        new_state = _with_allowance(state, sender, spender, current - amount)
        changes.append(UnitStateChange(unit=symbol, old_state=state, new_state=new_state))
    return build_transaction(view, moves, changes, origin=_origin(symbol, spender, "transferFrom", view))


# ============================================================================
# ALLOWANCES
# ============================================================================

def get_allowance(state: UnitState, owner: str, spender: str) -> int:
    return state['allowances'].get(owner, {}).get(spender, 0)


def _with_allowance(state: UnitState, owner: str, spender: str, amount: int) -> UnitState:
    """Return a copy of state with one allowance replaced; zero allowances are dropped."""
    allowances: Dict[str, Dict[str, int]] = {
        holder: dict(granted) for holder, granted in state['allowances'].items()
    }
    granted = allowances.setdefault(owner, {})
    if amount:
        granted[spender] = amount
    else:
        granted.pop(spender, None)
    if not granted:
        del allowances[owner]
    return {**state, 'allowances': allowances}


def _approval(view: LedgerView, symbol: str, owner: str, spender: str, amount: int, method: str) -> PendingTransaction:
    if spender == ZERO_ADDRESS:
        raise InvalidAddress("ERC20: approve to the zero address")
    state = view.get_unit_state(symbol)
    new_state = _with_allowance(state, owner, spender, amount)
    changes = [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)]
    return build_transaction(view, [], changes, origin=_origin(symbol, owner, method, view))


def compute_approve(view: LedgerView, symbol: str, owner: str, spender: str, amount: int) -> PendingTransaction:
    """Set the allowance of `spender` over `owner`'s tokens to `amount`."""
    amount = _check_amount(amount)
    return _approval(view, symbol, to_address(owner), to_address(spender), amount, "approve")


def compute_increase_allowance(
    view: LedgerView, symbol: str, owner: str, spender: str, added: int
) -> PendingTransaction:
    added = _check_amount(added, "added")
    owner, spender = to_address(owner), to_address(spender)
    current = get_allowance(view.get_unit_state(symbol), owner, spender)
    return _approval(view, symbol, owner, spender, _check_amount(current + added), "increaseAllowance")


def compute_decrease_allowance(
    view: LedgerView, symbol: str, owner: str, spender: str, subtracted: int
) -> PendingTransaction:
    """
    Raises:
        InsufficientAllowance: If the allowance would go below zero
    """
    subtracted = _check_amount(subtracted, "subtracted")
    owner, spender = to_address(owner), to_address(spender)
    current = get_allowance(view.get_unit_state(symbol), owner, spender)
    if current < subtracted:
        raise InsufficientAllowance("ERC20: decreased allowance below zero")
    return _approval(view, symbol, owner, spender, current - subtracted, "decreaseAllowance")


# ============================================================================
# OWNER CONFIGURATION
# ============================================================================

def _owner_update(view: LedgerView, symbol: str, caller: str, method: str, **updates: Any) -> PendingTransaction:
    caller = to_address(caller)
    state = view.get_unit_state(symbol)
    _require_owner(state, caller)
    new_state = {**state, **updates}
    changes = [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)]
    return build_transaction(view, [], changes, origin=_origin(symbol, caller, method, view))


def compute_set_tax_fee(view: LedgerView, symbol: str, caller: str, tax_fee: int) -> PendingTransaction:
    """
    Raises:
        NotOwner: If caller is not the owner
        ValueError: If tax_fee is outside 0..100
    """
    tax_fee = _check_amount(tax_fee, "tax_fee")
    if tax_fee > PERCENT_DENOMINATOR:
        raise ValueError(f"tax_fee must be at most {PERCENT_DENOMINATOR}, got {tax_fee}")
    return _owner_update(view, symbol, caller, "setTaxFee", tax_fee=tax_fee)


def compute_set_tax_receiver(view: LedgerView, symbol: str, caller: str, receiver: str) -> PendingTransaction:
    """
    Raises:
        NotOwner: If caller is not the owner
        InvalidAddress: If receiver is malformed or the zero address
    """
    receiver = to_address(receiver)
    if receiver == ZERO_ADDRESS:
        raise InvalidAddress("Tax receiver cannot be the zero address")
    return _owner_update(view, symbol, caller, "setTaxReceiver", tax_receiver=receiver)


def compute_set_max_tx_amount(view: LedgerView, symbol: str, caller: str, amount: int) -> PendingTransaction:
    amount = _check_amount(amount, "max_tx_amount")
    return _owner_update(view, symbol, caller, "setMaxTxAmount", max_tx_amount=amount)


def compute_set_max_wallet_amount(view: LedgerView, symbol: str, caller: str, amount: int) -> PendingTransaction:
    amount = _check_amount(amount, "max_wallet_amount")
    return _owner_update(view, symbol, caller, "setMaxWalletAmount", max_wallet_amount=amount)


# ============================================================================
# OWNERSHIP
# ============================================================================

def renounce_ownership(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """Ownership is permanent: accepted from anyone, changes nothing."""
    return empty_pending_transaction(view)


def transfer_ownership(view: LedgerView, symbol: str, caller: str, new_owner: Any) -> PendingTransaction:
    """Ownership is permanent: accepted from anyone with any argument, changes nothing."""
    return empty_pending_transaction(view)
