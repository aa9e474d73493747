"""
test_ledger_operations.py - Unit tests for Ledger class operations

Tests:
- Ledger creation and configuration
- Wallet and unit registration
- Balance queries, supply and double entry
- Time management
- Transaction execution (nonces, stale state, rejections)
- clone() and replay()
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from token_ledger import (
    Ledger, Move, Unit, ExecuteResult, UnitStateChange, TransactionOrigin,
    OriginType, build_transaction, LedgerError, UnitNotRegistered,
    TokenContract, ZERO_ADDRESS, parse_ether,
)
from token_ledger.core import _freeze_state

from tests.helpers import ALICE, BOB, CAROL, token_state


def plain_unit(symbol: str = "MTK") -> Unit:
    """Token-shaped unit without a transfer rule."""
    return Unit(
        symbol=symbol,
        name="MyToken",
        unit_type="ERC20",
        min_balance=Decimal("0"),
        decimal_places=0,
        _frozen_state=_freeze_state(token_state(symbol=symbol)),
    )


def funded_ledger(**balances) -> Ledger:
    ledger = Ledger("test", datetime(2025, 1, 1), verbose=False, test_mode=True)
    ledger.register_unit(plain_unit())
    for wallet, amount in balances.items():
        ledger.set_balance(wallet, "MTK", Decimal(amount))
    return ledger


def origin(sender: str, nonce: int = 0, event: str = "transfer") -> TransactionOrigin:
    return TransactionOrigin(OriginType.USER_ACTION, sender, "MTK", event, nonce)


class TestLedgerCreation:
    """Tests for Ledger initialization."""

    def test_create_ledger_with_options(self):
        t = datetime(2025, 1, 1, 9, 30)
        ledger = Ledger(name="test", initial_time=t, verbose=False)
        assert ledger.name == "test"
        assert ledger.current_time == t
        assert ledger.verbose is False

    def test_default_time(self):
        assert Ledger("test", verbose=False).current_time == datetime(1970, 1, 1)

    def test_zero_address_known_from_start(self):
        ledger = Ledger("test", verbose=False)
        assert ledger.is_registered(ZERO_ADDRESS)
        assert ledger.list_units() == []


class TestRegistration:
    """Wallets are implicit; units are registered once."""

    def test_register_wallet_idempotent(self):
        ledger = Ledger("test", verbose=False)
        ledger.register_wallet(ALICE)
        ledger.register_wallet(ALICE)
        assert ledger.list_wallets() == {ZERO_ADDRESS, ALICE}

    def test_register_empty_wallet_raises(self):
        with pytest.raises(ValueError):
            Ledger("test", verbose=False).register_wallet("  ")

    def test_list_wallets_returns_copy(self):
        ledger = Ledger("test", verbose=False)
        ledger.list_wallets().add(ALICE)
        assert not ledger.is_registered(ALICE)

    def test_register_duplicate_unit_raises(self):
        ledger = funded_ledger()
        with pytest.raises(ValueError, match="already registered"):
            ledger.register_unit(plain_unit())

    def test_register_unit_prints_when_verbose(self, capsys):
        ledger = Ledger("test", verbose=True)
        ledger.register_unit(plain_unit())
        assert "Registered: MTK (MyToken) [ERC20]" in capsys.readouterr().out

    def test_list_units_sorted(self):
        ledger = funded_ledger()
        ledger.register_unit(plain_unit("ABC"))
        assert ledger.list_units() == ["ABC", "MTK"]

    def test_get_unit_state_unregistered_raises(self):
        with pytest.raises(UnitNotRegistered):
            Ledger("test", verbose=False).get_unit_state("MTK")


class TestBalanceQueries:
    """Balances, positions and supply."""

    def test_unknown_wallet_has_zero_balance(self):
        assert funded_ledger().get_balance(ALICE, "MTK") == Decimal("0")

    def test_unregistered_unit_raises(self):
        with pytest.raises(UnitNotRegistered):
            funded_ledger().get_balance(ALICE, "XYZ")

    def test_set_balance_requires_test_mode(self):
        ledger = Ledger("test", verbose=False)
        ledger.register_unit(plain_unit())
        with pytest.raises(LedgerError, match="test_mode"):
            ledger.set_balance(ALICE, "MTK", Decimal("1"))

    def test_positions_skip_zero(self):
        ledger = funded_ledger(**{ALICE: 10, BOB: 0})
        assert ledger.get_positions("MTK") == {ALICE: Decimal("10")}

    def test_wallet_balances(self):
        ledger = funded_ledger(**{ALICE: 10})
        assert ledger.get_wallet_balances(ALICE) == {"MTK": Decimal("10")}
        assert ledger.get_wallet_balances(BOB) == {}

    def test_total_supply_excludes_zero_address(self, deployment):
        ledger = deployment.ledger
        assert ledger.get_balance(ZERO_ADDRESS, "MTK") == -Decimal(parse_ether(1_000_000))
        assert ledger.total_supply("MTK") == Decimal(parse_ether(1_000_000))

    def test_verify_double_entry(self, deployment):
        result = deployment.ledger.verify_double_entry({"MTK": Decimal(parse_ether(1_000_000))})
        assert result['valid'], result['discrepancies']
        assert result['supplies'] == {"MTK": Decimal(parse_ether(1_000_000))}

    def test_verify_double_entry_reports_wrong_supply(self, deployment):
        result = deployment.ledger.verify_double_entry({"MTK": Decimal(1), "XYZ": Decimal(5)})
        assert not result['valid']
        assert {d['unit'] for d in result['discrepancies']} == {"MTK", "XYZ"}


class TestTimeManagement:

    def test_advance_time(self):
        ledger = Ledger("test", datetime(2025, 1, 1), verbose=False)
        ledger.advance_time(datetime(2025, 1, 2))
        assert ledger.current_time == datetime(2025, 1, 2)

    def test_advance_time_backwards_raises(self):
        ledger = Ledger("test", datetime(2025, 1, 2), verbose=False)
        with pytest.raises(ValueError):
            ledger.advance_time(datetime(2025, 1, 1))


class TestTransactionExecution:
    """execute() validates everything before applying anything."""

    def test_execute_simple_transaction(self):
        ledger = funded_ledger(**{ALICE: 100})
        pending = build_transaction(ledger, [Move(Decimal("40"), "MTK", ALICE, BOB, "pay")], origin=origin(ALICE))

        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.get_balance(ALICE, "MTK") == Decimal("60")
        assert ledger.get_balance(BOB, "MTK") == Decimal("40")
        assert ledger.is_registered(BOB)
        assert ledger.transaction_log[-1].sequence_number == 0

    def test_execute_increments_sender_nonce(self):
        ledger = funded_ledger(**{ALICE: 100})
        for expected in range(3):
            assert ledger.get_nonce(ALICE) == expected
            pending = build_transaction(
                ledger, [Move(Decimal("1"), "MTK", ALICE, BOB, "pay")], origin=origin(ALICE, expected)
            )
            assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.get_nonce(ALICE) == 3
        assert ledger.get_nonce(BOB) == 0

    def test_stale_nonce_rejected(self):
        ledger = funded_ledger(**{ALICE: 100})
        first = build_transaction(ledger, [Move(Decimal("1"), "MTK", ALICE, BOB, "a")], origin=origin(ALICE, 0))
        other = build_transaction(ledger, [Move(Decimal("2"), "MTK", ALICE, BOB, "b")], origin=origin(ALICE, 0))
        ledger.execute(first)

        assert ledger.execute(other) == ExecuteResult.REJECTED
        assert "nonce mismatch" in ledger.last_rejection_reason
        assert ledger.get_balance(BOB, "MTK") == Decimal("1")

    def test_reexecution_already_applied(self):
        ledger = funded_ledger(**{ALICE: 100})
        pending = build_transaction(ledger, [Move(Decimal("1"), "MTK", ALICE, BOB, "a")], origin=origin(ALICE))
        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.execute(pending) == ExecuteResult.ALREADY_APPLIED
        assert ledger.get_balance(BOB, "MTK") == Decimal("1")

    def test_insufficient_balance_rejected(self):
        ledger = funded_ledger(**{ALICE: 10})
        pending = build_transaction(ledger, [Move(Decimal("11"), "MTK", ALICE, BOB, "a")], origin=origin(ALICE))
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert "< min 0" in ledger.last_rejection_reason
        assert ledger.get_nonce(ALICE) == 0
        assert ledger.transaction_log == []

    def test_net_balance_checked_across_moves(self):
        # ALICE spends 15 with 10, but receives 5 back in the same transaction
        ledger = funded_ledger(**{ALICE: 10, BOB: 5})
        pending = build_transaction(ledger, [
            Move(Decimal("5"), "MTK", BOB, ALICE, "a"),
            Move(Decimal("15"), "MTK", ALICE, CAROL, "b"),
        ])
        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.get_balance(CAROL, "MTK") == Decimal("15")

    def test_unregistered_unit_rejected(self):
        ledger = funded_ledger(**{ALICE: 10})
        pending = build_transaction(ledger, [Move(Decimal("1"), "XYZ", ALICE, BOB, "a")])
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert ledger.last_rejection_reason == "unit not registered: XYZ"

    def test_future_timestamp_rejected(self):
        ledger = funded_ledger(**{ALICE: 10})
        later = funded_ledger()
        later.advance_time(ledger.current_time + timedelta(days=1))
        pending = build_transaction(later, [Move(Decimal("1"), "MTK", ALICE, BOB, "a")])
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert ledger.last_rejection_reason == "future timestamp"

    def test_state_change_applied(self):
        ledger = funded_ledger()
        change = UnitStateChange("MTK", token_state(), token_state(tax_fee=9))
        pending = build_transaction(ledger, [], [change], origin=origin(ALICE, event="setTaxFee"))

        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.get_unit_state("MTK")['tax_fee'] == 9
        assert ledger.transaction_log[-1].state_changes[0].changed_fields() == {'tax_fee': (5, 9)}

    def test_stale_state_change_rejected(self):
        ledger = funded_ledger()
        first = build_transaction(ledger, [], [UnitStateChange("MTK", token_state(), token_state(tax_fee=1))])
        second = build_transaction(ledger, [], [UnitStateChange("MTK", token_state(), token_state(tax_fee=2))])

        assert ledger.execute(first) == ExecuteResult.APPLIED
        assert ledger.execute(second) == ExecuteResult.REJECTED
        assert ledger.last_rejection_reason == "stale state for MTK"
        assert ledger.get_unit_state("MTK")['tax_fee'] == 1

    def test_rejected_unit_creation_is_rolled_back(self):
        ledger = Ledger("test", verbose=False)
        pending = build_transaction(
            ledger,
            [Move(Decimal("1"), "NEW", ALICE, BOB, "a")],
            units_to_create=(plain_unit("NEW"),),
        )
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert "NEW" not in ledger.units

    def test_empty_transaction_applied(self):
        ledger = Ledger("test", verbose=False)
        assert ledger.execute(build_transaction(ledger, [])) == ExecuteResult.APPLIED
        assert ledger.transaction_log == []

    def test_verbose_prints_result(self, capsys):
        ledger = funded_ledger(**{ALICE: 10})
        ledger.verbose = True
        ledger.execute(build_transaction(ledger, [Move(Decimal("1"), "MTK", ALICE, BOB, "a")]))
        ledger.execute(build_transaction(ledger, [Move(Decimal("100"), "MTK", ALICE, BOB, "b")]))
        out = capsys.readouterr().out
        assert "✓ APPLIED" in out
        assert "✗ REJECTED" in out


class TestClone:
    """clone() is an independent snapshot."""

    def test_clone_is_independent(self, deployment):
        ledger, token = deployment.ledger, deployment.token
        snapshot = ledger.clone()

        token.transfer(deployment.addr1, parse_ether(100))

        assert snapshot.get_balance(deployment.addr1.address, "MTK") == 0
        assert len(snapshot.transaction_log) == 1
        assert snapshot.get_nonce(deployment.owner.address) == 1
        assert ledger.get_nonce(deployment.owner.address) == 2

    def test_clone_can_continue(self, deployment):
        snapshot = deployment.ledger.clone()
        TokenContract(snapshot, "MTK", deployment.owner).transfer(deployment.addr2, parse_ether(5))
        assert deployment.token.balance_of(deployment.addr2) == 0
        assert snapshot.get_balance(deployment.addr2.address, "MTK") == Decimal(parse_ether(5))


class TestReplay:
    """replay() rebuilds the same state from the log."""

    def test_replay_recreates_state(self, funded):
        token = funded.token
        token.connect(funded.addr1).transfer(funded.addr2, parse_ether(1_000))
        token.set_tax_fee(3)
        token.connect(funded.addr1).approve(funded.addr3, parse_ether(10))

        replayed = funded.ledger.replay()

        assert replayed.balances == funded.ledger.balances
        assert replayed.get_unit_state("MTK") == funded.ledger.get_unit_state("MTK")
        assert dict(replayed.nonces) == dict(funded.ledger.nonces)
        assert len(replayed.transaction_log) == len(funded.ledger.transaction_log)

    def test_replay_with_units_registered_outside_log(self):
        ledger = funded_ledger()
        ledger.execute(build_transaction(
            ledger, [], [UnitStateChange("MTK", token_state(), token_state(tax_fee=1))]
        ))
        replayed = ledger.replay()
        assert replayed.get_unit_state("MTK")['tax_fee'] == 1
