"""
Example: Deploying the token and walking through its transfer policy.

Shows the untaxed owner transfers, a taxed transfer between holders, the
three ways a transfer can revert, and the inert ownership calls. The ledger
runs verbose, so every applied transaction is printed as it happens.
"""

from datetime import datetime

from token_ledger import (
    Ledger, TokenContract, TokenError, get_signers, format_ether, parse_ether,
)


def show_balances(token, accounts):
    for account in accounts:
        print(f"  {account.label:>6}: {format_ether(token.balance_of(account)):>14} {token.symbol}")


def main():
    print("=" * 80)
    print("MyToken - Transfer Tax and Holder Limits")
    print("=" * 80)
    print()

    ledger = Ledger("demo", initial_time=datetime(2025, 1, 1), verbose=True)
    owner, addr1, addr2 = get_signers(3)

    print("Deployment: the whole supply is minted to the owner.")
    token = TokenContract.deploy(ledger, owner)
    print(f"Tax fee {token.tax_fee()}%, max tx {format_ether(token.max_tx_amount())}, "
          f"max wallet {format_ether(token.max_wallet_amount())}")
    print()

    print("Example 1: Owner transfers are untaxed")
    print("-" * 80)
    token.transfer(addr1, parse_ether(20_000))
    show_balances(token, [owner, addr1])
    print()

    print("Example 2: Transfers between holders pay the tax to the tax receiver")
    print("-" * 80)
    as_addr1 = token.connect(addr1)
    as_addr1.transfer(addr2, parse_ether(1_000))
    for event in as_addr1.last_events():
        print(f"  {event.name}{event.args}")
    show_balances(token, [owner, addr1, addr2])
    print()

    print("Example 3: Reverted transfers")
    print("-" * 80)
    attempts = [
        ("addr2 sends more than it holds", token.connect(addr2), addr1, parse_ether(10_000)),
        ("addr1 exceeds the transaction cap", as_addr1, addr2, parse_ether(15_000)),
        ("owner fills addr2 past the wallet cap", token, addr2, parse_ether(19_100)),
    ]
    for label, handle, to, amount in attempts:
        try:
            handle.transfer(to, amount)
        except TokenError as err:
            print(f"  {label}: reverted with '{err.reason}'")
    print()

    print("Example 4: Ownership cannot be given away")
    print("-" * 80)
    token.renounce_ownership()
    token.transfer_ownership(addr1)
    print(f"  owner is still {token.owner()}")
    print()

    result = ledger.verify_double_entry()
    print(f"Double entry valid: {result['valid']}, supply {format_ether(int(result['supplies']['MTK']))}")


if __name__ == "__main__":
    main()
