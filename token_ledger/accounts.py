"""
accounts.py - Addresses and signers

Addresses are 20-byte identifiers written as "0x" followed by 40 hex digits.
They are normalised to lower case on entry so the same account always maps
to the same ledger wallet.

get_signers() provides a deterministic list of accounts to
act as deployer and users, in the spirit of a local development chain.
"""

from __future__ import annotations
from dataclasses import dataclass
import hashlib
import re
from typing import List

from .core import InvalidAddress


_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

DEFAULT_SIGNER_COUNT = 20
DEFAULT_SIGNER_SEED = "token-ledger"


def is_address(value: object) -> bool:
    """Return True if value is a well-formed address string."""
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def to_address(value: object) -> str:
    """
    Validate and normalise an address.

    Raises:
        InvalidAddress: If value is not "0x" + 40 hex digits
    """
    if not is_address(value):
        raise InvalidAddress(f"Invalid address: {value!r}")
    return value.lower()


@dataclass(frozen=True, slots=True)
class Signer:
    """An account that can send transactions."""
    address: str
    label: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'address', to_address(self.address))

    def __repr__(self) -> str:
        if self.label:
            return f"Signer({self.label}: {self.address})"
        return f"Signer({self.address})"


def derive_address(seed: str, index: int) -> str:
    """Deterministic address for (seed, index)."""
    digest = hashlib.sha256(f"{seed}:{index}".encode()).hexdigest()
    return "0x" + digest[:40]


def get_signers(count: int = DEFAULT_SIGNER_COUNT, seed: str = DEFAULT_SIGNER_SEED) -> List[Signer]:
    """
    Return `count` deterministic signers.

    The same seed always yields the same addresses in the same order, so
    signers[0] is a stable deployer across runs.
    """
    if count <= 0:
        raise ValueError(f"count must be positive, got {count}")
    labels = ["owner"] + [f"addr{i}" for i in range(1, count)]
    return [Signer(derive_address(seed, i), labels[i]) for i in range(count)]
