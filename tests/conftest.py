"""
conftest.py - Shared pytest fixtures for token ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Signers and default settings
- A fresh ledger
- A deployed token with the usual owner/addr1/addr2 accounts
"""

import pytest
from datetime import datetime
from typing import List

from token_ledger import (
    Ledger, Signer, TokenContract, TokenSettings,
    get_signers, parse_ether,
)

from tests.helpers import Deployment


@pytest.fixture
def signers() -> List[Signer]:
    return get_signers(5)


@pytest.fixture
def settings() -> TokenSettings:
    """Default deployment settings, independent of any .env file."""
    return TokenSettings.from_mapping({})


@pytest.fixture
def ledger() -> Ledger:
    return Ledger("test", datetime(2025, 1, 1), verbose=False)


@pytest.fixture
def deployment(ledger, signers, settings) -> Deployment:
    """Deployed token: owner holds the whole supply."""
    owner, addr1, addr2, addr3 = signers[:4]
    token = TokenContract.deploy(ledger, owner, settings)
    return Deployment(ledger, token, owner, addr1, addr2, addr3)


@pytest.fixture
def funded(deployment) -> Deployment:
    """Deployed token with addr1 holding 20,000 MTK (its wallet cap)."""
    deployment.token.transfer(deployment.addr1, parse_ether(20_000))
    return deployment
