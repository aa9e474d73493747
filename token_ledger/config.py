"""
config.py - Deployment parameters for the token

Settings are read from MYTOKEN_* environment variables or a .env file, with
defaults matching the reference deployment:

    MYTOKEN_TOTAL_SUPPLY_TOKENS=1000000
    MYTOKEN_TAX_FEE=5
    MYTOKEN_MAX_TX_TOKENS=10000
    MYTOKEN_MAX_WALLET_TOKENS=20000

Supply and caps are given in whole tokens; the *_amount properties give
them in smallest units.
"""

from __future__ import annotations

from functools import cache
from typing import Any, Mapping

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core import MAX_UINT256


class TokenSettings(BaseSettings):
    name: str = Field("MyToken", min_length=1)
    symbol: str = Field("MTK", min_length=1, max_length=11)
    decimals: int = Field(18, ge=0, le=36)
    total_supply_tokens: int = Field(1_000_000, gt=0)
    tax_fee: int = Field(5, ge=0, le=100, description="Percent of a taxed transfer sent to the tax receiver")
    max_tx_tokens: int = Field(10_000, ge=0, description="Largest transfer a non-owner may send")
    max_wallet_tokens: int = Field(20_000, ge=0, description="Largest balance a non-owner may reach by transfer")

    model_config = SettingsConfigDict(
        env_prefix="MYTOKEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @model_validator(mode="after")
    def _caps_within_supply(self) -> "TokenSettings":
        if self.total_supply > MAX_UINT256:
            raise ValueError("total supply in smallest units does not fit in uint256")
        if self.max_tx_tokens > self.total_supply_tokens:
            raise ValueError("max_tx_tokens cannot exceed total_supply_tokens")
        if self.max_wallet_tokens > self.total_supply_tokens:
            raise ValueError("max_wallet_tokens cannot exceed total_supply_tokens")
        return self

    @property
    def unit(self) -> int:
        """Smallest units per whole token."""
        return 10 ** self.decimals

    @property
    def total_supply(self) -> int:
        return self.total_supply_tokens * self.unit

    @property
    def max_tx_amount(self) -> int:
        return self.max_tx_tokens * self.unit

    @property
    def max_wallet_amount(self) -> int:
        return self.max_wallet_tokens * self.unit

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "TokenSettings":
        """Build settings from explicit values, ignoring any .env file."""
        return cls(_env_file=None, **dict(values))


@cache
def get_settings() -> TokenSettings:
    return TokenSettings()
