# Filename: models.py

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional


class TxStatus(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    AWAITING_SIGNATURE = "awaiting_signature"
    SUBMITTED = "submitted"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class SaleStats:
    """
    SaleStats is one consistent read of the presale contract's getSaleStats().
    Amounts are ETH, token counts are whole tokens. Always replaced as a whole.
    """
    total_raised: Decimal
    total_fees_collected: Decimal
    tokens_remaining: Decimal
    tokens_sold: Decimal
    is_active: bool


@dataclass(frozen=True)
class PurchaseRecord:
    address: str                     # Buyer address
    eth_spent: Decimal               # Cumulative ETH spent in the sale

    def token_count(self, price: Decimal) -> Decimal:
        if price <= 0:
            return Decimal(0)
        return self.eth_spent / price


@dataclass(frozen=True)
class CreationRequest:
    name: str
    symbol: str                      # Upper-cased
    total_supply: int                # Whole tokens, human units
    liquidity_eth: Decimal = Decimal(0)

    def total_supply_units(self, decimals: int = 18) -> int:
        return self.total_supply * 10 ** decimals


@dataclass(frozen=True)
class PurchaseOrder:
    eth_amount: Decimal
    value_wei: int


@dataclass(frozen=True)
class FeeBreakdown:
    platform_fee: Decimal
    creator_amount: Decimal
    token_amount: Decimal


@dataclass
class TransactionRecord:
    """TransactionRecord tracks the single live submission of one flow."""
    flow: str                        # 'creation' or 'purchase'
    hash: Optional[str] = None       # Assigned once the wallet signs
    submitted_at: float = field(default_factory=time.time)
    status: TxStatus = TxStatus.VALIDATING
    error: Optional[str] = None


@dataclass(frozen=True)
class PurchaseEvent:
    """Decoded TokensPurchased log."""
    buyer: str
    eth_amount: Decimal
    token_amount: Decimal
    platform_fee: Decimal
    tx_hash: str = ""
    block_number: int = 0
