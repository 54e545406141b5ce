from decimal import Decimal

import pytest

from contract_client import WalletSession
from errors import ConfigurationError, NetworkReadError, TransactionRevertError, WalletRejectionError
from models import PurchaseEvent, PurchaseRecord, SaleStats
from notifier import Notifier

BUYER = "0x1111111111111111111111111111111111111111"


class FakeWallet(WalletSession):
    def __init__(self, address: str = BUYER, reject: str = None):
        self.address = address
        self.reject = reject
        self.sent = []

    async def send_transaction(self, tx):
        if self.reject:
            raise WalletRejectionError(self.reject)
        self.sent.append(tx)
        return f"0x{len(self.sent):064x}"


class FakeContracts:
    """Stands in for LaunchpadContracts: same call surface, scripted answers."""

    def __init__(self, factory: bool = True, presale: bool = True):
        self.factory = factory
        self.presale = presale
        self.stats = SaleStats(
            total_raised=Decimal("10"),
            total_fees_collected=Decimal("0.25"),
            tokens_remaining=Decimal("2900000"),
            tokens_sold=Decimal("100000"),
            is_active=True,
        )
        self.spent = Decimal("0.5")
        self.is_paused = False
        self.fee = Decimal("0.01")
        self.sale_price = Decimal("0.0001")
        self.fail_reads = False
        self.receipt_error = None
        self.receipt_gate = None
        self.calls = []

    def require_factory(self):
        if not self.factory:
            raise ConfigurationError("Factory address not configured. Set ERC20_FACTORY_ADDRESS")
        return self.factory

    def require_presale(self):
        if not self.presale:
            raise ConfigurationError("Presale address not configured. Set LST_PRESALE_ADDRESS")
        return self.presale

    def _read(self, name):
        self.calls.append(name)
        if self.fail_reads:
            raise NetworkReadError(f"{name} failed: connection reset")

    async def creation_fee(self):
        self._read("creationFee")
        return self.fee

    async def price(self):
        self._read("PRICE")
        return self.sale_price

    async def get_sale_stats(self, token_decimals=18):
        self._read("getSaleStats")
        return self.stats

    async def user_purchases(self, address):
        self._read("userPurchases")
        return PurchaseRecord(address=address, eth_spent=self.spent)

    async def paused(self):
        self._read("paused")
        return self.is_paused

    async def latest_block(self):
        self._read("blockNumber")
        return 100

    async def get_purchase_events(self, from_block, token_decimals=18):
        self._read("TokensPurchased")
        return [PurchaseEvent(BUYER, Decimal("1"), Decimal("10000"), Decimal("0.025"), "0xabc", 99)]

    async def create_token(self, request, fee_wei, wallet, token_decimals=18):
        self.calls.append("createToken")
        return await wallet.send_transaction({
            "fn": "createToken",
            "args": (request.name, request.symbol, request.total_supply_units(token_decimals), wallet.address),
            "value": fee_wei,
        })

    async def buy_tokens(self, order, wallet):
        self.calls.append("buyTokens")
        return await wallet.send_transaction({"fn": "buyTokens", "value": order.value_wei})

    async def wait_for_receipt(self, tx_hash, timeout=0, poll_latency=2.0):
        self.calls.append("receipt")
        if self.receipt_gate is not None:
            await self.receipt_gate.wait()
        if self.receipt_error:
            raise TransactionRevertError(self.receipt_error, tx_hash)
        return {"status": 1, "transactionHash": tx_hash, "blockNumber": 1}


@pytest.fixture()
def contracts():
    return FakeContracts()


@pytest.fixture()
def wallet():
    return FakeWallet()


@pytest.fixture()
def notifier():
    return Notifier()
