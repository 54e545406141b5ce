# Filename: contract_client.py

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List

from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import TransactionNotFound

from calculator import ETH_DECIMALS, from_smallest_unit
from errors import ConfigurationError, NetworkReadError, TransactionRevertError, WalletRejectionError
from models import CreationRequest, PurchaseEvent, PurchaseOrder, PurchaseRecord, SaleStats

logger = logging.getLogger("contract_client")

ERC20_FACTORY_ABI = [
    {
        "type": "function",
        "name": "creationFee",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "createToken",
        "inputs": [
            {"name": "name_", "type": "string"},
            {"name": "symbol_", "type": "string"},
            {"name": "totalSupply_", "type": "uint256"},
            {"name": "owner_", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "payable",
    },
]

FIXED_PRESALE_ABI = [
    {
        "type": "function",
        "name": "PRICE",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "buyTokens",
        "inputs": [],
        "outputs": [],
        "stateMutability": "payable",
    },
    {
        "type": "function",
        "name": "getSaleStats",
        "inputs": [],
        "outputs": [
            {"name": "totalRaised", "type": "uint256"},
            {"name": "totalFeesCollected", "type": "uint256"},
            {"name": "tokensRemaining", "type": "uint256"},
            {"name": "tokensSold", "type": "uint256"},
            {"name": "isActive", "type": "bool"},
        ],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "userPurchases",
        "inputs": [{"name": "", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "paused",
        "inputs": [],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
    },
    {
        "type": "event",
        "name": "TokensPurchased",
        "anonymous": False,
        "inputs": [
            {"name": "buyer", "type": "address", "indexed": True},
            {"name": "ethAmount", "type": "uint256", "indexed": False},
            {"name": "tokenAmount", "type": "uint256", "indexed": False},
            {"name": "platformFee", "type": "uint256", "indexed": False},
        ],
    },
]


def _hex(value) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    return AsyncWeb3.to_hex(value)


class WalletSession:
    """
    External wallet. Signing and keys live on the other side of this seam;
    the client only asks for a transaction to be sent and gets a hash back.
    """
    address: str = ""

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        raise NotImplementedError


class NodeWalletSession(WalletSession):
    """Wallet backed by an account the node manages (eth_sendTransaction)."""

    def __init__(self, w3: AsyncWeb3, address: str):
        self.w3 = w3
        self.address = AsyncWeb3.to_checksum_address(address) if address else ""

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        try:
            tx_hash = await self.w3.eth.send_transaction(tx)
        except Exception as e:
            logger.error(f"Wallet refused transaction: {e}")
            raise WalletRejectionError(str(e)) from e
        return _hex(tx_hash)


class LaunchpadContracts:
    """
    Call surface of the ERC20 factory and the fixed-price presale.
    Reads raise NetworkReadError; a missing address raises ConfigurationError.
    """

    def __init__(self, w3: AsyncWeb3, factory_address: str = "", presale_address: str = ""):
        self.w3 = w3
        self.factory_address = factory_address or ""
        self.presale_address = presale_address or ""
        self.factory = None
        self.presale = None

        if self.factory_address:
            self.factory = w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(self.factory_address), abi=ERC20_FACTORY_ABI
            )
        if self.presale_address:
            self.presale = w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(self.presale_address), abi=FIXED_PRESALE_ABI
            )

        logger.info(
            f"Contracts initialised (factory={self.factory_address or '-'}, presale={self.presale_address or '-'})"
        )

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "LaunchpadContracts":
        w3 = AsyncWeb3(AsyncHTTPProvider(config.get("RPC_HTTP_ENDPOINT", "http://127.0.0.1:8545")))
        return cls(
            w3,
            factory_address=config.get("ERC20_FACTORY_ADDRESS", ""),
            presale_address=config.get("LST_PRESALE_ADDRESS", ""),
        )

    def require_factory(self):
        if self.factory is None:
            raise ConfigurationError("Factory address not configured. Set ERC20_FACTORY_ADDRESS")
        return self.factory

    def require_presale(self):
        if self.presale is None:
            raise ConfigurationError("Presale address not configured. Set LST_PRESALE_ADDRESS")
        return self.presale

    async def _read(self, label: str, call) -> Any:
        try:
            return await call.call()
        except Exception as e:
            logger.warning(f"[READ] {label} failed: {e}")
            raise NetworkReadError(f"{label} failed: {e}") from e

    # Reads

    async def creation_fee(self) -> Decimal:
        factory = self.require_factory()
        wei = await self._read("creationFee", factory.functions.creationFee())
        return from_smallest_unit(wei, ETH_DECIMALS)

    async def price(self) -> Decimal:
        presale = self.require_presale()
        wei = await self._read("PRICE", presale.functions.PRICE())
        return from_smallest_unit(wei, ETH_DECIMALS)

    async def get_sale_stats(self, token_decimals: int = 18) -> SaleStats:
        presale = self.require_presale()
        raised, fees, remaining, sold, active = await self._read("getSaleStats", presale.functions.getSaleStats())
        return SaleStats(
            total_raised=from_smallest_unit(raised, ETH_DECIMALS),
            total_fees_collected=from_smallest_unit(fees, ETH_DECIMALS),
            tokens_remaining=from_smallest_unit(remaining, token_decimals),
            tokens_sold=from_smallest_unit(sold, token_decimals),
            is_active=bool(active),
        )

    async def user_purchases(self, address: str) -> PurchaseRecord:
        presale = self.require_presale()
        checksum = AsyncWeb3.to_checksum_address(address)
        wei = await self._read("userPurchases", presale.functions.userPurchases(checksum))
        return PurchaseRecord(address=checksum, eth_spent=from_smallest_unit(wei, ETH_DECIMALS))

    async def paused(self) -> bool:
        presale = self.require_presale()
        return bool(await self._read("paused", presale.functions.paused()))

    async def latest_block(self) -> int:
        try:
            return await self.w3.eth.block_number
        except Exception as e:
            raise NetworkReadError(f"block_number failed: {e}") from e

    async def get_purchase_events(self, from_block: int, token_decimals: int = 18) -> List[PurchaseEvent]:
        presale = self.require_presale()
        try:
            logs = await presale.events.TokensPurchased.get_logs(from_block=from_block)
        except Exception as e:
            logger.warning(f"[READ] TokensPurchased logs failed: {e}")
            raise NetworkReadError(f"TokensPurchased logs failed: {e}") from e

        events = []
        for log in logs:
            args = log["args"]
            events.append(PurchaseEvent(
                buyer=args["buyer"],
                eth_amount=from_smallest_unit(args["ethAmount"], ETH_DECIMALS),
                token_amount=from_smallest_unit(args["tokenAmount"], token_decimals),
                platform_fee=from_smallest_unit(args["platformFee"], ETH_DECIMALS),
                tx_hash=_hex(log["transactionHash"]),
                block_number=int(log["blockNumber"]),
            ))
        return events

    # Writes

    async def create_token(self, request: CreationRequest, fee_wei: int, wallet: WalletSession,
                           token_decimals: int = 18) -> str:
        factory = self.require_factory()
        call = factory.functions.createToken(
            request.name,
            request.symbol,
            request.total_supply_units(token_decimals),
            wallet.address,
        )
        return await self._send(call, fee_wei, wallet)

    async def buy_tokens(self, order: PurchaseOrder, wallet: WalletSession) -> str:
        presale = self.require_presale()
        return await self._send(presale.functions.buyTokens(), order.value_wei, wallet)

    async def _send(self, call, value_wei: int, wallet: WalletSession) -> str:
        try:
            tx = await call.build_transaction({"from": wallet.address, "value": value_wei})
        except Exception as e:
            logger.error(f"Failed to prepare transaction: {e}")
            raise WalletRejectionError(f"Failed to prepare transaction: {e}") from e
        tx_hash = await wallet.send_transaction(tx)
        logger.info(f"Transaction sent: {tx_hash}")
        return tx_hash

    # Receipts

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 0, poll_latency: float = 2.0) -> Dict[str, Any]:
        """
        Polls for the receipt of `tx_hash`. Waits indefinitely when `timeout` is 0.
        Raises TransactionRevertError for a failed receipt or an elapsed timeout.
        """
        deadline = time.monotonic() + timeout if timeout else None

        while True:
            try:
                receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            except Exception as e:
                logger.warning(f"[RECEIPT] {tx_hash}: read failed, retrying ({e})")
                receipt = None

            if receipt is not None:
                break
            if deadline is not None and time.monotonic() >= deadline:
                raise TransactionRevertError(f"Timed out waiting for transaction {tx_hash}", tx_hash)
            await asyncio.sleep(poll_latency)

        if receipt["status"] != 1:
            reason = await self._revert_reason(tx_hash, receipt)
            raise TransactionRevertError(reason, tx_hash)

        logger.info(f"[RECEIPT] {tx_hash} confirmed in block {receipt['blockNumber']}")
        return receipt

    async def _revert_reason(self, tx_hash: str, receipt) -> str:
        """Replays the failed transaction to get the node's message for it."""
        try:
            tx = await self.w3.eth.get_transaction(tx_hash)
            await self.w3.eth.call(
                {"from": tx["from"], "to": tx["to"], "data": tx["input"], "value": tx["value"]},
                receipt["blockNumber"] - 1,
            )
        except Exception as e:
            return str(e) or "Transaction failed"
        return "Transaction failed"
