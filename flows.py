# Filename: flows.py

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from calculator import (
    DEFAULT_ECONOMICS,
    ETH_DECIMALS,
    SaleEconomics,
    creation_preview,
    purchase_preview,
    to_smallest_unit,
)
from contract_client import WalletSession
from errors import ConfigurationError, NetworkReadError, ValidationError
from models import CreationRequest, PurchaseOrder
from notifier import Notice, NoticeLevel, Notifier, format_creation_alert, format_purchase_alert
from sale_sync import SaleStateSynchronizer
from tx_controller import ControllerState, TransactionController
from validator import InputValidator, validate_purchase

logger = logging.getLogger("flows")

DEFAULT_PURCHASE_AMOUNT = "0.01"
DEFAULT_LIQUIDITY_AMOUNT = "0.001"


class _Flow:
    """Shared plumbing: configuration gate, wallet gate and receipt waiting."""

    name = ""
    config_key = ""

    def __init__(self, contracts, wallet: Optional[WalletSession], notifier: Optional[Notifier],
                 economics: SaleEconomics, config_data: Optional[Dict[str, Any]]):
        self.contracts = contracts
        self.wallet = wallet
        self.notifier = notifier or Notifier()
        self.economics = economics
        self.config = config_data or {}
        self.validator = InputValidator(economics)
        self.config_error: Optional[ConfigurationError] = None
        self.controller: Optional[TransactionController] = None

    @property
    def enabled(self) -> bool:
        return self.config_error is None

    @property
    def connected(self) -> bool:
        return self.wallet is not None and bool(self.wallet.address)

    def check_configuration(self, require) -> bool:
        try:
            require()
        except ConfigurationError as e:
            self.config_error = e
            logger.error(f"[{self.name}] {e}")
            self.notifier.notify(Notice(NoticeLevel.WARNING, str(e), key=self.config_key, persistent=True))
            return False
        return True

    def _gate(self) -> bool:
        """Checks made before anything is validated or sent."""
        if not self.enabled:
            logger.warning(f"[{self.name}] submission disabled: {self.config_error}")
            return False
        if not self.connected:
            self.notifier.notify(Notice(NoticeLevel.ERROR, "Connect your wallet first"))
            return False
        return True

    async def _wait(self, tx_hash: str):
        return await self.contracts.wait_for_receipt(
            tx_hash,
            timeout=float(self.config.get("RECEIPT_TIMEOUT_SECONDS", 0) or 0),
            poll_latency=float(self.config.get("RECEIPT_POLL_LATENCY_SECONDS", 2.0)),
        )

    async def settle(self) -> ControllerState:
        return await self.controller.settle()


class CreationFlow(_Flow):
    name = "creation"
    config_key = "factory-config"

    def __init__(self, contracts, wallet: Optional[WalletSession] = None, notifier: Optional[Notifier] = None,
                 economics: SaleEconomics = DEFAULT_ECONOMICS, config_data: Optional[Dict[str, Any]] = None):
        super().__init__(contracts, wallet, notifier, economics, config_data)
        self.token_name = ""
        self.symbol = ""
        self.total_supply = ""
        self.liquidity_eth = DEFAULT_LIQUIDITY_AMOUNT
        self.creation_fee: Optional[Decimal] = None

        self.controller = TransactionController(
            "creation",
            validate=self._validate,
            sign=self._sign,
            wait_for_receipt=self._wait,
            notifier=self.notifier,
            on_reset=self.reset_form,
            describe_success=lambda request, tx_hash: format_creation_alert(
                tx_hash, request.name, request.symbol, request.total_supply
            ),
        )
        self.check_configuration(self.contracts.require_factory)

    @property
    def fee(self) -> Decimal:
        if self.creation_fee is None:
            return self.economics.default_creation_fee
        return self.creation_fee

    def set_symbol(self, value: str):
        self.symbol = (value or "").upper()

    async def load_creation_fee(self) -> Decimal:
        if not self.enabled:
            return self.fee
        try:
            self.creation_fee = await self.contracts.creation_fee()
            logger.info(f"[creation] Creation fee: {self.creation_fee} ETH")
        except NetworkReadError as e:
            logger.warning(f"[creation] Could not read creation fee, using {self.fee} ETH: {e}")
        return self.fee

    def preview(self) -> Dict[str, Any]:
        return creation_preview(self.fee, self.liquidity_eth, self.economics)

    async def submit(self, name: Optional[str] = None, symbol: Optional[str] = None,
                     total_supply: Any = None, liquidity_eth: Any = None) -> ControllerState:
        if name is not None:
            self.token_name = name
        if symbol is not None:
            self.set_symbol(symbol)
        if total_supply is not None:
            self.total_supply = str(total_supply)
        if liquidity_eth is not None:
            self.liquidity_eth = str(liquidity_eth)

        if not self._gate():
            return self.controller.state

        return await self.controller.submit({
            "name": self.token_name,
            "symbol": self.symbol,
            "total_supply": self.total_supply,
            "liquidity_eth": self.liquidity_eth,
        })

    def _validate(self, payload: Dict[str, Any]):
        return self.validator.check_creation(
            payload["name"], payload["symbol"], payload["total_supply"], payload["liquidity_eth"]
        )

    async def _sign(self, request: CreationRequest) -> str:
        fee_wei = to_smallest_unit(self.fee, ETH_DECIMALS)
        logger.info(
            f"[creation] Creating {request.symbol}: supply={request.total_supply_units(self.economics.token_decimals)} "
            f"units, fee={fee_wei} wei"
        )
        return await self.contracts.create_token(request, fee_wei, self.wallet, self.economics.token_decimals)

    def reset_form(self):
        self.token_name = ""
        self.symbol = ""
        self.total_supply = ""

    async def close(self):
        await self.controller.close()


class PurchaseFlow(_Flow):
    name = "purchase"
    config_key = "presale-config"

    def __init__(self, contracts, wallet: Optional[WalletSession] = None, notifier: Optional[Notifier] = None,
                 economics: SaleEconomics = DEFAULT_ECONOMICS, config_data: Optional[Dict[str, Any]] = None):
        super().__init__(contracts, wallet, notifier, economics, config_data)
        self.eth_amount = DEFAULT_PURCHASE_AMOUNT

        self.synchronizer = SaleStateSynchronizer(
            contracts,
            account=wallet.address if wallet is not None else None,
            economics=economics,
            poll_interval=float(self.config.get("SALE_POLL_INTERVAL_SECONDS", 10)),
        )
        self.controller = TransactionController(
            "purchase",
            validate=self._validate,
            sign=self._sign,
            wait_for_receipt=self._wait,
            notifier=self.notifier,
            on_reset=self.reset_form,
            on_refresh=self.synchronizer.refresh,
            describe_success=lambda order, tx_hash: format_purchase_alert(
                tx_hash, order.eth_amount, purchase_preview(order.eth_amount, self.economics)
            ),
        )
        self.check_configuration(self.contracts.require_presale)

    def _set_economics(self, economics: SaleEconomics):
        self.economics = economics
        self.validator.economics = economics
        self.synchronizer.economics = economics

    async def load_price(self) -> Decimal:
        """Uses the contract's PRICE() so previews cannot drift from what the sale charges."""
        if not self.enabled:
            return self.economics.price
        try:
            price = await self.contracts.price()
        except NetworkReadError as e:
            logger.warning(f"[purchase] Could not read sale price, using {self.economics.price} ETH: {e}")
            return self.economics.price
        if price <= 0:
            logger.warning(f"[purchase] Contract reported price {price}, keeping {self.economics.price} ETH")
            return self.economics.price
        if price != self.economics.price:
            logger.info(f"[purchase] Sale price from contract: {price} ETH (configured {self.economics.price})")
        self._set_economics(self.economics.with_price(price))
        return price

    def preview(self, eth_amount: Any = None) -> Optional[Dict[str, str]]:
        return purchase_preview(self.eth_amount if eth_amount is None else eth_amount, self.economics)

    @property
    def progress(self) -> Decimal:
        return self.synchronizer.progress

    async def start(self):
        if not self.enabled:
            return
        await self.load_price()
        self.synchronizer.start()

    async def stop(self):
        await self.synchronizer.stop()
        await self.controller.close()

    async def submit(self, eth_amount: Any = None) -> ControllerState:
        if eth_amount is not None:
            self.eth_amount = str(eth_amount)

        if not self._gate():
            return self.controller.state

        # Paused state never read yet: one read before validating against it,
        # only for an amount that would otherwise pass
        if (self.synchronizer.snapshot.paused is None and not self.controller.busy
                and not isinstance(validate_purchase(self.eth_amount, False, self.economics), ValidationError)):
            await self.synchronizer.refresh()

        return await self.controller.submit(self.eth_amount)

    def _validate(self, eth_amount: Any):
        return self.validator.check_purchase(eth_amount, is_paused=bool(self.synchronizer.snapshot.paused))

    async def _sign(self, order: PurchaseOrder) -> str:
        logger.info(f"[purchase] Buying with {order.eth_amount} ETH ({order.value_wei} wei)")
        return await self.contracts.buy_tokens(order, self.wallet)

    def reset_form(self):
        self.eth_amount = DEFAULT_PURCHASE_AMOUNT
