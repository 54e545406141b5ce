# Filename: validator.py

from decimal import Decimal
from typing import Any, Dict, Union

from loguru import logger

from calculator import DEFAULT_ECONOMICS, ETH_DECIMALS, SaleEconomics, fits_uint256, parse_amount, to_smallest_unit
from errors import ValidationError, ValidationReason
from models import CreationRequest, PurchaseOrder


def validate_creation(name: Any, symbol: Any, total_supply: Any, liquidity_eth: Any = "",
                      token_decimals: int = 18) -> Union[CreationRequest, ValidationError]:
    """
    Checks the token creation form.
    Returns a CreationRequest, or the ValidationError to display. Never raises for bad input.
    """
    name = "" if name is None else str(name).strip()
    symbol = "" if symbol is None else str(symbol).strip().upper()
    supply_text = "" if total_supply is None else str(total_supply).strip()

    for field, value in (("name", name), ("symbol", symbol), ("total_supply", supply_text)):
        if not value:
            return ValidationError(
                ValidationReason.MISSING_FIELD,
                "Please fill in name, symbol, and total supply",
                field=field,
            )

    supply = parse_amount(supply_text)
    if supply is None or supply <= 0 or supply != supply.to_integral_value():
        return ValidationError(
            ValidationReason.INVALID_SUPPLY,
            "Total supply must be a positive whole number of tokens",
            field="total_supply",
        )
    if not fits_uint256(supply, token_decimals):
        return ValidationError(
            ValidationReason.INVALID_SUPPLY,
            "Total supply is too large",
            field="total_supply",
        )

    liquidity = parse_amount(liquidity_eth)
    return CreationRequest(
        name=name,
        symbol=symbol,
        total_supply=int(supply),
        liquidity_eth=liquidity if liquidity is not None and liquidity > 0 else Decimal(0),
    )


def validate_purchase(eth_amount: Any, is_paused: bool,
                      economics: SaleEconomics = DEFAULT_ECONOMICS) -> Union[PurchaseOrder, ValidationError]:
    """
    Checks a purchase amount against the sale.
    Paused is checked first, then parsing, then the minimum.
    """
    if is_paused:
        return ValidationError(ValidationReason.SALE_PAUSED, "Presale is currently paused")

    eth = parse_amount(eth_amount)
    if eth is None:
        return ValidationError(ValidationReason.UNPARSEABLE, "Amount must be a number", field="eth_amount")

    if eth <= 0 or eth < economics.min_purchase:
        return ValidationError(
            ValidationReason.BELOW_MINIMUM,
            f"Minimum purchase is {economics.min_purchase} ETH",
            field="eth_amount",
        )

    try:
        value_wei = to_smallest_unit(eth, ETH_DECIMALS)
    except ValueError:
        return ValidationError(ValidationReason.UNPARSEABLE, "Amount is too large", field="eth_amount")

    return PurchaseOrder(eth_amount=eth, value_wei=value_wei)


class InputValidator:
    """Both entry points bound to one set of economics, with rejection counters per reason."""

    def __init__(self, economics: SaleEconomics = DEFAULT_ECONOMICS):
        self.economics = economics
        self.validation_stats = {reason.value: 0 for reason in ValidationReason}

    def check_creation(self, name, symbol, total_supply, liquidity_eth="") -> Union[CreationRequest, ValidationError]:
        result = validate_creation(name, symbol, total_supply, liquidity_eth, self.economics.token_decimals)
        if isinstance(result, ValidationError):
            self._record(result, f"creation {symbol!r}")
        return result

    def check_purchase(self, eth_amount, is_paused: bool) -> Union[PurchaseOrder, ValidationError]:
        result = validate_purchase(eth_amount, is_paused, economics=self.economics)
        if isinstance(result, ValidationError):
            self._record(result, f"purchase {eth_amount!r}")
        return result

    def _record(self, error: ValidationError, subject: str):
        self.validation_stats[error.reason.value] += 1
        logger.warning(f"[VALIDATION ❌] {subject}: {error.reason.value} ({error.message})")

    def get_validation_statistics(self) -> Dict[str, int]:
        return dict(self.validation_stats)

    def reset_validation_statistics(self):
        for key in self.validation_stats:
            self.validation_stats[key] = 0
