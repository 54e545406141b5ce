# Filename: calculator.py

from dataclasses import dataclass, replace
from decimal import Decimal, DecimalException, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP, getcontext, localcontext
from typing import Any, Dict, Optional

from models import FeeBreakdown


@dataclass(frozen=True)
class SaleEconomics:
    """
    Fixed economics of the sale and of token creation.
    Injected everywhere instead of read from module globals so alternative
    economics can be exercised without touching the engine.
    """
    price: Decimal = Decimal("0.0001")           # ETH per token
    fee_rate: Decimal = Decimal("0.025")         # platform share of every purchase
    sale_cap: int = 3_000_000                    # whole tokens offered by the sale
    min_purchase: Decimal = Decimal("0.0001")    # ETH
    min_liquidity: Decimal = Decimal("0.001")    # ETH
    default_creation_fee: Decimal = Decimal("0.01")
    token_decimals: int = 18
    display_places: int = 6

    def with_price(self, price: Decimal) -> "SaleEconomics":
        return replace(self, price=price)


DEFAULT_ECONOMICS = SaleEconomics()
ETH_DECIMALS = 18
MAX_UINT256 = 2 ** 256 - 1
UINT256_DIGITS = len(str(MAX_UINT256))


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse user input into a finite Decimal, or None when it is not a number
    or is too large for any on-chain amount.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    if not amount.is_finite():
        return None
    if amount and amount.adjusted() >= UINT256_DIGITS:
        return None
    return amount


def _exact_context(value: Decimal):
    # scaleb rounds to the context precision; keep every digit of the coefficient
    ctx = getcontext().copy()
    ctx.prec = max(ctx.prec, len(value.as_tuple().digits))
    return localcontext(ctx)


def to_smallest_unit(amount: Decimal, decimals: int = 18) -> int:
    """Exact integer amount in smallest units. Raises ValueError when it does not fit a uint256."""
    if amount and amount.adjusted() + decimals >= UINT256_DIGITS:
        raise ValueError(f"Amount {amount} does not fit in uint256")
    with _exact_context(amount):
        units = int(amount.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))
    if abs(units) > MAX_UINT256:
        raise ValueError(f"Amount {amount} does not fit in uint256")
    return units


def fits_uint256(amount: Decimal, decimals: int = 18) -> bool:
    try:
        to_smallest_unit(amount, decimals)
    except ValueError:
        return False
    return True


def from_smallest_unit(units: int, decimals: int = 18) -> Decimal:
    value = Decimal(int(units))
    with _exact_context(value):
        return value.scaleb(-decimals)


def round_display(value: Decimal, places: int = 6) -> Decimal:
    ctx = getcontext().copy()
    ctx.prec = max(ctx.prec, value.adjusted() + places + 2)
    with localcontext(ctx):
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def format_amount(value: Decimal, places: int = 6) -> str:
    return f"{round_display(value, places):f}"


def format_tokens(value: Decimal, places: int = 6) -> str:
    text = f"{round_display(value, places):,f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def token_amount(eth_amount: Any, economics: SaleEconomics = DEFAULT_ECONOMICS) -> Optional[Decimal]:
    """Tokens bought for `eth_amount`; None for non-numeric, non-positive or out-of-range input."""
    eth = parse_amount(eth_amount)
    if eth is None or eth <= 0 or not fits_uint256(eth, ETH_DECIMALS):
        return None
    try:
        return eth / economics.price
    except DecimalException:
        return None


def fee_breakdown(eth_amount: Any, economics: SaleEconomics = DEFAULT_ECONOMICS) -> Optional[FeeBreakdown]:
    tokens = token_amount(eth_amount, economics)
    if tokens is None:
        return None
    eth = parse_amount(eth_amount)
    try:
        platform_fee = eth * economics.fee_rate
        # by subtraction so that platform_fee + creator_amount == eth
        creator_amount = eth - platform_fee
    except DecimalException:
        return None
    return FeeBreakdown(platform_fee=platform_fee, creator_amount=creator_amount, token_amount=tokens)


def creation_total(creation_fee: Any, liquidity_eth: Any) -> Decimal:
    """Informational total for token creation; unreadable inputs count as zero."""
    fee = parse_amount(creation_fee) or Decimal(0)
    liquidity = parse_amount(liquidity_eth) or Decimal(0)
    return fee + liquidity


def sale_progress(tokens_sold: Any, sale_cap: Any) -> Decimal:
    """Percentage of the cap sold, clamped to [0, 100] whatever the inputs say."""
    sold = parse_amount(tokens_sold)
    cap = parse_amount(sale_cap)
    if sold is None or cap is None or cap <= 0:
        return Decimal(0)
    percent = sold / cap * 100
    return max(Decimal(0), min(percent, Decimal(100)))


def purchase_preview(eth_amount: Any, economics: SaleEconomics = DEFAULT_ECONOMICS) -> Optional[Dict[str, str]]:
    breakdown = fee_breakdown(eth_amount, economics)
    if breakdown is None:
        return None
    places = economics.display_places
    return {
        "tokens": format_tokens(breakdown.token_amount, places),
        "platform_fee": format_amount(breakdown.platform_fee, places),
        "creator_amount": format_amount(breakdown.creator_amount, places),
    }


def creation_preview(creation_fee: Any, liquidity_eth: Any,
                     economics: SaleEconomics = DEFAULT_ECONOMICS) -> Dict[str, Any]:
    places = economics.display_places
    fee = parse_amount(creation_fee)
    if fee is None:
        fee = economics.default_creation_fee
    liquidity = parse_amount(liquidity_eth) or Decimal(0)
    return {
        "creation_fee": format_amount(fee, places),
        "liquidity": format_amount(liquidity, places),
        "total": format_amount(creation_total(fee, liquidity), places),
        "meets_liquidity_minimum": liquidity >= economics.min_liquidity,
    }
