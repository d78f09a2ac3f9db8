"""
Pure amount math shared by buy and sell.

All token amounts are ints in smallest units; USD and percentages are
Decimals with an explicit rounding mode at every conversion.
"""

import random
from decimal import Decimal, ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_UP, getcontext
from typing import Optional, Union

from ..services.exceptions import InsufficientBalanceError
from .models import BuyPlan, Direction, Skipped

getcontext().prec = 60

CENT = Decimal("0.01")
BPS_DENOMINATOR = 10_000
NO_TOKENS_TO_SELL = "No tokens to sell"


def generate_random_buy_amount(
    min_usd: Decimal = Decimal("1"),
    max_usd: Decimal = Decimal("10"),
    rng: Optional[random.Random] = None,
) -> Decimal:
    """
    Uniform draw on [min_usd, max_usd] at cent resolution.
    Not meant to be unpredictable, only to keep trade sizes uneven.
    """
    lo = Decimal(min_usd).quantize(CENT, rounding=ROUND_CEILING)
    hi = Decimal(max_usd).quantize(CENT, rounding=ROUND_FLOOR)
    if lo > hi:
        raise ValueError(f"empty buy range [{min_usd}, {max_usd}]")
    rng = rng or random.Random()
    cents = rng.randint(int(lo * 100), int(hi * 100))
    return (Decimal(cents) / 100).quantize(CENT)


def usd_to_base_units(target_usd: Decimal, base_price_usd: Decimal, decimals: int = 18) -> int:
    """
    target_usd / base_price_usd, truncated to `decimals` places and scaled to
    smallest units. Loss is at most one smallest unit.
    """
    price = Decimal(base_price_usd)
    if price <= 0:
        raise ValueError("base price must be > 0")
    amount = Decimal(target_usd) / price
    q = Decimal(1).scaleb(-decimals)
    return int(amount.quantize(q, rounding=ROUND_DOWN).scaleb(decimals))


def slippage_to_bps(slippage_percent: Union[Decimal, int, str]) -> int:
    s = Decimal(str(slippage_percent))
    if s < 0 or s > 100:
        raise ValueError(f"slippage must be within [0, 100], got {s}")
    return int((s * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def calculate_min_output(expected_output: int, slippage_percent: Union[Decimal, int, str]) -> int:
    """
    expected - floor(expected * bps / 10000). The deduction is rounded down so
    the floor never sits above the exact threshold.
    """
    if expected_output < 0:
        raise ValueError("expected output must be >= 0")
    bps = slippage_to_bps(slippage_percent)
    return expected_output - (expected_output * bps) // BPS_DENOMINATOR


def plan_buy(
    target_usd: Decimal,
    base_price_usd: Decimal,
    available_base_balance: int,
    available_gas_reserve: int,
    gas_reserve_required: int,
    base_decimals: int = 18,
    base_symbol: str = "WETH",
) -> BuyPlan:
    """
    Size a buy and make sure both balances cover it.

    The swap input is paid from the wrapped base token while fees are paid from
    native ETH, so the two balances are checked separately.
    """
    input_amount = usd_to_base_units(target_usd, base_price_usd, base_decimals)
    if input_amount <= 0:
        raise ValueError(f"buy amount ${target_usd} rounds to zero at price ${base_price_usd}")

    if available_gas_reserve < gas_reserve_required:
        raise InsufficientBalanceError("ETH (for gas)", available_gas_reserve, gas_reserve_required)
    if available_base_balance < input_amount:
        raise InsufficientBalanceError(base_symbol, available_base_balance, input_amount)

    return BuyPlan(
        target_usd=Decimal(target_usd),
        base_price_usd=Decimal(base_price_usd),
        input_amount=input_amount,
    )


def plan_sell(token_balance: int) -> Union[int, Skipped]:
    """Full liquidation: the whole balance, or Skipped when there is nothing."""
    if token_balance < 0:
        raise ValueError("token balance must be >= 0")
    if token_balance == 0:
        return Skipped(direction=Direction.SELL, reason=NO_TOKENS_TO_SELL)
    return token_balance


def deadline_from(now_ts: float, minutes: int) -> int:
    return int(now_ts) + int(minutes) * 60
