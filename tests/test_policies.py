import random
from decimal import Decimal

import pytest

from activity_bot.domain.models import Direction, Skipped
from activity_bot.domain.policies import (
    NO_TOKENS_TO_SELL, calculate_min_output, deadline_from, generate_random_buy_amount,
    plan_buy, plan_sell, slippage_to_bps, usd_to_base_units,
)
from activity_bot.services.exceptions import ErrorKind, InsufficientBalanceError

ETH = 10 ** 18


def test_random_buy_amount_in_range():
    rng = random.Random(42)
    for _ in range(500):
        v = generate_random_buy_amount(Decimal("1"), Decimal("10"), rng=rng)
        assert Decimal("1") <= v <= Decimal("10")
        assert v == v.quantize(Decimal("0.01"))


def test_random_buy_amount_roughly_uniform():
    rng = random.Random(1234)
    buckets = [0] * 9
    n = 9000
    for _ in range(n):
        v = generate_random_buy_amount(Decimal("1"), Decimal("10"), rng=rng)
        buckets[min(int(v) - 1, 8)] += 1
    # ~1000 per unit interval
    assert all(800 < b < 1200 for b in buckets)


def test_random_buy_amount_degenerate_range():
    assert generate_random_buy_amount(Decimal("3.50"), Decimal("3.50")) == Decimal("3.50")


def test_random_buy_amount_empty_range():
    with pytest.raises(ValueError):
        generate_random_buy_amount(Decimal("10"), Decimal("1"))


def test_usd_to_base_units():
    assert usd_to_base_units(Decimal("5"), Decimal("2500")) == 2_000_000_000_000_000
    # 1/3 ETH truncates, never rounds up
    assert usd_to_base_units(Decimal("1"), Decimal("3")) == 333_333_333_333_333_333
    assert usd_to_base_units(Decimal("1"), Decimal("3"), decimals=6) == 333_333

    with pytest.raises(ValueError):
        usd_to_base_units(Decimal("1"), Decimal("0"))


def test_min_output():
    assert calculate_min_output(1000, 5) == 950
    assert calculate_min_output(1000, Decimal("0.5")) == 995
    assert calculate_min_output(1000, 0) == 1000
    assert calculate_min_output(1000, 100) == 0
    assert calculate_min_output(0, 5) == 0
    # deduction floors: 999 * 500 / 10000 = 49.95 -> 49
    assert calculate_min_output(999, 5) == 950


def test_min_output_bounds():
    rng = random.Random(7)
    for _ in range(300):
        expected = rng.randint(0, 10 ** 30)
        s = Decimal(rng.randint(0, 10_000)) / 100
        m = calculate_min_output(expected, s)
        assert 0 <= m <= expected
        assert m * 10_000 >= expected * (10_000 - slippage_to_bps(s))


def test_min_output_monotonic_in_slippage():
    prev = None
    for s in range(0, 101):
        m = calculate_min_output(123_456_789, s)
        if prev is not None:
            assert m <= prev
        prev = m


def test_slippage_out_of_range():
    with pytest.raises(ValueError):
        calculate_min_output(1000, -1)
    with pytest.raises(ValueError):
        calculate_min_output(1000, Decimal("100.01"))


def test_slippage_to_bps_rounding():
    assert slippage_to_bps("0.125") == 13
    assert slippage_to_bps(5) == 500


def test_plan_buy_ok():
    plan = plan_buy(Decimal("5"), Decimal("2500"), available_base_balance=ETH,
                    available_gas_reserve=ETH, gas_reserve_required=10 ** 15)
    assert plan.input_amount == 2 * 10 ** 15
    assert plan.target_usd == Decimal("5")


def test_plan_buy_checks_gas_reserve_first():
    with pytest.raises(InsufficientBalanceError) as e:
        plan_buy(Decimal("5"), Decimal("2500"), available_base_balance=0,
                 available_gas_reserve=10 ** 14, gas_reserve_required=10 ** 15)
    assert e.value.asset == "ETH (for gas)"
    assert e.value.kind == ErrorKind.INSUFFICIENT_BALANCE


def test_plan_buy_insufficient_weth():
    with pytest.raises(InsufficientBalanceError) as e:
        plan_buy(Decimal("5"), Decimal("2500"), available_base_balance=10 ** 15,
                 available_gas_reserve=ETH, gas_reserve_required=10 ** 15)
    assert e.value.asset == "WETH"
    assert e.value.required == 2 * 10 ** 15
    assert e.value.details["balance"] == str(10 ** 15)


def test_plan_buy_zero_amount():
    with pytest.raises(ValueError):
        plan_buy(Decimal("0"), Decimal("2500"), ETH, ETH, 0)


def test_plan_sell():
    skipped = plan_sell(0)
    assert isinstance(skipped, Skipped)
    assert skipped.reason == NO_TOKENS_TO_SELL
    assert skipped.direction == Direction.SELL

    assert plan_sell(12345) == 12345

    with pytest.raises(ValueError):
        plan_sell(-1)


def test_deadline_from():
    assert deadline_from(1000.9, 20) == 1000 + 1200
