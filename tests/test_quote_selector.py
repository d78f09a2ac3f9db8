import pytest
from web3.exceptions import ContractLogicError

from activity_bot.services.exceptions import ErrorKind, NoLiquidityError, QuoteUnavailableError
from activity_bot.services.quote_selector import select_best_quote

from conftest import FakeAdapter, TOKEN, WETH

TIERS = [3000, 10000, 500]


def test_picks_highest_output(ctx):
    adapter = FakeAdapter(quotes={3000: 1_000, 10000: 1_200, 500: 900})
    best = select_best_quote(adapter, WETH, TOKEN, 10 ** 15, TIERS, ctx)
    assert best.fee == 10000
    assert best.amount_out == 1_200
    assert best.amount_in == 10 ** 15
    assert best.unavailable == []
    # every tier queried, in configured order
    assert [c[3] for c in adapter.quote_calls] == TIERS


def test_failing_tiers_are_skipped(ctx):
    adapter = FakeAdapter(quotes={3000: ContractLogicError("execution reverted"), 10000: 700})
    best = select_best_quote(adapter, WETH, TOKEN, 10 ** 15, TIERS, ctx)
    assert best.fee == 10000
    assert best.amount_out == 700
    reasons = {u.fee: u.reason for u in best.unavailable}
    assert reasons == {3000: "no_pool", 500: "no_pool"}


def test_tie_keeps_first_queried(ctx):
    adapter = FakeAdapter(quotes={3000: 500, 10000: 500, 500: 500})
    best = select_best_quote(adapter, WETH, TOKEN, 1, TIERS, ctx)
    assert best.fee == 3000

    best = select_best_quote(adapter, WETH, TOKEN, 1, [500, 3000], ctx)
    assert best.fee == 500


def test_zero_output_is_not_a_quote(ctx):
    adapter = FakeAdapter(quotes={3000: 0, 10000: 5})
    best = select_best_quote(adapter, WETH, TOKEN, 1, TIERS, ctx)
    assert best.fee == 10000
    assert any(u.fee == 3000 and u.reason == "zero_output" for u in best.unavailable)


def test_no_pool_anywhere(ctx):
    adapter = FakeAdapter(quotes={3000: 0})
    with pytest.raises(NoLiquidityError) as e:
        select_best_quote(adapter, WETH, TOKEN, 1, TIERS, ctx)
    assert not isinstance(e.value, QuoteUnavailableError)
    assert e.value.kind == ErrorKind.NO_LIQUIDITY
    assert e.value.token_in == WETH
    assert len(e.value.details["tiers"]) == 3


def test_rpc_failure_is_distinguished(ctx):
    adapter = FakeAdapter(quotes={3000: ConnectionError("read timed out"), 10000: 0})
    with pytest.raises(QuoteUnavailableError) as e:
        select_best_quote(adapter, WETH, TOKEN, 1, TIERS, ctx)
    assert e.value.kind == ErrorKind.QUOTE_UNAVAILABLE
    # still a NoLiquidityError for callers that don't care about the difference
    assert isinstance(e.value, NoLiquidityError)


def test_invalid_input(ctx):
    adapter = FakeAdapter(quotes={3000: 1})
    with pytest.raises(ValueError):
        select_best_quote(adapter, WETH, TOKEN, 0, TIERS, ctx)
    with pytest.raises(ValueError):
        select_best_quote(adapter, WETH, TOKEN, 1, [], ctx)
    assert adapter.quote_calls == []
