from decimal import Decimal

import pytest

from activity_bot.domain.models import Direction, Skipped, Success
from activity_bot.reporting import explorer_url
from activity_bot.services.exceptions import (
    ErrorKind, FatalSubmissionError, InsufficientBalanceError, NoLiquidityError,
)
from activity_bot.services.trading import Trader, to_failure

from conftest import FakeAdapter, FakeClock, FakeEth, FakeTxService, ROUTER, TOKEN, WALLET, WETH

ETH = 10 ** 18


def _trader(settings, ctx, adapter, txs, clock=None, sleeps=None):
    return Trader(settings, adapter, txs, ctx, clock=clock or FakeClock(),
                  sleep=(sleeps.append if sleeps is not None else (lambda s: None)))


def test_buy_end_to_end(settings, ctx):
    adapter = FakeAdapter(
        eth=FakeEth(eth_balance=ETH, eth_price_usd=2500),
        quotes={3000: 1_000, 10000: 1_200},
        balances={WETH: ETH},
        allowances={WETH: ETH},
    )
    txs = FakeTxService()
    result = _trader(settings, ctx, adapter, txs).execute_buy(Decimal("5"))

    assert isinstance(result, Success)
    assert result.direction == Direction.BUY
    assert result.correlation_id == "TEST-CID"
    assert result.input_amount == 2_000_000_000_000_000
    assert result.fee_tier == 10000
    assert result.output_amount == 1_200
    assert result.min_output_amount == 1_140
    assert result.approval_tx_hash is None
    assert result.explorer_url == explorer_url(result.tx_hash)
    assert result.block_number == 1234
    assert result.token.symbol == "TEST"

    # allowance already covers it: only the swap went out
    assert len(txs.sent) == 1
    name, params = txs.sent[0]
    assert name == "exactInputSingle"
    assert params["token_in"] == WETH
    assert params["token_out"] == TOKEN
    assert params["recipient"] == WALLET
    assert params["min_out"] == 1_140
    assert params["fee"] == 10000


def test_buy_approves_when_allowance_short(settings, ctx):
    adapter = FakeAdapter(quotes={3000: 1_000}, balances={WETH: ETH}, allowances={WETH: 10})
    txs = FakeTxService()
    result = _trader(settings, ctx, adapter, txs).execute_buy(Decimal("5"))

    assert [s[0] for s in txs.sent] == ["approve", "exactInputSingle"]
    approve = txs.sent[0][1]
    assert approve["spender"] == ROUTER
    assert approve["amount"] == 2_000_000_000_000_000
    assert result.approval_tx_hash == "0x" + f"{1:064x}"
    # approval confirmed before the swap was submitted
    assert txs.waits[0][0] == result.approval_tx_hash


def test_buy_insufficient_weth(settings, ctx):
    adapter = FakeAdapter(quotes={3000: 1_000}, balances={WETH: 10 ** 15})
    txs = FakeTxService()
    with pytest.raises(InsufficientBalanceError) as e:
        _trader(settings, ctx, adapter, txs).execute_buy(Decimal("5"))
    assert e.value.asset == "WETH"
    assert txs.sent == []
    assert adapter.quote_calls == []


def test_buy_insufficient_gas(settings, ctx):
    adapter = FakeAdapter(eth=FakeEth(eth_balance=10), quotes={3000: 1_000}, balances={WETH: ETH})
    with pytest.raises(InsufficientBalanceError) as e:
        _trader(settings, ctx, adapter, FakeTxService()).execute_buy(Decimal("5"))
    assert e.value.asset == "ETH (for gas)"


def test_buy_no_liquidity_sends_nothing(settings, ctx):
    adapter = FakeAdapter(quotes={}, balances={WETH: ETH})
    txs = FakeTxService()
    with pytest.raises(NoLiquidityError):
        _trader(settings, ctx, adapter, txs).execute_buy(Decimal("5"))
    assert txs.sent == []


def test_buy_uses_fallback_price_when_feed_fails(settings, ctx):
    def feed_down(address, abi):
        raise RuntimeError("feed down")

    eth = FakeEth()
    eth.contract = feed_down
    adapter = FakeAdapter(eth=eth, quotes={3000: 1_000}, balances={WETH: ETH}, allowances={WETH: ETH})
    result = _trader(settings, ctx, adapter, FakeTxService()).execute_buy(Decimal("6"))
    # $6 at the $3000 fallback
    assert result.input_amount == 2_000_000_000_000_000


def test_sell_zero_balance_is_skipped(settings, ctx):
    adapter = FakeAdapter(quotes={3000: 1_000}, balances={TOKEN: 0})
    txs = FakeTxService()
    result = _trader(settings, ctx, adapter, txs).execute_sell()

    assert isinstance(result, Skipped)
    assert result.reason == "No tokens to sell"
    assert result.correlation_id == "TEST-CID"
    assert result.token.address == TOKEN
    assert txs.sent == []
    assert adapter.quote_calls == []


def test_sell_full_balance(settings, ctx):
    adapter = FakeAdapter(
        eth=FakeEth(eth_price_usd=2000),
        quotes={500: 10 ** 15, 3000: 2 * 10 ** 15},
        balances={TOKEN: 80},
        allowances={TOKEN: 100},
    )
    txs = FakeTxService()
    result = _trader(settings, ctx, adapter, txs).execute_sell()

    assert isinstance(result, Success)
    assert result.direction == Direction.SELL
    assert result.input_amount == 80
    assert result.fee_tier == 3000
    assert result.min_output_amount == 2 * 10 ** 15 * 95 // 100
    # 0.002 WETH at $2000
    assert result.usd_amount == Decimal("4.00")
    assert [s[0] for s in txs.sent] == ["exactInputSingle"]
    params = txs.sent[0][1]
    assert params["token_in"] == TOKEN
    assert params["token_out"] == WETH
    assert params["amount_in"] == 80
    assert all(q[2] == 80 for q in adapter.quote_calls)


def test_swap_retries_transient_errors(settings, ctx, sleeps):
    adapter = FakeAdapter(quotes={3000: 1_000}, balances={TOKEN: 5}, allowances={TOKEN: 5})
    txs = FakeTxService(send_errors=[RuntimeError("502 bad gateway")])
    result = _trader(settings, ctx, adapter, txs, sleeps=sleeps).execute_sell()
    assert isinstance(result, Success)
    assert sleeps == [settings.retry_base_delay_sec]


def test_deadline_passed_before_swap(settings, ctx):
    clock = FakeClock()

    def slow_approval(tx_hash):
        clock.now += settings.TX_DEADLINE_MINUTES * 60 + 1

    adapter = FakeAdapter(quotes={3000: 1_000}, balances={TOKEN: 5})
    txs = FakeTxService(on_confirm=slow_approval)
    with pytest.raises(FatalSubmissionError) as e:
        _trader(settings, ctx, adapter, txs, clock=clock).execute_sell()
    assert e.value.kind == ErrorKind.DEADLINE_EXPIRED
    assert [s[0] for s in txs.sent] == ["approve"]


def test_confirmation_wait_capped_by_deadline(settings, ctx):
    clock = FakeClock()

    def slow_approval(tx_hash):
        if len(txs.waits) == 1:
            clock.now += settings.TX_DEADLINE_MINUTES * 60 - 30

    adapter = FakeAdapter(quotes={3000: 1_000}, balances={TOKEN: 5})
    txs = FakeTxService(on_confirm=slow_approval)
    _trader(settings, ctx, adapter, txs, clock=clock).execute_sell()

    approval_wait, swap_wait = txs.waits
    assert approval_wait[1] == settings.CONFIRMATION_TIMEOUT_SEC
    assert swap_wait[1] == pytest.approx(30)


def test_to_failure(ctx):
    f = to_failure(InsufficientBalanceError("WETH", 1, 2), ctx, Direction.BUY)
    assert f.status == "failure"
    assert f.error_kind == "INSUFFICIENT_BALANCE"
    assert f.error_type == "InsufficientBalanceError"
    assert f.details == {"asset": "WETH", "balance": "1", "required": "2"}
    assert f.correlation_id == "TEST-CID"

    f = to_failure(KeyError("boom"), ctx)
    assert f.error_kind == ErrorKind.UNKNOWN.value
    assert f.direction is None
