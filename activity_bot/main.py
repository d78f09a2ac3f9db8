"""
Command line entry point.

    activity-bot buy [--amount-usd 4.20]
    activity-bot sell
    activity-bot dry-run
    activity-bot check-config

Each trading invocation ends with exactly one outcome (Success, Skipped or
Failure); Failure exits with status 1, everything else with 0. The process is
stateless, it is meant to be started by an external scheduler.
"""

import argparse
import os
import sys
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Tuple

from .adapters.uniswap_v3 import UniswapV3Adapter
from .config import BASE_CHAIN_ID, BASE_NETWORK_NAME, Settings, get_settings, normalize_private_key, validate_address, validate_settings
from .domain.models import Direction, TradeOutcome
from .domain.policies import generate_random_buy_amount, usd_to_base_units
from .reporting import publish, write_github_summary
from .services.chain_reader import connect, get_eth_balance, get_eth_price_usd, get_token_balance, get_token_info
from .services.exceptions import BotError
from .services.quote_selector import select_best_quote
from .services.trading import Trader, to_failure
from .services.tx_service import TxService
from .utils.formatters import fmt_amount, fmt_check, fmt_fee_tier, fmt_gwei, fmt_units
from .utils.log import RunContext, mask_address, setup_logging


def _bootstrap(ctx: RunContext) -> Tuple[Settings, UniswapV3Adapter, TxService]:
    s = validate_settings(get_settings())
    w3 = connect(s.rpc_urls, BASE_CHAIN_ID, ctx, timeout_sec=s.RPC_TIMEOUT_SEC)
    adapter = UniswapV3Adapter(w3, quoter=s.UNI_V3_QUOTER, router=s.UNI_V3_ROUTER)
    txs = TxService(w3, s.PRIVATE_KEY, ctx, max_gas_price_gwei=s.MAX_GAS_PRICE_GWEI)
    ctx.logger(__name__).info("Wallet: %s", mask_address(txs.sender_address()))
    return s, adapter, txs


def _run(action: str, direction: Direction, body: Callable[[RunContext], TradeOutcome]) -> int:
    ctx = RunContext(action=action)
    log = ctx.logger(__name__)
    try:
        outcome = body(ctx)
    except BotError as e:
        detail = " ".join(f"{k}={v}" for k, v in e.details.items())
        log.error("%s failed [%s]: %s %s", action, e.kind.value, e.message, detail, data=e.details)
        outcome = to_failure(e, ctx, direction)
    except Exception as e:
        log.exception("Unexpected error during %s", action)
        outcome = to_failure(e, ctx, direction)

    publish(outcome)
    log.info("Finished with status=%s in %.1fs", outcome.status, ctx.elapsed())
    return 1 if outcome.status == "failure" else 0


# ---------- commands ----------

def cmd_buy(args) -> int:
    def body(ctx: RunContext) -> TradeOutcome:
        s, adapter, txs = _bootstrap(ctx)
        if args.amount_usd is not None:
            amount = args.amount_usd
        else:
            amount = generate_random_buy_amount(s.MIN_BUY_AMOUNT_USD, s.MAX_BUY_AMOUNT_USD)
        ctx.logger(__name__).info("Generated buy amount: $%s", amount)
        return Trader(s, adapter, txs, ctx).execute_buy(amount)

    return _run("BUY", Direction.BUY, body)


def cmd_sell(args) -> int:
    def body(ctx: RunContext) -> TradeOutcome:
        s, adapter, txs = _bootstrap(ctx)
        return Trader(s, adapter, txs, ctx).execute_sell()

    return _run("SELL", Direction.SELL, body)


def cmd_dry_run(args) -> int:
    """
    Everything a buy/sell would read, nothing it would write.
    """
    ctx = RunContext(action="DRY_RUN")
    log = ctx.logger(__name__)
    try:
        s, adapter, txs = _bootstrap(ctx)
        wallet = txs.sender_address()
        token = get_token_info(adapter, s.TOKEN_ADDRESS, ctx)

        eth_bal = get_eth_balance(adapter.w3, wallet, ctx)
        weth_bal = get_token_balance(adapter, s.WETH_ADDRESS, wallet, ctx)
        token_bal = get_token_balance(adapter, token.address, wallet, ctx)
        gas_price = fmt_gwei(int(adapter.w3.eth.gas_price))

        lines = [
            "## 🧪 Dry Run",
            "",
            f"- Network: {BASE_NETWORK_NAME} ({BASE_CHAIN_ID})",
            f"- Wallet: `{mask_address(wallet)}`",
            f"- Token: {token.symbol} ({token.name}), decimals {token.decimals}",
            f"- ETH: {fmt_units(eth_bal, 18)}",
            f"- WETH: {fmt_units(weth_bal, 18)}",
            f"- {token.symbol}: {fmt_amount(token_bal, token.decimals)}",
            f"- Gas price: {gas_price} (max {s.MAX_GAS_PRICE_GWEI} Gwei)",
        ]

        amount = generate_random_buy_amount(s.MIN_BUY_AMOUNT_USD, s.MAX_BUY_AMOUNT_USD)
        trader = Trader(s, adapter, txs, ctx)
        price = get_eth_price_usd(adapter.w3, s.CHAINLINK_ETH_USD, s.FALLBACK_ETH_PRICE_USD, ctx)
        weth_in = usd_to_base_units(amount, price)
        lines.append(f"- Simulated buy: ${amount} = {fmt_units(weth_in, 18)} WETH at ${price}")
        try:
            best = select_best_quote(adapter, trader.weth, token.address, weth_in, s.POOL_FEE_TIERS, ctx)
            lines.append(f"  - best tier {fmt_fee_tier(best.fee)}: {fmt_amount(best.amount_out, token.decimals)} {token.symbol}")
        except BotError as e:
            lines.append(f"  - no quote: {e.message}")

        if token_bal > 0:
            try:
                best = select_best_quote(adapter, token.address, trader.weth, token_bal, s.POOL_FEE_TIERS, ctx)
                lines.append(f"- Simulated sell of full balance: {fmt_units(best.amount_out, 18)} WETH "
                             f"via {fmt_fee_tier(best.fee)}")
            except BotError as e:
                lines.append(f"- Simulated sell: no quote: {e.message}")

        report = "\n".join(lines) + "\n"
        print(report)
        write_github_summary(report)
        log.info("Dry run completed, no transaction was sent")
        return 0
    except BotError as e:
        log.error("Dry run failed [%s]: %s", e.kind.value, e.message)
        return 1
    except Exception:
        log.exception("Dry run failed")
        return 1


def _reason(e: Exception) -> str:
    return e.message if isinstance(e, BotError) else f"{type(e).__name__}: {e}"


def cmd_check_config(args) -> int:
    """
    Run every check independently and print one line per check.
    """
    ctx = RunContext(action="CHECK_CONFIG")
    results: List[Tuple[str, str, str]] = []

    try:
        s = get_settings()
    except BotError as e:
        print(f"{fmt_check('fail')} Settings: {e.message}")
        return 1

    try:
        normalize_private_key(s.PRIVATE_KEY)
        results.append(("Private key", "pass", "format OK"))
    except Exception as e:
        results.append(("Private key", "fail", _reason(e)))

    try:
        token_addr = validate_address(s.TOKEN_ADDRESS, "TOKEN_ADDRESS")
        results.append(("Token address", "pass", token_addr))
    except Exception as e:
        token_addr = None
        results.append(("Token address", "fail", _reason(e)))

    try:
        validate_settings(s)
        results.append(("Trading parameters", "pass", f"slippage {s.SLIPPAGE_TOLERANCE}%, "
                        f"buy ${s.MIN_BUY_AMOUNT_USD}-${s.MAX_BUY_AMOUNT_USD}"))
    except Exception as e:
        results.append(("Trading parameters", "fail", _reason(e)))

    w3 = None
    try:
        w3 = connect(s.rpc_urls, BASE_CHAIN_ID, ctx, timeout_sec=s.RPC_TIMEOUT_SEC)
        results.append(("RPC connection", "pass", f"block {w3.eth.block_number}"))
    except Exception as e:
        w3 = None
        results.append(("RPC connection", "fail", _reason(e)))

    if w3 is not None and token_addr:
        adapter = UniswapV3Adapter(w3, quoter=s.UNI_V3_QUOTER, router=s.UNI_V3_ROUTER)
        try:
            token = get_token_info(adapter, token_addr, ctx)
            results.append(("Token contract", "pass", f"{token.symbol} ({token.name})"))
        except Exception as e:
            results.append(("Token contract", "fail", _reason(e)))

        try:
            wallet = TxService(w3, normalize_private_key(s.PRIVATE_KEY), ctx).sender_address()
            eth_bal = get_eth_balance(w3, wallet, ctx)
            weth_bal = get_token_balance(adapter, s.WETH_ADDRESS, wallet, ctx)
            status = "pass" if eth_bal >= s.gas_reserve_wei else "warn"
            results.append(("Wallet balances", status,
                            f"{fmt_units(eth_bal, 18)} ETH, {fmt_units(weth_bal, 18)} WETH"))
        except Exception as e:
            results.append(("Wallet balances", "fail", _reason(e)))

    for name, status, detail in results:
        print(f"{fmt_check(status)} {name}: {detail}")

    failed = any(status == "fail" for _, status, _ in results)
    print("\nConfiguration has errors." if failed else "\nConfiguration OK.")
    return 1 if failed else 0


def _usd(raw: str) -> Decimal:
    try:
        v = Decimal(raw)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid USD amount: {raw}")
    if v <= 0:
        raise argparse.ArgumentTypeError("USD amount must be > 0")
    return v


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Token activity bot (Uniswap V3 on Base).")
    sub = parser.add_subparsers(dest="command", required=True)

    p_buy = sub.add_parser("buy", help="Buy a random USD amount of the token with WETH.")
    p_buy.add_argument("--amount-usd", type=_usd, default=None,
                       help="Fixed USD amount instead of a random draw in [MIN_BUY_AMOUNT_USD, MAX_BUY_AMOUNT_USD].")
    p_buy.set_defaults(func=cmd_buy)

    sub.add_parser("sell", help="Sell the whole token balance for WETH.").set_defaults(func=cmd_sell)
    sub.add_parser("dry-run", help="Read balances and quotes, send nothing.").set_defaults(func=cmd_dry_run)
    sub.add_parser("check-config", help="Validate configuration and connectivity.").set_defaults(func=cmd_check_config)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    # settings may themselves be invalid, so logging reads the env directly
    setup_logging(os.environ.get("LOG_LEVEL", "INFO"), os.environ.get("LOG_FORMAT", "text").lower())
    return args.func(args)


def buy_main() -> None:
    sys.exit(main(["buy"] + sys.argv[1:]))


def sell_main() -> None:
    sys.exit(main(["sell"] + sys.argv[1:]))


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
