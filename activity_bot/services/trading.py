"""
Buy/sell orchestration.

Each step depends on the confirmed result of the previous one, so a run is a
strictly sequential flow:

    balances -> plan -> best quote -> min out -> approval -> swap -> receipt

Nothing is cached between runs; every call re-reads on-chain state.
"""

import time
from decimal import Decimal
from typing import Callable, Optional, Union

from web3 import Web3

from ..adapters.base import DexAdapter
from ..config import Settings
from ..domain.models import Direction, Failure, Skipped, Success, TradeIntent
from ..domain.policies import calculate_min_output, deadline_from, plan_buy, plan_sell
from ..reporting import explorer_url
from ..utils.formatters import fmt_amount, fmt_units
from ..utils.log import RunContext
from .chain_reader import get_eth_balance, get_eth_price_usd, get_token_balance, get_token_info
from .exceptions import BotError, ErrorKind, FatalSubmissionError
from .quote_selector import select_best_quote
from .retry import execute_with_retry
from .tx_service import TxService
from .utils import to_json_safe


def to_failure(exc: BaseException, ctx: RunContext, direction: Optional[Direction] = None) -> Failure:
    """Map any exception reaching the run boundary onto a Failure outcome."""
    if isinstance(exc, BotError):
        details = to_json_safe(dict(exc.details))
        return Failure(
            direction=direction,
            correlation_id=ctx.correlation_id,
            error_kind=exc.kind.value,
            error_type=type(exc).__name__,
            message=exc.message,
            details=details,
        )
    return Failure(
        direction=direction,
        correlation_id=ctx.correlation_id,
        error_kind=ErrorKind.UNKNOWN.value,
        error_type=type(exc).__name__,
        message=str(exc) or type(exc).__name__,
    )


class Trader:
    """
    Runs one BUY or SELL for the configured token against WETH.
    """

    def __init__(
        self,
        settings: Settings,
        adapter: DexAdapter,
        txs: TxService,
        ctx: RunContext,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.s = settings
        self.adapter = adapter
        self.txs = txs
        self.ctx = ctx
        self.clock = clock
        self.sleep = sleep
        self.wallet = txs.sender_address()
        self.weth = Web3.to_checksum_address(settings.WETH_ADDRESS)
        self._log = ctx.logger(__name__)

    # ---------- building blocks ----------

    def _retry(self, operation, name: str):
        return execute_with_retry(
            operation,
            operation_name=name,
            ctx=self.ctx,
            max_attempts=self.s.MAX_RETRY_ATTEMPTS,
            base_delay=self.s.retry_base_delay_sec,
            backoff_multiplier=float(self.s.RETRY_BACKOFF_MULTIPLIER),
            sleep=self.sleep,
        )

    def ensure_allowance(self, token: str, spender: str, amount: int) -> Optional[dict]:
        """
        Approve `spender` for `amount` only when the current allowance is short.
        Returns the approval receipt, or None when no transaction was needed.
        """
        current = self.adapter.allowance(token, self.wallet, spender)
        if current >= amount:
            self._log.info("Sufficient allowance already exists (%s >= %s), skipping approval", current, amount)
            return None

        self._log.info("Approving token spend: %s (current allowance %s)", amount, current)
        tx_hash = self._retry(
            lambda: self.txs.send(self.adapter.fn_approve(token, spender, amount)),
            "Token approval",
        )
        rcpt = self.txs.wait_for_confirmation(tx_hash, self.s.CONFIRMATION_TIMEOUT_SEC)
        self._log.info("Approval confirmed in block %s", rcpt.get("blockNumber"))
        return rcpt

    def _send_swap(self, intent: TradeIntent) -> str:
        if self.clock() > intent.deadline:
            raise FatalSubmissionError(
                "Swap deadline passed before submission",
                kind=ErrorKind.DEADLINE_EXPIRED,
                deadline=intent.deadline,
            )
        fn = self.adapter.fn_exact_input_single(
            token_in=intent.token_in,
            token_out=intent.token_out,
            fee=intent.fee,
            recipient=self.wallet,
            amount_in=intent.amount_in,
            min_out=intent.min_amount_out,
        )
        return self.txs.send(fn, gas_strategy="buffered")

    def _confirmation_timeout(self, intent: TradeIntent) -> float:
        left = intent.deadline - self.clock()
        return max(1.0, min(float(self.s.CONFIRMATION_TIMEOUT_SEC), left))

    def submit_swap(self, intent: TradeIntent, label: str) -> tuple[str, dict]:
        self._log.info(
            "Executing swap %s: amountIn=%s minOut=%s fee=%s",
            label, intent.amount_in, intent.min_amount_out, intent.fee,
        )
        tx_hash = self._retry(lambda: self._send_swap(intent), f"{label} swap")
        self._log.info("Swap submitted: %s", tx_hash, data={"tx_hash": tx_hash, "direction": intent.direction.value})
        rcpt = self.txs.wait_for_confirmation(tx_hash, self._confirmation_timeout(intent))
        return tx_hash, rcpt

    # ---------- BUY ----------

    def execute_buy(self, amount_usd: Decimal) -> Success:
        """
        WETH -> token for `amount_usd` worth of WETH.
        Fees are paid in native ETH, the swap input comes from WETH.
        """
        log = self._log
        log.info("Starting BUY operation: $%s worth of tokens (using WETH)", amount_usd)

        token = get_token_info(self.adapter, self.s.TOKEN_ADDRESS, self.ctx)
        log.info("Buying token: %s (%s)", token.symbol, token.name)

        eth_price = get_eth_price_usd(self.adapter.w3, self.s.CHAINLINK_ETH_USD, self.s.FALLBACK_ETH_PRICE_USD, self.ctx)

        weth_balance = get_token_balance(self.adapter, self.weth, self.wallet, self.ctx)
        eth_balance = get_eth_balance(self.adapter.w3, self.wallet, self.ctx)
        log.info("Current WETH balance: %s WETH", fmt_units(weth_balance, 18))
        log.info("Current ETH balance: %s ETH (for gas)", fmt_units(eth_balance, 18))

        plan = plan_buy(
            target_usd=amount_usd,
            base_price_usd=eth_price,
            available_base_balance=weth_balance,
            available_gas_reserve=eth_balance,
            gas_reserve_required=self.s.gas_reserve_wei,
        )
        log.info("WETH amount to spend: %s WETH ($%s at $%s/ETH)", fmt_units(plan.input_amount, 18), amount_usd, eth_price)

        best = select_best_quote(self.adapter, self.weth, token.address, plan.input_amount, self.s.POOL_FEE_TIERS, self.ctx)
        min_out = calculate_min_output(best.amount_out, self.s.SLIPPAGE_TOLERANCE)
        log.info("Expected tokens: %s %s", fmt_amount(best.amount_out, token.decimals), token.symbol)
        log.info("Minimum tokens (with %s%% slippage): %s", self.s.SLIPPAGE_TOLERANCE, fmt_amount(min_out, token.decimals))

        intent = TradeIntent(
            direction=Direction.BUY,
            token_in=self.weth,
            token_out=token.address,
            amount_in=plan.input_amount,
            expected_amount_out=best.amount_out,
            min_amount_out=min_out,
            fee=best.fee,
            deadline=deadline_from(self.clock(), self.s.TX_DEADLINE_MINUTES),
        )

        approval = self.ensure_allowance(self.weth, self.adapter.router_address, intent.amount_in)
        tx_hash, rcpt = self.submit_swap(intent, "Buy")

        new_token = get_token_balance(self.adapter, token.address, self.wallet, self.ctx)
        new_weth = get_token_balance(self.adapter, self.weth, self.wallet, self.ctx)
        new_eth = get_eth_balance(self.adapter.w3, self.wallet, self.ctx)

        result = Success(
            direction=Direction.BUY,
            correlation_id=self.ctx.correlation_id,
            tx_hash=tx_hash,
            explorer_url=explorer_url(tx_hash),
            block_number=int(rcpt.get("blockNumber") or 0),
            gas_used=int(rcpt.get("gasUsed") or 0),
            token=token,
            input_amount=intent.amount_in,
            output_amount=intent.expected_amount_out,
            min_output_amount=intent.min_amount_out,
            fee_tier=intent.fee,
            new_balances={"token": new_token, "weth": new_weth, "eth": new_eth},
            usd_amount=Decimal(amount_usd),
            approval_tx_hash=(approval or {}).get("transactionHash"),
        )
        log.info("BUY operation completed successfully", data=result.model_dump(mode="json"))
        return result

    # ---------- SELL ----------

    def execute_sell(self) -> Union[Success, Skipped]:
        """
        token -> WETH for the whole token balance. A zero balance is Skipped.
        """
        log = self._log
        log.info("Starting SELL operation: selling all tokens")

        token = get_token_info(self.adapter, self.s.TOKEN_ADDRESS, self.ctx)
        log.info("Selling token: %s (%s)", token.symbol, token.name)

        balance = get_token_balance(self.adapter, token.address, self.wallet, self.ctx)
        planned = plan_sell(balance)
        if isinstance(planned, Skipped):
            log.warning("No tokens to sell, balance is zero")
            return planned.model_copy(update={"token": token, "correlation_id": self.ctx.correlation_id})

        amount_in = planned
        log.info("Token balance to sell: %s %s", fmt_amount(amount_in, token.decimals), token.symbol)

        best = select_best_quote(self.adapter, token.address, self.weth, amount_in, self.s.POOL_FEE_TIERS, self.ctx)
        min_out = calculate_min_output(best.amount_out, self.s.SLIPPAGE_TOLERANCE)
        log.info("Expected WETH: %s", fmt_units(best.amount_out, 18))
        log.info("Minimum WETH (with %s%% slippage): %s", self.s.SLIPPAGE_TOLERANCE, fmt_units(min_out, 18))

        intent = TradeIntent(
            direction=Direction.SELL,
            token_in=token.address,
            token_out=self.weth,
            amount_in=amount_in,
            expected_amount_out=best.amount_out,
            min_amount_out=min_out,
            fee=best.fee,
            deadline=deadline_from(self.clock(), self.s.TX_DEADLINE_MINUTES),
        )

        approval = self.ensure_allowance(token.address, self.adapter.router_address, intent.amount_in)
        tx_hash, rcpt = self.submit_swap(intent, "Sell")

        new_token = get_token_balance(self.adapter, token.address, self.wallet, self.ctx)
        new_weth = get_token_balance(self.adapter, self.weth, self.wallet, self.ctx)
        new_eth = get_eth_balance(self.adapter.w3, self.wallet, self.ctx)

        eth_price = get_eth_price_usd(self.adapter.w3, self.s.CHAINLINK_ETH_USD, self.s.FALLBACK_ETH_PRICE_USD, self.ctx)
        usd_value = (Decimal(best.amount_out).scaleb(-18) * eth_price).quantize(Decimal("0.01"))

        result = Success(
            direction=Direction.SELL,
            correlation_id=self.ctx.correlation_id,
            tx_hash=tx_hash,
            explorer_url=explorer_url(tx_hash),
            block_number=int(rcpt.get("blockNumber") or 0),
            gas_used=int(rcpt.get("gasUsed") or 0),
            token=token,
            input_amount=intent.amount_in,
            output_amount=intent.expected_amount_out,
            min_output_amount=intent.min_amount_out,
            fee_tier=intent.fee,
            new_balances={"token": new_token, "weth": new_weth, "eth": new_eth},
            usd_amount=usd_value,
            approval_tx_hash=(approval or {}).get("transactionHash"),
        )
        log.info("SELL operation completed successfully", data=result.model_dump(mode="json"))
        return result
