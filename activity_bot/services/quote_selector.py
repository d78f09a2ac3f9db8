from typing import List, Optional, Sequence

from web3.exceptions import ContractLogicError

from ..adapters.base import DexAdapter
from ..domain.models import BestQuote, Quote, TierFailure
from ..utils.formatters import fmt_fee_tier
from ..utils.log import RunContext
from .exceptions import NoLiquidityError, QuoteUnavailableError


def _is_no_pool(exc: Exception) -> bool:
    # the quoter reverts (or returns nothing) when the pool for a tier is missing
    if isinstance(exc, ContractLogicError):
        return True
    text = str(exc).lower()
    return "execution reverted" in text or "could not decode" in text


def select_best_quote(
    adapter: DexAdapter,
    token_in: str,
    token_out: str,
    amount_in: int,
    fee_tiers: Sequence[int],
    ctx: RunContext,
) -> BestQuote:
    """
    Quote every fee tier with quoteExactInputSingle and keep the highest output.

    - a failing tier is recorded and skipped, never aborts the scan
    - ties keep the first tier queried
    - zero outputs count as "no liquidity" at that tier
    - no usable tier -> NoLiquidityError (QuoteUnavailableError when some
      tier failed for a non-revert reason, i.e. the RPC and not the pool)

    Read-only: only eth_call is issued.
    """
    if amount_in <= 0:
        raise ValueError("amount_in must be > 0")
    if not fee_tiers:
        raise ValueError("fee_tiers must not be empty")

    log = ctx.logger(__name__)
    best: Optional[Quote] = None
    unavailable: List[TierFailure] = []

    for fee in fee_tiers:
        log.debug("Trying pool fee tier: %s", fmt_fee_tier(fee))
        try:
            amount_out, sqrt_after, ticks_crossed, gas_est = adapter.quote_exact_input_single(
                token_in, token_out, amount_in, fee
            )
        except Exception as exc:
            reason = "no_pool" if _is_no_pool(exc) else "rpc_error"
            unavailable.append(TierFailure(fee=int(fee), reason=reason, error=str(exc)[:300]))
            log.debug("Pool fee %s not available (%s): %s", fee, reason, exc)
            continue

        if amount_out <= 0:
            unavailable.append(TierFailure(fee=int(fee), reason="zero_output"))
            log.debug("Pool fee %s quoted zero output", fee)
            continue

        log.debug("Fee %s: amountOut = %s", fee, amount_out)
        if best is None or amount_out > best.amount_out:
            best = Quote(
                fee=int(fee),
                amount_out=int(amount_out),
                sqrt_price_x96_after=int(sqrt_after),
                ticks_crossed=int(ticks_crossed),
                gas_estimate=int(gas_est),
            )

    if best is None:
        tiers = [u.model_dump() for u in unavailable]
        if any(u.reason == "rpc_error" for u in unavailable):
            raise QuoteUnavailableError(token_in, token_out, tiers=tiers)
        raise NoLiquidityError(token_in, token_out, tiers=tiers)

    log.info("Best pool fee: %s, expected output: %s", fmt_fee_tier(best.fee), best.amount_out)
    return BestQuote(
        token_in=token_in,
        token_out=token_out,
        amount_in=int(amount_in),
        quote=best,
        unavailable=unavailable,
    )
