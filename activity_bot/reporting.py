"""
Run summaries for GitHub Actions.

Outside Actions ($GITHUB_OUTPUT / $GITHUB_STEP_SUMMARY unset) every writer is a no-op.
"""

import os

from .config import EXPLORER_TX_URL
from .domain.models import Direction, Failure, Skipped, Success, TradeOutcome
from .utils.formatters import fmt_amount, fmt_fee_tier, fmt_units, fmt_usd


def explorer_url(tx_hash: str) -> str:
    return f"{EXPLORER_TX_URL}{tx_hash}"


def set_github_output(name: str, value: object) -> bool:
    path = os.environ.get("GITHUB_OUTPUT")
    if not path:
        return False
    text = str(value)
    with open(path, "a", encoding="utf-8") as f:
        if "\n" in text:
            f.write(f"{name}<<EOF\n{text}\nEOF\n")
        else:
            f.write(f"{name}={text}\n")
    return True


def write_github_summary(markdown: str) -> bool:
    path = os.environ.get("GITHUB_STEP_SUMMARY")
    if not path:
        return False
    with open(path, "a", encoding="utf-8") as f:
        f.write(markdown)
        if not markdown.endswith("\n"):
            f.write("\n")
    return True


def buy_summary(r: Success) -> str:
    t = r.token
    lines = [
        "## 🟢 Buy Transaction Successful",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| Token | {t.symbol} ({t.name}) |",
        f"| USD Amount | {fmt_usd(r.usd_amount) if r.usd_amount is not None else 'n/a'} |",
        f"| WETH Spent | {fmt_units(r.input_amount, 18)} WETH |",
        f"| Expected Tokens | {fmt_amount(r.output_amount, t.decimals)} {t.symbol} |",
        f"| Minimum Tokens | {fmt_amount(r.min_output_amount, t.decimals)} {t.symbol} |",
        f"| Pool Fee | {fmt_fee_tier(r.fee_tier)} |",
        f"| Gas Used | {r.gas_used} |",
        f"| Block | {r.block_number} |",
        f"| Transaction | [{r.tx_hash[:10]}...]({r.explorer_url}) |",
    ]
    lines += _balances_section(r)
    return "\n".join(lines) + "\n"


def sell_summary(r: Success) -> str:
    t = r.token
    lines = [
        "## 🔴 Sell Transaction Successful",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| Token | {t.symbol} ({t.name}) |",
        f"| Tokens Sold | {fmt_amount(r.input_amount, t.decimals)} {t.symbol} |",
        f"| Expected WETH | {fmt_units(r.output_amount, 18)} WETH |",
        f"| Minimum WETH | {fmt_units(r.min_output_amount, 18)} WETH |",
        f"| Estimated USD | {fmt_usd(r.usd_amount) if r.usd_amount is not None else 'n/a'} |",
        f"| Pool Fee | {fmt_fee_tier(r.fee_tier)} |",
        f"| Gas Used | {r.gas_used} |",
        f"| Block | {r.block_number} |",
        f"| Transaction | [{r.tx_hash[:10]}...]({r.explorer_url}) |",
    ]
    lines += _balances_section(r)
    return "\n".join(lines) + "\n"


def _balances_section(r: Success) -> list:
    b = r.new_balances
    out = ["", "### New Balances", ""]
    if "token" in b:
        out.append(f"- {r.token.symbol}: {fmt_amount(b['token'], r.token.decimals)}")
    if "weth" in b:
        out.append(f"- WETH: {fmt_units(b['weth'], 18)}")
    if "eth" in b:
        out.append(f"- ETH: {fmt_units(b['eth'], 18)}")
    return out


def skipped_summary(r: Skipped) -> str:
    symbol = r.token.symbol if r.token else "token"
    return (
        f"## ⚪ {r.direction.value.capitalize()} Skipped\n\n"
        f"{r.reason} ({symbol}).\n"
    )


def failure_summary(r: Failure) -> str:
    title = f"{r.direction.value.capitalize()} Failed" if r.direction else "Run Failed"
    lines = [
        f"## ❌ {title}",
        "",
        f"**Error:** {r.error_type} ({r.error_kind})",
        "",
        f"**Message:** {r.message}",
        "",
        f"**Correlation ID:** `{r.correlation_id}`",
    ]
    if r.details:
        lines += ["", "| Detail | Value |", "|--------|-------|"]
        for key, value in r.details.items():
            if key == "tx_hash":
                value = f"[{value}]({explorer_url(value)})"
            lines.append(f"| {key} | {value} |")
    return "\n".join(lines) + "\n"


def render_summary(outcome: TradeOutcome) -> str:
    if isinstance(outcome, Success):
        return buy_summary(outcome) if outcome.direction == Direction.BUY else sell_summary(outcome)
    if isinstance(outcome, Skipped):
        return skipped_summary(outcome)
    return failure_summary(outcome)


def publish(outcome: TradeOutcome) -> None:
    """Write step summary and outputs for whatever the run produced."""
    write_github_summary(render_summary(outcome))
    set_github_output("status", outcome.status)
    set_github_output("correlation_id", outcome.correlation_id)
    if isinstance(outcome, Success):
        set_github_output("tx_hash", outcome.tx_hash)
        set_github_output("explorer_url", outcome.explorer_url)
        set_github_output("pool_fee", outcome.fee_tier)
        if outcome.usd_amount is not None:
            set_github_output("usd_amount", outcome.usd_amount)
    if isinstance(outcome, Failure):
        set_github_output("error_kind", outcome.error_kind)
        # a timed-out tx may still be mined; keep its hash findable
        if outcome.details.get("tx_hash"):
            set_github_output("tx_hash", outcome.details["tx_hash"])
            set_github_output("explorer_url", explorer_url(outcome.details["tx_hash"]))
