from decimal import Decimal, ROUND_DOWN, getcontext
getcontext().prec = 60

def fmt_amount(raw: int, decimals: int, places: int = 6) -> str:
    scale = Decimal(10) ** decimals
    val = Decimal(raw) / scale
    # cap digits after the point for readability
    q = Decimal(10) ** -places
    return str(val.quantize(q, rounding=ROUND_DOWN))

def fmt_units(raw: int, decimals: int) -> str:
    """Exact human amount, trailing zeros stripped."""
    val = Decimal(raw).scaleb(-decimals)
    s = format(val, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s or "0"

def fmt_fee_tier(fee: int) -> str:
    return f"{Decimal(fee) / Decimal(10_000):g}%"

def fmt_usd(v: Decimal) -> str:
    return f"${Decimal(v).quantize(Decimal('0.01'))}"

def fmt_gwei(wei: int) -> str:
    return f"{Decimal(wei) / Decimal(10**9):.4f} Gwei"

def fmt_check(status: str) -> str:
    return {"pass": "✅", "warn": "⚠️", "fail": "❌"}.get(status, "❔")
