from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Direction(str, Enum):
    BUY = "BUY"    # base currency -> token
    SELL = "SELL"  # token -> base currency


class TokenDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    symbol: str
    name: str
    decimals: int = Field(ge=0, le=255)


class Quote(BaseModel):
    """
    Result of probing one fee tier on the quoter.
    A tier without liquidity has no Quote at all.
    """
    model_config = ConfigDict(frozen=True)

    fee: int                      # 500 / 3000 / 10000
    amount_out: int = Field(gt=0)
    sqrt_price_x96_after: int = 0
    ticks_crossed: int = 0
    gas_estimate: int = 0


class TierFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    fee: int
    reason: Literal["no_pool", "zero_output", "rpc_error"]
    error: Optional[str] = None


class BestQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_in: str
    token_out: str
    amount_in: int
    quote: Quote
    unavailable: List[TierFailure] = []

    @property
    def fee(self) -> int:
        return self.quote.fee

    @property
    def amount_out(self) -> int:
        return self.quote.amount_out


class TradeIntent(BaseModel):
    model_config = ConfigDict(frozen=True)

    direction: Direction
    token_in: str
    token_out: str
    amount_in: int = Field(gt=0)
    expected_amount_out: int
    min_amount_out: int
    fee: int
    deadline: int  # unix seconds


class BuyPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_usd: Decimal
    base_price_usd: Decimal
    input_amount: int


# ---------- run outcomes ----------

class Success(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    direction: Direction
    correlation_id: str
    tx_hash: str
    explorer_url: str
    block_number: int
    gas_used: int
    token: TokenDescriptor
    input_amount: int
    output_amount: int            # quoted output at submission time
    min_output_amount: int
    fee_tier: int
    new_balances: Dict[str, int]
    usd_amount: Optional[Decimal] = None
    approval_tx_hash: Optional[str] = None
    timestamp: str = Field(default_factory=_now_iso)


class Skipped(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["skipped"] = "skipped"
    direction: Direction
    correlation_id: str = ""
    reason: str
    token: Optional[TokenDescriptor] = None
    timestamp: str = Field(default_factory=_now_iso)


class Failure(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failure"] = "failure"
    direction: Optional[Direction] = None
    correlation_id: str = ""
    error_kind: str
    error_type: str
    message: str
    details: Dict[str, Any] = {}
    timestamp: str = Field(default_factory=_now_iso)


TradeOutcome = Union[Success, Skipped, Failure]
