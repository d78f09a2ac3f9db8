from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """
    Closed set of failure kinds a run can end with.
    """
    # configuration
    INVALID_CONFIG = "INVALID_CONFIG"

    # network
    RPC_CONNECTION_FAILED = "RPC_CONNECTION_FAILED"
    NETWORK_MISMATCH = "NETWORK_MISMATCH"

    # token / market
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    NO_LIQUIDITY = "NO_LIQUIDITY"
    QUOTE_UNAVAILABLE = "QUOTE_UNAVAILABLE"   # quoting calls failed, pool may exist
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    GAS_TOO_HIGH = "GAS_TOO_HIGH"

    # submission (fatal)
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    NONCE_CONFLICT = "NONCE_CONFLICT"
    REPLACEMENT_UNDERPRICED = "REPLACEMENT_UNDERPRICED"
    DUPLICATE_SUBMISSION = "DUPLICATE_SUBMISSION"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    REVERTED = "REVERTED"
    DEADLINE_EXPIRED = "DEADLINE_EXPIRED"

    # submission (retryable)
    UNCLASSIFIED = "UNCLASSIFIED"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"

    # confirmation
    CONFIRMATION_TIMEOUT = "CONFIRMATION_TIMEOUT"

    UNKNOWN = "UNKNOWN"

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.UNCLASSIFIED


class BotError(Exception):
    """
    Base error carrying a kind and structured details so the run boundary can
    report what went wrong without re-running.
    """
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: Optional[ErrorKind] = None, **details: Any):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.details = details


class ConfigError(BotError):
    kind = ErrorKind.INVALID_CONFIG


class NetworkError(BotError):
    kind = ErrorKind.RPC_CONNECTION_FAILED


class TokenError(BotError):
    kind = ErrorKind.TOKEN_NOT_FOUND


class NoLiquidityError(BotError):
    """
    Raised when no fee tier produced a usable quote for the pair.
    """
    kind = ErrorKind.NO_LIQUIDITY

    def __init__(self, token_in: str, token_out: str, message: str = "No liquidity found for token pair", **details: Any):
        super().__init__(message, token_in=token_in, token_out=token_out, **details)
        self.token_in = token_in
        self.token_out = token_out


class QuoteUnavailableError(NoLiquidityError):
    """
    No quote succeeded and at least one tier failed for a reason other than a
    contract revert (RPC/transport trouble), so a pool may well exist.
    """
    kind = ErrorKind.QUOTE_UNAVAILABLE

    def __init__(self, token_in: str, token_out: str, **details: Any):
        super().__init__(token_in, token_out, message="Quoting failed for every fee tier", **details)


class InsufficientBalanceError(BotError):
    kind = ErrorKind.INSUFFICIENT_BALANCE

    def __init__(self, asset: str, balance: int, required: int):
        super().__init__(
            f"Insufficient {asset} balance",
            asset=asset, balance=str(balance), required=str(required),
        )
        self.asset = asset
        self.balance = balance
        self.required = required


class GasPriceTooHighError(BotError):
    """
    Raised BEFORE broadcasting when the node's gas price is above the cap.
    Nothing was sent on-chain.
    """
    kind = ErrorKind.GAS_TOO_HIGH

    def __init__(self, gas_price_wei: int, max_gwei: str):
        super().__init__(
            f"Gas price too high: {gas_price_wei / 1e9:.2f} Gwei (max: {max_gwei} Gwei)",
            gas_price_wei=gas_price_wei, max_gwei=max_gwei,
        )
        self.gas_price_wei = gas_price_wei


class SubmissionError(BotError):
    """Failure while submitting a transaction."""


class FatalSubmissionError(SubmissionError):
    """Classified as non-retryable; never attempted again."""


class RetryableSubmissionError(SubmissionError):
    kind = ErrorKind.UNCLASSIFIED


class RetriesExhaustedError(SubmissionError):
    kind = ErrorKind.RETRIES_EXHAUSTED

    def __init__(self, operation_name: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"{operation_name} failed after {attempts} attempts",
            operation=operation_name, attempts=attempts, last_error=str(last_error),
        )
        self.last_error = last_error


class ConfirmationTimeoutError(BotError):
    """
    The tx was broadcast but no receipt showed up within the wait window.
    It may still be mined later; it is NOT resubmitted.
    """
    kind = ErrorKind.CONFIRMATION_TIMEOUT

    def __init__(self, tx_hash: str, timeout_sec: float):
        super().__init__(
            f"Transaction confirmation timeout after {timeout_sec:g}s",
            tx_hash=tx_hash, timeout_sec=timeout_sec,
        )
        self.tx_hash = tx_hash


class TransactionRevertedError(BotError):
    """
    Raised when the tx was actually sent on-chain, mined, and status == 0.
    Gas was ALREADY paid, the chain executed and reverted.
    """
    kind = ErrorKind.REVERTED

    def __init__(self, tx_hash: str, receipt: dict, msg: str = "Transaction reverted"):
        super().__init__(msg, tx_hash=tx_hash, status=receipt.get("status"), block_number=receipt.get("blockNumber"))
        self.tx_hash = tx_hash
        self.receipt = receipt
