"""
Bounded exponential-backoff retry around a single submission.

Failures are mapped onto ErrorKind in three steps:
  1. errors we raised ourselves already carry a kind;
  2. known web3 exception types;
  3. known provider (JSON-RPC) error messages.
Anything left is UNCLASSIFIED and retried.
"""

import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from web3.exceptions import ContractLogicError, TimeExhausted

from ..utils.log import RunContext
from .exceptions import BotError, ErrorKind, FatalSubmissionError, RetriesExhaustedError, RetryableSubmissionError

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_SEC = 2.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0

EXCEPTION_KINDS: Tuple[Tuple[Type[BaseException], ErrorKind], ...] = (
    (ContractLogicError, ErrorKind.REVERTED),
    (TimeExhausted, ErrorKind.CONFIRMATION_TIMEOUT),
)

# lowercase substrings of geth/erigon/reth/op-node error messages
PROVIDER_SIGNATURES: Tuple[Tuple[str, ErrorKind], ...] = (
    ("insufficient funds", ErrorKind.INSUFFICIENT_FUNDS),
    ("nonce too low", ErrorKind.NONCE_CONFLICT),
    ("replacement transaction underpriced", ErrorKind.REPLACEMENT_UNDERPRICED),
    ("replacement fee too low", ErrorKind.REPLACEMENT_UNDERPRICED),
    ("already known", ErrorKind.DUPLICATE_SUBMISSION),
    ("known transaction", ErrorKind.DUPLICATE_SUBMISSION),
    ("invalid private key", ErrorKind.INVALID_CREDENTIAL),
    ("invalid sender", ErrorKind.INVALID_CREDENTIAL),
    ("execution reverted", ErrorKind.REVERTED),
)


def provider_message(exc: BaseException) -> str:
    """
    web3 v6 raises ValueError({'code': .., 'message': ..}); v7 raises
    Web3RPCError with .message. Fall back to str(exc).
    """
    if exc.args and isinstance(exc.args[0], dict):
        msg = exc.args[0].get("message")
        if msg:
            return str(msg)
    msg = getattr(exc, "message", None)
    if isinstance(msg, str) and msg:
        return msg
    return str(exc)


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, BotError):
        return exc.kind
    for exc_type, kind in EXCEPTION_KINDS:
        if isinstance(exc, exc_type):
            return kind

    seen = set()
    cur: Optional[BaseException] = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        text = provider_message(cur).lower()
        for signature, kind in PROVIDER_SIGNATURES:
            if signature in text:
                return kind
        cur = cur.__cause__ or cur.__context__
    return ErrorKind.UNCLASSIFIED


def backoff_delay(attempt: int, base_delay: float, multiplier: float) -> float:
    """Delay after failed `attempt` (1-indexed): base, base*m, base*m^2, ..."""
    return base_delay * (multiplier ** (attempt - 1))


def execute_with_retry(
    operation: Callable[[], T],
    *,
    operation_name: str,
    ctx: RunContext,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY_SEC,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run `operation` up to `max_attempts` times.

    Fatal kinds propagate on the first occurrence (our own typed errors as-is,
    anything else wrapped in FatalSubmissionError). Retryable failures are
    wrapped in RetryableSubmissionError and retried after an exponential
    backoff; once attempts run out RetriesExhaustedError carries the last one.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    log = ctx.logger(__name__)
    last_error: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            log.debug("%s: attempt %s/%s", operation_name, attempt, max_attempts)
            return operation()
        except Exception as exc:
            kind = classify_error(exc)

            if not kind.retryable:
                log.error("%s: non-retryable error (%s): %s", operation_name, kind.value, exc)
                if isinstance(exc, BotError):
                    raise
                raise FatalSubmissionError(
                    f"{operation_name} failed: {provider_message(exc)}",
                    kind=kind,
                    operation=operation_name,
                    attempt=attempt,
                    error=str(exc),
                ) from exc

            if isinstance(exc, BotError):
                last_error = exc
            else:
                last_error = RetryableSubmissionError(
                    f"{operation_name} attempt {attempt} failed: {provider_message(exc)}",
                    operation=operation_name,
                    attempt=attempt,
                    error=str(exc),
                )
                last_error.__cause__ = exc

            if attempt < max_attempts:
                delay = backoff_delay(attempt, base_delay, backoff_multiplier)
                log.warning(
                    "%s: attempt %s failed, retrying in %.0fms: %s",
                    operation_name, attempt, delay * 1000, exc,
                )
                sleep(delay)

    raise RetriesExhaustedError(operation_name, max_attempts, last_error) from last_error
