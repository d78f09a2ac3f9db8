"""
Read-only chain access used by buy/sell:
- RPC connection with fallback endpoints and chain-id check
- token metadata and balances
- ETH/USD price from the Chainlink aggregator, with a fixed fallback
"""

from decimal import Decimal
from typing import Sequence

from web3 import Web3

from ..adapters.base import DexAdapter
from ..domain.models import TokenDescriptor
from ..utils.log import RunContext
from .exceptions import ErrorKind, NetworkError, TokenError

CHAINLINK_ANSWER_DECIMALS = 8

ABI_CHAINLINK_AGGREGATOR = [
    {"name":"latestRoundData","outputs":[
        {"type":"uint80","name":"roundId"},
        {"type":"int256","name":"answer"},
        {"type":"uint256","name":"startedAt"},
        {"type":"uint256","name":"updatedAt"},
        {"type":"uint80","name":"answeredInRound"}],
     "inputs":[],"stateMutability":"view","type":"function"},
]


def connect(rpc_urls: Sequence[str], chain_id: int, ctx: RunContext, timeout_sec: int = 10) -> Web3:
    """
    Return a Web3 client for the first endpoint that answers with `chain_id`.
    """
    log = ctx.logger(__name__)
    errors = []
    for url in rpc_urls:
        short = url[:30]
        try:
            log.debug("Attempting connection to RPC: %s...", short)
            w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout_sec}))
            got = int(w3.eth.chain_id)
            if got != chain_id:
                errors.append(f"{short}: wrong chain id {got}")
                log.warning("RPC %s... is on chain %s, expected %s", short, got, chain_id)
                continue
            log.info("Connected to chain %s via %s...", chain_id, short)
            return w3
        except Exception as exc:
            errors.append(f"{short}: {exc}")
            log.warning("Failed to connect to %s...: %s", short, exc)

    mismatch_only = bool(errors) and all("wrong chain id" in e for e in errors)
    raise NetworkError(
        "Failed to connect to any RPC endpoint",
        kind=ErrorKind.NETWORK_MISMATCH if mismatch_only else ErrorKind.RPC_CONNECTION_FAILED,
        attempted_urls=len(rpc_urls),
        last_error=errors[-1] if errors else None,
    )


def get_token_info(adapter: DexAdapter, token: str, ctx: RunContext) -> TokenDescriptor:
    """
    name/symbol/decimals with per-field fallbacks; a non-contract address
    (no code) is a TokenError.
    """
    log = ctx.logger(__name__)
    address = Web3.to_checksum_address(token)
    try:
        code = adapter.w3.eth.get_code(address)
    except Exception as exc:
        raise TokenError(f"Failed to get token info for {address}", token_address=address, error=str(exc)) from exc
    if not code or len(code) == 0:
        raise TokenError(f"No contract deployed at {address}", token_address=address)

    c = adapter.erc20(address)
    try:
        name = c.functions.name().call()
    except Exception:
        name = "Unknown"
    try:
        symbol = c.functions.symbol().call()
    except Exception:
        symbol = "UNKNOWN"
    try:
        decimals = int(c.functions.decimals().call())
    except Exception:
        decimals = 18

    log.debug("Token info retrieved: %s (%s), decimals: %s", symbol, name, decimals)
    return TokenDescriptor(address=address, symbol=symbol, name=name, decimals=decimals)


def get_token_balance(adapter: DexAdapter, token: str, owner: str, ctx: RunContext) -> int:
    try:
        bal = adapter.balance_of(token, owner)
    except Exception as exc:
        raise TokenError("Failed to get token balance", token_address=token, error=str(exc)) from exc
    ctx.logger(__name__).debug("Token balance of %s: %s", token, bal)
    return bal


def get_eth_balance(w3: Web3, owner: str, ctx: RunContext) -> int:
    try:
        bal = int(w3.eth.get_balance(Web3.to_checksum_address(owner)))
    except Exception as exc:
        raise NetworkError("Failed to get ETH balance", error=str(exc)) from exc
    ctx.logger(__name__).debug("ETH balance: %s ETH", Web3.from_wei(bal, "ether"))
    return bal


def get_eth_price_usd(w3: Web3, feed: str, fallback: Decimal, ctx: RunContext) -> Decimal:
    """
    Chainlink ETH/USD (8 decimals). Any failure, or a non-positive answer,
    falls back to the configured constant.
    """
    log = ctx.logger(__name__)
    try:
        agg = w3.eth.contract(address=Web3.to_checksum_address(feed), abi=ABI_CHAINLINK_AGGREGATOR)
        _, answer, _, _, _ = agg.functions.latestRoundData().call()
        price = Decimal(int(answer)).scaleb(-CHAINLINK_ANSWER_DECIMALS)
        if price <= 0:
            raise ValueError(f"non-positive oracle answer {answer}")
        log.debug("ETH price from Chainlink: $%s", price.quantize(Decimal("0.01")))
        return price
    except Exception as exc:
        log.warning("Chainlink price feed failed (%s), using fallback $%s", exc, fallback)
        return Decimal(fallback)
