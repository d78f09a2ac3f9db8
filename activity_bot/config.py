import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import lru_cache

from dotenv import load_dotenv
from web3 import Web3

from .services.exceptions import ConfigError

load_dotenv()

BASE_CHAIN_ID = 8453
BASE_NETWORK_NAME = "Base Mainnet"

# tried in order after RPC_URL
BASE_RPC_URLS = [
    "https://mainnet.base.org",
    "https://base.llamarpc.com",
    "https://base.publicnode.com",
    "https://1rpc.io/base",
]

EXPLORER_TX_URL = "https://basescan.org/tx/"

PRIVATE_KEY_RE = re.compile(r"^(0[xX])?[0-9a-fA-F]{64}$")


@dataclass
class Settings:
    # signing / chain
    PRIVATE_KEY: str  # hex 0x...
    TOKEN_ADDRESS: str
    RPC_URL: str

    # Base mainnet contracts
    UNI_V3_ROUTER: str = "0x2626664c2603336E57B271c5C0b26F421741e481"  # SwapRouter02
    UNI_V3_QUOTER: str = "0x3d4e44Eb1374240CE5F1B871ab261CD16335B76a"  # QuoterV2
    WETH_ADDRESS: str = "0x4200000000000000000000000000000000000006"
    CHAINLINK_ETH_USD: str = "0x71041dddad3595F9CEd3DcCFBe3D1F4b0a16Bb70"

    # 500 = 0.05%, 3000 = 0.3%, 10000 = 1%
    POOL_FEE_TIERS: list[int] = field(default_factory=lambda: [3000, 10000, 500])

    # trading
    MIN_BUY_AMOUNT_USD: Decimal = Decimal("1")
    MAX_BUY_AMOUNT_USD: Decimal = Decimal("10")
    SLIPPAGE_TOLERANCE: Decimal = Decimal("5")   # percent
    MAX_GAS_PRICE_GWEI: Decimal = Decimal("50")
    GAS_RESERVE_ETH: Decimal = Decimal("0.001")  # native ETH kept aside for fees
    FALLBACK_ETH_PRICE_USD: Decimal = Decimal("3000")
    TX_DEADLINE_MINUTES: int = 20
    CONFIRMATION_TIMEOUT_SEC: int = 120
    RPC_TIMEOUT_SEC: int = 10

    # retry policy
    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_MS: int = 2000
    RETRY_BACKOFF_MULTIPLIER: Decimal = Decimal("2")

    @property
    def rpc_urls(self) -> list[str]:
        urls = [self.RPC_URL] if self.RPC_URL else []
        return urls + [u for u in BASE_RPC_URLS if u != self.RPC_URL]

    @property
    def retry_base_delay_sec(self) -> float:
        return self.RETRY_BASE_DELAY_MS / 1000.0

    @property
    def gas_reserve_wei(self) -> int:
        return int(Web3.to_wei(self.GAS_RESERVE_ETH, "ether"))


def _decimal(name: str, default: str) -> Decimal:
    raw = os.environ.get(name) or default
    try:
        v = Decimal(raw.strip())
    except InvalidOperation:
        raise ConfigError(f"{name} must be a valid number", field=name, received=raw)
    if not v.is_finite():
        raise ConfigError(f"{name} must be a finite number", field=name, received=raw)
    return v


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer", field=name, received=raw)


def _csv_ints(name: str, default: str) -> list[int]:
    raw = os.environ.get(name) or default
    try:
        return [int(x.strip()) for x in raw.split(",") if x.strip()]
    except ValueError:
        raise ConfigError(f"{name} must be a comma separated list of integers", field=name, received=raw)


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        PRIVATE_KEY=os.environ.get("PRIVATE_KEY", ""),  # keep empty when missing
        TOKEN_ADDRESS=os.environ.get("TOKEN_ADDRESS", ""),
        RPC_URL=os.environ.get("RPC_URL", "").strip(),

        UNI_V3_ROUTER=os.environ.get("UNI_V3_ROUTER", "0x2626664c2603336E57B271c5C0b26F421741e481"),
        UNI_V3_QUOTER=os.environ.get("UNI_V3_QUOTER", "0x3d4e44Eb1374240CE5F1B871ab261CD16335B76a"),
        WETH_ADDRESS=os.environ.get("WETH_ADDRESS", "0x4200000000000000000000000000000000000006"),
        CHAINLINK_ETH_USD=os.environ.get("CHAINLINK_ETH_USD", "0x71041dddad3595F9CEd3DcCFBe3D1F4b0a16Bb70"),
        POOL_FEE_TIERS=_csv_ints("POOL_FEE_TIERS", "3000,10000,500"),

        MIN_BUY_AMOUNT_USD=_decimal("MIN_BUY_AMOUNT_USD", "1"),
        MAX_BUY_AMOUNT_USD=_decimal("MAX_BUY_AMOUNT_USD", "10"),
        SLIPPAGE_TOLERANCE=_decimal("SLIPPAGE_TOLERANCE", "5"),
        MAX_GAS_PRICE_GWEI=_decimal("MAX_GAS_PRICE", "50"),
        GAS_RESERVE_ETH=_decimal("GAS_RESERVE_ETH", "0.001"),
        FALLBACK_ETH_PRICE_USD=_decimal("FALLBACK_ETH_PRICE_USD", "3000"),
        TX_DEADLINE_MINUTES=_int("TX_DEADLINE_MINUTES", 20),
        CONFIRMATION_TIMEOUT_SEC=_int("CONFIRMATION_TIMEOUT_SEC", 120),
        RPC_TIMEOUT_SEC=_int("RPC_TIMEOUT_SEC", 10),

        MAX_RETRY_ATTEMPTS=_int("MAX_RETRY_ATTEMPTS", 3),
        RETRY_BASE_DELAY_MS=_int("RETRY_BASE_DELAY_MS", 2000),
        RETRY_BACKOFF_MULTIPLIER=_decimal("RETRY_BACKOFF_MULTIPLIER", "2"),
    )


# ---------- validation ----------

def normalize_private_key(raw: str | None) -> str:
    """
    Normalize a private key string:
    - strip whitespace and surrounding quotes
    - accept with or without 0x
    - validate 64 hex chars
    Return lowercase '0x' + 64 hex.
    """
    if not raw:
        raise ConfigError("PRIVATE_KEY missing", field="PRIVATE_KEY")

    pk = raw.strip()
    if (pk.startswith('"') and pk.endswith('"')) or (pk.startswith("'") and pk.endswith("'")):
        pk = pk[1:-1].strip()

    if not PRIVATE_KEY_RE.fullmatch(pk):
        # never echo the value back
        raise ConfigError(
            "Invalid PRIVATE_KEY: expected 64 hex chars (with or without 0x)",
            field="PRIVATE_KEY",
        )
    body = pk[2:] if pk.lower().startswith("0x") else pk
    return "0x" + body.lower()


def validate_address(address: str | None, field_name: str = "address") -> str:
    """Return the checksummed form of `address` or raise ConfigError."""
    if not address:
        raise ConfigError(f"{field_name} is required", field=field_name)
    addr = address.strip()
    if not Web3.is_address(addr):
        raise ConfigError(f"{field_name} is not a valid address", field=field_name, received=addr)
    # mixed case means EIP-55, which must then be correct
    body = addr[2:] if addr[:2].lower() == "0x" else addr
    if body != body.lower() and body != body.upper() and not Web3.is_checksum_address(addr):
        raise ConfigError(f"{field_name} has an invalid checksum", field=field_name, received=addr)
    checksummed = Web3.to_checksum_address(addr)
    if int(checksummed, 16) == 0:
        raise ConfigError(f"{field_name} cannot be the zero address", field=field_name)
    return checksummed


def validate_numeric_range(value: Decimal, lo: Decimal, hi: Decimal, field_name: str) -> Decimal:
    if value < lo or value > hi:
        raise ConfigError(
            f"{field_name} must be between {lo} and {hi}",
            field=field_name, value=str(value), min=str(lo), max=str(hi),
        )
    return value


def validate_settings(s: Settings) -> Settings:
    """
    Validate the settings a trade needs and return a copy with normalized
    private key and checksummed addresses. Raises ConfigError on the first
    problem found.
    """
    pk = normalize_private_key(s.PRIVATE_KEY)
    token = validate_address(s.TOKEN_ADDRESS, "TOKEN_ADDRESS")
    if not s.RPC_URL:
        raise ConfigError("RPC_URL is required", field="RPC_URL")

    validate_numeric_range(s.SLIPPAGE_TOLERANCE, Decimal("0"), Decimal("100"), "SLIPPAGE_TOLERANCE")
    validate_numeric_range(s.MAX_GAS_PRICE_GWEI, Decimal("0.000001"), Decimal("10000"), "MAX_GAS_PRICE")
    validate_numeric_range(s.MIN_BUY_AMOUNT_USD, Decimal("0.01"), Decimal("1000000"), "MIN_BUY_AMOUNT_USD")
    validate_numeric_range(s.MAX_BUY_AMOUNT_USD, Decimal("0.01"), Decimal("1000000"), "MAX_BUY_AMOUNT_USD")
    if s.MIN_BUY_AMOUNT_USD > s.MAX_BUY_AMOUNT_USD:
        raise ConfigError(
            "MIN_BUY_AMOUNT_USD must not exceed MAX_BUY_AMOUNT_USD",
            field="MIN_BUY_AMOUNT_USD",
            min=str(s.MIN_BUY_AMOUNT_USD), max=str(s.MAX_BUY_AMOUNT_USD),
        )
    validate_numeric_range(s.GAS_RESERVE_ETH, Decimal("0"), Decimal("10"), "GAS_RESERVE_ETH")
    if not s.POOL_FEE_TIERS:
        raise ConfigError("POOL_FEE_TIERS must not be empty", field="POOL_FEE_TIERS")
    if s.MAX_RETRY_ATTEMPTS < 1:
        raise ConfigError("MAX_RETRY_ATTEMPTS must be >= 1", field="MAX_RETRY_ATTEMPTS")
    if s.CONFIRMATION_TIMEOUT_SEC <= 0:
        raise ConfigError("CONFIRMATION_TIMEOUT_SEC must be > 0", field="CONFIRMATION_TIMEOUT_SEC")

    return Settings(
        **{
            **s.__dict__,
            "PRIVATE_KEY": pk,
            "TOKEN_ADDRESS": token,
            "UNI_V3_ROUTER": validate_address(s.UNI_V3_ROUTER, "UNI_V3_ROUTER"),
            "UNI_V3_QUOTER": validate_address(s.UNI_V3_QUOTER, "UNI_V3_QUOTER"),
            "WETH_ADDRESS": validate_address(s.WETH_ADDRESS, "WETH_ADDRESS"),
            "CHAINLINK_ETH_USD": validate_address(s.CHAINLINK_ETH_USD, "CHAINLINK_ETH_USD"),
        }
    )
