from types import SimpleNamespace

import pytest
from web3 import Web3

from activity_bot.adapters.base import DexAdapter
from activity_bot.config import Settings
from activity_bot.utils.log import RunContext

WALLET = Web3.to_checksum_address("0x" + "11" * 20)
TOKEN = Web3.to_checksum_address("0x" + "ab" * 20)
WETH = Web3.to_checksum_address("0x4200000000000000000000000000000000000006")
QUOTER = Web3.to_checksum_address("0x3d4e44Eb1374240CE5F1B871ab261CD16335B76a")
ROUTER = Web3.to_checksum_address("0x2626664c2603336E57B271c5C0b26F421741e481")

PK = "0x" + "4c" * 32


def _call(value):
    return SimpleNamespace(call=lambda: value)


class FakeEth:
    def __init__(self, eth_balance=10 ** 18, eth_price_usd=2500, code=b"\x60\x80"):
        self.eth_balance = eth_balance
        self.eth_price_usd = eth_price_usd
        self.code = code
        self.gas_price = 1_000_000_000

    def get_code(self, address):
        return self.code

    def get_balance(self, address):
        return self.eth_balance

    def contract(self, address, abi):
        answer = int(self.eth_price_usd * 10 ** 8)
        return SimpleNamespace(functions=SimpleNamespace(latestRoundData=lambda: _call((1, answer, 0, 0, 1))))


class FakeAdapter(DexAdapter):
    """
    In-memory pools/balances. `quotes` maps fee -> amount_out (int) or an
    exception instance to raise for that tier.
    """

    def __init__(self, eth=None, quotes=None, balances=None, allowances=None,
                 symbol="TEST", name="Test Token", decimals=18):
        super().__init__(SimpleNamespace(eth=eth or FakeEth()), QUOTER, ROUTER)
        self.quotes = quotes or {}
        self.balances = {Web3.to_checksum_address(k): v for k, v in (balances or {}).items()}
        self.allowances = {Web3.to_checksum_address(k): v for k, v in (allowances or {}).items()}
        self.meta = (name, symbol, decimals)
        self.quote_calls = []

    def erc20_abi(self) -> list: return []
    def quoter_abi(self) -> list: return []
    def router_abi(self) -> list: return []

    def erc20(self, addr: str):
        name, symbol, decimals = self.meta
        return SimpleNamespace(functions=SimpleNamespace(
            name=lambda: _call(name),
            symbol=lambda: _call(symbol),
            decimals=lambda: _call(decimals),
        ))

    def quote_exact_input_single(self, token_in, token_out, amount_in, fee):
        self.quote_calls.append((token_in, token_out, amount_in, fee))
        q = self.quotes.get(fee)
        if q is None:
            raise RuntimeError("execution reverted")
        if isinstance(q, Exception):
            raise q
        return q, 79228162514264337593543950336, 1, 90_000

    def allowance(self, token, owner, spender):
        return self.allowances.get(Web3.to_checksum_address(token), 0)

    def balance_of(self, token, owner):
        return self.balances.get(Web3.to_checksum_address(token), 0)

    def fn_exact_input_single(self, token_in, token_out, fee, recipient, amount_in, min_out, sqrt_price_limit_x96=0):
        return ("exactInputSingle", dict(token_in=token_in, token_out=token_out, fee=fee,
                                         recipient=recipient, amount_in=amount_in, min_out=min_out))

    def fn_approve(self, token, spender, amount):
        return ("approve", dict(token=token, spender=spender, amount=amount))


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeTxService:
    """
    Records what would have been sent. `on_confirm` lets a test move the
    clock or change balances while "waiting" for a receipt.
    """

    def __init__(self, wallet=WALLET, on_confirm=None, send_errors=None):
        self.wallet = wallet
        self.sent = []
        self.waits = []
        self.on_confirm = on_confirm
        self.send_errors = list(send_errors or [])

    def sender_address(self):
        return self.wallet

    def send(self, fn, *, value=0, gas_limit=None, gas_strategy="buffered"):
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append(fn)
        return "0x" + f"{len(self.sent):064x}"

    def wait_for_confirmation(self, tx_hash, timeout_sec=120):
        self.waits.append((tx_hash, timeout_sec))
        if self.on_confirm:
            self.on_confirm(tx_hash)
        return {"status": 1, "blockNumber": 1234, "gasUsed": 150_000, "transactionHash": tx_hash}


@pytest.fixture()
def ctx():
    return RunContext(action="TEST", correlation_id="TEST-CID")


@pytest.fixture()
def settings():
    return Settings(
        PRIVATE_KEY=PK,
        TOKEN_ADDRESS=TOKEN,
        RPC_URL="http://localhost:8545",
        RETRY_BASE_DELAY_MS=10,
    )


@pytest.fixture()
def sleeps():
    return []
