from abc import ABC, abstractmethod
from typing import Tuple
from web3 import Web3


class DexAdapter(ABC):
    """
    Abstract adapter that normalizes the quote/swap/approve surface across DEXes.
    One instance per run; it captures the w3 client plus quoter and router addresses.
    """

    def __init__(self, w3: Web3, quoter: str, router: str):
        self.w3 = w3
        self.quoter_address = Web3.to_checksum_address(quoter)
        self.router_address = Web3.to_checksum_address(router)

    # ---------- ABI providers ----------
    @abstractmethod
    def erc20_abi(self) -> list: ...
    @abstractmethod
    def quoter_abi(self) -> list: ...
    @abstractmethod
    def router_abi(self) -> list: ...

    # ---------- contracts ----------
    def erc20(self, addr: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(addr), abi=self.erc20_abi())

    def quoter(self):
        return self.w3.eth.contract(address=self.quoter_address, abi=self.quoter_abi())

    def router(self):
        return self.w3.eth.contract(address=self.router_address, abi=self.router_abi())

    # ---------- read ----------
    @abstractmethod
    def quote_exact_input_single(self, token_in: str, token_out: str, amount_in: int, fee: int) -> Tuple[int, int, int, int]:
        """
        Simulate an exact-input single-pool swap.
        Returns (amount_out, sqrt_price_x96_after, ticks_crossed, gas_estimate).
        Reverts when the pool for `fee` does not exist or cannot fill.
        """
        ...

    def allowance(self, token: str, owner: str, spender: str) -> int:
        c = self.erc20(token)
        return int(c.functions.allowance(Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)).call())

    def balance_of(self, token: str, owner: str) -> int:
        return int(self.erc20(token).functions.balanceOf(Web3.to_checksum_address(owner)).call())

    # ---------- write (build tx function calls) ----------
    @abstractmethod
    def fn_exact_input_single(self, token_in: str, token_out: str, fee: int, recipient: str,
                              amount_in: int, min_out: int, sqrt_price_limit_x96: int = 0):
        """Return a ContractFunction for an exact-input single-pool swap."""
        ...

    def fn_approve(self, token: str, spender: str, amount: int):
        return self.erc20(token).functions.approve(Web3.to_checksum_address(spender), int(amount))
