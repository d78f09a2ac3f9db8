from typing import Tuple
from web3 import Web3
from .base import DexAdapter

# ---- minimal ABIs (only what the bot calls) ----
ABI_ERC20 = [
    {"name":"name","outputs":[{"type":"string"}],"inputs":[],"stateMutability":"view","type":"function"},
    {"name":"symbol","outputs":[{"type":"string"}],"inputs":[],"stateMutability":"view","type":"function"},
    {"name":"decimals","outputs":[{"type":"uint8"}],"inputs":[],"stateMutability":"view","type":"function"},
    {"name":"balanceOf","outputs":[{"type":"uint256"}],"inputs":[{"type":"address","name":"owner"}],"stateMutability":"view","type":"function"},
    {"name":"allowance","outputs":[{"type":"uint256"}],
     "inputs":[{"type":"address","name":"owner"},{"type":"address","name":"spender"}],
     "stateMutability":"view","type":"function"},
    {"name":"approve","outputs":[{"type":"bool"}],
     "inputs":[{"type":"address","name":"spender"},{"type":"uint256","name":"amount"}],
     "stateMutability":"nonpayable","type":"function"},
]

ABI_QUOTER_V2 = [
    {"inputs":[{"components":[
        {"internalType":"address","name":"tokenIn","type":"address"},
        {"internalType":"address","name":"tokenOut","type":"address"},
        {"internalType":"uint256","name":"amountIn","type":"uint256"},
        {"internalType":"uint24","name":"fee","type":"uint24"},
        {"internalType":"uint160","name":"sqrtPriceLimitX96","type":"uint160"}
    ],"internalType":"struct IQuoterV2.QuoteExactInputSingleParams","name":"params","type":"tuple"}],
     "name":"quoteExactInputSingle",
     "outputs":[{"internalType":"uint256","name":"amountOut","type":"uint256"},{"internalType":"uint160","name":"sqrtPriceX96After","type":"uint160"},{"internalType":"uint32","name":"initializedTicksCrossed","type":"uint32"},{"internalType":"uint256","name":"gasEstimate","type":"uint256"}],
     "stateMutability":"nonpayable","type":"function"},
]

# SwapRouter02: the struct has no deadline field
ABI_SWAP_ROUTER_02 = [
    {"inputs":[{"components":[
        {"internalType":"address","name":"tokenIn","type":"address"},
        {"internalType":"address","name":"tokenOut","type":"address"},
        {"internalType":"uint24","name":"fee","type":"uint24"},
        {"internalType":"address","name":"recipient","type":"address"},
        {"internalType":"uint256","name":"amountIn","type":"uint256"},
        {"internalType":"uint256","name":"amountOutMinimum","type":"uint256"},
        {"internalType":"uint160","name":"sqrtPriceLimitX96","type":"uint160"}
    ],"internalType":"struct IV3SwapRouter.ExactInputSingleParams","name":"params","type":"tuple"}],
     "name":"exactInputSingle",
     "outputs":[{"internalType":"uint256","name":"amountOut","type":"uint256"}],
     "stateMutability":"payable","type":"function"},
]


class UniswapV3Adapter(DexAdapter):
    """Concrete adapter for Uniswap v3 QuoterV2 + SwapRouter02."""

    def erc20_abi(self) -> list: return ABI_ERC20
    def quoter_abi(self) -> list: return ABI_QUOTER_V2
    def router_abi(self) -> list: return ABI_SWAP_ROUTER_02

    # ---------- reads ----------
    def quote_exact_input_single(self, token_in: str, token_out: str, amount_in: int, fee: int) -> Tuple[int, int, int, int]:
        params = {
            "tokenIn": Web3.to_checksum_address(token_in),
            "tokenOut": Web3.to_checksum_address(token_out),
            "amountIn": int(amount_in),
            "fee": int(fee),
            "sqrtPriceLimitX96": 0,
        }
        # QuoterV2 is nonpayable but meant for eth_call only
        amount_out, sqrt_after, ticks_crossed, gas_est = self.quoter().functions.quoteExactInputSingle(params).call()
        return int(amount_out), int(sqrt_after), int(ticks_crossed), int(gas_est)

    # ---------- writes (return ContractFunctions) ----------
    def fn_exact_input_single(self, token_in: str, token_out: str, fee: int, recipient: str,
                              amount_in: int, min_out: int, sqrt_price_limit_x96: int = 0):
        return self.router().functions.exactInputSingle({
            "tokenIn": Web3.to_checksum_address(token_in),
            "tokenOut": Web3.to_checksum_address(token_out),
            "fee": int(fee),
            "recipient": Web3.to_checksum_address(recipient),
            "amountIn": int(amount_in),
            "amountOutMinimum": int(min_out),
            "sqrtPriceLimitX96": int(sqrt_price_limit_x96),
        })
