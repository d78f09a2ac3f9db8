from decimal import Decimal
from typing import Literal, Optional

from eth_account import Account
from web3 import Web3
from web3.contract.contract import ContractFunction
from web3.exceptions import TimeExhausted

from ..utils.formatters import fmt_gwei
from ..utils.log import RunContext
from .exceptions import ConfirmationTimeoutError, GasPriceTooHighError, TransactionRevertedError
from .utils import to_json_safe, tx_hash_hex

GasStrategy = Literal["default", "buffered", "aggressive"]

DEFAULT_CONFIRMATION_TIMEOUT_SEC = 120


class TxService:
    """
    Transaction sender for the bot wallet.

    Responsibilities:
    - Build, sign and broadcast contract calls.
    - Apply gas padding strategy.
    - Refuse to broadcast above the max gas price.
    - Wait for the receipt within a bounded window.
    - Normalize receipts into plain dicts.
    """

    def __init__(self, w3: Web3, private_key: str, ctx: RunContext, max_gas_price_gwei: Optional[Decimal] = None):
        self.w3 = w3
        self.pk = private_key
        self.account = Account.from_key(private_key)
        self.max_gas_price_gwei = max_gas_price_gwei
        self._log = ctx.logger(__name__)

    def sender_address(self) -> str:
        return self.account.address

    # ---------- internal helpers ----------

    def _next_nonce(self) -> int:
        # pending so a just-confirmed approval is never reused
        return self.w3.eth.get_transaction_count(self.account.address, "pending")

    def _estimate_with_strategy(self, tx: dict, strategy: GasStrategy) -> int:
        """
        Calls estimateGas(tx) and applies a safety buffer depending on strategy.
        Estimation errors propagate: a failing estimate is usually a revert.
        """
        base_estimate = int(self.w3.eth.estimate_gas(tx))

        if strategy == "default":
            return base_estimate
        if strategy == "buffered":
            return base_estimate * 130 // 100
        if strategy == "aggressive":
            return base_estimate * 150 // 100 + 25_000
        return base_estimate

    def current_gas_price(self) -> int:
        """
        Node gas price, checked against the configured cap before anything is signed.
        """
        gas_price = int(self.w3.eth.gas_price)
        if self.max_gas_price_gwei is not None:
            cap_wei = int(Web3.to_wei(self.max_gas_price_gwei, "gwei"))
            if gas_price > cap_wei:
                raise GasPriceTooHighError(gas_price, str(self.max_gas_price_gwei))
        self._log.debug("Current gas price: %s", fmt_gwei(gas_price))
        return gas_price

    def _build_tx_dict(self, fn: ContractFunction, value_wei: int) -> dict:
        """
        Builds the bare transaction dict with from/nonce/value/gasPrice but no gas limit yet.
        """
        base_tx = {
            "from":  self.account.address,
            "nonce": self._next_nonce(),
            "value": int(value_wei or 0),
            "gasPrice": self.current_gas_price(),
        }
        return fn.build_transaction(base_tx)

    def _sign_and_send(self, tx: dict) -> str:
        signed = self.w3.eth.account.sign_transaction(tx, self.pk)
        txh = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return tx_hash_hex(txh)

    # ---------- public API ----------

    def send(
        self,
        fn: ContractFunction,
        *,
        value: int = 0,
        gas_limit: Optional[int] = None,
        gas_strategy: GasStrategy = "buffered",
    ) -> str:
        """
        Broadcasts a state-changing transaction and returns its hash without
        waiting for it to be mined.

        Raises:
            GasPriceTooHighError: before signing, nothing broadcast.
            web3/provider errors: left for the retrier to classify.
        """
        tx = self._build_tx_dict(fn, value_wei=value)

        if gas_limit is not None:
            final_gas_limit = int(gas_limit)
        else:
            final_gas_limit = self._estimate_with_strategy(tx, gas_strategy)
        tx["gas"] = final_gas_limit
        self._log.debug("Gas limit: %s (strategy=%s)", final_gas_limit, gas_strategy)

        tx_hash = self._sign_and_send(tx)
        self._log.info("Transaction submitted: %s", tx_hash)
        return tx_hash

    def wait_for_confirmation(self, tx_hash: str, timeout_sec: float = DEFAULT_CONFIRMATION_TIMEOUT_SEC) -> dict:
        """
        Block until the receipt shows up or `timeout_sec` elapses.

        Raises:
            ConfirmationTimeoutError: no receipt in time (tx is NOT resubmitted).
            TransactionRevertedError: mined with status != 1.
        """
        self._log.info("Waiting for transaction confirmation: %s", tx_hash)
        try:
            rcpt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout_sec, poll_latency=2)
        except TimeExhausted as exc:
            raise ConfirmationTimeoutError(tx_hash, timeout_sec) from exc

        rcpt = to_json_safe(dict(rcpt))
        if int(rcpt.get("status", 0)) != 1:
            raise TransactionRevertedError(
                tx_hash=tx_hash,
                receipt=rcpt,
                msg="Transaction reverted (status=0). Possibly out-of-gas or slippage guard",
            )

        self._log.info("Transaction confirmed in block %s (gas used %s)", rcpt.get("blockNumber"), rcpt.get("gasUsed"))
        return rcpt
