import abc
from typing import Dict, Optional

import attr
from eth_account import Account
from eth_utils import to_checksum_address, to_hex
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from chaindeploy.exceptions import (
    ConfirmationFailure,
    ConfirmationTimeout,
    SubmissionError,
)


class Network(abc.ABC):
    """The operations the deployment code needs from a node"""

    @property
    @abc.abstractmethod
    def chain_id(self) -> int:
        pass

    @abc.abstractmethod
    def get_transaction_count(self, address: str) -> int:
        pass

    @abc.abstractmethod
    def submit_transaction(
        self, transaction: Dict, *, private_key: bytes = None
    ) -> str:
        """Send the transaction and return its hash as hex string"""

    @abc.abstractmethod
    def wait_for_confirmation(
        self, tx_hash: str, *, timeout: float, poll_latency: float
    ) -> Dict:
        """Block until the transaction is mined and return its receipt"""


class Web3Network(Network):
    def __init__(self, web3: Web3):
        self.web3 = web3
        self._chain_id = None

    @classmethod
    def from_json_rpc(cls, url: str, *, timeout: int = 180) -> "Web3Network":
        return cls(
            Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
        )

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            try:
                self._chain_id = int(self.web3.eth.chain_id)
            except (Web3Exception, ValueError, OSError) as e:
                raise SubmissionError(f"Could not get chain id: {e}") from e
        return self._chain_id

    def get_transaction_count(self, address: str) -> int:
        try:
            return self.web3.eth.get_transaction_count(address, "pending")
        except (Web3Exception, ValueError, OSError) as e:
            raise SubmissionError(f"Could not get nonce of {address}: {e}") from e

    def submit_transaction(
        self, transaction: Dict, *, private_key: bytes = None
    ) -> str:
        try:
            if private_key is None:
                tx_hash = self.web3.eth.send_transaction(transaction)
            else:
                signed_transaction = self.web3.eth.account.sign_transaction(
                    self._fill_transaction_defaults(transaction), private_key
                )
                tx_hash = self.web3.eth.send_raw_transaction(
                    signed_transaction.raw_transaction
                )
        except (Web3Exception, ValueError, OSError) as e:
            raise SubmissionError(f"Could not submit transaction: {e}") from e
        return to_hex(tx_hash)

    def _fill_transaction_defaults(self, transaction: Dict) -> Dict:
        transaction = dict(transaction)
        if "nonce" not in transaction:
            transaction["nonce"] = self.get_transaction_count(transaction["from"])
        transaction.setdefault("chainId", self.chain_id)
        if "gasPrice" not in transaction and "maxFeePerGas" not in transaction:
            transaction["gasPrice"] = self.web3.eth.gas_price
        if "gas" not in transaction:
            transaction["gas"] = self.web3.eth.estimate_gas(
                {
                    key: transaction[key]
                    for key in ("from", "to", "data", "value")
                    if key in transaction
                }
            )
        return transaction

    def wait_for_confirmation(
        self, tx_hash: str, *, timeout: float, poll_latency: float
    ) -> Dict:
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=poll_latency
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(
                tx_hash, f"Transaction {tx_hash} was not mined within {timeout}s"
            ) from e
        except (Web3Exception, OSError) as e:
            raise ConfirmationTimeout(
                tx_hash, f"Lost connection while waiting for {tx_hash}: {e}"
            ) from e

        if receipt.get("status", 1) == 0:
            raise ConfirmationFailure(
                tx_hash, f"Transaction {tx_hash} failed", receipt=receipt
            )
        return receipt


@attr.s(frozen=True)
class SigningIdentity:
    """Account that signs deployment transactions on one network

    Without a private key, transactions are sent with `from` set to the address
    and the node signs them.
    """

    network: Network = attr.ib()
    address: str = attr.ib(converter=to_checksum_address)
    private_key: Optional[bytes] = attr.ib(default=None, repr=False)

    @classmethod
    def from_private_key(cls, network: Network, private_key) -> "SigningIdentity":
        account = Account.from_key(private_key)
        return cls(network, account.address, bytes(account.key))

    @classmethod
    def from_node_account(cls, network: Web3Network, index: int = 0):
        return cls(network, network.web3.eth.accounts[index])

    @property
    def chain_id(self) -> int:
        return self.network.chain_id


@attr.s(frozen=True)
class ConfirmationPolicy:
    """How long to wait for a transaction to be mined"""

    timeout: float = attr.ib(default=180)
    poll_latency: float = attr.ib(default=0.1)

    def wait(self, network: Network, tx_hash: str) -> Dict:
        return network.wait_for_confirmation(
            tx_hash, timeout=self.timeout, poll_latency=self.poll_latency
        )


DEFAULT_CONFIRMATION_POLICY = ConfirmationPolicy()
