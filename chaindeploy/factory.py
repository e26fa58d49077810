from typing import Dict, List

import attr
from eth_utils import to_hex

from chaindeploy.contract import DeployedContract, contract_address, encode_arguments
from chaindeploy.exceptions import EncodingError
from chaindeploy.network import ConfirmationPolicy, SigningIdentity


@attr.s(frozen=True)
class PendingDeployment:
    """A submitted contract creation transaction

    The address is derived from the deployer and the nonce, so it is known
    before the transaction is mined.
    """

    factory: "ContractFactory" = attr.ib(repr=False)
    tx_hash: str = attr.ib()
    address: str = attr.ib()

    def wait(self, confirmation: ConfirmationPolicy) -> Dict:
        return confirmation.wait(self.factory.identity.network, self.tx_hash)


@attr.s(frozen=True)
class ContractFactory:
    abi: List[Dict] = attr.ib(repr=False)
    bytecode: bytes = attr.ib(repr=False)
    identity: SigningIdentity = attr.ib()

    @property
    def constructor_inputs(self):
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return entry.get("inputs", [])
        return []

    def build_initcode(self, *args) -> bytes:
        if not self.bytecode:
            raise EncodingError("Contract has no bytecode, it cannot be deployed")
        return self.bytecode + encode_arguments(self.constructor_inputs, args)

    def deploy(self, *args, transaction_options: Dict = None) -> PendingDeployment:
        if transaction_options is None:
            transaction_options = {}

        # encode first, nothing is sent if the arguments do not match
        initcode = self.build_initcode(*args)
        network = self.identity.network
        transaction = {"from": self.identity.address, "data": to_hex(initcode)}
        transaction.update(transaction_options)
        if "nonce" not in transaction:
            transaction["nonce"] = network.get_transaction_count(self.identity.address)

        tx_hash = network.submit_transaction(
            transaction, private_key=self.identity.private_key
        )
        return PendingDeployment(
            factory=self,
            tx_hash=tx_hash,
            address=contract_address(self.identity.address, transaction["nonce"]),
        )

    def attach(self, address: str) -> DeployedContract:
        return DeployedContract(address=address, abi=self.abi, identity=self.identity)


def make_factory(abi, bytecode, identity: SigningIdentity) -> ContractFactory:
    return ContractFactory(abi=abi, bytecode=bytes(bytecode), identity=identity)
