import collections

import pytest
from eth_tester import EthereumTester, PyEVMBackend
from eth_utils import to_checksum_address
from web3 import Web3
from web3.providers.eth_tester import EthereumTesterProvider

from chaindeploy.artifacts import ArtifactBundle
from chaindeploy.contract import contract_address
from chaindeploy.exceptions import (
    ConfirmationFailure,
    ConfirmationTimeout,
    SubmissionError,
)
from chaindeploy.ledger import AddressLedger
from chaindeploy.network import Network, SigningIdentity, Web3Network

# initcode that deploys a contract consisting of a single STOP instruction.
# Constructor arguments appended to it are ignored, calls to it succeed.
STOP_CONTRACT_BYTECODE = "0x6001600c60003960016000f300"

DEPLOYER_KEY = b"\x04HR\xb2\xa6p\xad\xe5@~x\xfb(c\xc5\x1d\xe9\xfc\xb9eB\xa0q\x86\xfe:\xed\xa6\xbb\x8a\x11m"
FAKE_DEPLOYER = to_checksum_address("0x" + "11" * 20)


def constructor(*inputs):
    return {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [{"name": name, "type": abi_type} for name, abi_type in inputs],
    }


def function(name, *inputs):
    return {
        "type": "function",
        "name": name,
        "stateMutability": "nonpayable",
        "outputs": [],
        "inputs": [
            {"name": input_name, "type": abi_type} for input_name, abi_type in inputs
        ],
    }


VALUE_PROVIDER_ABI = [
    constructor(
        ("poolId", "bytes32"),
        ("balancerVault", "address"),
        ("underlier", "address"),
        ("ePTokenBond", "address"),
        ("timeToMaturity", "uint256"),
        ("unitSeconds", "uint256"),
    )
]
ORACLE_ABI = [
    constructor(
        ("valueProvider", "address"),
        ("timeUpdateWindow", "uint256"),
        ("maxValidTime", "uint256"),
        ("alpha", "int256"),
    )
]
AGGREGATOR_ABI = [
    function("oracleAdd", ("oracle", "address")),
    function("setMinimumRequiredValidValues", ("minimumRequiredValidValues", "uint256")),
]
RELAYER_ABI = [
    constructor(("collybus", "address")),
    function(
        "oracleAdd",
        ("oracle", "address"),
        ("tokenId", "bytes32"),
        ("minimumThresholdValue", "uint256"),
    ),
]
FACTORY_ABI = []
INTERFACE_ABI = [function("oracleAdd", ("oracle", "address"))]


def contracts_json():
    """Bundle in the layout of a dapp/solc standard json output"""

    def entry(abi, bytecode=STOP_CONTRACT_BYTECODE):
        return {"abi": abi, "evm": {"bytecode": {"object": bytecode[2:]}}}

    return {
        "contracts": {
            "src/valueprovider/ElementFinance/ElementFinanceValueProvider.sol": {
                "ElementFinanceValueProvider": entry(VALUE_PROVIDER_ABI)
            },
            "src/oracle/Oracle.sol": {"Oracle": entry(ORACLE_ABI)},
            "src/aggregator/AggregatorOracle.sol": {
                "AggregatorOracle": entry(AGGREGATOR_ABI),
                "IAggregatorOracle": entry(INTERFACE_ABI, bytecode="0x"),
            },
            "src/relayer/CollybusDiscountRate/CollybusDiscountRateRelayer.sol": {
                "CollybusDiscountRateRelayer": entry(RELAYER_ABI)
            },
            "src/factory/Factory.sol": {"Factory": entry(FACTORY_ABI)},
        }
    }


@pytest.fixture()
def bundle_json():
    return contracts_json()


@pytest.fixture()
def bundle(bundle_json):
    return ArtifactBundle.from_json(bundle_json)


@pytest.fixture()
def ledger(tmp_path):
    return AddressLedger(str(tmp_path / "addresses"))


@pytest.fixture(scope="session")
def ethereum_tester_session():
    """Returns an instance of an Ethereum tester"""
    return EthereumTester(PyEVMBackend())


@pytest.fixture
def ethereum_tester(ethereum_tester_session):
    tester = ethereum_tester_session
    snapshot = tester.take_snapshot()
    yield tester
    tester.revert_to_snapshot(snapshot)


@pytest.fixture()
def web3(ethereum_tester):
    web3 = Web3(EthereumTesterProvider(ethereum_tester))
    web3.eth.default_account = web3.eth.accounts[0]
    return web3


@pytest.fixture()
def network(web3):
    return Web3Network(web3)


@pytest.fixture()
def identity(network):
    """Deployer whose transactions are signed by the node"""
    return SigningIdentity.from_node_account(network)


@pytest.fixture()
def key_identity(web3, network):
    """Deployer whose transactions are signed locally with a private key"""
    identity = SigningIdentity.from_private_key(network, DEPLOYER_KEY)
    web3.eth.send_transaction(
        {
            "from": web3.eth.accounts[0],
            "to": identity.address,
            "value": 10 ** 18,
        }
    )
    return identity


class FakeNetwork(Network):
    """Network that mines every transaction on request and records the order
    of submissions and confirmations"""

    def __init__(self, chain_id=1):
        self._chain_id = chain_id
        self.nonces = collections.Counter()
        self.transactions = {}
        self.events = []
        self.timeouts = []
        self.fail_submission_of = set()
        self.time_out_on = set()
        self.revert_on = set()

    @property
    def chain_id(self):
        return self._chain_id

    def get_transaction_count(self, address):
        return self.nonces[address]

    def submit_transaction(self, transaction, *, private_key=None):
        number = len(self.transactions)
        if number in self.fail_submission_of:
            raise SubmissionError("insufficient funds for gas * price + value")
        transaction = dict(transaction)
        transaction.setdefault("nonce", self.nonces[transaction["from"]])
        self.nonces[transaction["from"]] = transaction["nonce"] + 1

        tx_hash = "0x" + (number + 1).to_bytes(32, "big").hex()
        self.transactions[tx_hash] = transaction
        self.events.append(("submit", tx_hash))
        return tx_hash

    def wait_for_confirmation(self, tx_hash, *, timeout, poll_latency):
        self.events.append(("confirm", tx_hash))
        self.timeouts.append(timeout)
        number = list(self.transactions).index(tx_hash)
        if number in self.time_out_on:
            raise ConfirmationTimeout(tx_hash, f"Transaction {tx_hash} was not mined")
        if number in self.revert_on:
            raise ConfirmationFailure(tx_hash, f"Transaction {tx_hash} failed")

        transaction = self.transactions[tx_hash]
        receipt = {"transactionHash": tx_hash, "status": 1, "contractAddress": None}
        if "to" not in transaction:
            receipt["contractAddress"] = contract_address(
                transaction["from"], transaction["nonce"]
            )
        return receipt

    def submitted(self):
        return [self.transactions[tx_hash] for event, tx_hash in self.events if event == "submit"]


@pytest.fixture()
def fake_network():
    return FakeNetwork(chain_id=1)


@pytest.fixture()
def fake_identity(fake_network):
    return SigningIdentity(fake_network, FAKE_DEPLOYER)
