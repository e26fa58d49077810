import re
from typing import Dict, List, Optional, Sequence

import attr
import eth_abi
import rlp
from eth_abi.exceptions import ABITypeError, ParseError
from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_utils import (
    decode_hex,
    function_abi_to_4byte_selector,
    keccak,
    to_checksum_address,
    to_hex,
)
from eth_utils.abi import collapse_if_tuple

from chaindeploy.exceptions import EncodingError
from chaindeploy.network import (
    DEFAULT_CONFIRMATION_POLICY,
    ConfirmationPolicy,
    SigningIdentity,
)

INTEGER_TYPE = re.compile(r"u?int[0-9]*")
BYTES_TYPE = re.compile(r"bytes[0-9]*")


def _normalize_argument(abi_type: str, value):
    """Accept integers and byte strings given as strings, like ethers does"""
    if isinstance(value, str) and BYTES_TYPE.fullmatch(abi_type):
        try:
            return decode_hex(value)
        except ValueError:
            raise EncodingError(
                f"Cannot use {value!r} as argument of type {abi_type}"
            ) from None
    if isinstance(value, str) and INTEGER_TYPE.fullmatch(abi_type):
        try:
            if value.lower().startswith("0x"):
                return int(value, 16)
            return int(value)
        except ValueError:
            raise EncodingError(
                f"Cannot use {value!r} as argument of type {abi_type}"
            ) from None
    return value


def encode_arguments(inputs: Sequence[Dict], args: Sequence) -> bytes:
    if len(inputs) != len(args):
        raise EncodingError(f"Expected {len(inputs)} arguments, got {len(args)}")
    types = [collapse_if_tuple(abi_input) for abi_input in inputs]
    values = [
        _normalize_argument(abi_type, value) for abi_type, value in zip(types, args)
    ]
    try:
        return eth_abi.encode(types, values)
    except (
        AbiEncodingError,
        ABITypeError,
        ParseError,
        TypeError,
        ValueError,
        OverflowError,
    ) as e:
        raise EncodingError(f"Cannot encode {list(args)} as {types}: {e}") from e


def contract_address(deployer_address: str, nonce: int) -> str:
    """Address of the contract created by `deployer_address` with `nonce`"""
    encoded = rlp.encode([decode_hex(deployer_address), nonce])
    return to_checksum_address(keccak(encoded)[12:])


def find_function_abi(abi: List[Dict], function_name: str, arity: int) -> Dict:
    candidates = [
        entry
        for entry in abi
        if entry.get("type", "function") == "function"
        and entry.get("name") == function_name
    ]
    if not candidates:
        raise EncodingError(f"ABI has no function {function_name}")
    matching = [
        entry for entry in candidates if len(entry.get("inputs", [])) == arity
    ]
    if len(matching) != 1:
        raise EncodingError(
            f"Cannot select {function_name} with {arity} arguments, "
            f"{len(matching)} of {len(candidates)} overloads match"
        )
    return matching[0]


def encode_function_call(abi: List[Dict], function_name: str, args: Sequence) -> bytes:
    function_abi = find_function_abi(abi, function_name, len(args))
    return function_abi_to_4byte_selector(function_abi) + encode_arguments(
        function_abi.get("inputs", []), args
    )


@attr.s(frozen=True)
class DeployedContract:
    """A contract on chain, bound to the identity that talks to it

    `tx_hash` is the hash of the creation transaction if the contract was
    deployed in this process, and None if it was attached to.
    """

    address: str = attr.ib(converter=to_checksum_address)
    abi: List[Dict] = attr.ib(repr=False)
    identity: SigningIdentity = attr.ib(repr=False)
    tx_hash: Optional[str] = attr.ib(default=None)

    @property
    def network(self):
        return self.identity.network

    def transact(
        self,
        function_name: str,
        *args,
        transaction_options: Dict = None,
        confirmation: ConfirmationPolicy = None,
    ) -> Dict:
        """Call a state changing function and wait for a successful receipt"""
        if transaction_options is None:
            transaction_options = {}
        if confirmation is None:
            confirmation = DEFAULT_CONFIRMATION_POLICY

        data = encode_function_call(self.abi, function_name, args)
        transaction = {
            "from": self.identity.address,
            "to": self.address,
            "data": to_hex(data),
        }
        transaction.update(transaction_options)
        tx_hash = self.network.submit_transaction(
            transaction, private_key=self.identity.private_key
        )
        return confirmation.wait(self.network, tx_hash)
