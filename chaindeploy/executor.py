from typing import Dict

import click

from chaindeploy.contract import DeployedContract
from chaindeploy.exceptions import ConfirmationFailure
from chaindeploy.factory import ContractFactory
from chaindeploy.ledger import AddressLedger
from chaindeploy.network import DEFAULT_CONFIRMATION_POLICY, ConfirmationPolicy


def increase_transaction_options_nonce(transaction_options: Dict) -> None:
    """Increases the nonce in transaction_options by 1, if one was given"""
    if "nonce" in transaction_options:
        transaction_options["nonce"] = transaction_options["nonce"] + 1


def deploy_and_confirm(
    name: str,
    factory: ContractFactory,
    *args,
    transaction_options: Dict = None,
    confirmation: ConfirmationPolicy = None,
) -> DeployedContract:
    """Deploy a contract and block until the creation transaction is mined

    Either a handle of the mined contract is returned or an exception is raised,
    there is no handle for a contract whose deployment is not confirmed.
    """
    if confirmation is None:
        confirmation = DEFAULT_CONFIRMATION_POLICY

    pending = factory.deploy(*args, transaction_options=transaction_options)
    receipt = pending.wait(confirmation)

    address = receipt.get("contractAddress")
    if address is None:
        raise ConfirmationFailure(
            pending.tx_hash,
            f"Transaction {pending.tx_hash} did not create a contract",
            receipt=receipt,
        )

    contract = DeployedContract(
        address=address,
        abi=factory.abi,
        identity=factory.identity,
        tx_hash=pending.tx_hash,
    )
    click.echo(f"{name}: {contract.address}")
    click.echo(f"  address: {contract.address}")
    click.echo(f"  txHash:  {contract.tx_hash}")
    return contract


def deploy_contract(
    name: str,
    factory: ContractFactory,
    *args,
    ledger: AddressLedger,
    transaction_options: Dict = None,
    confirmation: ConfirmationPolicy = None,
) -> DeployedContract:
    """Deploy a contract and record its address under `name` in the ledger"""
    # queried before anything is sent
    chain_id = factory.identity.chain_id
    contract = deploy_and_confirm(
        name,
        factory,
        *args,
        transaction_options=transaction_options,
        confirmation=confirmation,
    )
    ledger.record(chain_id, name, contract.address)
    return contract
