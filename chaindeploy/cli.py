import json
from contextlib import contextmanager
from importlib.metadata import version as distribution_version

import click
from eth_account import Account
from web3.exceptions import Web3Exception

from chaindeploy.artifacts import (
    ARTIFACTS_ENV_VARIABLE,
    DEFAULT_ARTIFACTS_PATH,
    load_artifact_bundle,
)
from chaindeploy.exceptions import DeploymentError
from chaindeploy.executor import deploy_contract
from chaindeploy.factory import make_factory
from chaindeploy.ledger import AddressLedger
from chaindeploy.network import ConfirmationPolicy, SigningIdentity, Web3Network
from chaindeploy.plan import load_plan, run_plan


def report_version():
    dist = "chaindeploy"
    click.echo("{} {}".format(dist, distribution_version(dist)))


@click.group(invoke_without_command=True)
@click.option("--version", help="Prints the version of the software", is_flag=True)
@click.pass_context
def cli(ctx, version):
    """Commandline tool to deploy contracts and record their addresses"""
    if version:
        report_version()
    elif ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit()


jsonrpc_option = click.option(
    "--jsonrpc",
    help="JsonRPC URL of the ethereum client",
    default="http://127.0.0.1:8545",
    show_default=True,
    metavar="URL",
)
keystore_option = click.option(
    "--keystore",
    help="Path to the encrypted keystore of the deployer. "
    "If omitted, the first account of the node is used",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
)
gas_option = click.option(
    "--gas", help="Gas of the transactions to be sent", type=int, default=None
)
gas_price_option = click.option(
    "--gas-price",
    help="Gas price of the transactions to be sent",
    type=int,
    default=None,
)
nonce_option = click.option(
    "--nonce",
    help="Nonce of the first transaction to be sent",
    type=int,
    default=None,
)
artifacts_option = click.option(
    "--artifacts",
    help="Compiled contracts json, keyed by source path and contract name",
    envvar=ARTIFACTS_ENV_VARIABLE,
    default=DEFAULT_ARTIFACTS_PATH,
    show_default=True,
    type=click.Path(exists=True, dir_okay=False),
)
ledger_dir_option = click.option(
    "--ledger-dir",
    help="Directory of the address files, one <chain id>.json per chain",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
)
timeout_option = click.option(
    "--timeout",
    help="Seconds to wait for a transaction to be mined",
    type=float,
    default=180,
    show_default=True,
)


def build_transaction_options(*, gas, gas_price, nonce):
    transaction_options = {}
    if gas is not None:
        transaction_options["gas"] = gas
    if gas_price is not None:
        transaction_options["gasPrice"] = gas_price
    if nonce is not None:
        transaction_options["nonce"] = nonce
    return transaction_options


def retrieve_private_key(keystore_path):
    with open(keystore_path) as keystore_file:
        keystore = json.load(keystore_file)
    password = click.prompt(
        "Please enter the password to decrypt the keystore",
        type=str,
        hide_input=True,
    )
    try:
        return Account.decrypt(keystore, password)
    except ValueError as e:
        raise click.ClickException(f"Could not decrypt keystore: {e}") from e


def connect_identity(jsonrpc: str, keystore: str, timeout: float) -> SigningIdentity:
    network = Web3Network.from_json_rpc(jsonrpc, timeout=int(timeout))
    if keystore is not None:
        return SigningIdentity.from_private_key(network, retrieve_private_key(keystore))
    try:
        return SigningIdentity.from_node_account(network)
    except (Web3Exception, OSError, IndexError) as e:
        raise click.ClickException(
            f"Could not get an account from the node at {jsonrpc}: {e}"
        ) from e


@contextmanager
def abort_on_deployment_error(message="Deployment failed"):
    try:
        yield
    except DeploymentError as e:
        raise click.ClickException(f"{message}: {e}") from e


@cli.command(short_help="Deploy a contract and record its address.")
@click.argument("name", type=str)
@click.argument("source", type=str)
@click.argument("contract", type=str)
@click.argument("args", nargs=-1, type=str)
@jsonrpc_option
@keystore_option
@gas_option
@gas_price_option
@nonce_option
@artifacts_option
@ledger_dir_option
@timeout_option
def deploy(
    name: str,
    source: str,
    contract: str,
    args,
    jsonrpc: str,
    keystore: str,
    gas: int,
    gas_price: int,
    nonce: int,
    artifacts: str,
    ledger_dir: str,
    timeout: float,
):
    """Deploy CONTRACT of the SOURCE file with the constructor ARGS and record
    its address under NAME in the address file of the chain.
    """
    with abort_on_deployment_error(f"Deployment of {name} failed"):
        artifact = load_artifact_bundle(artifacts).resolve(source, contract)
        identity = connect_identity(jsonrpc, keystore, timeout)
        deploy_contract(
            name,
            make_factory(artifact.abi, artifact.bytecode, identity),
            *args,
            ledger=AddressLedger(ledger_dir),
            transaction_options=build_transaction_options(
                gas=gas, gas_price=gas_price, nonce=nonce
            ),
            confirmation=ConfirmationPolicy(timeout=timeout),
        )


@cli.command(short_help="Deploy the contracts of a plan file.")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--skip-recorded",
    help="Do not redeploy contracts whose name is already in the address file",
    is_flag=True,
    default=False,
)
@jsonrpc_option
@keystore_option
@gas_option
@gas_price_option
@nonce_option
@artifacts_option
@ledger_dir_option
@timeout_option
def run(
    plan_file: str,
    skip_recorded: bool,
    jsonrpc: str,
    keystore: str,
    gas: int,
    gas_price: int,
    nonce: int,
    artifacts: str,
    ledger_dir: str,
    timeout: float,
):
    """Deploy all contracts of PLAN_FILE in dependency order, recording every
    address as soon as its deployment is mined.
    """
    with abort_on_deployment_error():
        plan = load_plan(plan_file)
        bundle = load_artifact_bundle(artifacts)
        identity = connect_identity(jsonrpc, keystore, timeout)
        run_plan(
            plan,
            identity,
            AddressLedger(ledger_dir),
            bundle=bundle,
            skip_recorded=skip_recorded,
            transaction_options=build_transaction_options(
                gas=gas, gas_price=gas_price, nonce=nonce
            ),
            confirmation=ConfirmationPolicy(timeout=timeout),
        )


@cli.command(short_help="Print the recorded addresses of a chain.")
@click.option(
    "--chain-id",
    help="Chain id of the address file. Queried from the node if omitted",
    type=int,
    default=None,
)
@jsonrpc_option
@ledger_dir_option
def addresses(chain_id: int, jsonrpc: str, ledger_dir: str):
    """Print the address file of a chain as json"""
    with abort_on_deployment_error("Could not read addresses"):
        if chain_id is None:
            chain_id = Web3Network.from_json_rpc(jsonrpc).chain_id
        recorded = AddressLedger(ledger_dir).read_all(chain_id)
    click.echo(json.dumps(recorded, indent=2))
