"""Deploy several contracts that depend on each other

A plan is a list of steps. Each step deploys one contract and may use the
addresses of other deployments as constructor or function call arguments via
`AddressOf`. Steps run in dependency order: a step is only started once every
deployment it refers to is confirmed and recorded. Names that are not deployed
by the plan itself are looked up in the ledger.
"""
import json
from typing import Dict, Iterable, List, Tuple

import attr
import click

from chaindeploy.artifacts import ArtifactBundle, artifacts, get_contract_factory
from chaindeploy.contract import DeployedContract
from chaindeploy.exceptions import DeploymentError, PlanError
from chaindeploy.executor import deploy_contract, increase_transaction_options_nonce
from chaindeploy.ledger import AddressLedger
from chaindeploy.network import ConfirmationPolicy, SigningIdentity


@attr.s(frozen=True)
class AddressOf:
    """Placeholder for the address of the deployment named `name`"""

    name: str = attr.ib()


def _references(value) -> Iterable[str]:
    if isinstance(value, AddressOf):
        yield value.name
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _references(item)


def _substitute_addresses(value, addresses: Dict[str, str]):
    if isinstance(value, AddressOf):
        return addresses[value.name]
    if isinstance(value, (list, tuple)):
        return type(value)(_substitute_addresses(item, addresses) for item in value)
    return value


@attr.s(frozen=True, hash=False)
class FunctionCall:
    function: str = attr.ib()
    args: Tuple = attr.ib(default=(), converter=tuple)
    transaction_options: Dict = attr.ib(factory=dict)


@attr.s(frozen=True, hash=False)
class DeploymentStep:
    name: str = attr.ib()
    source_path: str = attr.ib()
    contract_name: str = attr.ib()
    args: Tuple = attr.ib(default=(), converter=tuple)
    depends_on: Tuple[str, ...] = attr.ib(default=(), converter=tuple)
    calls: Tuple[FunctionCall, ...] = attr.ib(default=(), converter=tuple)
    transaction_options: Dict = attr.ib(factory=dict)

    @property
    def dependencies(self) -> List[str]:
        names = list(_references(self.args))
        for call in self.calls:
            names.extend(_references(call.args))
        names.extend(self.depends_on)
        return list(dict.fromkeys(name for name in names if name != self.name))


class DeploymentPlan:
    def __init__(self, steps: Iterable[DeploymentStep]):
        self.steps = list(steps)
        seen = set()
        for step in self.steps:
            if step.name in seen:
                raise PlanError(f"Deployment {step.name} appears twice in the plan")
            seen.add(step.name)
            # only function calls can use the address of their own step
            if step.name in _references(step.args):
                raise PlanError(
                    f"Deployment {step.name} uses its own address as constructor argument"
                )

    def ordered_steps(self, recorded_names: Iterable[str] = ()) -> List[DeploymentStep]:
        """Return the steps in dependency order

        Among the steps that are ready, the one declared first comes first.
        """
        planned = {step.name for step in self.steps}
        recorded = set(recorded_names)
        for step in self.steps:
            for dependency in step.dependencies:
                if dependency not in planned and dependency not in recorded:
                    raise PlanError(
                        f"Deployment {step.name} depends on {dependency}, "
                        f"which is neither planned nor recorded"
                    )

        ordered = []
        done = set()
        remaining = list(self.steps)
        while remaining:
            for step in remaining:
                if all(
                    dependency in done or dependency not in planned
                    for dependency in step.dependencies
                ):
                    break
            else:
                names = ", ".join(step.name for step in remaining)
                raise PlanError(f"Cyclic dependencies between {names}")
            remaining.remove(step)
            done.add(step.name)
            ordered.append(step)
        return ordered


def run_plan(
    plan: DeploymentPlan,
    identity: SigningIdentity,
    ledger: AddressLedger,
    *,
    bundle: ArtifactBundle = None,
    skip_recorded: bool = False,
    transaction_options: Dict = None,
    confirmation: ConfirmationPolicy = None,
) -> Dict[str, DeployedContract]:
    """Deploy all steps of the plan and record every address right after it is mined

    With `skip_recorded`, steps whose name is already in the ledger are not
    deployed again; the recorded contract is used instead.
    """
    if bundle is None:
        bundle = artifacts
    transaction_options = dict(transaction_options or {})

    recorded = ledger.read_all(identity.chain_id)
    steps = plan.ordered_steps(recorded)

    # resolve every artifact before sending anything
    factories = {}
    for step in steps:
        try:
            factories[step.name] = get_contract_factory(
                step.source_path, step.contract_name, identity, bundle=bundle
            )
        except DeploymentError as e:
            click.secho(f"Deployment {step.name} failed: {e}", fg="red", err=True)
            raise

    addresses = dict(recorded)
    contracts = {}
    click.echo("START")
    for step in steps:
        factory = factories[step.name]
        if skip_recorded and step.name in recorded:
            contract = factory.attach(recorded[step.name])
            click.secho(
                f"{step.name}: already recorded at {contract.address}, skipping",
                fg="yellow",
            )
        else:
            try:
                contract = _deploy_step(
                    step,
                    factory,
                    addresses,
                    ledger=ledger,
                    transaction_options=transaction_options,
                    confirmation=confirmation,
                )
            except DeploymentError as e:
                click.secho(f"Deployment {step.name} failed: {e}", fg="red", err=True)
                raise
        addresses[step.name] = contract.address
        contracts[step.name] = contract
    click.echo("END")
    return contracts


def _deploy_step(
    step: DeploymentStep,
    factory,
    addresses: Dict[str, str],
    *,
    ledger: AddressLedger,
    transaction_options: Dict,
    confirmation: ConfirmationPolicy,
) -> DeployedContract:
    contract = deploy_contract(
        step.name,
        factory,
        *_substitute_addresses(step.args, addresses),
        ledger=ledger,
        transaction_options={**transaction_options, **step.transaction_options},
        confirmation=confirmation,
    )
    increase_transaction_options_nonce(transaction_options)
    addresses[step.name] = contract.address

    for call in step.calls:
        contract.transact(
            call.function,
            *_substitute_addresses(call.args, addresses),
            transaction_options={**transaction_options, **call.transaction_options},
            confirmation=confirmation,
        )
        increase_transaction_options_nonce(transaction_options)
        click.secho(f"  {call.function} on {step.name} done", fg="green")
    return contract


def _parse_value(value):
    if isinstance(value, dict):
        if set(value) != {"ref"}:
            raise PlanError(f"Unsupported argument {value}, expected {{'ref': name}}")
        return AddressOf(value["ref"])
    if isinstance(value, list):
        return [_parse_value(item) for item in value]
    return value


def _parse_step(step_json: Dict) -> DeploymentStep:
    if not isinstance(step_json, dict):
        raise PlanError(f"Plan step {step_json!r} is not an object")
    try:
        return DeploymentStep(
            name=step_json["name"],
            source_path=step_json["source"],
            contract_name=step_json["contract"],
            args=[_parse_value(arg) for arg in step_json.get("args", [])],
            depends_on=step_json.get("depends_on", []),
            calls=[
                FunctionCall(
                    function=call["function"],
                    args=[_parse_value(arg) for arg in call.get("args", [])],
                    transaction_options=call.get("transaction_options", {}),
                )
                for call in step_json.get("calls", [])
            ],
            transaction_options=step_json.get("transaction_options", {}),
        )
    except KeyError as e:
        raise PlanError(f"Plan step {step_json} is missing {e}") from e


def plan_from_json(plan_json: Dict) -> DeploymentPlan:
    if not isinstance(plan_json, dict) or not isinstance(plan_json.get("steps"), list):
        raise PlanError("A plan must be an object with a list of steps")
    return DeploymentPlan(_parse_step(step_json) for step_json in plan_json["steps"])


def load_plan(path: str) -> DeploymentPlan:
    with open(path, encoding="utf-8") as file:
        try:
            plan_json = json.load(file)
        except ValueError as e:
            raise PlanError(f"Plan {path} is not valid json: {e}") from e
    return plan_from_json(plan_json)
