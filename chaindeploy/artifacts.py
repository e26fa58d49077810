import json
import os
from collections.abc import Mapping
from typing import Dict, List, NamedTuple

import attr
import click
from eth_utils import decode_hex

from chaindeploy.exceptions import ArtifactBundleError, ArtifactNotFound
from chaindeploy.factory import make_factory

ARTIFACTS_ENV_VARIABLE = "CHAINDEPLOY_ARTIFACTS_JSON"
DEFAULT_ARTIFACTS_PATH = os.path.join("out", "dapp.sol.json")


class ArtifactKey(NamedTuple):
    source_path: str
    contract_name: str


@attr.s(frozen=True)
class Artifact:
    abi: List[Dict] = attr.ib()
    bytecode: bytes = attr.ib(repr=False)


def _parse_bytecode(key, contract_json):
    if "bytecode" in contract_json:
        bytecode = contract_json["bytecode"]
    else:
        try:
            bytecode = contract_json["evm"]["bytecode"]
        except (KeyError, TypeError):
            raise ArtifactBundleError(f"No bytecode for {key}") from None
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if not isinstance(bytecode, str):
        raise ArtifactBundleError(f"Bytecode of {key} is not a hex string")
    try:
        return decode_hex(bytecode)
    except ValueError as e:
        # unlinked library placeholders end up here as well
        raise ArtifactBundleError(f"Bytecode of {key} is not valid hex: {e}") from e


def _parse_artifact(key, contract_json):
    if not isinstance(contract_json, dict):
        raise ArtifactBundleError(f"Artifact {key} is not an object")
    abi = contract_json.get("abi")
    if isinstance(abi, str):
        try:
            abi = json.loads(abi)
        except json.JSONDecodeError as e:
            raise ArtifactBundleError(f"ABI of {key} is not valid json: {e}") from e
    if not isinstance(abi, list):
        raise ArtifactBundleError(f"ABI of {key} is not a list")
    return Artifact(abi=abi, bytecode=_parse_bytecode(key, contract_json))


class ArtifactBundle(Mapping):
    """Compiled contracts by source path and contract name

    This is read only after construction. Every entry is validated when the
    bundle is built, so lookups only fail for missing keys.
    """

    def __init__(self, artifacts: Dict[ArtifactKey, Artifact]):
        self._artifacts = dict(artifacts)

    @classmethod
    def from_json(cls, bundle_json: Dict) -> "ArtifactBundle":
        if not isinstance(bundle_json, dict):
            raise ArtifactBundleError("Artifact bundle is not an object")
        contracts_by_path = bundle_json.get("contracts", bundle_json)
        if not isinstance(contracts_by_path, dict):
            raise ArtifactBundleError("Artifact bundle has no contracts object")

        artifacts = {}
        for source_path, contracts in contracts_by_path.items():
            if not isinstance(contracts, dict):
                raise ArtifactBundleError(f"Contracts of {source_path} are not an object")
            for contract_name, contract_json in contracts.items():
                key = ArtifactKey(source_path, contract_name)
                artifacts[key] = _parse_artifact(key, contract_json)
        return cls(artifacts)

    def __getitem__(self, key) -> Artifact:
        return self._artifacts[ArtifactKey(*key)]

    def __iter__(self):
        return iter(self._artifacts)

    def __len__(self):
        return len(self._artifacts)

    def resolve(self, source_path: str, contract_name: str) -> Artifact:
        click.echo(f"{source_path} {contract_name}")
        try:
            return self[source_path, contract_name]
        except KeyError:
            raise ArtifactNotFound(source_path, contract_name) from None


def load_artifact_bundle(path: str = None) -> ArtifactBundle:
    if path is None:
        path = os.environ.get(ARTIFACTS_ENV_VARIABLE, DEFAULT_ARTIFACTS_PATH)
    try:
        with open(path, encoding="utf-8") as file:
            bundle_json = json.load(file)
    except ValueError as e:
        raise ArtifactBundleError(f"Artifact bundle {path} is not valid json: {e}") from e
    except OSError as e:
        raise ArtifactBundleError(f"Could not read artifact bundle {path}: {e}") from e
    return ArtifactBundle.from_json(bundle_json)


# lazily load the bundle, so tests and the command line have a chance to set
# CHAINDEPLOY_ARTIFACTS_JSON first
class LazyArtifactBundle(ArtifactBundle):
    def __init__(self):
        self._loaded = None

    @property
    def _artifacts(self):
        if self._loaded is None:
            self._loaded = dict(load_artifact_bundle())
        return self._loaded

    @_artifacts.setter
    def _artifacts(self, artifacts):
        self._loaded = artifacts


artifacts = LazyArtifactBundle()


def get_contract_factory(source_path, contract_name, identity, *, bundle=None):
    if bundle is None:
        bundle = artifacts
    artifact = bundle.resolve(source_path, contract_name)
    return make_factory(artifact.abi, artifact.bytecode, identity)


def get_contract_at(address, source_path, contract_name, identity, *, bundle=None):
    return get_contract_factory(
        source_path, contract_name, identity, bundle=bundle
    ).attach(address)
