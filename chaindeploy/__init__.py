from importlib.metadata import PackageNotFoundError, version

from .artifacts import (
    Artifact,
    ArtifactBundle,
    ArtifactKey,
    get_contract_at,
    get_contract_factory,
    load_artifact_bundle,
)
from .contract import DeployedContract
from .exceptions import (
    ArtifactBundleError,
    ArtifactNotFound,
    ConfirmationFailure,
    ConfirmationTimeout,
    DeploymentError,
    EncodingError,
    LedgerWriteError,
    PlanError,
    SubmissionError,
)
from .executor import deploy_and_confirm, deploy_contract
from .factory import ContractFactory, PendingDeployment, make_factory
from .ledger import AddressLedger
from .network import ConfirmationPolicy, Network, SigningIdentity, Web3Network
from .plan import AddressOf, DeploymentPlan, DeploymentStep, FunctionCall, run_plan

try:
    __version__ = version("chaindeploy")
except PackageNotFoundError:
    __version__ = None
