"""Exceptions raised while deploying contracts and recording their addresses."""


class DeploymentError(Exception):
    """Base exception for all deployment errors."""

    pass


class ArtifactBundleError(DeploymentError, ValueError):
    """Raised when an artifact bundle does not have the expected layout."""

    pass


class ArtifactNotFound(DeploymentError, KeyError):
    """Raised when the bundle has no entry for a (source path, contract name) pair."""

    def __init__(self, source_path, contract_name):
        super().__init__(source_path, contract_name)
        self.source_path = source_path
        self.contract_name = contract_name

    def __str__(self):
        return f"No artifact for contract {self.contract_name} in {self.source_path}"


class EncodingError(DeploymentError, ValueError):
    """Raised when arguments do not match the ABI. No transaction is sent."""

    pass


class SubmissionError(DeploymentError):
    """Raised when the node rejects or fails to accept a transaction."""

    pass


class ConfirmationError(DeploymentError):
    def __init__(self, tx_hash, message):
        super().__init__(message)
        self.tx_hash = tx_hash


class ConfirmationTimeout(ConfirmationError):
    """Raised when a transaction is not mined in time."""

    pass


class ConfirmationFailure(ConfirmationError):
    """Raised when a transaction was mined but did not succeed."""

    def __init__(self, tx_hash, message, receipt=None):
        super().__init__(tx_hash, message)
        self.receipt = receipt


class LedgerWriteError(DeploymentError, OSError):
    """Raised when a ledger file cannot be read, parsed or written."""

    pass


class PlanError(DeploymentError, ValueError):
    """Raised for inconsistent deployment plans."""

    pass
