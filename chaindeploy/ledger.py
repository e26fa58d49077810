import json
import os
import tempfile
from typing import Dict

from eth_utils import to_checksum_address

from chaindeploy.exceptions import LedgerWriteError


class AddressLedger:
    """Addresses of deployed contracts by logical name, one json file per chain

    Every write reads the whole file, merges the new entry in and replaces the
    file, so existing names are never lost and a name written twice keeps the
    last address. Only one writer per chain is expected at a time.
    """

    def __init__(self, directory: str = "."):
        self.directory = directory

    def path_for(self, chain_id: int) -> str:
        return os.path.join(self.directory, f"{int(chain_id)}.json")

    def read_all(self, chain_id: int) -> Dict[str, str]:
        path = self.path_for(chain_id)
        if not os.path.isfile(path):
            return {}
        try:
            with open(path, encoding="utf-8") as file:
                addresses = json.load(file)
        except ValueError as e:
            # invalid json or invalid utf-8
            raise LedgerWriteError(f"Ledger {path} is corrupt: {e}") from e
        except OSError as e:
            raise LedgerWriteError(f"Could not read ledger {path}: {e}") from e
        if not isinstance(addresses, dict):
            raise LedgerWriteError(f"Ledger {path} does not contain a json object")
        return addresses

    def record(self, chain_id: int, name: str, address: str) -> None:
        try:
            address = to_checksum_address(address)
        except (TypeError, ValueError) as e:
            raise LedgerWriteError(f"Cannot record {address!r} for {name}: {e}") from e
        addresses = self.read_all(chain_id)
        addresses[name] = address
        self._write(self.path_for(chain_id), addresses)

    def _write(self, path: str, addresses: Dict[str, str]) -> None:
        temporary_path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=self.directory, suffix=".tmp", delete=False
            ) as file:
                temporary_path = file.name
                json.dump(addresses, file, indent=2)
                file.write("\n")
                file.flush()
                os.fsync(file.fileno())
            os.chmod(temporary_path, _file_mode())
            os.replace(temporary_path, path)
        except OSError as e:
            if temporary_path is not None and os.path.exists(temporary_path):
                os.remove(temporary_path)
            raise LedgerWriteError(f"Could not write ledger {path}: {e}") from e


def _file_mode() -> int:
    """Mode of a newly created file under the current umask"""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask
