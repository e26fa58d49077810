import json

import pytest
from click.testing import CliRunner

from chaindeploy import cli as cli_module
from chaindeploy.cli import build_transaction_options, cli
from chaindeploy.ledger import AddressLedger


@pytest.fixture()
def runner():
    return CliRunner()


@pytest.fixture()
def artifacts_path(tmp_path, bundle_json):
    path = tmp_path / "dapp.sol.json"
    path.write_text(json.dumps(bundle_json))
    return str(path)


@pytest.fixture()
def ledger_dir(tmp_path):
    return str(tmp_path / "addresses")


@pytest.fixture()
def connected_identity(monkeypatch, identity):
    monkeypatch.setattr(
        cli_module, "connect_identity", lambda jsonrpc, keystore, timeout: identity
    )
    return identity


def test_help_without_command(runner):
    result = runner.invoke(cli)

    assert result.exit_code == 0
    assert "deploy" in result.output
    assert "addresses" in result.output


def test_addresses(runner, ledger_dir):
    AddressLedger(ledger_dir).record(5, "ElementOracle", "0x" + "12" * 20)

    result = runner.invoke(cli, ["addresses", "--chain-id", "5", "--ledger-dir", ledger_dir])

    assert result.exit_code == 0
    assert json.loads(result.output) == {
        "ElementOracle": "0x1212121212121212121212121212121212121212"
    }


def test_addresses_of_unknown_chain(runner, ledger_dir):
    result = runner.invoke(cli, ["addresses", "--chain-id", "1", "--ledger-dir", ledger_dir])

    assert result.exit_code == 0
    assert json.loads(result.output) == {}


def test_deploy(runner, artifacts_path, ledger_dir, connected_identity):
    result = runner.invoke(
        cli,
        [
            "deploy",
            "ElementOracle",
            "src/oracle/Oracle.sol",
            "Oracle",
            "0x" + "12" * 20,
            "600",
            "1200",
            "100000000000000000",
            "--artifacts",
            artifacts_path,
            "--ledger-dir",
            ledger_dir,
        ],
    )

    assert result.exit_code == 0, result.output
    recorded = AddressLedger(ledger_dir).read_all(connected_identity.chain_id)
    assert list(recorded) == ["ElementOracle"]
    assert f"ElementOracle: {recorded['ElementOracle']}" in result.output


def test_deploy_missing_artifact(runner, artifacts_path, ledger_dir, connected_identity):
    result = runner.invoke(
        cli,
        [
            "deploy",
            "ElementOracle",
            "src/oracle/Missing.sol",
            "Oracle",
            "--artifacts",
            artifacts_path,
            "--ledger-dir",
            ledger_dir,
        ],
    )

    assert result.exit_code == 1
    assert "Deployment of ElementOracle failed" in result.output
    assert AddressLedger(ledger_dir).read_all(connected_identity.chain_id) == {}


def test_deploy_wrong_number_of_arguments(
    runner, artifacts_path, ledger_dir, connected_identity
):
    result = runner.invoke(
        cli,
        [
            "deploy",
            "ElementOracle",
            "src/oracle/Oracle.sol",
            "Oracle",
            "600",
            "--artifacts",
            artifacts_path,
            "--ledger-dir",
            ledger_dir,
        ],
    )

    assert result.exit_code == 1
    assert "Expected 4 arguments, got 1" in result.output


def test_run(runner, tmp_path, artifacts_path, ledger_dir, connected_identity):
    plan_path = tmp_path / "plan.json"
    plan_path.write_text(
        json.dumps(
            {
                "steps": [
                    {
                        "name": "ElementAggregator",
                        "source": "src/aggregator/AggregatorOracle.sol",
                        "contract": "AggregatorOracle",
                        "calls": [
                            {"function": "oracleAdd", "args": [{"ref": "ElementOracle"}]}
                        ],
                    },
                    {
                        "name": "ElementOracle",
                        "source": "src/oracle/Oracle.sol",
                        "contract": "Oracle",
                        "args": ["0x" + "12" * 20, "600", "1200", "1"],
                    },
                ]
            }
        )
    )

    result = runner.invoke(
        cli,
        [
            "run",
            str(plan_path),
            "--artifacts",
            artifacts_path,
            "--ledger-dir",
            ledger_dir,
        ],
    )

    assert result.exit_code == 0, result.output
    assert set(AddressLedger(ledger_dir).read_all(connected_identity.chain_id)) == {
        "ElementOracle",
        "ElementAggregator",
    }
    assert "oracleAdd on ElementAggregator done" in result.output


def test_run_invalid_plan(runner, tmp_path, artifacts_path, ledger_dir, connected_identity):
    plan_path = tmp_path / "plan.json"
    plan_path.write_text(json.dumps({"steps": [{"name": "A"}]}))

    result = runner.invoke(
        cli,
        ["run", str(plan_path), "--artifacts", artifacts_path, "--ledger-dir", ledger_dir],
    )

    assert result.exit_code == 1
    assert "Deployment failed" in result.output


def test_build_transaction_options():
    assert build_transaction_options(gas=None, gas_price=None, nonce=None) == {}
    assert build_transaction_options(gas=21000, gas_price=7, nonce=0) == {
        "gas": 21000,
        "gasPrice": 7,
        "nonce": 0,
    }
