"""CLI smoke tests (typer CliRunner, toy target registered in-process)."""

import logging
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from toybook import write_toy_image

from cubench.cli.main import app
from cubench.targets import TARGETS, register_target

runner = CliRunner()


@pytest.fixture(autouse=True)
def toy_target():
    register_target("toybook", "toybook:ToyAdapter")
    yield
    TARGETS.pop("toybook", None)
    # The CLI installs handlers bound to the runner's streams.
    logging.getLogger().handlers.clear()


@pytest.fixture
def program_dir(tmp_path):
    write_toy_image(tmp_path)
    return tmp_path


def test_help_exits_cleanly():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "run" in result.output
    assert "list-targets" in result.output


def test_list_targets():
    result = runner.invoke(app, ["list-targets"])
    assert result.exit_code == 0
    names = result.stdout.split()
    assert "manifest" in names
    assert "phoenix" in names
    assert "toybook" in names


def test_list_cases_in_report_order():
    result = runner.invoke(app, ["list-cases", "toybook", "--batch-sizes", "1,10"])
    assert result.exit_code == 0
    labels = result.stdout.split()
    assert labels[0] == "toybook:Deposit:N=1:Fresh"
    assert labels[1] == "toybook:Deposit:N=1:PreExpanded"
    assert "toybook:BatchCancel:N=10:PreExpanded" in labels
    assert not any("N=50" in label for label in labels)


def test_run_success_prints_one_line_per_case(program_dir):
    result = runner.invoke(
        app,
        ["run", "toybook", "--program-dir", str(program_dir), "--kind", "Deposit", "--kind", "swap", "-n", "1,10"],
    )
    assert result.exit_code == 0, result.output
    assert "toybook Deposit 1 Fresh 1150 -" in result.stdout
    assert "toybook Deposit 1 PreExpanded 1150 -" in result.stdout
    assert "toybook Swap 10 Fresh" in result.stdout
    assert "FAILED" not in result.stdout


def test_run_reads_program_dir_from_environment(program_dir):
    result = runner.invoke(
        app,
        ["run", "toybook", "--kind", "Withdraw", "--variant", "Fresh"],
        env={"SBF_OUT_DIR": str(program_dir)},
    )
    assert result.exit_code == 0, result.output
    assert "toybook Withdraw 1 Fresh" in result.stdout
    assert "PreExpanded" not in result.stdout


def test_run_without_program_image_exits_nonzero(tmp_path):
    result = runner.invoke(app, ["run", "toybook", "--program-dir", str(tmp_path), "--kind", "Deposit"])
    assert result.exit_code == 1
    assert "toybook Deposit 1 Fresh FAILED FixtureError" in result.stdout


def test_run_writes_json_report(program_dir, tmp_path):
    output = tmp_path / "out" / "report.json"
    result = runner.invoke(
        app,
        [
            "run",
            "toybook",
            "--program-dir",
            str(program_dir),
            "--kind",
            "Deposit",
            "--format",
            "json",
            "--output",
            str(output),
        ],
    )
    assert result.exit_code == 0, result.output
    assert '"program": "toybook"' in output.read_text()


def test_run_no_hints_costs_more(program_dir):
    args = ["run", "toybook", "--program-dir", str(program_dir), "--kind", "Deposit", "--variant", "Fresh"]
    hinted = runner.invoke(app, args)
    unhinted = runner.invoke(app, args + ["--no-hints"])
    assert "toybook Deposit 1 Fresh 1150" in hinted.stdout
    assert "toybook Deposit 1 Fresh 1450" in unhinted.stdout


def test_unknown_target_is_usage_error():
    result = runner.invoke(app, ["run", "nosuchprogram"])
    assert result.exit_code == 2


def test_bad_batch_sizes_is_usage_error(program_dir):
    result = runner.invoke(app, ["run", "toybook", "--program-dir", str(program_dir), "--batch-sizes", "0,10"])
    assert result.exit_code == 2
