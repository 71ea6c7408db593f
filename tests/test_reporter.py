"""Tests for the Result Reporter output formats."""

import io
import json
import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from cubench.benchmark.models import AmortizedResult, CaseFailure, InstructionKind, Measurement, RunReport, Variant
from cubench.harness.reporter import REPORT_FORMATS, ResultReporter


def _report():
    measurements = [
        Measurement(program="toy", kind=InstructionKind.SWAP, batch_size=10, variant=Variant.FRESH, cu_consumed=2150),
        Measurement(program="toy", kind=InstructionKind.DEPOSIT, batch_size=1, variant=Variant.FRESH, cu_consumed=1150),
        Measurement(
            program="toy", kind=InstructionKind.BATCH_PLACE, batch_size=10, variant=Variant.PRE_EXPANDED, cu_consumed=1655
        ),
        Measurement(
            program="toy", kind=InstructionKind.BATCH_PLACE, batch_size=10, variant=Variant.FRESH, cu_consumed=4055
        ),
    ]
    failure = CaseFailure(
        program="toy",
        kind=InstructionKind.SWAP,
        batch_size=50,
        variant=Variant.FRESH,
        error_type="SetupError",
        stage="setup",
        message="toy:Swap:N=50:Fresh: setup step 'fund_taker'\nrejected",
    )
    return RunReport(
        program="toy",
        measurements=measurements,
        amortized=[AmortizedResult.from_measurement(m) for m in measurements],
        failures=[failure],
    )


class TestLinesFormat:
    def test_one_line_per_case_in_report_order(self):
        lines = ResultReporter("lines").render(_report()).splitlines()
        assert lines == [
            "toy Deposit 1 Fresh 1150 -",
            "toy BatchPlace 10 Fresh 4055 405",
            "toy BatchPlace 10 PreExpanded 1655 165",
            "toy Swap 10 Fresh 2150 215",
            "toy Swap 50 Fresh FAILED SetupError: toy:Swap:N=50:Fresh: setup step 'fund_taker' rejected",
        ]

    def test_per_item_column_only_for_batched_kinds(self):
        measurements = [
            Measurement(program="toy", kind=InstructionKind.PLACE_ORDER, batch_size=1, variant=Variant.FRESH, cu_consumed=750),
            Measurement(program="toy", kind=InstructionKind.BATCH_PLACE, batch_size=1, variant=Variant.FRESH, cu_consumed=750),
        ]
        report = RunReport(
            program="toy", measurements=measurements, amortized=[AmortizedResult.from_measurement(m) for m in measurements]
        )
        assert ResultReporter("lines").render(report).splitlines() == [
            "toy PlaceOrder 1 Fresh 750 -",
            "toy BatchPlace 1 Fresh 750 750",
        ]

    def test_emit_writes_to_stream(self):
        stream = io.StringIO()
        ResultReporter().emit(_report(), stream)
        assert stream.getvalue().endswith("\n")
        assert stream.getvalue().startswith("toy Deposit 1 Fresh")


class TestTableFormat:
    def test_sections_and_failures(self):
        table = ResultReporter("table").render(_report())
        assert "toy compute units" in table
        assert " Deposit " in table
        assert "[pre-expanded]" in table
        assert "Average CU" in table
        assert "FAILED" in table
        assert " Failures " in table
        assert "SetupError (setup)" in table

    def test_sections_follow_kind_order(self):
        table = ResultReporter("table").render(_report())
        assert table.index(" Deposit ") < table.index(" BatchPlace ") < table.index(" Swap ")


class TestJsonFormat:
    def test_full_report(self):
        data = json.loads(ResultReporter("json").render(_report()))
        assert data["program"] == "toy"
        assert len(data["measurements"]) == 4
        assert data["amortized"][0]["per_item_cu"] == data["amortized"][0]["total_cu"] // data["amortized"][0]["batch_size"]
        assert data["failures"][0]["error_type"] == "SetupError"


def test_unknown_format_rejected():
    with pytest.raises(ValueError):
        ResultReporter("csv")


def test_formats_listed():
    assert REPORT_FORMATS == ("lines", "table", "json")
