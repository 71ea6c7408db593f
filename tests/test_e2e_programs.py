"""End-to-end runs against real program images.

Skipped unless the Solana SDK is installed and ``SBF_OUT_DIR`` contains the
target's ``<name>.so``.
"""

import os
import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

pytest.importorskip("litesvm")
pytest.importorskip("spl.token.instructions")

from cubench.benchmark.defaults import BenchConfig
from cubench.benchmark.models import InstructionCase, InstructionKind, Variant
from cubench.harness.executor import InstructionExecutor
from cubench.harness.fixture import FixtureBuilder
from cubench.harness.hints import HintResolver
from cubench.harness.scenarios import ScenarioContext, get_scenario
from cubench.harness.seeder import PreconditionSeeder
from cubench.harness.suite import BenchmarkSuite
from cubench.targets import get_adapter
from cubench.targets.base import Side, Token

TARGET_NAMES = ["manifest", "phoenix"]


def _program_dir():
    raw = os.environ.get("SBF_OUT_DIR", "").strip()
    return Path(raw) if raw else None


def _adapter_or_skip(name):
    program_dir = _program_dir()
    if program_dir is None or not (program_dir / f"{name}.so").is_file():
        pytest.skip(f"{name}.so not found in SBF_OUT_DIR")
    return get_adapter(name)


def _prepare(adapter, case):
    config = BenchConfig.from_env()
    fixture = FixtureBuilder(adapter, config).build(case.variant, label=case.label(adapter.name))
    hints = HintResolver(config.hint_mode)
    ctx = ScenarioContext(fixture=fixture, case=case, seeder=PreconditionSeeder(fixture, hints), hints=hints)
    instruction, resolved = get_scenario(case.kind).prepare(ctx)
    return fixture, instruction, case.with_hints(resolved)


@pytest.mark.parametrize("name", TARGET_NAMES)
class TestProgramScenarios:
    def test_deposit(self, name):
        adapter = _adapter_or_skip(name)
        fixture, ix, case = _prepare(adapter, InstructionCase(kind=InstructionKind.DEPOSIT))
        before = adapter.trader_balance(fixture.runtime, fixture.market, Token.BASE)
        measurement = InstructionExecutor(fixture).measure(case, ix)
        assert measurement.cu_consumed > 0
        after = adapter.trader_balance(fixture.runtime, fixture.market, Token.BASE)
        assert after - before == adapter.deposit_amount

    def test_batch_cancel_ten(self, name):
        adapter = _adapter_or_skip(name)
        fixture, ix, case = _prepare(adapter, InstructionCase(kind=InstructionKind.BATCH_CANCEL, batch_size=10))
        InstructionExecutor(fixture).measure(case, ix)
        assert adapter.resting_orders(fixture.runtime, fixture.market) == []

    def test_swap_fifty(self, name):
        adapter = _adapter_or_skip(name)
        fixture, ix, case = _prepare(adapter, InstructionCase(kind=InstructionKind.SWAP, batch_size=50))
        InstructionExecutor(fixture).measure(case, ix)
        assert adapter.resting_orders(fixture.runtime, fixture.market, Side.ASK) == []
        # The taker was funded with exactly the quote the asks cost.
        wallet = getattr(fixture.market, "taker_quote", None) or fixture.market.trader_quote
        assert fixture.runtime.token_balance(wallet) == 0

    def test_batch_place_cancel_ten(self, name):
        adapter = _adapter_or_skip(name)
        if InstructionKind.BATCH_PLACE_CANCEL not in adapter.supported_kinds:
            pytest.skip(f"{name} does not run BatchPlaceCancel")
        fixture, ix, case = _prepare(adapter, InstructionCase(kind=InstructionKind.BATCH_PLACE_CANCEL, batch_size=10))
        assert len(adapter.resting_orders(fixture.runtime, fixture.market)) == 10
        InstructionExecutor(fixture).measure(case, ix)
        assert adapter.resting_orders(fixture.runtime, fixture.market) == []

    def test_simulation_is_repeatable(self, name):
        adapter = _adapter_or_skip(name)
        fixture, ix, case = _prepare(adapter, InstructionCase(kind=InstructionKind.PLACE_ORDER))
        executor = InstructionExecutor(fixture)
        assert executor.simulate(case, ix).compute_units == executor.simulate(case, ix).compute_units


@pytest.mark.parametrize("name", TARGET_NAMES)
def test_full_suite(name):
    adapter = _adapter_or_skip(name)
    config = BenchConfig.from_env()
    report = BenchmarkSuite(adapter, config).run()
    assert report.ok, [f.message for f in report.failures]

    again = BenchmarkSuite(adapter, config).run()
    assert [m.cu_consumed for m in report.sorted_measurements()] == [
        m.cu_consumed for m in again.sorted_measurements()
    ]
    for fresh in report.measurements:
        expanded = report.find(fresh.kind, fresh.batch_size, Variant.PRE_EXPANDED)
        if expanded is not None:
            assert expanded.cu_consumed <= fresh.cu_consumed
