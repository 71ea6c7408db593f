"""Suite runner for one program target.

Cases run one after another, each on its own fixture. A BenchError aborts
only the case that raised it and is recorded as a CaseFailure; anything else
is a bug in the harness and propagates.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from cubench.benchmark.defaults import BenchConfig
from cubench.benchmark.exceptions import BenchError
from cubench.benchmark.models import CaseFailure, InstructionCase, Measurement, RunReport
from cubench.harness.amortizer import BatchAmortizer
from cubench.harness.executor import InstructionExecutor
from cubench.harness.fixture import FixtureBuilder
from cubench.harness.hints import HintResolver
from cubench.harness.scenarios import ScenarioContext, get_scenario, plan_cases
from cubench.harness.seeder import PreconditionSeeder
from cubench.targets.base import ProgramAdapter
from cubench.utils.logger import get_logger, log_case_complete, log_case_error, log_case_start

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BenchmarkSuite:
    def __init__(
        self,
        adapter: ProgramAdapter,
        config: BenchConfig,
        builder: Optional[FixtureBuilder] = None,
    ):
        self.adapter = adapter
        self.config = config
        self.builder = builder or FixtureBuilder(adapter, config)
        self.hints = HintResolver(config.hint_mode)
        self.amortizer = BatchAmortizer(config.batch_sizes, config.swap_fill_sizes)

    def plan(self) -> List[InstructionCase]:
        return plan_cases(self.adapter, self.config)

    def run_case(self, case: InstructionCase) -> Measurement:
        """Fixture -> variant -> seed -> simulate -> commit, for one case."""
        label = case.label(self.adapter.name)
        fixture = self.builder.build(case.variant, label=label)
        ctx = ScenarioContext(
            fixture=fixture,
            case=case,
            seeder=PreconditionSeeder(fixture, self.hints),
            hints=self.hints,
        )
        instruction, hints = get_scenario(case.kind).prepare(ctx)
        return InstructionExecutor(fixture).measure(case.with_hints(hints), instruction)

    def run(self) -> RunReport:
        report = RunReport(
            program=self.adapter.name,
            program_id=self.adapter.program_id,
            config=self.config.to_dict(),
            started_at=_now(),
        )
        cases = self.plan()
        logger.info(f"Running {len(cases)} case(s) for {self.adapter.name}")
        for case in cases:
            label = case.label(self.adapter.name)
            log_case_start(logger, label)
            try:
                measurement = self.run_case(case)
            except BenchError as exc:
                log_case_error(logger, label, type(exc).__name__, str(exc))
                report.failures.append(
                    CaseFailure(
                        program=self.adapter.name,
                        kind=case.kind,
                        batch_size=case.batch_size,
                        variant=case.variant,
                        error_type=type(exc).__name__,
                        stage=exc.stage,
                        message=str(exc),
                    )
                )
                continue
            log_case_complete(logger, label, measurement.cu_consumed, measurement.batch_size)
            report.measurements.append(measurement)

        report.amortized = self.amortizer.amortize_all(report.measurements)
        report.finished_at = _now()
        logger.info(
            f"{self.adapter.name}: {len(report.measurements)} measurement(s), {len(report.failures)} failure(s)"
        )
        return report
