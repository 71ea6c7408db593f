"""Instruction Simulator/Committer.

Two separate calls. ``simulate`` dry-runs an instruction and returns its CU
with no side effects. ``apply`` sends the same instruction and keeps the
state change. ``measure`` chains them and refuses to commit anything whose
payload differs from what was simulated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from cubench.benchmark.exceptions import SimulationError
from cubench.benchmark.models import InstructionCase, Measurement
from cubench.harness.fixture import MarketFixture
from cubench.runtime.base import Instruction
from cubench.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SimulatedRun:
    """What one dry run observed."""

    compute_units: int
    payload_digest: str
    logs: Tuple[str, ...] = ()


class InstructionExecutor:
    """Measures instructions against one fixture."""

    def __init__(self, fixture: MarketFixture):
        self.fixture = fixture

    def _error(self, case: InstructionCase, message: str, reason: str, logs=(), digest=None) -> SimulationError:
        label = case.label(self.fixture.program)
        return SimulationError(
            f"{label}: {message}",
            label=label,
            instruction_kind=case.kind.value,
            batch_size=case.batch_size,
            variant=case.variant.value,
            reason=reason,
            logs=list(logs),
            payload_digest=digest,
        )

    def simulate(self, case: InstructionCase, instruction: Instruction) -> SimulatedRun:
        """Dry-run ``instruction``; durable state is untouched."""
        digest = instruction.digest()
        outcome = self.fixture.runtime.simulate([instruction])
        if not outcome.ok:
            raise self._error(
                case,
                f"simulation rejected: {outcome.error}",
                outcome.error or "rejected",
                outcome.logs,
                digest,
            )
        return SimulatedRun(compute_units=outcome.compute_units, payload_digest=digest, logs=outcome.logs)

    def apply(self, case: InstructionCase, instruction: Instruction, simulated: SimulatedRun) -> None:
        """Commit ``instruction``; it must be byte-identical to the simulated one."""
        digest = instruction.digest()
        if digest != simulated.payload_digest:
            raise self._error(
                case,
                "committed payload differs from the simulated payload",
                "payload mismatch",
                digest=digest,
            )
        outcome = self.fixture.runtime.send([instruction])
        if not outcome.ok:
            raise self._error(
                case,
                f"commit rejected after a successful simulation: {outcome.error}",
                outcome.error or "rejected",
                outcome.logs,
                digest,
            )
        if outcome.compute_units != simulated.compute_units:
            raise self._error(
                case,
                f"commit consumed {outcome.compute_units} CU but simulation reported {simulated.compute_units}",
                "commit diverged from simulation",
                outcome.logs,
                digest,
            )

    def measure(self, case: InstructionCase, instruction: Instruction) -> Measurement:
        simulated = self.simulate(case, instruction)
        self.apply(case, instruction, simulated)
        hinted = case.hints is not None and not case.hints.is_empty
        return Measurement(
            program=self.fixture.program,
            kind=case.kind,
            batch_size=case.batch_size,
            variant=case.variant,
            cu_consumed=simulated.compute_units,
            payload_digest=simulated.payload_digest,
            hinted=hinted,
        )
