"""Batch Amortizer.

A batched kind is measured once per N, each N on its own fixture, and each
measurement is divided by N. The division floors; ``AmortizedResult`` keeps
the remainder next to the per-item figure so regression comparisons can use
the raw total.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Sequence, Tuple

from cubench.benchmark.models import AmortizedResult, InstructionCase, InstructionKind, Measurement, Variant


class BatchAmortizer:
    def __init__(self, batch_sizes: Sequence[int], swap_fill_sizes: Sequence[int]):
        self.batch_sizes = tuple(batch_sizes)
        self.swap_fill_sizes = tuple(swap_fill_sizes)

    def sizes_for(self, kind: InstructionKind) -> Tuple[int, ...]:
        if not kind.is_batched:
            return (1,)
        if kind == InstructionKind.SWAP:
            return self.swap_fill_sizes
        return self.batch_sizes

    def cases(self, kind: InstructionKind, variant: Variant) -> List[InstructionCase]:
        return [InstructionCase(kind=kind, batch_size=n, variant=variant) for n in self.sizes_for(kind)]

    @staticmethod
    def amortize(measurement: Measurement) -> AmortizedResult:
        return AmortizedResult.from_measurement(measurement)

    def amortize_all(self, measurements: Iterable[Measurement]) -> List[AmortizedResult]:
        return sorted((self.amortize(m) for m in measurements), key=lambda a: a.sort_key)

    def run(
        self,
        kind: InstructionKind,
        variant: Variant,
        measure_case: Callable[[InstructionCase], Measurement],
    ) -> List[AmortizedResult]:
        """Measure ``kind`` at every N; ``measure_case`` must build its own fixture.

        Errors propagate: the caller decides how a failed N is reported.
        """
        return self.amortize_all(measure_case(case) for case in self.cases(kind, variant))
