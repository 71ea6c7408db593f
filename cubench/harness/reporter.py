"""Result Reporter.

Renders a RunReport in deterministic order (kind, ascending N, variant).
Three formats:

- ``lines``: one whitespace-separated record per case,
  ``program kind N variant total_cu per_item_cu``, with ``-`` as the per-item
  figure of kinds that are not batched; failed cases print
  ``FAILED`` and the error instead of numbers.
- ``table``: 40-column centred "Average CU" sub-tables, one section per kind
  and variant.
- ``json``: the full report as JSON.
"""

from __future__ import annotations

import sys
from typing import Dict, List, Optional, TextIO, Tuple

from cubench.benchmark.models import KIND_ORDER, VARIANT_ORDER, AmortizedResult, InstructionKind, RunReport, Variant

REPORT_FORMATS = ("lines", "table", "json")

WIDTH = 40

_COLUMN_LABELS: Dict[InstructionKind, str] = {
    InstructionKind.DEPOSIT: "Deposits",
    InstructionKind.WITHDRAW: "Withdrawals",
    InstructionKind.PLACE_ORDER: "Orders",
    InstructionKind.BATCH_PLACE: "Orders",
    InstructionKind.BATCH_CANCEL: "Cancels",
    InstructionKind.SWAP: "Fills",
    InstructionKind.BATCH_PLACE_CANCEL: "Cancels",
}


def _centred(line: str) -> str:
    return f"{line:^{WIDTH}}"


def _header(title: str) -> str:
    return f"\n{' ' + title + ' ':=^{WIDTH}}"


def _subtable(column: str, rows: List[Tuple[int, str]]) -> List[str]:
    out = ["", _centred(f"{column:<14}{'Average CU':>9}"), _centred("-" * 24)]
    for n, value in rows:
        label = f"{n:>7} "
        out.append(_centred(f"{label:<14}  {value:>6}  "))
    return out


class ResultReporter:
    def __init__(self, fmt: str = "lines"):
        if fmt not in REPORT_FORMATS:
            raise ValueError(f"Unknown report format {fmt!r}; choose from {REPORT_FORMATS}")
        self.fmt = fmt

    def render(self, report: RunReport) -> str:
        if self.fmt == "json":
            return report.model_dump_json(indent=2)
        if self.fmt == "table":
            return self.render_table(report)
        return "\n".join(self.render_lines(report))

    def emit(self, report: RunReport, stream: Optional[TextIO] = None) -> None:
        stream = stream or sys.stdout
        stream.write(self.render(report))
        stream.write("\n")
        stream.flush()

    @staticmethod
    def render_lines(report: RunReport) -> List[str]:
        rows = []
        for result in report.sorted_amortized():
            rows.append(
                (
                    result.sort_key,
                    f"{report.program} {result.kind.value} {result.batch_size} {result.variant.value} "
                    f"{result.total_cu} {result.per_item_cu if result.kind.is_batched else '-'}",
                )
            )
        for failure in report.sorted_failures():
            message = " ".join(failure.message.split())
            rows.append(
                (
                    failure.sort_key,
                    f"{report.program} {failure.kind.value} {failure.batch_size} {failure.variant.value} "
                    f"FAILED {failure.error_type}: {message}",
                )
            )
        return [line for _, line in sorted(rows, key=lambda row: row[0])]

    @staticmethod
    def render_table(report: RunReport) -> str:
        results: Dict[Tuple[InstructionKind, Variant], List[AmortizedResult]] = {}
        for result in report.sorted_amortized():
            results.setdefault((result.kind, result.variant), []).append(result)
        failed: Dict[Tuple[InstructionKind, Variant], List[int]] = {}
        for failure in report.sorted_failures():
            failed.setdefault((failure.kind, failure.variant), []).append(failure.batch_size)

        lines: List[str] = [_centred(f"{report.program} compute units")]
        for kind in KIND_ORDER:
            for variant in VARIANT_ORDER:
                key = (kind, variant)
                if key not in results and key not in failed:
                    continue
                lines.append(_header(kind.value))
                if variant == Variant.PRE_EXPANDED:
                    lines.append(_centred("[pre-expanded]"))
                rows = [(r.batch_size, str(r.per_item_cu)) for r in results.get(key, [])]
                rows += [(n, "FAILED") for n in failed.get(key, [])]
                lines.extend(_subtable(_COLUMN_LABELS[kind], sorted(rows, key=lambda row: row[0])))

        if report.failures:
            lines.append(_header("Failures"))
            for failure in report.sorted_failures():
                lines.append(
                    f"{failure.kind.value} N={failure.batch_size} {failure.variant.value}: "
                    f"{failure.error_type} ({failure.stage}) {failure.message}"
                )
        return "\n".join(lines)
