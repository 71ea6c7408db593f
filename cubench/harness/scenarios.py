"""What each instruction kind seeds and what it measures.

Prices and sizes come from the adapter so both targets run the same
scenario shape with their own units. Nothing here is random: seeded orders
are always the exact counterparties the measured instruction cancels or
fills.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from cubench.benchmark.defaults import BenchConfig
from cubench.benchmark.models import VARIANT_ORDER, Hints, InstructionCase, InstructionKind, Variant
from cubench.harness.amortizer import BatchAmortizer
from cubench.harness.fixture import MarketFixture
from cubench.harness.hints import HintResolver
from cubench.harness.seeder import PreconditionSeeder
from cubench.runtime.base import Instruction
from cubench.targets.base import ProgramAdapter


@dataclass
class ScenarioContext:
    fixture: MarketFixture
    case: InstructionCase
    seeder: PreconditionSeeder
    hints: HintResolver

    @property
    def adapter(self) -> ProgramAdapter:
        return self.fixture.adapter

    @property
    def market(self):
        return self.fixture.market


class Scenario:
    """Seeds the fixture, then builds the one instruction to measure."""

    kind: InstructionKind

    def prepare(self, ctx: ScenarioContext) -> Tuple[Instruction, Hints]:
        raise NotImplementedError


class DepositScenario(Scenario):
    kind = InstructionKind.DEPOSIT

    def prepare(self, ctx):
        amount = ctx.adapter.deposit_amount
        ctx.seeder.fund_trader(amount)
        hints = ctx.hints.resolve(ctx.fixture)
        return ctx.adapter.build_deposit(ctx.market, amount, hints), hints


class WithdrawScenario(Scenario):
    kind = InstructionKind.WITHDRAW

    def prepare(self, ctx):
        hints = ctx.hints.resolve(ctx.fixture)
        return ctx.adapter.build_withdraw(ctx.market, ctx.adapter.withdraw_amount, hints), hints


class PlaceOrderScenario(Scenario):
    kind = InstructionKind.PLACE_ORDER

    def prepare(self, ctx):
        hints = ctx.hints.resolve(ctx.fixture)
        return ctx.adapter.build_place(ctx.market, [ctx.adapter.single_order()], hints, batched=False), hints


class BatchPlaceScenario(Scenario):
    kind = InstructionKind.BATCH_PLACE

    def prepare(self, ctx):
        hints = ctx.hints.resolve(ctx.fixture)
        orders = ctx.adapter.batch_orders(ctx.case.batch_size)
        return ctx.adapter.build_place(ctx.market, orders, hints), hints


class BatchCancelScenario(Scenario):
    kind = InstructionKind.BATCH_CANCEL

    def prepare(self, ctx):
        seeded = ctx.seeder.seed_orders(ctx.adapter.cancel_seed_orders(ctx.case.batch_size))
        hints = ctx.hints.resolve(ctx.fixture, [o.sequence_number for o in seeded])
        return ctx.adapter.build_cancel(ctx.market, seeded, hints), hints


class SwapScenario(Scenario):
    """N resting asks, then one aggressor sized to consume all of them."""

    kind = InstructionKind.SWAP

    def prepare(self, ctx):
        resting = ctx.adapter.swap_seed_orders(ctx.case.batch_size)
        ctx.seeder.seed_orders(resting)
        ctx.seeder.fund_taker(resting)
        hints = ctx.hints.resolve(ctx.fixture)
        return ctx.adapter.build_swap(ctx.market, resting, hints), hints


class BatchPlaceCancelScenario(Scenario):
    """N orders from one committed batch placement, then the cancel is measured.

    The placement itself costs what BatchPlace already reports.
    """

    kind = InstructionKind.BATCH_PLACE_CANCEL

    def prepare(self, ctx):
        placed = ctx.seeder.seed_batch(ctx.adapter.place_cancel_orders(ctx.case.batch_size))
        hints = ctx.hints.resolve(ctx.fixture, [o.sequence_number for o in placed])
        return ctx.adapter.build_cancel(ctx.market, placed, hints), hints


SCENARIOS: Dict[InstructionKind, Scenario] = {
    scenario.kind: scenario
    for scenario in (
        DepositScenario(),
        WithdrawScenario(),
        PlaceOrderScenario(),
        BatchPlaceScenario(),
        BatchCancelScenario(),
        SwapScenario(),
        BatchPlaceCancelScenario(),
    )
}


def get_scenario(kind: InstructionKind) -> Scenario:
    try:
        return SCENARIOS[kind]
    except KeyError as exc:  # pragma: no cover - every kind is registered
        raise KeyError(f"No scenario for instruction kind '{kind}'") from exc


def planned_variants(adapter: ProgramAdapter, config: BenchConfig) -> List[Variant]:
    variants = [v for v in VARIANT_ORDER if v == Variant.FRESH or adapter.supports_expand]
    if config.variants is not None:
        variants = [v for v in variants if v.value in config.variants]
    return variants


def plan_cases(adapter: ProgramAdapter, config: BenchConfig) -> List[InstructionCase]:
    """Every case for ``adapter`` in report order: kind, ascending N, variant."""
    amortizer = BatchAmortizer(config.batch_sizes, config.swap_fill_sizes)
    kinds = [k for k in adapter.supported_kinds if config.kinds is None or k.value in config.kinds]
    cases = [
        case
        for kind in kinds
        for variant in planned_variants(adapter, config)
        for case in amortizer.cases(kind, variant)
    ]
    return sorted(cases, key=lambda c: c.sort_key)
