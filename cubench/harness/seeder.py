"""Pre-condition Seeder.

Places the resting orders (and moves the tokens) a measured instruction
depends on. Every seeding transaction is committed, never measured, and a
rejection is a SetupError so a broken fixture is never reported as a CU
regression.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Set

from cubench.benchmark.exceptions import SetupError
from cubench.harness.fixture import STATE_READ_ERRORS, MarketFixture
from cubench.harness.hints import HintResolver
from cubench.runtime.base import Instruction
from cubench.targets.base import OrderSpec, RestingOrder, Side
from cubench.utils.logger import get_logger

logger = get_logger(__name__)


class PreconditionSeeder:
    def __init__(self, fixture: MarketFixture, hints: HintResolver):
        self.fixture = fixture
        self.hints = hints

    def commit(self, instructions: Sequence[Instruction], step: str) -> None:
        if not instructions:
            return
        outcome = self.fixture.runtime.send(instructions)
        if not outcome.ok:
            raise SetupError(
                f"{self.fixture.label}: setup step '{step}' rejected: {outcome.error}",
                label=self.fixture.label,
                step=step,
                reason=outcome.error or "rejected",
                logs=list(outcome.logs),
            )
        logger.debug(f"{self.fixture.label}: committed {step} ({outcome.compute_units} CU)")

    def resting(self, step: str, side: Optional[Side] = None) -> List[RestingOrder]:
        """The trader's resting orders; undecodable market state is a SetupError."""
        try:
            return self.fixture.adapter.resting_orders(self.fixture.runtime, self.fixture.market, side)
        except STATE_READ_ERRORS as exc:
            raise SetupError(
                f"{self.fixture.label}: cannot read resting orders during '{step}': {exc}",
                label=self.fixture.label,
                step=step,
                reason=str(exc),
            ) from exc

    def seed_orders(self, orders: Sequence[OrderSpec]) -> List[RestingOrder]:
        """Place ``orders`` one instruction each; return them as found on the book."""
        adapter = self.fixture.adapter
        before = {o.sequence_number for o in self.resting("seed_orders")}
        hints = self.hints.resolve(self.fixture)
        for i, order in enumerate(orders):
            self.commit([adapter.build_place(self.fixture.market, [order], hints, batched=False)], f"seed_order[{i}]")
        return self._placed(before, len(orders))

    def seed_batch(self, orders: Sequence[OrderSpec]) -> List[RestingOrder]:
        """Place ``orders`` with one batched instruction; return them as found on the book."""
        before = {o.sequence_number for o in self.resting("seed_batch")}
        hints = self.hints.resolve(self.fixture)
        self.commit([self.fixture.adapter.build_place(self.fixture.market, orders, hints)], "seed_batch")
        return self._placed(before, len(orders))

    def _placed(self, before: Set[int], expected: int) -> List[RestingOrder]:
        placed = [o for o in self.resting("seed_orders") if o.sequence_number not in before]
        if len(placed) != expected:
            raise SetupError(
                f"{self.fixture.label}: expected {expected} seeded orders to rest, found {len(placed)}",
                label=self.fixture.label,
                step="seed_orders",
                reason="seeded orders did not rest",
            )
        return sorted(placed, key=lambda o: o.sequence_number)

    def fund_trader(self, amount: int) -> None:
        self.commit(self.fixture.adapter.deposit_funding(self.fixture.market, amount), "fund_trader")

    def fund_taker(self, resting: Sequence[OrderSpec]) -> None:
        self.commit(self.fixture.adapter.fund_taker(self.fixture.market, resting), "fund_taker")
