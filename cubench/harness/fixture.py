"""Fixture Builder and Market Variant Provider.

Every case gets a brand-new runtime and market. Nothing is shared between
fixtures except the read-only program image, so a case can never observe
state left behind by another one.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Any, Sequence

from cubench.benchmark.defaults import BenchConfig
from cubench.benchmark.exceptions import FixtureError
from cubench.benchmark.models import Variant
from cubench.harness.program import ProgramImage, load_program_image
from cubench.runtime.base import Instruction, Runtime
from cubench.targets.base import ProgramAdapter
from cubench.utils.logger import get_logger

logger = get_logger(__name__)

# What an adapter state reader raises on market data it cannot decode.
STATE_READ_ERRORS = (LookupError, ValueError, struct.error)


@dataclass
class MarketFixture:
    """Runtime state owned by exactly one case."""

    program: str
    variant: Variant
    runtime: Runtime
    adapter: ProgramAdapter
    market: Any
    label: str = ""

    @property
    def order_book_capacity(self) -> int:
        return self.adapter.book_capacity(self.runtime, self.market)


def commit_fixture_step(runtime: Runtime, instructions: Sequence[Instruction], step: str, label: str = "") -> None:
    """Send one construction transaction; a rejection is a FixtureError."""
    outcome = runtime.send(instructions)
    if not outcome.ok:
        raise FixtureError(
            f"Fixture step '{step}' rejected: {outcome.error}",
            label=label,
            reason=outcome.error or "rejected",
        )
    logger.debug(f"{label or 'fixture'}: committed {step} ({outcome.compute_units} CU)")


class FixtureBuilder:
    """Builds isolated market fixtures for one program.

    ``config`` is explicit: the image directory is never looked up from the
    environment here.
    """

    def __init__(self, adapter: ProgramAdapter, config: BenchConfig):
        self.adapter = adapter
        self.config = config
        self.fixtures_built = 0

    def image(self, label: str = "") -> ProgramImage:
        return load_program_image(
            self.config.program_dir,
            self.adapter.image_name,
            self.adapter.program_id,
            label=label,
        )

    def build(self, variant: Variant = Variant.FRESH, label: str = "") -> MarketFixture:
        image = self.image(label)
        runtime = self.adapter.create_runtime(image, self.config)
        setup = self.adapter.setup_market(runtime)
        for step in setup.steps:
            commit_fixture_step(runtime, step.instructions, step.name, label)

        fixture = MarketFixture(
            program=self.adapter.name,
            variant=Variant.FRESH,
            runtime=runtime,
            adapter=self.adapter,
            market=setup.market,
            label=label,
        )
        self.fixtures_built += 1
        return MarketVariantProvider(self.adapter).apply(fixture, variant)


class MarketVariantProvider:
    """Turns a fresh fixture into the requested variant.

    The expand instruction is committed, never simulated for CU, so its cost
    stays out of every measurement taken afterwards.
    """

    def __init__(self, adapter: ProgramAdapter):
        self.adapter = adapter

    def apply(self, fixture: MarketFixture, variant: Variant) -> MarketFixture:
        if variant == Variant.FRESH:
            return fixture
        if not self.adapter.supports_expand:
            raise FixtureError(
                f"{self.adapter.name} cannot pre-expand a market",
                label=fixture.label,
                reason="variant not supported",
            )
        try:
            before = fixture.order_book_capacity
        except STATE_READ_ERRORS as exc:
            raise FixtureError(
                f"{fixture.label}: cannot read market capacity: {exc}",
                label=fixture.label,
                reason=str(exc),
            ) from exc
        commit_fixture_step(
            fixture.runtime,
            [self.adapter.build_expand(fixture.market)],
            "expand",
            fixture.label,
        )
        fixture.variant = variant
        logger.debug(f"{fixture.label}: expanded from {before} slots")
        return fixture
