"""Hint Resolver.

The harness created every seat and order it refers to, so it always knows
the right slot indices and hands them over the way an optimized client
would. ``mode="none"`` withholds them for a worst-case comparison.
"""

from __future__ import annotations

from typing import Iterable

from cubench.benchmark.defaults import HINT_MODES
from cubench.benchmark.exceptions import ConfigurationError, SetupError
from cubench.benchmark.models import Hints
from cubench.harness.fixture import STATE_READ_ERRORS, MarketFixture


class HintResolver:
    def __init__(self, mode: str = "hinted"):
        if mode not in HINT_MODES:
            raise ConfigurationError(
                f"hint mode must be one of {HINT_MODES}, got {mode!r}",
                config_key="hint_mode",
                config_value=mode,
                reason="unknown hint mode",
            )
        self.mode = mode

    @property
    def enabled(self) -> bool:
        return self.mode == "hinted"

    def resolve(self, fixture: MarketFixture, sequence_numbers: Iterable[int] = ()) -> Hints:
        """Hints for the trader seat and for each order in ``sequence_numbers``."""
        wanted = list(sequence_numbers)
        if not self.enabled or not fixture.adapter.supports_hints:
            return Hints()

        try:
            trader_index = fixture.adapter.trader_slot(fixture.runtime, fixture.market)
            slots = fixture.adapter.order_slots(fixture.runtime, fixture.market) if wanted else {}
        except STATE_READ_ERRORS as exc:
            raise SetupError(
                f"{fixture.label}: cannot read hints from the market: {exc}",
                label=fixture.label,
                step="resolve_hints",
                reason=str(exc),
            ) from exc
        if trader_index is None:
            raise SetupError(
                f"{fixture.label}: trader seat not found on the market",
                label=fixture.label,
                step="resolve_hints",
                reason="no seat",
            )
        missing = [seq for seq in wanted if seq not in slots]
        if missing:
            raise SetupError(
                f"{fixture.label}: no resting order for sequence number(s) {missing}",
                label=fixture.label,
                step="resolve_hints",
                reason="order not found",
            )
        return Hints(trader_index=trader_index, order_indices={seq: slots[seq] for seq in wanted})
