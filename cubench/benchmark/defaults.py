"""Centralized default values for compute-unit benchmark configuration.

This module provides a single source of truth for the defaults used throughout
the harness. Per-run configuration is an explicit ``BenchConfig`` handed to the
fixture builder; nothing inside the engine reads the environment on its own.

CRITICAL: the program image directory has no default. A run without one must
fail every case with FixtureError instead of reporting near-zero CU.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Tuple

from cubench.benchmark.exceptions import ConfigurationError

# Environment variable naming the directory that holds ``<program>.so`` images.
PROGRAM_DIR_ENV = "SBF_OUT_DIR"

# Runtime-wide ceiling; every transaction requests the maximum so the measured
# instruction is never cut short by a too-small budget.
MAX_COMPUTE_UNIT_LIMIT = 1_400_000

DEFAULT_BATCH_SIZES: Tuple[int, ...] = (1, 10, 50)
DEFAULT_SWAP_FILL_SIZES: Tuple[int, ...] = (1, 10, 50)

HINT_MODES = ("hinted", "none")


@dataclass
class BenchDefaults:
    """Centralized default values for benchmark configuration.

    All defaults can be overridden by passing values directly to BenchConfig
    or via CLI flags (e.g., --batch-sizes, --no-hints).
    """

    batch_sizes: Tuple[int, ...] = DEFAULT_BATCH_SIZES
    swap_fill_sizes: Tuple[int, ...] = DEFAULT_SWAP_FILL_SIZES
    compute_unit_limit: int = MAX_COMPUTE_UNIT_LIMIT
    compute_unit_price: int = 1
    hint_mode: str = "hinted"
    program_dir_env: str = PROGRAM_DIR_ENV

    def to_dict(self) -> dict:
        """Convert defaults to dictionary."""
        return {
            "batch_sizes": list(self.batch_sizes),
            "swap_fill_sizes": list(self.swap_fill_sizes),
            "compute_unit_limit": self.compute_unit_limit,
            "compute_unit_price": self.compute_unit_price,
            "hint_mode": self.hint_mode,
            "program_dir_env": self.program_dir_env,
        }


# Global instance - can be overridden for testing or custom configurations
_defaults = BenchDefaults()


def get_defaults() -> BenchDefaults:
    """Get the global BenchDefaults instance."""
    return _defaults


def set_defaults(defaults: BenchDefaults) -> None:
    """Set the global BenchDefaults instance (useful for testing)."""
    global _defaults
    _defaults = defaults


def _normalize_sizes(key: str, sizes: Sequence[int]) -> Tuple[int, ...]:
    if not sizes:
        raise ConfigurationError(
            f"{key} must name at least one batch size",
            config_key=key,
            config_value=sizes,
            reason="empty",
        )
    normalized = set()
    for size in sizes:
        if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
            raise ConfigurationError(
                f"{key} entries must be positive integers, got {size!r}",
                config_key=key,
                config_value=sizes,
                reason="non-positive or non-integer batch size",
            )
        normalized.add(size)
    return tuple(sorted(normalized))


def parse_batch_sizes(raw: str, key: str = "batch_sizes") -> Tuple[int, ...]:
    """Parse a comma-separated list such as ``"1,10,50"``."""
    try:
        sizes = [int(token) for token in raw.split(",") if token.strip()]
    except ValueError as exc:
        raise ConfigurationError(
            f"Could not parse {key} from {raw!r}",
            config_key=key,
            config_value=raw,
            reason=str(exc),
        ) from exc
    return _normalize_sizes(key, sizes)


@dataclass
class BenchConfig:
    """Explicit configuration for one benchmark run.

    ``program_dir`` is the directory containing program images. It is passed
    into the fixture builder rather than read from ambient state so separate
    processes (or tests) can point at different image sets.
    """

    program_dir: Optional[Path] = None
    batch_sizes: Tuple[int, ...] = field(default_factory=lambda: get_defaults().batch_sizes)
    swap_fill_sizes: Tuple[int, ...] = field(default_factory=lambda: get_defaults().swap_fill_sizes)
    compute_unit_limit: int = field(default_factory=lambda: get_defaults().compute_unit_limit)
    compute_unit_price: int = field(default_factory=lambda: get_defaults().compute_unit_price)
    hint_mode: str = field(default_factory=lambda: get_defaults().hint_mode)
    kinds: Optional[Tuple[str, ...]] = None
    variants: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if self.program_dir is not None:
            self.program_dir = Path(self.program_dir)
        self.batch_sizes = _normalize_sizes("batch_sizes", self.batch_sizes)
        self.swap_fill_sizes = _normalize_sizes("swap_fill_sizes", self.swap_fill_sizes)
        if self.hint_mode not in HINT_MODES:
            raise ConfigurationError(
                f"hint_mode must be one of {HINT_MODES}, got {self.hint_mode!r}",
                config_key="hint_mode",
                config_value=self.hint_mode,
                reason="unknown hint mode",
            )
        if not 0 < self.compute_unit_limit <= MAX_COMPUTE_UNIT_LIMIT:
            raise ConfigurationError(
                f"compute_unit_limit must be in (0, {MAX_COMPUTE_UNIT_LIMIT}]",
                config_key="compute_unit_limit",
                config_value=self.compute_unit_limit,
                reason="out of range",
            )
        if self.compute_unit_price < 0:
            raise ConfigurationError(
                "compute_unit_price must be non-negative",
                config_key="compute_unit_price",
                config_value=self.compute_unit_price,
                reason="negative",
            )
        if self.kinds is not None:
            self.kinds = tuple(self.kinds)
        if self.variants is not None:
            self.variants = tuple(self.variants)

    @classmethod
    def from_env(cls, **overrides) -> "BenchConfig":
        """Create a BenchConfig whose program directory comes from ``SBF_OUT_DIR``.

        An unset or blank variable leaves ``program_dir`` as None; fixture
        builds then fail loudly instead of measuring against nothing.
        """
        if "program_dir" not in overrides:
            raw = os.environ.get(get_defaults().program_dir_env, "").strip()
            overrides["program_dir"] = Path(raw) if raw else None
        return cls(**overrides)

    def to_dict(self) -> dict:
        return {
            "program_dir": str(self.program_dir) if self.program_dir else None,
            "batch_sizes": list(self.batch_sizes),
            "swap_fill_sizes": list(self.swap_fill_sizes),
            "compute_unit_limit": self.compute_unit_limit,
            "compute_unit_price": self.compute_unit_price,
            "hint_mode": self.hint_mode,
            "kinds": list(self.kinds) if self.kinds is not None else None,
            "variants": list(self.variants) if self.variants is not None else None,
        }
