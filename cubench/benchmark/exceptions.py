"""Exception hierarchy for compute-unit benchmark execution.

Each failure mode gets its own type so the suite can report a broken fixture,
a rejected pre-condition and a rejected measured instruction separately.
None of these are retried: the runtime is deterministic, so a second attempt
cannot change the outcome.
"""

from __future__ import annotations

from typing import Any, List, Optional


class BenchError(Exception):
    """Base exception for all benchmark-related errors."""

    stage = "unknown"


class FixtureError(BenchError):
    """Raised when the execution environment or market fixture cannot be built.

    Attributes:
        label: Case label the fixture was being built for
        reason: Human-readable reason (missing image, rejected account init, ...)
    """

    stage = "fixture"

    def __init__(self, message: str, label: str = "", reason: str = ""):
        super().__init__(message)
        self.label = label
        self.reason = reason or message


class SetupError(BenchError):
    """Raised when a pre-condition instruction is rejected.

    Attributes:
        label: Case label
        step: Which seeding step failed (e.g. 'seed_asks', 'fund_taker')
        reason: Runtime error string
        logs: Program logs of the rejected transaction
    """

    stage = "setup"

    def __init__(
        self,
        message: str,
        label: str,
        step: str,
        reason: str,
        logs: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.label = label
        self.step = step
        self.reason = reason
        self.logs = list(logs or [])


class SimulationError(BenchError):
    """Raised when the measured instruction is rejected or cannot be committed.

    Attributes:
        label: Case label
        instruction_kind: Kind of the measured instruction
        batch_size: Batch size N of the case
        variant: Market variant of the case
        reason: Runtime error string
        logs: Program logs of the rejected transaction
        payload_digest: Digest of the instruction payload that triggered the failure
    """

    stage = "measurement"

    def __init__(
        self,
        message: str,
        label: str,
        instruction_kind: str,
        batch_size: int,
        variant: str,
        reason: str,
        logs: Optional[List[str]] = None,
        payload_digest: Optional[str] = None,
    ):
        super().__init__(message)
        self.label = label
        self.instruction_kind = instruction_kind
        self.batch_size = batch_size
        self.variant = variant
        self.reason = reason
        self.logs = list(logs or [])
        self.payload_digest = payload_digest


class ConfigurationError(BenchError):
    """Raised when benchmark configuration is invalid.

    Attributes:
        config_key: Configuration key that is invalid
        config_value: Invalid value
        reason: Reason for invalidity
    """

    stage = "configuration"

    def __init__(
        self,
        message: str,
        config_key: str,
        config_value: Any,
        reason: str,
    ):
        super().__init__(message)
        self.config_key = config_key
        self.config_value = config_value
        self.reason = reason
