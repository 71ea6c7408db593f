"""Pydantic models for compute-unit benchmark data structures.

Provides type-safe, validated data models for cases, measurements and run
reports. All models include schemaVersion for forward compatibility.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class InstructionKind(str, Enum):
    """Instruction kinds in report order."""

    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    PLACE_ORDER = "PlaceOrder"
    BATCH_PLACE = "BatchPlace"
    BATCH_CANCEL = "BatchCancel"
    SWAP = "Swap"
    BATCH_PLACE_CANCEL = "BatchPlaceCancel"

    @property
    def is_batched(self) -> bool:
        return self in BATCHED_KINDS

    @property
    def order(self) -> int:
        return KIND_ORDER.index(self)


KIND_ORDER: Tuple[InstructionKind, ...] = tuple(InstructionKind)
BATCHED_KINDS = frozenset(
    {
        InstructionKind.BATCH_PLACE,
        InstructionKind.BATCH_CANCEL,
        InstructionKind.SWAP,
        InstructionKind.BATCH_PLACE_CANCEL,
    }
)
# Kinds every target runs. BatchPlaceCancel is opt-in per target.
DEFAULT_KINDS: Tuple[InstructionKind, ...] = tuple(k for k in KIND_ORDER if k != InstructionKind.BATCH_PLACE_CANCEL)


class Variant(str, Enum):
    """Market state pre-condition."""

    FRESH = "Fresh"
    PRE_EXPANDED = "PreExpanded"

    @property
    def order(self) -> int:
        return VARIANT_ORDER.index(self)


VARIANT_ORDER: Tuple[Variant, ...] = tuple(Variant)


def report_sort_key(kind: InstructionKind, batch_size: int, variant: Variant) -> Tuple[int, int, int]:
    """Deterministic report order: kind, then ascending N, then variant."""
    return (kind.order, batch_size, variant.order)


class Hints(BaseModel):
    """Index hints handed to instruction builders.

    ``trader_index`` is the trader's seat slot; ``order_indices`` maps an order
    sequence number to its slot in the order table. An empty instance means
    "let the program look it up".
    """

    trader_index: Optional[int] = Field(None, ge=0, description="Trader seat slot index")
    order_indices: Dict[int, int] = Field(default_factory=dict, description="Order sequence number -> slot index")

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return self.trader_index is None and not self.order_indices

    def order_index(self, sequence_number: int) -> Optional[int]:
        return self.order_indices.get(sequence_number)


class InstructionCase(BaseModel):
    """One instruction to measure against one market variant."""

    kind: InstructionKind = Field(..., description="Instruction kind")
    batch_size: int = Field(1, ge=1, description="N logical operations in the single instruction")
    variant: Variant = Field(Variant.FRESH, description="Market variant the case runs against")
    hints: Optional[Hints] = Field(None, description="Hints resolved for this case (None until resolved)")

    schemaVersion: str = Field("1.0", description="Schema version for forward compatibility")

    model_config = ConfigDict(frozen=True)

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int, info) -> int:
        kind = info.data.get("kind")
        if kind is not None and not InstructionKind(kind).is_batched and v != 1:
            raise ValueError(f"{InstructionKind(kind).value} is not batched; batch_size must be 1")
        return v

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return report_sort_key(self.kind, self.batch_size, self.variant)

    def label(self, program: str) -> str:
        return f"{program}:{self.kind.value}:N={self.batch_size}:{self.variant.value}"

    def with_hints(self, hints: Hints) -> "InstructionCase":
        return self.model_copy(update={"hints": hints})


class Measurement(BaseModel):
    """CU consumed by one simulated instruction. Immutable once produced."""

    program: str = Field(..., description="Program label")
    kind: InstructionKind = Field(..., description="Instruction kind")
    batch_size: int = Field(..., ge=1, description="Batch size N")
    variant: Variant = Field(..., description="Market variant")
    cu_consumed: int = Field(..., ge=0, description="Total compute units consumed")
    payload_digest: Optional[str] = Field(None, description="sha256 of the measured instruction payload")
    hinted: bool = Field(True, description="Whether index hints were supplied")

    schemaVersion: str = Field("1.0", description="Schema version for forward compatibility")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "program": "manifest",
                "kind": "BatchCancel",
                "batch_size": 10,
                "variant": "Fresh",
                "cu_consumed": 41230,
                "payload_digest": "5f1c...",
                "hinted": True,
                "schemaVersion": "1.0",
            }
        },
    )

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return report_sort_key(self.kind, self.batch_size, self.variant)


class AmortizedResult(BaseModel):
    """Per-item cost derived from a Measurement.

    ``per_item_cu`` is floor division of the total by N; the dropped remainder
    is kept in ``remainder_cu`` so nothing is lost for regression comparisons.
    """

    program: str
    kind: InstructionKind
    batch_size: int = Field(..., ge=1)
    variant: Variant
    total_cu: int = Field(..., ge=0)

    schemaVersion: str = Field("1.0", description="Schema version for forward compatibility")

    model_config = ConfigDict(frozen=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def per_item_cu(self) -> int:
        return self.total_cu // self.batch_size

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remainder_cu(self) -> int:
        return self.total_cu % self.batch_size

    @classmethod
    def from_measurement(cls, measurement: Measurement) -> "AmortizedResult":
        return cls(
            program=measurement.program,
            kind=measurement.kind,
            batch_size=measurement.batch_size,
            variant=measurement.variant,
            total_cu=measurement.cu_consumed,
        )

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return report_sort_key(self.kind, self.batch_size, self.variant)


class CaseFailure(BaseModel):
    """A case that produced no measurement."""

    program: str
    kind: InstructionKind
    batch_size: int = Field(..., ge=1)
    variant: Variant
    error_type: str = Field(..., description="Exception class name (FixtureError, SetupError, SimulationError)")
    stage: str = Field(..., description="Stage where the failure occurred")
    message: str = Field(..., description="Failure message with the case parameters")

    schemaVersion: str = Field("1.0", description="Schema version for forward compatibility")

    model_config = ConfigDict(frozen=True)

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return report_sort_key(self.kind, self.batch_size, self.variant)


class RunReport(BaseModel):
    """Everything one suite run produced for one program."""

    program: str = Field(..., description="Program label")
    program_id: Optional[str] = Field(None, description="On-chain address the image was loaded at")
    config: Dict[str, object] = Field(default_factory=dict, description="Run configuration snapshot")
    measurements: List[Measurement] = Field(default_factory=list)
    amortized: List[AmortizedResult] = Field(default_factory=list)
    failures: List[CaseFailure] = Field(default_factory=list)
    started_at: Optional[str] = Field(None, description="ISO timestamp of run start")
    finished_at: Optional[str] = Field(None, description="ISO timestamp of run end")

    schemaVersion: str = Field("1.0", description="Schema version for forward compatibility")

    @property
    def ok(self) -> bool:
        return not self.failures and bool(self.measurements)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def sorted_measurements(self) -> List[Measurement]:
        return sorted(self.measurements, key=lambda m: m.sort_key)

    def sorted_amortized(self) -> List[AmortizedResult]:
        return sorted(self.amortized, key=lambda a: a.sort_key)

    def sorted_failures(self) -> List[CaseFailure]:
        return sorted(self.failures, key=lambda f: f.sort_key)

    def find(
        self, kind: InstructionKind, batch_size: int, variant: Variant = Variant.FRESH
    ) -> Optional[Measurement]:
        for measurement in self.measurements:
            if (measurement.kind, measurement.batch_size, measurement.variant) == (kind, batch_size, variant):
                return measurement
        return None
