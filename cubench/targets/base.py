"""Capability set every program target implements.

The measurement engine is written once against ``ProgramAdapter``. An
adapter knows how to lay out a market for its program, how to encode each
instruction kind, which prices and sizes the scenarios use, and how to read
the little bit of market state the harness needs back (balances, resting
orders, slot indices for hints).

Adapters only build instructions. Sending them, and deciding which error a
rejection maps to, belongs to the harness.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from cubench.benchmark.models import DEFAULT_KINDS, Hints, InstructionKind
from cubench.runtime.base import Instruction, Runtime

if TYPE_CHECKING:
    from cubench.benchmark.defaults import BenchConfig
    from cubench.harness.program import ProgramImage


class Token(str, Enum):
    BASE = "base"
    QUOTE = "quote"


class Side(str, Enum):
    BID = "bid"
    ASK = "ask"


@dataclass(frozen=True)
class OrderSpec:
    """An order to place, in the target's own price and size units."""

    side: Side
    price: int
    size: int


@dataclass(frozen=True)
class RestingOrder:
    """An order found on the book.

    ``slot`` is the order's position in the program's order storage, which is
    exactly what an order-index hint carries.
    """

    sequence_number: int
    slot: int
    side: Side
    price: int
    size: int
    trader_slot: int


@dataclass
class SetupStep:
    """One committed transaction of market construction."""

    name: str
    instructions: List[Instruction]


@dataclass
class MarketSetup:
    """Adapter-owned market handle plus the transactions that create it."""

    market: Any
    steps: List[SetupStep] = field(default_factory=list)


class ProgramAdapter(ABC):
    """Instruction schema and state layout of one program under test."""

    name: str = ""
    program_id: str = ""
    image_name: str = ""
    supports_expand: bool = False
    supports_hints: bool = False
    supported_kinds: Tuple[InstructionKind, ...] = DEFAULT_KINDS

    deposit_amount: int = 0
    withdraw_amount: Optional[int] = None

    # ------------------------------------------------------------------ runtime
    def create_runtime(self, image: "ProgramImage", config: "BenchConfig") -> Runtime:
        from cubench.runtime.svm import SvmRuntime

        return SvmRuntime(
            image.program_id,
            image.data,
            compute_unit_limit=config.compute_unit_limit,
            compute_unit_price=config.compute_unit_price,
        )

    # ------------------------------------------------------------------ fixture
    @abstractmethod
    def setup_market(self, runtime: Runtime) -> MarketSetup:
        """Register signers, fund them, and return the market construction steps."""

    def build_expand(self, market: Any) -> Instruction:
        """Administrative instruction pre-allocating order storage."""
        raise NotImplementedError(f"{self.name} has no expand-capacity instruction")

    @abstractmethod
    def book_capacity(self, runtime: Runtime, market: Any) -> int:
        """Number of order-storage slots currently allocated."""

    # ------------------------------------------------------------- instructions
    @abstractmethod
    def build_deposit(self, market: Any, amount: int, hints: Hints) -> Instruction:
        ...

    @abstractmethod
    def build_withdraw(self, market: Any, amount: Optional[int], hints: Hints) -> Instruction:
        ...

    @abstractmethod
    def build_place(
        self, market: Any, orders: Sequence[OrderSpec], hints: Hints, batched: bool = True
    ) -> Instruction:
        """Post-only placement. ``batched=False`` asks for the single-order form, if the program has one."""

    @abstractmethod
    def build_cancel(self, market: Any, orders: Sequence[RestingOrder], hints: Hints) -> Instruction:
        ...

    @abstractmethod
    def build_swap(self, market: Any, resting: Sequence[OrderSpec], hints: Hints) -> Instruction:
        """One aggressor instruction sized to consume every order in ``resting``."""

    def deposit_funding(self, market: Any, amount: int) -> List[Instruction]:
        """Instructions that put ``amount`` into the trader's wallet before a deposit."""
        return []

    @abstractmethod
    def fund_taker(self, market: Any, resting: Sequence[OrderSpec]) -> List[Instruction]:
        """Instructions giving the swap taker enough input tokens to consume ``resting``."""

    # ---------------------------------------------------------------- scenarios
    @abstractmethod
    def single_order(self) -> OrderSpec:
        ...

    @abstractmethod
    def batch_orders(self, n: int) -> List[OrderSpec]:
        ...

    @abstractmethod
    def cancel_seed_orders(self, n: int) -> List[OrderSpec]:
        ...

    @abstractmethod
    def swap_seed_orders(self, n: int) -> List[OrderSpec]:
        ...

    def place_cancel_orders(self, n: int) -> List[OrderSpec]:
        """Orders placed by one batched instruction and then cancelled together."""
        return self.batch_orders(n)

    # ------------------------------------------------------------ state readers
    @abstractmethod
    def trader_balance(self, runtime: Runtime, market: Any, token: Token) -> int:
        """Trader's free balance as recorded by the market."""

    @abstractmethod
    def resting_orders(self, runtime: Runtime, market: Any, side: Optional[Side] = None) -> List[RestingOrder]:
        """The fixture trader's resting orders, optionally for one side."""

    def trader_slot(self, runtime: Runtime, market: Any) -> Optional[int]:
        return None

    def order_slots(self, runtime: Runtime, market: Any) -> Dict[int, int]:
        return {order.sequence_number: order.slot for order in self.resting_orders(runtime, market)}
