"""Runtime-neutral instruction types and the runtime interface.

The harness never talks to a concrete VM directly. Adapters build
``Instruction`` values out of plain base58 addresses, and a ``Runtime``
turns them into signed transactions. Keeping these types free of any SDK
import lets the measurement engine be exercised without one.
"""

from __future__ import annotations

import hashlib
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

# SPL token account layout: mint(32) owner(32) amount(u64) ...
_TOKEN_AMOUNT_OFFSET = 64


@dataclass(frozen=True)
class AccountRef:
    """One account an instruction touches."""

    address: str
    is_signer: bool = False
    is_writable: bool = False

    @classmethod
    def writable(cls, address: str, signer: bool = False) -> "AccountRef":
        return cls(address, is_signer=signer, is_writable=True)

    @classmethod
    def readonly(cls, address: str, signer: bool = False) -> "AccountRef":
        return cls(address, is_signer=signer, is_writable=False)


@dataclass(frozen=True)
class Instruction:
    """A fully-built instruction: program id, ordered accounts, raw data."""

    program_id: str
    accounts: Tuple[AccountRef, ...]
    data: bytes
    name: str = field(default="", compare=False)

    def payload(self) -> bytes:
        """Canonical byte encoding of everything the runtime will see."""
        parts = [self.program_id.encode(), struct.pack("<I", len(self.accounts))]
        for account in self.accounts:
            parts.append(account.address.encode())
            parts.append(bytes([int(account.is_signer), int(account.is_writable)]))
        parts.append(struct.pack("<I", len(self.data)))
        parts.append(self.data)
        return b"\x00".join(parts)

    def digest(self) -> str:
        return hashlib.sha256(self.payload()).hexdigest()

    @property
    def signers(self) -> Tuple[str, ...]:
        seen = []
        for account in self.accounts:
            if account.is_signer and account.address not in seen:
                seen.append(account.address)
        return tuple(seen)


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of simulating or sending one transaction."""

    ok: bool
    compute_units: int
    logs: Tuple[str, ...] = ()
    error: Optional[str] = None


class Runtime(ABC):
    """Deterministic VM owned by exactly one fixture.

    ``simulate`` must not mutate durable state; ``send`` applies it. Both are
    synchronous and return immediately.
    """

    @property
    @abstractmethod
    def payer(self) -> str:
        """Fee payer address (also the default authority for fixture setup)."""

    @abstractmethod
    def signer(self, label: str) -> str:
        """Create (or return) a deterministic keypair for ``label`` and return its address."""

    @abstractmethod
    def simulate(self, instructions: Sequence[Instruction]) -> ExecutionOutcome:
        """Dry-run ``instructions`` in one transaction; no state changes survive."""

    @abstractmethod
    def send(self, instructions: Sequence[Instruction]) -> ExecutionOutcome:
        """Execute ``instructions`` in one transaction and keep the state changes."""

    @abstractmethod
    def account_data(self, address: str) -> Optional[bytes]:
        """Raw data of ``address`` or None if the account does not exist."""

    @abstractmethod
    def airdrop(self, address: str, lamports: int) -> None:
        """Credit lamports to ``address``."""

    @abstractmethod
    def rent_exempt_balance(self, data_len: int) -> int:
        """Minimum lamports for an account of ``data_len`` bytes."""

    def token_balance(self, address: str) -> Optional[int]:
        """Amount held by an SPL token account, None if it does not exist."""
        data = self.account_data(address)
        if data is None or len(data) < _TOKEN_AMOUNT_OFFSET + 8:
            return None
        (amount,) = struct.unpack_from("<Q", data, _TOKEN_AMOUNT_OFFSET)
        return amount
