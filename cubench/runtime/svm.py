"""LiteSVM-backed runtime.

One ``SvmRuntime`` wraps one in-process SVM instance with the SPL token,
token-2022 and associated-token programs preloaded, plus the program under
test at its declared address. Every keypair is derived from a fixed label so
PDA bump searches, and therefore CU, are identical from run to run.
"""

from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Optional, Sequence

from litesvm import LiteSVM
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta
from solders.instruction import Instruction as SolInstruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from cubench.benchmark.defaults import MAX_COMPUTE_UNIT_LIMIT
from cubench.benchmark.exceptions import FixtureError
from cubench.runtime.base import AccountRef, ExecutionOutcome, Instruction, Runtime
from cubench.utils.logger import get_logger

logger = get_logger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000
PAYER_LAMPORTS = 1_000 * LAMPORTS_PER_SOL


def derive_keypair(label: str) -> Keypair:
    """Deterministic keypair for ``label``."""
    return Keypair.from_seed(hashlib.sha256(f"cubench:{label}".encode()).digest())


def _field(obj: Any, name: str) -> Any:
    # litesvm exposes metadata fields as methods; accept plain attributes too.
    value = getattr(obj, name)
    return value() if callable(value) else value


def _is_failure(result: Any) -> bool:
    return hasattr(result, "err")


def to_solders(instruction: Instruction) -> SolInstruction:
    return SolInstruction(
        Pubkey.from_string(instruction.program_id),
        instruction.data,
        [
            AccountMeta(Pubkey.from_string(a.address), a.is_signer, a.is_writable)
            for a in instruction.accounts
        ],
    )


def from_solders(instruction: SolInstruction, name: str = "") -> Instruction:
    return Instruction(
        program_id=str(instruction.program_id),
        accounts=tuple(
            AccountRef(str(meta.pubkey), is_signer=meta.is_signer, is_writable=meta.is_writable)
            for meta in instruction.accounts
        ),
        data=bytes(instruction.data),
        name=name,
    )


class SvmRuntime(Runtime):
    """Deterministic SVM owned by exactly one fixture."""

    def __init__(
        self,
        program_id: str,
        program_bytes: bytes,
        *,
        compute_unit_limit: int = MAX_COMPUTE_UNIT_LIMIT,
        compute_unit_price: int = 1,
    ) -> None:
        self._svm = LiteSVM()
        self._compute_unit_limit = compute_unit_limit
        self._compute_unit_price = compute_unit_price
        self._keypairs: Dict[str, Keypair] = {}
        try:
            self._svm.add_program(Pubkey.from_string(program_id), program_bytes)
        except Exception as exc:
            raise FixtureError(
                f"Runtime rejected program image for {program_id}: {exc}",
                reason=str(exc),
            ) from exc
        self._payer = self._register(derive_keypair("payer"))
        self.airdrop(str(self._payer.pubkey()), PAYER_LAMPORTS)

    # ------------------------------------------------------------------ signers
    def _register(self, keypair: Keypair) -> Keypair:
        self._keypairs[str(keypair.pubkey())] = keypair
        return keypair

    @property
    def payer(self) -> str:
        return str(self._payer.pubkey())

    def signer(self, label: str) -> str:
        keypair = derive_keypair(label)
        return str(self._register(keypair).pubkey())

    # ------------------------------------------------------------ transactions
    def _build_transaction(self, instructions: Sequence[Instruction]) -> Transaction:
        signer_addresses: List[str] = [self.payer]
        for instruction in instructions:
            for address in instruction.signers:
                if address not in signer_addresses:
                    signer_addresses.append(address)
        missing = [a for a in signer_addresses if a not in self._keypairs]
        if missing:
            raise KeyError(f"No keypair registered for signer(s): {', '.join(missing)}")
        ixs = [
            set_compute_unit_limit(self._compute_unit_limit),
            set_compute_unit_price(self._compute_unit_price),
        ] + [to_solders(ix) for ix in instructions]
        return Transaction.new_signed_with_payer(
            ixs,
            self._payer.pubkey(),
            [self._keypairs[a] for a in signer_addresses],
            self._svm.latest_blockhash(),
        )

    @staticmethod
    def _outcome(result: Any) -> ExecutionOutcome:
        if _is_failure(result):
            meta = _field(result, "meta")
            return ExecutionOutcome(
                ok=False,
                compute_units=int(_field(meta, "compute_units_consumed")),
                logs=tuple(_field(meta, "logs")),
                error=str(_field(result, "err")),
            )
        meta = _field(result, "meta") if hasattr(result, "meta") else result
        return ExecutionOutcome(
            ok=True,
            compute_units=int(_field(meta, "compute_units_consumed")),
            logs=tuple(_field(meta, "logs")),
        )

    def simulate(self, instructions: Sequence[Instruction]) -> ExecutionOutcome:
        try:
            tx = self._build_transaction(instructions)
        except KeyError as exc:
            return ExecutionOutcome(ok=False, compute_units=0, error=str(exc))
        return self._outcome(self._svm.simulate_transaction(tx))

    def send(self, instructions: Sequence[Instruction]) -> ExecutionOutcome:
        try:
            tx = self._build_transaction(instructions)
        except KeyError as exc:
            return ExecutionOutcome(ok=False, compute_units=0, error=str(exc))
        outcome = self._outcome(self._svm.send_transaction(tx))
        # A later byte-identical transaction must not be rejected as already processed.
        self._svm.expire_blockhash()
        for line in outcome.logs:
            logger.debug(line)
        return outcome

    # ------------------------------------------------------------------ state
    def account_data(self, address: str) -> Optional[bytes]:
        account = self._svm.get_account(Pubkey.from_string(address))
        if account is None:
            return None
        return bytes(account.data)

    def airdrop(self, address: str, lamports: int) -> None:
        result = self._svm.airdrop(Pubkey.from_string(address), lamports)
        if _is_failure(result):
            raise FixtureError(f"Airdrop to {address} failed: {_field(result, 'err')}", reason="airdrop")

    def rent_exempt_balance(self, data_len: int) -> int:
        return int(self._svm.minimum_balance_for_rent_exemption(data_len))
