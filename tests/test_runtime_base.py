"""Tests for the runtime-neutral instruction types and Runtime helpers."""

import struct
import sys
from pathlib import Path

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from cubench.runtime.base import AccountRef, Instruction, Runtime


class BytesRuntime(Runtime):
    """Serves raw account bytes; executes nothing."""

    def __init__(self, accounts):
        self.accounts = accounts

    @property
    def payer(self):
        return "payer"

    def signer(self, label):
        return label

    def simulate(self, instructions):
        raise NotImplementedError

    def send(self, instructions):
        raise NotImplementedError

    def account_data(self, address):
        return self.accounts.get(address)

    def airdrop(self, address, lamports):
        pass

    def rent_exempt_balance(self, data_len):
        return data_len


def _token_account(amount):
    return b"\x01" * 32 + b"\x02" * 32 + struct.pack("<Q", amount) + b"\x00" * (165 - 72)


class TestTokenBalance:
    def test_reads_amount_from_token_account(self):
        runtime = BytesRuntime({"wallet": _token_account(1_250_000)})
        assert runtime.token_balance("wallet") == 1_250_000

    def test_missing_account(self):
        assert BytesRuntime({}).token_balance("wallet") is None

    def test_too_short_for_a_token_account(self):
        assert BytesRuntime({"wallet": b"\x00" * 70}).token_balance("wallet") is None


class TestInstruction:
    def test_digest_covers_account_flags(self):
        readonly = Instruction("prog", (AccountRef.readonly("a"),), b"\x01")
        writable = Instruction("prog", (AccountRef.writable("a"),), b"\x01")
        assert readonly.digest() != writable.digest()
        assert readonly.digest() == Instruction("prog", (AccountRef.readonly("a"),), b"\x01", name="x").digest()

    def test_signers_are_unique_and_ordered(self):
        ix = Instruction(
            "prog",
            (
                AccountRef.writable("b", signer=True),
                AccountRef.readonly("a", signer=True),
                AccountRef.readonly("b", signer=True),
                AccountRef.readonly("c"),
            ),
            b"",
        )
        assert ix.signers == ("b", "a")
