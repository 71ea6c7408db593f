"""SPL token helpers shared by the targets: mints, token accounts, mint-to."""

from __future__ import annotations

from typing import List

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import CreateAccountParams, create_account
from spl.token import instructions as spl_token
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

from cubench.runtime.base import Instruction, Runtime
from cubench.runtime.svm import from_solders

MINT_LEN = 82
TOKEN_ACCOUNT_LEN = 165

SYSTEM_PROGRAM = str(SYSTEM_PROGRAM_ID)
TOKEN_PROGRAM = str(TOKEN_PROGRAM_ID)
TOKEN_2022_PROGRAM = str(TOKEN_2022_PROGRAM_ID)
ASSOCIATED_TOKEN_PROGRAM = str(ASSOCIATED_TOKEN_PROGRAM_ID)


def pk(address: str) -> Pubkey:
    return Pubkey.from_string(address)


def find_pda(seeds: List[bytes], program_id: str) -> str:
    address, _bump = Pubkey.find_program_address(seeds, pk(program_id))
    return str(address)


def create_account_ix(payer: str, new_account: str, lamports: int, space: int, owner: str) -> Instruction:
    return from_solders(
        create_account(
            CreateAccountParams(
                from_pubkey=pk(payer),
                to_pubkey=pk(new_account),
                lamports=lamports,
                space=space,
                owner=pk(owner),
            )
        ),
        name="create_account",
    )


def create_mint(runtime: Runtime, payer: str, mint: str, authority: str, decimals: int) -> List[Instruction]:
    return [
        create_account_ix(payer, mint, runtime.rent_exempt_balance(MINT_LEN), MINT_LEN, TOKEN_PROGRAM),
        from_solders(
            spl_token.initialize_mint(
                spl_token.InitializeMintParams(
                    decimals=decimals,
                    program_id=TOKEN_PROGRAM_ID,
                    mint=pk(mint),
                    mint_authority=pk(authority),
                    freeze_authority=pk(authority),
                )
            ),
            name="initialize_mint",
        ),
    ]


def associated_token_address(owner: str, mint: str) -> str:
    return str(spl_token.get_associated_token_address(pk(owner), pk(mint)))


def create_ata(payer: str, owner: str, mint: str) -> Instruction:
    return from_solders(
        spl_token.create_associated_token_account(pk(payer), pk(owner), pk(mint)),
        name="create_associated_token_account",
    )


def mint_to(mint: str, destination: str, authority: str, amount: int) -> Instruction:
    return from_solders(
        spl_token.mint_to(
            spl_token.MintToParams(
                program_id=TOKEN_PROGRAM_ID,
                mint=pk(mint),
                dest=pk(destination),
                mint_authority=pk(authority),
                amount=amount,
                signers=[],
            )
        ),
        name="mint_to",
    )
