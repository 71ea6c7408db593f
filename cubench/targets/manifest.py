"""Manifest-style order book target.

Market state is a 256-byte fixed header followed by a dynamic region of
80-byte blocks. Each block is a red-black tree node: four u32 registers
(left, right, parent, color) and a 64-byte payload. Seats and resting orders
live in separate trees whose roots sit in the fixed header. Slot indices
(the hints BatchUpdate, Deposit and Withdraw accept) are byte offsets into
the dynamic region.

The market starts with no free blocks, so every new order on a fresh market
first grows the account. ``Expand`` pre-allocates ``10240 / 80 = 128``
blocks in one go.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, List, Optional, Sequence

from cubench.benchmark.models import Hints
from cubench.runtime.base import AccountRef, Instruction, Runtime
from cubench.targets import spl
from cubench.targets.base import MarketSetup, OrderSpec, ProgramAdapter, RestingOrder, SetupStep, Side, Token
from cubench.targets.borsh import BorshWriter

PROGRAM_ID = "MNFSTqtC93rEfYHB6hF82sKdZpUDFWkViLByLd1k1Ms"

BASE_DECIMALS = 9
QUOTE_DECIMALS = 6
SOL_UNIT_SIZE = 10**BASE_DECIMALS
USDC_UNIT_SIZE = 10**QUOTE_DECIMALS
ONE_SOL = SOL_UNIT_SIZE

MARKET_FIXED_SIZE = 256
MARKET_BLOCK_SIZE = 80
MAX_PERMITTED_DATA_INCREASE = 10_240
EXPAND_BLOCKS = MAX_PERMITTED_DATA_INCREASE // MARKET_BLOCK_SIZE

NIL = 0xFFFFFFFF
NO_EXPIRATION_LAST_VALID_SLOT = 0
ORDER_TYPE_LIMIT = 0
PRICE_EXPONENT = 0

# MarketFixed offsets
_BIDS_ROOT = 156
_ASKS_ROOT = 164
_SEATS_ROOT = 172

# Block layout: registers, then payload.
_NODE_HEADER = 16
_SEAT_BASE = _NODE_HEADER + 32
_SEAT_QUOTE = _NODE_HEADER + 40
_ORDER_BASE_ATOMS = _NODE_HEADER + 16
_ORDER_SEQUENCE = _NODE_HEADER + 24
_ORDER_TRADER = _NODE_HEADER + 32
_ORDER_IS_BID = _NODE_HEADER + 40


class ManifestInstruction(IntEnum):
    CREATE_MARKET = 0
    CLAIM_SEAT = 1
    DEPOSIT = 2
    WITHDRAW = 3
    SWAP = 4
    EXPAND = 5
    BATCH_UPDATE = 6


@dataclass(frozen=True)
class ManifestMarket:
    market: str
    base_mint: str
    quote_mint: str
    base_vault: str
    quote_vault: str
    trader: str
    trader_base: str
    trader_quote: str
    mint_authority: str


def vault_address(market: str, mint: str) -> str:
    return spl.find_pda([b"vault", bytes(spl.pk(market)), bytes(spl.pk(mint))], PROGRAM_ID)


def _u32(data: bytes, offset: int) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def _u64(data: bytes, offset: int) -> int:
    return struct.unpack_from("<Q", data, offset)[0]


def walk_tree(dynamic: bytes, root: int) -> Iterator[int]:
    """In-order slot indices of the tree rooted at ``root``."""
    limit = len(dynamic) // MARKET_BLOCK_SIZE
    stack: List[int] = []
    node = root
    visited = 0
    while stack or node != NIL:
        while node != NIL:
            stack.append(node)
            node = _u32(dynamic, node)
        node = stack.pop()
        visited += 1
        if visited > limit:
            raise ValueError("market tree is cyclic or corrupt")
        yield node
        node = _u32(dynamic, node + 4)


class ManifestAdapter(ProgramAdapter):
    name = "manifest"
    program_id = PROGRAM_ID
    image_name = "manifest"
    supports_expand = True
    supports_hints = True

    deposit_amount = 10 * SOL_UNIT_SIZE
    withdraw_amount = ONE_SOL

    # -------------------------------------------------------------- fixture
    def setup_market(self, runtime: Runtime) -> MarketSetup:
        payer = runtime.payer
        authority = runtime.signer("manifest:mint-authority")
        base_mint = runtime.signer("manifest:base-mint")
        quote_mint = runtime.signer("manifest:quote-mint")
        market = runtime.signer("manifest:market")

        m = ManifestMarket(
            market=market,
            base_mint=base_mint,
            quote_mint=quote_mint,
            base_vault=vault_address(market, base_mint),
            quote_vault=vault_address(market, quote_mint),
            trader=payer,
            trader_base=spl.associated_token_address(payer, base_mint),
            trader_quote=spl.associated_token_address(payer, quote_mint),
            mint_authority=authority,
        )
        base_amount = 500 * SOL_UNIT_SIZE
        quote_amount = 500_000 * USDC_UNIT_SIZE
        steps = [
            SetupStep("create_quote_mint", spl.create_mint(runtime, payer, quote_mint, authority, QUOTE_DECIMALS)),
            SetupStep("create_base_mint", spl.create_mint(runtime, payer, base_mint, authority, BASE_DECIMALS)),
            SetupStep(
                "create_market",
                [
                    spl.create_account_ix(
                        payer, market, runtime.rent_exempt_balance(MARKET_FIXED_SIZE), MARKET_FIXED_SIZE, PROGRAM_ID
                    ),
                    self._create_market(m),
                ],
            ),
            SetupStep(
                "create_trader_accounts",
                [spl.create_ata(payer, payer, base_mint), spl.create_ata(payer, payer, quote_mint)],
            ),
            SetupStep("claim_seat", [self._admin(ManifestInstruction.CLAIM_SEAT, m)]),
            SetupStep(
                "fund_trader",
                [
                    spl.mint_to(base_mint, m.trader_base, authority, base_amount),
                    spl.mint_to(quote_mint, m.trader_quote, authority, quote_amount),
                ],
            ),
            SetupStep("deposit_base", [self.build_deposit(m, base_amount, Hints())]),
            SetupStep("deposit_quote", [self._transfer(ManifestInstruction.DEPOSIT, m, Token.QUOTE, quote_amount, None)]),
        ]
        return MarketSetup(market=m, steps=steps)

    def _create_market(self, m: ManifestMarket) -> Instruction:
        return Instruction(
            program_id=PROGRAM_ID,
            accounts=(
                AccountRef.writable(m.trader, signer=True),
                AccountRef.writable(m.market),
                AccountRef.readonly(spl.SYSTEM_PROGRAM),
                AccountRef.readonly(m.base_mint),
                AccountRef.readonly(m.quote_mint),
                AccountRef.writable(m.base_vault),
                AccountRef.writable(m.quote_vault),
                AccountRef.readonly(spl.TOKEN_PROGRAM),
                AccountRef.readonly(spl.TOKEN_2022_PROGRAM),
            ),
            data=bytes([ManifestInstruction.CREATE_MARKET]),
            name="CreateMarket",
        )

    def _admin(self, ix: ManifestInstruction, m: ManifestMarket, data: bytes = b"") -> Instruction:
        """payer / market / system program: the shape ClaimSeat, Expand and BatchUpdate share."""
        return Instruction(
            program_id=PROGRAM_ID,
            accounts=(
                AccountRef.writable(m.trader, signer=True),
                AccountRef.writable(m.market),
                AccountRef.readonly(spl.SYSTEM_PROGRAM),
            ),
            data=bytes([ix]) + data,
            name=ix.name,
        )

    def build_expand(self, market: ManifestMarket) -> Instruction:
        return self._admin(ManifestInstruction.EXPAND, market, struct.pack("<Q", EXPAND_BLOCKS))

    def book_capacity(self, runtime: Runtime, market: ManifestMarket) -> int:
        return (len(self._data(runtime, market)) - MARKET_FIXED_SIZE) // MARKET_BLOCK_SIZE

    # --------------------------------------------------------- instructions
    def _transfer(
        self,
        ix: ManifestInstruction,
        m: ManifestMarket,
        token: Token,
        amount: int,
        trader_index: Optional[int],
    ) -> Instruction:
        mint, wallet, vault = (
            (m.base_mint, m.trader_base, m.base_vault)
            if token == Token.BASE
            else (m.quote_mint, m.trader_quote, m.quote_vault)
        )
        data = BorshWriter(bytes([ix])).u64(amount)
        data.option(trader_index, data.u32)
        return Instruction(
            program_id=PROGRAM_ID,
            accounts=(
                AccountRef.readonly(m.trader, signer=True),
                AccountRef.writable(m.market),
                AccountRef.writable(wallet),
                AccountRef.writable(vault),
                AccountRef.readonly(spl.TOKEN_PROGRAM),
                AccountRef.readonly(mint),
            ),
            data=data.build(),
            name=ix.name,
        )

    def build_deposit(self, market, amount, hints):
        return self._transfer(ManifestInstruction.DEPOSIT, market, Token.BASE, amount, hints.trader_index)

    def build_withdraw(self, market, amount, hints):
        return self._transfer(ManifestInstruction.WITHDRAW, market, Token.BASE, amount, hints.trader_index)

    def _batch_update(self, m: ManifestMarket, hints: Hints, cancels, places: Sequence[OrderSpec]) -> Instruction:
        def write_cancel(w: BorshWriter, cancel) -> None:
            sequence_number, slot = cancel
            w.u64(sequence_number)
            w.option(slot, w.u32)

        def write_place(w: BorshWriter, order: OrderSpec) -> None:
            (
                w.u64(order.size)
                .u32(order.price)
                .i8(PRICE_EXPONENT)
                .bool(order.side == Side.BID)
                .u32(NO_EXPIRATION_LAST_VALID_SLOT)
                .u8(ORDER_TYPE_LIMIT)
            )

        data = BorshWriter()
        data.option(hints.trader_index, data.u32)
        data.vec(cancels, write_cancel)
        data.vec(places, write_place)
        return self._admin(ManifestInstruction.BATCH_UPDATE, m, data.build())

    def build_place(self, market, orders, hints, batched=True):
        return self._batch_update(market, hints, [], orders)

    def build_cancel(self, market, orders, hints):
        cancels = [(o.sequence_number, hints.order_index(o.sequence_number)) for o in orders]
        return self._batch_update(market, hints, cancels, [])

    @staticmethod
    def quote_cost(resting: Sequence[OrderSpec]) -> int:
        """Quote atoms needed to take every order in ``resting``."""
        return sum(order.price * 10**PRICE_EXPONENT * order.size for order in resting)

    def build_swap(self, market: ManifestMarket, resting, hints):
        # Exact-in on the quote side, paying precisely what the asks cost.
        data = (
            BorshWriter(bytes([ManifestInstruction.SWAP]))
            .u64(self.quote_cost(resting))
            .u64(0)
            .bool(False)
            .bool(True)
        )
        return Instruction(
            program_id=PROGRAM_ID,
            accounts=(
                AccountRef.writable(market.trader, signer=True),
                AccountRef.writable(market.market),
                AccountRef.readonly(spl.SYSTEM_PROGRAM),
                AccountRef.writable(market.trader_base),
                AccountRef.writable(market.trader_quote),
                AccountRef.writable(market.base_vault),
                AccountRef.writable(market.quote_vault),
                AccountRef.readonly(spl.TOKEN_PROGRAM),
                AccountRef.readonly(spl.TOKEN_PROGRAM),
            ),
            data=data.build(),
            name="Swap",
        )

    def deposit_funding(self, market: ManifestMarket, amount: int) -> List[Instruction]:
        return [spl.mint_to(market.base_mint, market.trader_base, market.mint_authority, amount)]

    def fund_taker(self, market: ManifestMarket, resting) -> List[Instruction]:
        return [spl.mint_to(market.quote_mint, market.trader_quote, market.mint_authority, self.quote_cost(resting))]

    # ------------------------------------------------------------ scenarios
    def single_order(self) -> OrderSpec:
        return OrderSpec(Side.ASK, 15, ONE_SOL)

    def batch_orders(self, n: int) -> List[OrderSpec]:
        return [OrderSpec(Side.ASK, 15 + i, ONE_SOL) for i in range(n)]

    def cancel_seed_orders(self, n: int) -> List[OrderSpec]:
        return self.batch_orders(n)

    def swap_seed_orders(self, n: int) -> List[OrderSpec]:
        return [OrderSpec(Side.ASK, 10 + i, ONE_SOL) for i in range(n)]

    # -------------------------------------------------------- state readers
    @staticmethod
    def _data(runtime: Runtime, market: ManifestMarket) -> bytes:
        data = runtime.account_data(market.market)
        if data is None:
            raise LookupError(f"market account {market.market} does not exist")
        return data

    def _seat(self, runtime: Runtime, market: ManifestMarket) -> Optional[int]:
        data = self._data(runtime, market)
        dynamic = data[MARKET_FIXED_SIZE:]
        trader = bytes(spl.pk(market.trader))
        for slot in walk_tree(dynamic, _u32(data, _SEATS_ROOT)):
            if dynamic[slot + _NODE_HEADER : slot + _NODE_HEADER + 32] == trader:
                return slot
        return None

    def trader_slot(self, runtime, market):
        return self._seat(runtime, market)

    def trader_balance(self, runtime, market, token):
        slot = self._seat(runtime, market)
        if slot is None:
            return 0
        dynamic = self._data(runtime, market)[MARKET_FIXED_SIZE:]
        return _u64(dynamic, slot + (_SEAT_BASE if token == Token.BASE else _SEAT_QUOTE))

    def resting_orders(self, runtime, market, side=None):
        data = self._data(runtime, market)
        dynamic = data[MARKET_FIXED_SIZE:]
        seat = self._seat(runtime, market)
        roots = []
        if side in (None, Side.BID):
            roots.append(_u32(data, _BIDS_ROOT))
        if side in (None, Side.ASK):
            roots.append(_u32(data, _ASKS_ROOT))

        orders = []
        for root in roots:
            for slot in walk_tree(dynamic, root):
                if _u32(dynamic, slot + _ORDER_TRADER) != seat:
                    continue
                price_lo, price_hi = struct.unpack_from("<QQ", dynamic, slot + _NODE_HEADER)
                orders.append(
                    RestingOrder(
                        sequence_number=_u64(dynamic, slot + _ORDER_SEQUENCE),
                        slot=slot,
                        side=Side.BID if dynamic[slot + _ORDER_IS_BID] else Side.ASK,
                        price=price_lo | (price_hi << 64),
                        size=_u64(dynamic, slot + _ORDER_BASE_ATOMS),
                        trader_slot=seat,
                    )
                )
        return orders

