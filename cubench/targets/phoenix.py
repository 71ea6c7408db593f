"""Phoenix-style order book target.

The market account is allocated at full size up front: a 576-byte header
followed by fixed-capacity red-black trees for bids, asks and seats. There is
no expand instruction, so only the Fresh variant exists, and no instruction
accepts slot hints.

Tree layout (per tree): root u64, padding u64, allocator size u64, bump
index u32, free-list head u32, then the node array. Node addresses are
1-based; 0 is the sentinel. Each node starts with four u32 registers (left,
right, parent, color) followed by its key and value.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, List, Optional, Sequence

from cubench.benchmark.models import KIND_ORDER, Hints
from cubench.runtime.base import AccountRef, Instruction, Runtime
from cubench.targets import spl
from cubench.targets.base import MarketSetup, OrderSpec, ProgramAdapter, RestingOrder, SetupStep, Side, Token
from cubench.targets.borsh import U64_MAX, BorshWriter

PROGRAM_ID = "PhoeNiXZ8ByJGLkxNfZRnkUfjvmuYqLR89jjFHGqdXY"

BASE_DECIMALS = 9
QUOTE_DECIMALS = 6
BASE_UNIT = 10**BASE_DECIMALS
QUOTE_UNIT = 10**QUOTE_DECIMALS

NUM_QUOTE_LOTS_PER_QUOTE_UNIT = 100_000
NUM_BASE_LOTS_PER_BASE_UNIT = 1_000
TICK_SIZE = 1_000
QUOTE_LOT_SIZE = QUOTE_UNIT // NUM_QUOTE_LOTS_PER_QUOTE_UNIT

BOOK_SIZE = 4096
NUM_SEATS = 128

SELF_TRADE_CANCEL_PROVIDE = 1
FAIL_ON_INSUFFICIENT_FUNDS_AND_FAIL_ON_CROSS = 1
MARKET_STATUS_ACTIVE = 1
SEAT_APPROVED = 1

HEADER_SIZE = 576
_FIFO_PREFIX = 256 + 6 * 8
_TREE_HEADER = 32
ORDER_NODE_SIZE = 16 + 16 + 32
TRADER_NODE_SIZE = 16 + 32 + 96


def _tree_size(node_size: int, capacity: int) -> int:
    return _TREE_HEADER + node_size * capacity


BIDS_OFFSET = HEADER_SIZE + _FIFO_PREFIX
ASKS_OFFSET = BIDS_OFFSET + _tree_size(ORDER_NODE_SIZE, BOOK_SIZE)
TRADERS_OFFSET = ASKS_OFFSET + _tree_size(ORDER_NODE_SIZE, BOOK_SIZE)
MARKET_SIZE = TRADERS_OFFSET + _tree_size(TRADER_NODE_SIZE, NUM_SEATS)

SENTINEL = 0


class PhoenixInstruction(IntEnum):
    SWAP = 0
    PLACE_LIMIT_ORDER = 2
    CANCEL_ALL_ORDERS_WITH_FREE_FUNDS = 7
    WITHDRAW_FUNDS = 12
    DEPOSIT_FUNDS = 13
    PLACE_MULTIPLE_POST_ONLY_ORDERS = 16
    INITIALIZE_MARKET = 100
    CHANGE_MARKET_STATUS = 103
    CHANGE_SEAT_STATUS = 104
    REQUEST_SEAT_AUTHORIZED = 105


@dataclass(frozen=True)
class PhoenixMarket:
    market: str
    base_mint: str
    quote_mint: str
    base_vault: str
    quote_vault: str
    log_authority: str
    admin: str
    maker: str
    maker_seat: str
    maker_base: str
    maker_quote: str
    taker: str
    taker_base: str
    taker_quote: str
    mint_authority: str


def _u64(data: bytes, offset: int) -> int:
    return struct.unpack_from("<Q", data, offset)[0]


def _u32(data: bytes, offset: int) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def walk_tree(data: bytes, tree_offset: int, node_size: int, capacity: int) -> Iterator[int]:
    """In-order node addresses of the tree at ``tree_offset``."""

    def node_offset(addr: int) -> int:
        return tree_offset + _TREE_HEADER + (addr - 1) * node_size

    stack: List[int] = []
    node = _u64(data, tree_offset)
    visited = 0
    while stack or node != SENTINEL:
        while node != SENTINEL:
            stack.append(node)
            node = _u32(data, node_offset(node))
        node = stack.pop()
        visited += 1
        if visited > capacity:
            raise ValueError("market tree is cyclic or corrupt")
        yield node
        node = _u32(data, node_offset(node) + 4)


def _order_node(tree_offset: int, addr: int) -> int:
    return tree_offset + _TREE_HEADER + (addr - 1) * ORDER_NODE_SIZE


def _trader_node(addr: int) -> int:
    return TRADERS_OFFSET + _TREE_HEADER + (addr - 1) * TRADER_NODE_SIZE


class PhoenixAdapter(ProgramAdapter):
    name = "phoenix"
    program_id = PROGRAM_ID
    image_name = "phoenix"
    supports_expand = False
    supports_hints = False
    supported_kinds = KIND_ORDER

    deposit_amount = 10 * NUM_BASE_LOTS_PER_BASE_UNIT
    withdraw_amount = None

    # -------------------------------------------------------------- fixture
    def setup_market(self, runtime: Runtime) -> MarketSetup:
        admin = runtime.payer
        authority = runtime.signer("phoenix:mint-authority")
        base_mint = runtime.signer("phoenix:base-mint")
        quote_mint = runtime.signer("phoenix:quote-mint")
        market = runtime.signer("phoenix:market")
        maker = runtime.signer("phoenix:maker")
        runtime.airdrop(authority, 100 * BASE_UNIT)
        runtime.airdrop(maker, 100 * BASE_UNIT)

        m = PhoenixMarket(
            market=market,
            base_mint=base_mint,
            quote_mint=quote_mint,
            base_vault=spl.find_pda([b"vault", bytes(spl.pk(market)), bytes(spl.pk(base_mint))], PROGRAM_ID),
            quote_vault=spl.find_pda([b"vault", bytes(spl.pk(market)), bytes(spl.pk(quote_mint))], PROGRAM_ID),
            log_authority=spl.find_pda([b"log"], PROGRAM_ID),
            admin=admin,
            maker=maker,
            maker_seat=spl.find_pda([b"seat", bytes(spl.pk(market)), bytes(spl.pk(maker))], PROGRAM_ID),
            maker_base=spl.associated_token_address(maker, base_mint),
            maker_quote=spl.associated_token_address(maker, quote_mint),
            taker=admin,
            taker_base=spl.associated_token_address(admin, base_mint),
            taker_quote=spl.associated_token_address(admin, quote_mint),
            mint_authority=authority,
        )
        steps = [
            SetupStep("create_base_mint", spl.create_mint(runtime, admin, base_mint, authority, BASE_DECIMALS)),
            SetupStep("create_quote_mint", spl.create_mint(runtime, admin, quote_mint, authority, QUOTE_DECIMALS)),
            # The fee collector needs a quote account even with a zero fee.
            SetupStep("create_fee_account", [spl.create_ata(admin, admin, quote_mint)]),
            SetupStep(
                "initialize_market",
                [
                    spl.create_account_ix(admin, market, runtime.rent_exempt_balance(MARKET_SIZE), MARKET_SIZE, PROGRAM_ID),
                    self._initialize_market(m),
                    self._admin_ix(
                        PhoenixInstruction.CHANGE_MARKET_STATUS, m, [], bytes([MARKET_STATUS_ACTIVE])
                    ),
                ],
            ),
            SetupStep(
                "create_maker_accounts",
                [spl.create_ata(admin, maker, base_mint), spl.create_ata(admin, maker, quote_mint)],
            ),
            SetupStep(
                "fund_maker",
                [
                    spl.mint_to(base_mint, m.maker_base, authority, 1_000_000 * BASE_UNIT),
                    spl.mint_to(quote_mint, m.maker_quote, authority, 1_000_000 * QUOTE_UNIT),
                ],
            ),
            SetupStep("request_seat", [self._request_seat(m)]),
            SetupStep(
                "approve_seat",
                [
                    self._admin_ix(
                        PhoenixInstruction.CHANGE_SEAT_STATUS,
                        m,
                        [AccountRef.writable(m.maker_seat)],
                        bytes([SEAT_APPROVED]),
                    )
                ],
            ),
            SetupStep(
                "deposit",
                [self._deposit(m, 500 * NUM_BASE_LOTS_PER_BASE_UNIT, 500_000 * NUM_QUOTE_LOTS_PER_QUOTE_UNIT)],
            ),
        ]
        return MarketSetup(market=m, steps=steps)

    def _prefix(self, m: PhoenixMarket) -> List[AccountRef]:
        return [AccountRef.readonly(PROGRAM_ID), AccountRef.readonly(m.log_authority), AccountRef.writable(m.market)]

    def _initialize_market(self, m: PhoenixMarket) -> Instruction:
        data = (
            BorshWriter(bytes([PhoenixInstruction.INITIALIZE_MARKET]))
            .u64(BOOK_SIZE)
            .u64(BOOK_SIZE)
            .u64(NUM_SEATS)
            .u64(NUM_QUOTE_LOTS_PER_QUOTE_UNIT)
            .u64(TICK_SIZE)
            .u64(NUM_BASE_LOTS_PER_BASE_UNIT)
            .u16(0)
            .fixed(bytes(spl.pk(m.admin)), 32)
        )
        data.option(None, data.u32)
        accounts = self._prefix(m) + [
            AccountRef.writable(m.admin, signer=True),
            AccountRef.readonly(m.base_mint),
            AccountRef.readonly(m.quote_mint),
            AccountRef.writable(m.base_vault),
            AccountRef.writable(m.quote_vault),
            AccountRef.readonly(spl.SYSTEM_PROGRAM),
            AccountRef.readonly(spl.TOKEN_PROGRAM),
        ]
        return Instruction(PROGRAM_ID, tuple(accounts), data.build(), name="InitializeMarket")

    def _admin_ix(self, ix: PhoenixInstruction, m: PhoenixMarket, extra: List[AccountRef], data: bytes) -> Instruction:
        accounts = self._prefix(m) + [AccountRef.readonly(m.admin, signer=True)] + extra
        return Instruction(PROGRAM_ID, tuple(accounts), bytes([ix]) + data, name=ix.name)

    def _request_seat(self, m: PhoenixMarket) -> Instruction:
        return self._admin_ix(
            PhoenixInstruction.REQUEST_SEAT_AUTHORIZED,
            m,
            [
                AccountRef.writable(m.admin, signer=True),
                AccountRef.readonly(m.maker),
                AccountRef.writable(m.maker_seat),
                AccountRef.readonly(spl.SYSTEM_PROGRAM),
            ],
            b"",
        )

    def book_capacity(self, runtime: Runtime, market: PhoenixMarket) -> int:
        return BOOK_SIZE

    # --------------------------------------------------------- instructions
    def _trading_accounts(self, m: PhoenixMarket, trader: str, seat: bool) -> tuple:
        base, quote = (m.maker_base, m.maker_quote) if trader == m.maker else (m.taker_base, m.taker_quote)
        accounts = self._prefix(m) + [AccountRef.readonly(trader, signer=True)]
        if seat:
            accounts.append(AccountRef.readonly(m.maker_seat))
        accounts += [
            AccountRef.writable(base),
            AccountRef.writable(quote),
            AccountRef.writable(m.base_vault),
            AccountRef.writable(m.quote_vault),
            AccountRef.readonly(spl.TOKEN_PROGRAM),
        ]
        return tuple(accounts)

    def _deposit(self, m: PhoenixMarket, base_lots: int, quote_lots: int) -> Instruction:
        data = BorshWriter(bytes([PhoenixInstruction.DEPOSIT_FUNDS])).u64(quote_lots).u64(base_lots)
        return Instruction(PROGRAM_ID, self._trading_accounts(m, m.maker, seat=True), data.build(), name="DepositFunds")

    def build_deposit(self, market, amount, hints):
        return self._deposit(market, amount, 0)

    def build_withdraw(self, market, amount, hints):
        # None on both sides withdraws every free lot.
        data = BorshWriter(bytes([PhoenixInstruction.WITHDRAW_FUNDS]))
        data.option(None, data.u64)
        data.option(amount, data.u64)
        return Instruction(
            PROGRAM_ID, self._trading_accounts(market, market.maker, seat=False), data.build(), name="WithdrawFunds"
        )

    @staticmethod
    def _post_only(order: OrderSpec) -> bytes:
        data = (
            BorshWriter(bytes([PhoenixInstruction.PLACE_LIMIT_ORDER]))
            .u8(0)
            .u8(0 if order.side == Side.BID else 1)
            .u64(order.price)
            .u64(order.size)
            .u128(0)
            .bool(True)
            .bool(False)
        )
        data.option(None, data.u64)
        data.option(None, data.u64)
        data.bool(False)
        return data.build()

    def build_place(self, market, orders, hints, batched=True):
        accounts = self._trading_accounts(market, market.maker, seat=True)
        if not batched:
            (order,) = orders
            return Instruction(PROGRAM_ID, accounts, self._post_only(order), name="PlaceLimitOrder")

        def write_condensed(w: BorshWriter, order: OrderSpec) -> None:
            w.u64(order.price).u64(order.size)
            w.option(None, w.u64)
            w.option(None, w.u64)

        data = BorshWriter(bytes([PhoenixInstruction.PLACE_MULTIPLE_POST_ONLY_ORDERS]))
        data.vec([o for o in orders if o.side == Side.BID], write_condensed)
        data.vec([o for o in orders if o.side == Side.ASK], write_condensed)
        data.option(None, data.u128)
        data.u8(FAIL_ON_INSUFFICIENT_FUNDS_AND_FAIL_ON_CROSS)
        return Instruction(PROGRAM_ID, accounts, data.build(), name="PlaceMultiplePostOnlyOrders")

    def build_cancel(self, market, orders, hints):
        # Cancels everything the maker has resting, which is exactly the seeded set.
        accounts = self._prefix(market) + [AccountRef.readonly(market.maker, signer=True)]
        return Instruction(
            PROGRAM_ID,
            tuple(accounts),
            bytes([PhoenixInstruction.CANCEL_ALL_ORDERS_WITH_FREE_FUNDS]),
            name="CancelAllOrdersWithFreeFunds",
        )

    @staticmethod
    def quote_cost(resting: Sequence[OrderSpec]) -> int:
        """Quote atoms needed to take every order in ``resting``."""
        quote_lots_per_base_lot_per_tick = TICK_SIZE // NUM_BASE_LOTS_PER_BASE_UNIT
        lots = sum(o.price * o.size * quote_lots_per_base_lot_per_tick for o in resting)
        return lots * QUOTE_LOT_SIZE

    def build_swap(self, market, resting, hints):
        # IOC buy priced above the highest ask, sized to the total resting lots.
        limit = max(o.price for o in resting) + 100
        data = (
            BorshWriter(bytes([PhoenixInstruction.SWAP]))
            .u8(2)
            .u8(0)
        )
        data.option(limit, data.u64)
        data.u64(sum(o.size for o in resting)).u64(0).u64(0).u64(0)
        data.u8(SELF_TRADE_CANCEL_PROVIDE)
        data.option(None, data.u64)
        data.u128(0).bool(False)
        data.option(None, data.u64)
        data.option(None, data.u64)
        return Instruction(
            PROGRAM_ID, self._trading_accounts(market, market.taker, seat=False), data.build(), name="Swap"
        )

    def fund_taker(self, market, resting):
        return [
            spl.create_ata(market.admin, market.taker, market.base_mint),
            spl.mint_to(market.quote_mint, market.taker_quote, market.mint_authority, self.quote_cost(resting)),
        ]

    # ------------------------------------------------------------ scenarios
    def single_order(self) -> OrderSpec:
        return OrderSpec(Side.ASK, 1600, 10)

    def batch_orders(self, n: int) -> List[OrderSpec]:
        return [OrderSpec(Side.ASK, 2000 + 100 * i, 10) for i in range(n)]

    def cancel_seed_orders(self, n: int) -> List[OrderSpec]:
        return [OrderSpec(Side.ASK, 1100 + 100 * i, 10) for i in range(n)]

    def swap_seed_orders(self, n: int) -> List[OrderSpec]:
        return [OrderSpec(Side.ASK, 1100 + 10 * i, 10) for i in range(n)]

    def place_cancel_orders(self, n: int) -> List[OrderSpec]:
        return [OrderSpec(Side.ASK, 2000 + 10 * i, 10) for i in range(n)]

    # -------------------------------------------------------- state readers
    @staticmethod
    def _data(runtime: Runtime, market: PhoenixMarket) -> bytes:
        data = runtime.account_data(market.market)
        if data is None:
            raise LookupError(f"market account {market.market} does not exist")
        return data

    def _maker_node(self, data: bytes, market: PhoenixMarket) -> Optional[int]:
        maker = bytes(spl.pk(market.maker))
        for addr in walk_tree(data, TRADERS_OFFSET, TRADER_NODE_SIZE, NUM_SEATS):
            offset = _trader_node(addr)
            if data[offset + 16 : offset + 48] == maker:
                return addr
        return None

    def trader_slot(self, runtime, market):
        return self._maker_node(self._data(runtime, market), market)

    def trader_balance(self, runtime, market, token):
        data = self._data(runtime, market)
        addr = self._maker_node(data, market)
        if addr is None:
            return 0
        # TraderState: quote locked, quote free, base locked, base free.
        return _u64(data, _trader_node(addr) + (72 if token == Token.BASE else 56))

    def resting_orders(self, runtime, market, side=None):
        data = self._data(runtime, market)
        maker = self._maker_node(data, market)
        books = []
        if side in (None, Side.BID):
            books.append((Side.BID, BIDS_OFFSET))
        if side in (None, Side.ASK):
            books.append((Side.ASK, ASKS_OFFSET))

        orders = []
        for book_side, tree_offset in books:
            for addr in walk_tree(data, tree_offset, ORDER_NODE_SIZE, BOOK_SIZE):
                offset = _order_node(tree_offset, addr)
                trader_index = _u64(data, offset + 32)
                if trader_index != maker:
                    continue
                sequence_number = _u64(data, offset + 24)
                if book_side == Side.BID:
                    # Bid ids store the complement so better bids sort first.
                    sequence_number ^= U64_MAX
                orders.append(
                    RestingOrder(
                        sequence_number=sequence_number,
                        slot=addr,
                        side=book_side,
                        price=_u64(data, offset + 16),
                        size=_u64(data, offset + 40),
                        trader_slot=trader_index,
                    )
                )
        return orders
