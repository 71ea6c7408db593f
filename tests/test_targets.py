"""Instruction encodings and state readers of the two program targets.

Skipped when the Solana SDK (solders, solana-py, litesvm) is not installed.
No program image is needed: a recording runtime hands out deterministic
addresses and serves hand-built market accounts.
"""

import hashlib
import struct
import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

pytest.importorskip("solders")
pytest.importorskip("spl.token.instructions")
pytest.importorskip("litesvm")

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from cubench.benchmark.models import Hints, InstructionKind
from cubench.runtime.base import Runtime
from cubench.targets import available_targets, get_adapter
from cubench.targets import manifest as mf
from cubench.targets import phoenix as px
from cubench.targets.base import OrderSpec, RestingOrder, Side, Token


class RecordingRuntime(Runtime):
    """Addresses and account data only; executes nothing."""

    def __init__(self):
        self.accounts = {}
        self.airdrops = []

    @property
    def payer(self):
        return self.signer("payer")

    def signer(self, label):
        return str(Keypair.from_seed(hashlib.sha256(f"test:{label}".encode()).digest()).pubkey())

    def simulate(self, instructions):
        raise NotImplementedError

    def send(self, instructions):
        raise NotImplementedError

    def account_data(self, address):
        return self.accounts.get(address)

    def airdrop(self, address, lamports):
        self.airdrops.append((address, lamports))

    def rent_exempt_balance(self, data_len):
        return data_len


@pytest.fixture
def runtime():
    return RecordingRuntime()


def test_registry_resolves_both_targets():
    assert available_targets() == ["manifest", "phoenix"]
    assert isinstance(get_adapter("manifest"), mf.ManifestAdapter)
    assert isinstance(get_adapter("phoenix"), px.PhoenixAdapter)


class TestManifestAdapter:
    @pytest.fixture
    def setup(self, runtime):
        return mf.ManifestAdapter().setup_market(runtime)

    def test_setup_steps(self, setup):
        assert [s.name for s in setup.steps] == [
            "create_quote_mint",
            "create_base_mint",
            "create_market",
            "create_trader_accounts",
            "claim_seat",
            "fund_trader",
            "deposit_base",
            "deposit_quote",
        ]
        create_market = setup.steps[2].instructions[1]
        assert create_market.data == b"\x00"
        assert create_market.program_id == mf.PROGRAM_ID

    def test_expand_adds_max_blocks(self, setup):
        ix = mf.ManifestAdapter().build_expand(setup.market)
        assert ix.data == bytes([5]) + struct.pack("<Q", 128)

    def test_deposit_carries_trader_hint(self, setup):
        adapter = mf.ManifestAdapter()
        hinted = adapter.build_deposit(setup.market, 10, Hints(trader_index=160))
        assert hinted.data == bytes([2]) + struct.pack("<Q", 10) + b"\x01" + struct.pack("<I", 160)
        plain = adapter.build_deposit(setup.market, 10, Hints())
        assert plain.data == bytes([2]) + struct.pack("<Q", 10) + b"\x00"
        assert hinted.signers == (setup.market.trader,)

    def test_place_encodes_one_ask(self, setup):
        ix = mf.ManifestAdapter().build_place(setup.market, [OrderSpec(Side.ASK, 15, mf.ONE_SOL)], Hints())
        expected = (
            bytes([6])
            + b"\x00"
            + struct.pack("<I", 0)
            + struct.pack("<I", 1)
            + struct.pack("<QIbBIB", mf.ONE_SOL, 15, 0, 0, 0, 0)
        )
        assert ix.data == expected

    def test_cancel_uses_order_hints(self, setup, runtime):
        order = RestingOrder(sequence_number=7, slot=240, side=Side.ASK, price=15, size=1, trader_slot=0)
        ix = mf.ManifestAdapter().build_cancel(setup.market, [order], Hints(trader_index=0, order_indices={7: 240}))
        expected = (
            bytes([6])
            + b"\x01"
            + struct.pack("<I", 0)
            + struct.pack("<I", 1)
            + struct.pack("<Q", 7)
            + b"\x01"
            + struct.pack("<I", 240)
            + struct.pack("<I", 0)
        )
        assert ix.data == expected

    def test_swap_pays_exact_quote(self, setup):
        adapter = mf.ManifestAdapter()
        resting = adapter.swap_seed_orders(3)
        ix = adapter.build_swap(setup.market, resting, Hints())
        cost = (10 + 11 + 12) * mf.ONE_SOL
        assert ix.data == bytes([4]) + struct.pack("<QQ", cost, 0) + b"\x00\x01"
        funding = adapter.fund_taker(setup.market, resting)
        assert len(funding) == 1
        assert struct.unpack_from("<Q", funding[0].data, 1)[0] == cost

    def test_walk_tree_in_order(self):
        nil = mf.NIL
        dynamic = bytearray(3 * mf.MARKET_BLOCK_SIZE)
        # root at 80 with children 0 (left) and 160 (right)
        struct.pack_into("<II", dynamic, 80, 0, 160)
        struct.pack_into("<II", dynamic, 0, nil, nil)
        struct.pack_into("<II", dynamic, 160, nil, nil)
        assert list(mf.walk_tree(bytes(dynamic), 80)) == [0, 80, 160]
        assert list(mf.walk_tree(bytes(dynamic), nil)) == []

    def test_walk_tree_rejects_cycles(self):
        dynamic = bytearray(mf.MARKET_BLOCK_SIZE)
        struct.pack_into("<II", dynamic, 0, mf.NIL, 0)
        with pytest.raises(ValueError):
            list(mf.walk_tree(bytes(dynamic), 0))


class TestPhoenixAdapter:
    @pytest.fixture
    def setup(self, runtime):
        return px.PhoenixAdapter().setup_market(runtime)

    def test_market_layout(self):
        assert px.BIDS_OFFSET == 880
        assert px.ASKS_OFFSET == 263_056
        assert px.TRADERS_OFFSET == 525_232
        assert px.MARKET_SIZE == 543_696

    def test_fresh_only(self):
        adapter = px.PhoenixAdapter()
        assert not adapter.supports_expand
        assert not adapter.supports_hints
        assert InstructionKind.SWAP in adapter.supported_kinds
        assert InstructionKind.BATCH_PLACE_CANCEL in adapter.supported_kinds
        assert InstructionKind.BATCH_PLACE_CANCEL not in mf.ManifestAdapter().supported_kinds
        assert [o.price for o in adapter.place_cancel_orders(3)] == [2000, 2010, 2020]

    def test_setup_steps(self, setup, runtime):
        assert [s.name for s in setup.steps] == [
            "create_base_mint",
            "create_quote_mint",
            "create_fee_account",
            "initialize_market",
            "create_maker_accounts",
            "fund_maker",
            "request_seat",
            "approve_seat",
            "deposit",
        ]
        create, init, activate = setup.steps[3].instructions
        assert init.data[0] == 100
        assert len(init.data) == 1 + 6 * 8 + 2 + 32 + 1
        assert struct.unpack_from("<QQQ", init.data, 1) == (4096, 4096, 128)
        assert activate.data == bytes([103, 1])
        assert setup.steps[7].instructions[0].data == bytes([104, 1])
        assert len(runtime.airdrops) == 2

    def test_single_order_is_post_only_limit(self, setup):
        adapter = px.PhoenixAdapter()
        ix = adapter.build_place(setup.market, [adapter.single_order()], Hints(), batched=False)
        assert ix.name == "PlaceLimitOrder"
        assert ix.data[:3] == bytes([2, 0, 1])
        assert struct.unpack_from("<QQ", ix.data, 3) == (1600, 10)
        assert len(ix.data) == 3 + 8 + 8 + 16 + 1 + 1 + 1 + 1 + 1
        assert ix.data[35] == 1  # reject post-only

    def test_batch_place_splits_sides(self, setup):
        adapter = px.PhoenixAdapter()
        ix = adapter.build_place(setup.market, adapter.batch_orders(2), Hints())
        assert ix.name == "PlaceMultiplePostOnlyOrders"
        assert ix.data[0] == 16
        assert struct.unpack_from("<I", ix.data, 1)[0] == 0
        assert struct.unpack_from("<I", ix.data, 5)[0] == 2
        assert struct.unpack_from("<QQ", ix.data, 9) == (2000, 10)
        assert ix.data[-2:] == b"\x00\x01"

    def test_cancel_all(self, setup):
        ix = px.PhoenixAdapter().build_cancel(setup.market, [], Hints())
        assert ix.data == bytes([7])
        assert len(ix.accounts) == 4

    def test_withdraw_all(self, setup):
        ix = px.PhoenixAdapter().build_withdraw(setup.market, None, Hints())
        assert ix.data == bytes([12, 0, 0])

    def test_swap_is_ioc_buy_for_every_lot(self, setup):
        adapter = px.PhoenixAdapter()
        resting = adapter.swap_seed_orders(3)
        ix = adapter.build_swap(setup.market, resting, Hints())
        assert ix.data[:3] == bytes([0, 2, 0])
        assert ix.data[3] == 1
        assert struct.unpack_from("<QQ", ix.data, 4) == (1120 + 100, 30)
        assert ix.signers == (setup.market.taker,)

    def test_taker_funded_with_exact_quote(self, setup):
        adapter = px.PhoenixAdapter()
        resting = adapter.swap_seed_orders(2)
        assert adapter.quote_cost(resting) == (1100 + 1110) * 10 * 10
        funding = adapter.fund_taker(setup.market, resting)
        assert [ix.name for ix in funding] == ["create_associated_token_account", "mint_to"]

    def test_reads_maker_state(self, setup, runtime):
        adapter = px.PhoenixAdapter()
        m = setup.market
        data = bytearray(px.MARKET_SIZE)

        # maker is trader node 1 and the root of the traders tree
        struct.pack_into("<Q", data, px.TRADERS_OFFSET, 1)
        node = px.TRADERS_OFFSET + 32
        data[node + 16 : node + 48] = bytes(Pubkey.from_string(m.maker))
        struct.pack_into("<QQQQ", data, node + 48, 0, 777, 30, 500_000)

        # two asks: node 1 (seq 1) is the root, node 2 (seq 2) its right child
        struct.pack_into("<Q", data, px.ASKS_OFFSET, 1)
        ask1 = px.ASKS_OFFSET + 32
        ask2 = ask1 + px.ORDER_NODE_SIZE
        struct.pack_into("<IIII", data, ask1, 0, 2, 0, 0)
        struct.pack_into("<QQQQ", data, ask1 + 16, 1100, 1, 1, 10)
        struct.pack_into("<IIII", data, ask2, 0, 0, 1, 1)
        struct.pack_into("<QQQQ", data, ask2 + 16, 1110, 2, 1, 20)

        runtime.accounts[m.market] = bytes(data)
        assert adapter.trader_slot(runtime, m) == 1
        assert adapter.trader_balance(runtime, m, Token.BASE) == 500_000
        assert adapter.trader_balance(runtime, m, Token.QUOTE) == 777
        orders = adapter.resting_orders(runtime, m)
        assert [(o.sequence_number, o.price, o.size, o.side) for o in orders] == [
            (1, 1100, 10, Side.ASK),
            (2, 1110, 20, Side.ASK),
        ]
        assert adapter.resting_orders(runtime, m, Side.BID) == []
        assert adapter.book_capacity(runtime, m) == 4096
