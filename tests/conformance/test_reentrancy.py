"""
Reentrancy Conformance Tests

INVARIANT: No state-mutating operation can be entered while another one
is in progress on the same engine.

    ∀ collaborator callback c during operation op:
        c calls any mutating operation ⟹ ReentrantCall,
        and op fails with every effect rolled back

Read-only queries stay available during callbacks.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from synthledger import ReentrantCall

from tests.fakes import (
    OPERATIONS, build_market, fund_accounts, apply_operation, observable_state, wad,
)


class TestReentrancyProperties:
    """Property-based reentrancy tests."""

    @given(st.sampled_from(OPERATIONS))
    @settings(max_examples=50, deadline=None)
    def test_nested_call_rejected_and_rolled_back(self, nested):
        """
        PROPERTY: A collateral token that re-enters the engine from
        transfer_from makes the outer deposit fail with ReentrantCall.
        """
        market = build_market()
        fund_accounts(market)
        seen = []

        def reenter(method, args):
            if method == "transfer_from":
                try:
                    apply_operation(market, (nested, "bob", "alice", "WETH", wad(1), wad(1)))
                except ReentrantCall as e:
                    seen.append(e)
                    raise

        market.weth.hook = reenter
        before = observable_state(market)

        with pytest.raises(ReentrantCall):
            market.engine.deposit_collateral("alice", "WETH", wad(1))

        assert len(seen) == 1
        assert seen[0].active == "deposit_collateral"
        assert observable_state(market) == before
        assert market.engine.active_operation is None


class TestReentrancyScenarios:
    """Specific callback paths."""

    def test_reentry_from_mint(self):
        market = build_market()
        market.fund("alice", "WETH", wad(10))

        def reenter(method, args):
            if method == "mint":
                market.engine.redeem_collateral("alice", "WETH", wad(10))

        market.synth.hook = reenter
        with pytest.raises(ReentrantCall):
            market.engine.deposit_collateral_and_mint("alice", "WETH", wad(10), wad(1000))

        assert market.weth.balance_of("alice") == wad(10)
        assert market.engine.collateral_balance("alice", "WETH") == 0

    def test_queries_allowed_during_callback(self):
        market = build_market()
        market.fund("alice", "WETH", wad(10))
        observed = []

        def peek(method, args):
            if method == "transfer_from":
                observed.append(market.engine.collateral_balance("alice", "WETH"))
                observed.append(market.engine.active_operation)

        market.weth.hook = peek
        market.engine.deposit_collateral("alice", "WETH", wad(10))
        # effects are applied before the collaborator is called
        assert observed == [wad(10), "deposit_collateral"]

    def test_engine_usable_after_rejection(self):
        market = build_market()
        market.fund("alice", "WETH", wad(10))
        market.weth.hook = lambda method, args: market.engine.mint("alice", wad(1))
        with pytest.raises(ReentrantCall):
            market.engine.deposit_collateral("alice", "WETH", wad(10))

        market.weth.hook = None
        market.engine.deposit_collateral("alice", "WETH", wad(10))
        assert market.engine.collateral_balance("alice", "WETH") == wad(10)
