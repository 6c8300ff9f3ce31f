"""
test_positions.py - Unit tests for PositionLedger

Tests:
- Credit/debit of collateral and debt
- Over-debits fail without mutation
- Holder index and totals
- snapshot/restore/clone
- verify_conservation report
"""

import pytest

from synthledger import (
    PositionLedger, Position,
    AmountMustBePositive, InsufficientCollateral, InsufficientDebt,
)


class TestCollateralBookkeeping:
    """credit_collateral / debit_collateral."""

    def test_unknown_account_is_zero(self, position_ledger):
        assert position_ledger.collateral_balance("nobody", "WETH") == 0
        assert position_ledger.debt_of("nobody") == 0
        assert not position_ledger.has_position("nobody")

    def test_credit_accumulates(self, position_ledger):
        assert position_ledger.credit_collateral("alice", "WETH", 5) == 5
        assert position_ledger.credit_collateral("alice", "WETH", 7) == 12
        assert position_ledger.collateral_balance("alice", "WETH") == 12

    def test_debit(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        assert position_ledger.debit_collateral("alice", "WETH", 4) == 6

    def test_over_debit_leaves_state(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        before = position_ledger.snapshot()
        with pytest.raises(InsufficientCollateral) as exc:
            position_ledger.debit_collateral("alice", "WETH", 11)
        assert exc.value.requested == 11
        assert exc.value.available == 10
        assert position_ledger.snapshot() == before

    def test_debit_other_asset_fails(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        with pytest.raises(InsufficientCollateral):
            position_ledger.debit_collateral("alice", "WBTC", 1)

    @pytest.mark.parametrize("amount", [0, -3])
    def test_non_positive_amounts(self, position_ledger, amount):
        with pytest.raises(AmountMustBePositive):
            position_ledger.credit_collateral("alice", "WETH", amount)
        with pytest.raises(AmountMustBePositive):
            position_ledger.debit_collateral("alice", "WETH", amount)
        assert not position_ledger.has_position("alice")

    def test_redeem_everything_keeps_zero_entry(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        position_ledger.debit_collateral("alice", "WETH", 10)
        assert position_ledger.has_position("alice")
        assert position_ledger.position("alice") == Position("alice", {"WETH": 0}, 0)


class TestDebtBookkeeping:
    """credit_debt / debit_debt."""

    def test_credit_and_debit(self, position_ledger):
        position_ledger.credit_debt("alice", 100)
        position_ledger.credit_debt("alice", 50)
        assert position_ledger.debit_debt("alice", 30) == 120
        assert position_ledger.debt_of("alice") == 120

    def test_over_debit(self, position_ledger):
        position_ledger.credit_debt("alice", 100)
        with pytest.raises(InsufficientDebt):
            position_ledger.debit_debt("alice", 101)
        assert position_ledger.debt_of("alice") == 100

    def test_debit_without_debt(self, position_ledger):
        with pytest.raises(InsufficientDebt):
            position_ledger.debit_debt("alice", 1)

    def test_total_debt(self, position_ledger):
        position_ledger.credit_debt("alice", 100)
        position_ledger.credit_debt("bob", 20)
        assert position_ledger.total_debt() == 120


class TestIndexAndTotals:
    """Holder index, totals, account listing."""

    def test_holders_tracks_non_zero(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        position_ledger.credit_collateral("bob", "WETH", 5)
        position_ledger.debit_collateral("bob", "WETH", 5)
        assert position_ledger.holders("WETH") == {"alice": 10}

    def test_total_collateral(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        position_ledger.credit_collateral("bob", "WETH", 5)
        position_ledger.credit_collateral("bob", "WBTC", 1)
        assert position_ledger.total_collateral("WETH") == 15
        assert position_ledger.total_collateral("WBTC") == 1
        assert position_ledger.total_collateral("DOGE") == 0

    def test_accounts_sorted(self, position_ledger):
        position_ledger.credit_debt("zoe", 1)
        position_ledger.credit_collateral("alice", "WETH", 1)
        assert position_ledger.accounts() == ["alice", "zoe"]

    def test_collateral_of_is_read_only(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 1)
        view = position_ledger.collateral_of("alice")
        with pytest.raises(TypeError):
            view["WETH"] = 100


class TestRollback:
    """snapshot / restore / clone."""

    def test_restore(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        position_ledger.credit_debt("alice", 3)
        snap = position_ledger.snapshot()

        position_ledger.credit_collateral("bob", "WBTC", 4)
        position_ledger.debit_collateral("alice", "WETH", 10)
        position_ledger.debit_debt("alice", 3)

        position_ledger.restore(snap)
        assert position_ledger.snapshot() == snap
        assert position_ledger.holders("WETH") == {"alice": 10}
        assert position_ledger.holders("WBTC") == {}
        assert not position_ledger.has_position("bob")

    def test_clone_is_independent(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        cloned = position_ledger.clone()
        assert cloned == position_ledger
        cloned.credit_collateral("alice", "WETH", 1)
        assert cloned != position_ledger
        assert position_ledger.collateral_balance("alice", "WETH") == 10

    def test_unhashable(self, position_ledger):
        with pytest.raises(TypeError):
            hash(position_ledger)


class TestConservationReport:
    """verify_conservation against custody."""

    def test_valid(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        result = position_ledger.verify_conservation({"WETH": 10, "WBTC": 0})
        assert result['valid']
        assert result['totals'] == {"WETH": 10, "WBTC": 0}
        assert result['discrepancies'] == []

    def test_discrepancy(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", 10)
        result = position_ledger.verify_conservation({"WETH": 12})
        assert not result['valid']
        assert result['discrepancies'] == [
            {'asset': "WETH", 'ledger': 10, 'custody': 12, 'difference': 2}
        ]
