"""
test_health.py - Unit tests for health factor computation

Tests:
- Pure functions: calculate_health_factor, calculate_max_debt
- HealthFactorEngine: valuation, health factor, projections, assertions
"""

import pytest

from synthledger import (
    AssetRegistry, PriceConverter, PositionLedger, HealthFactorEngine, EngineParameters,
    AccountInformation, calculate_health_factor, calculate_max_debt,
    AssetNotSupported, HealthFactorBroken, PriceUnavailable,
    PRECISION, MAX_HEALTH_FACTOR,
)

from tests.fakes import T0, ScriptedPriceFeed, wad


class TestPureFunctions:
    """calculate_* functions with explicit inputs."""

    def test_zero_debt_is_max(self):
        assert calculate_health_factor(0, 0) == MAX_HEALTH_FACTOR
        assert calculate_health_factor(0, wad(1000)) == MAX_HEALTH_FACTOR

    def test_health_factor(self):
        assert calculate_health_factor(wad(1500), wad(4000)) == 1_333_333_333_333_333_333

    def test_exactly_two_x_is_one(self):
        assert calculate_health_factor(wad(100), wad(200)) == PRECISION

    def test_custom_threshold(self):
        assert calculate_health_factor(wad(100), wad(200), liquidation_threshold=80) == 16 * PRECISION // 10

    def test_max_debt(self):
        assert calculate_max_debt(wad(4000)) == wad(2000)
        assert calculate_max_debt(0) == 0

    def test_max_debt_is_solvent(self):
        value = 12_345_678_901_234_567_891
        debt = calculate_max_debt(value)
        assert calculate_health_factor(debt, value) >= PRECISION


class TestHealthFactorEngine:
    """Queries over a ledger and converter."""

    def test_collateral_value(self, position_ledger, health):
        position_ledger.credit_collateral("alice", "WETH", wad(1))
        position_ledger.credit_collateral("alice", "WBTC", PRECISION // 10)
        assert health.collateral_value_usd("alice") == wad(5000)

    def test_account_information(self, position_ledger, health):
        position_ledger.credit_collateral("alice", "WETH", wad(2))
        position_ledger.credit_debt("alice", wad(1500))
        assert health.account_information("alice") == AccountInformation(wad(1500), wad(4000))

    def test_health_factor(self, position_ledger, health):
        position_ledger.credit_collateral("alice", "WETH", wad(2))
        position_ledger.credit_debt("alice", wad(1500))
        assert health.health_factor("alice") == 1_333_333_333_333_333_333
        assert health.is_healthy("alice")

    def test_unknown_account(self, health):
        assert health.health_factor("nobody") == MAX_HEALTH_FACTOR
        assert health.collateral_value_usd("nobody") == 0

    def test_debt_free_ignores_feed(self):
        registry = AssetRegistry(["WETH"], ["ETH/USD"])
        feed = ScriptedPriceFeed({"ETH/USD": RuntimeError("down")})
        ledger = PositionLedger()
        ledger.credit_collateral("alice", "WETH", wad(1))
        health = HealthFactorEngine(ledger, PriceConverter(registry, feed, clock=lambda: T0))

        assert health.health_factor("alice") == MAX_HEALTH_FACTOR
        assert feed.requests == []

        ledger.credit_debt("alice", 1)
        with pytest.raises(PriceUnavailable):
            health.health_factor("alice")

    def test_custom_threshold(self, position_ledger, converter):
        health = HealthFactorEngine(position_ledger, converter, EngineParameters(liquidation_threshold=80))
        position_ledger.credit_collateral("alice", "WETH", wad(1))
        position_ledger.credit_debt("alice", wad(1600))
        assert health.health_factor("alice") == PRECISION


class TestProjections:
    """health_factor_after and max_mintable."""

    @pytest.fixture
    def alice(self, position_ledger):
        position_ledger.credit_collateral("alice", "WETH", wad(2))
        position_ledger.credit_debt("alice", wad(1500))
        return "alice"

    def test_after_more_debt(self, health, alice):
        assert health.health_factor_after(alice, debt_delta=wad(500)) == PRECISION

    def test_after_more_collateral(self, health, alice):
        hf = health.health_factor_after(alice, collateral_deltas={"WBTC": PRECISION // 10})
        assert hf == wad(3500) * PRECISION // wad(1500)

    def test_projection_does_not_mutate(self, position_ledger, health, alice):
        before = position_ledger.snapshot()
        health.health_factor_after(alice, debt_delta=wad(1), collateral_deltas={"WETH": -1})
        assert position_ledger.snapshot() == before

    def test_repaying_everything(self, health, alice):
        assert health.health_factor_after(alice, debt_delta=-wad(1500)) == MAX_HEALTH_FACTOR

    def test_negative_projection(self, health, alice):
        with pytest.raises(ValueError):
            health.health_factor_after(alice, debt_delta=-wad(1501))
        with pytest.raises(ValueError):
            health.health_factor_after(alice, collateral_deltas={"WETH": -wad(3)})

    def test_unsupported_asset(self, health, alice):
        with pytest.raises(AssetNotSupported):
            health.health_factor_after(alice, collateral_deltas={"DOGE": 1})

    def test_max_mintable(self, position_ledger, health, alice):
        room = health.max_mintable(alice)
        assert room == wad(500)
        position_ledger.credit_debt(alice, room)
        assert health.health_factor(alice) == PRECISION

    def test_max_mintable_never_negative(self, position_ledger, health, alice):
        position_ledger.credit_debt(alice, wad(1000))
        assert health.max_mintable(alice) == 0


class TestAssertHealthy:
    """assert_healthy raises with actual and minimum."""

    def test_healthy_returns_factor(self, position_ledger, health):
        position_ledger.credit_collateral("alice", "WETH", wad(1))
        position_ledger.credit_debt("alice", wad(1000))
        assert health.assert_healthy("alice") == PRECISION

    def test_broken(self, position_ledger, health):
        position_ledger.credit_collateral("alice", "WETH", wad(1))
        position_ledger.credit_debt("alice", wad(1000) + 1)
        with pytest.raises(HealthFactorBroken) as exc:
            health.assert_healthy("alice")
        assert exc.value.account == "alice"
        assert exc.value.actual < PRECISION
        assert exc.value.minimum == PRECISION
