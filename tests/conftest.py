"""
conftest.py - Shared pytest fixtures for synthledger tests

Provides common fixtures used across unit, functional and top-level tests:
- A wired market (engine, feed, scripted tokens) at T0
- Standalone components (registry, converter, ledger, health engine)
- Funded accounts with open positions

Hypothesis tests build their own market per example via tests.fakes.
"""

import pytest

from synthledger import (
    AssetRegistry, PriceConverter, PositionLedger, HealthFactorEngine,
    LiquidationCoordinator, StaticPriceFeed,
)

from tests.fakes import T0, ETH_PRICE, BTC_PRICE, build_market, wad


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def registry():
    return AssetRegistry(["WETH", "WBTC"], ["ETH/USD", "BTC/USD"])


@pytest.fixture
def feed():
    return StaticPriceFeed({"ETH/USD": ETH_PRICE, "BTC/USD": BTC_PRICE}, updated_at=T0)


@pytest.fixture
def converter(registry, feed):
    return PriceConverter(registry, feed, clock=lambda: T0)


@pytest.fixture
def position_ledger():
    return PositionLedger()


@pytest.fixture
def health(position_ledger, converter):
    return HealthFactorEngine(position_ledger, converter)


@pytest.fixture
def coordinator(position_ledger, health, converter):
    return LiquidationCoordinator(position_ledger, health, converter)


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def market():
    """Fresh engine over WETH and WBTC, quiet."""
    return build_market()


@pytest.fixture
def engine(market):
    return market.engine


@pytest.fixture
def alice_position(market):
    """alice: 10 WETH deposited ($20000), 5000 minted -> health factor 2.0."""
    market.open_position("alice", "WETH", wad(10), wad(5000))
    return market


@pytest.fixture
def underwater_market(market):
    """
    alice: 10 WETH, 10000 minted (health factor exactly 1.0 at $2000).
    liam:  20 WETH, 10000 minted, holding 10000 SYN approved for the engine.
    ETH then drops to $1800 -> alice at 0.9, liam at 1.8.
    """
    market.open_position("alice", "WETH", wad(10), wad(10000))
    market.open_position("liam", "WETH", wad(20), wad(10000))
    market.approve_synthetic("liam", wad(10000))
    market.set_eth_price(1800)
    return market
