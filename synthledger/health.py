"""
health.py - Health factor computation over the position ledger

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take all inputs explicitly as parameters
   - No ledger, no price feed, trivially stress-testable

2. HealthFactorEngine:
   - Reads PositionLedger + PriceConverter once per query
   - Delegates the arithmetic to the calculate_* functions
   - Holds no mutable state of its own

Key Formulas (integer, truncating):
    collateral_value = sum(to_usd(asset, balance) for asset in registry order)
    adjusted         = collateral_value * LIQUIDATION_THRESHOLD // 100
    health_factor    = adjusted * PRECISION // debt        (debt > 0)
    health_factor    = MAX_HEALTH_FACTOR                    (debt == 0)

With a 50% threshold an account must hold at least 2x its debt in
collateral value to stay at or above MIN_HEALTH_FACTOR (1.0).
"""

from __future__ import annotations
from typing import Mapping, Optional

from .core import (
    AccountInformation, EngineParameters, HealthFactorBroken,
    PRECISION, LIQUIDATION_PRECISION, LIQUIDATION_THRESHOLD,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
)
from .positions import PositionLedger
from .pricing import PriceConverter


# ============================================================================
# PURE CALCULATION FUNCTIONS - No ledger, all inputs explicit
# ============================================================================

def calculate_health_factor(
    debt: int,
    collateral_value_usd: int,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
) -> int:
    """
    Health factor of a position from its debt and USD collateral value.

    PURE FUNCTION - All inputs explicit, no hidden state.

    A debt-free position can never be insolvent, so debt == 0 returns
    MAX_HEALTH_FACTOR instead of dividing by zero.

    Args:
        debt: Minted debt (18 decimals)
        collateral_value_usd: Collateral value in USD (18 decimals)
        liquidation_threshold: Percent of collateral counted toward solvency

    Returns:
        Health factor in 18-decimal fixed point (1.0 == PRECISION)
    """
    if debt == 0:
        return MAX_HEALTH_FACTOR
    adjusted = collateral_value_usd * liquidation_threshold // LIQUIDATION_PRECISION
    return adjusted * PRECISION // debt


def calculate_max_debt(
    collateral_value_usd: int,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
    min_health_factor: int = MIN_HEALTH_FACTOR,
) -> int:
    """
    Largest debt a collateral value can carry while staying solvent.

    PURE FUNCTION. Inverse of calculate_health_factor at min_health_factor:
    any debt <= the result yields a health factor >= min_health_factor.
    """
    adjusted = collateral_value_usd * liquidation_threshold // LIQUIDATION_PRECISION
    return adjusted * PRECISION // min_health_factor


# ============================================================================
# HEALTH FACTOR ENGINE
# ============================================================================

class HealthFactorEngine:
    """
    Solvency queries over the position ledger.

    Every debt-increasing or collateral-decreasing engine operation ends
    with assert_healthy() on the affected account.

    Args:
        ledger: Position ledger to read
        converter: Price converter used for collateral valuation
        parameters: Risk parameters (threshold, minimum health factor)
    """

    def __init__(
        self,
        ledger: PositionLedger,
        converter: PriceConverter,
        parameters: Optional[EngineParameters] = None,
    ):
        self.ledger = ledger
        self.converter = converter
        self.parameters = parameters or EngineParameters()

    @property
    def min_health_factor(self) -> int:
        return self.parameters.min_health_factor

    def collateral_value_usd(self, account: str) -> int:
        """
        USD value of all collateral held by account.

        Walks every registered asset in registry order; assets with a zero
        balance contribute zero.
        """
        total = 0
        for asset_id in self.converter.registry.list_assets():
            balance = self.ledger.collateral_balance(account, asset_id)
            total += self.converter.to_usd(asset_id, balance)
        return total

    def account_information(self, account: str) -> AccountInformation:
        """Raw debt and USD collateral value of account."""
        return AccountInformation(
            debt=self.ledger.debt_of(account),
            collateral_value_usd=self.collateral_value_usd(account),
        )

    def health_factor(self, account: str) -> int:
        # debt-free accounts are solvent whatever the feed says
        if self.ledger.debt_of(account) == 0:
            return MAX_HEALTH_FACTOR
        info = self.account_information(account)
        return calculate_health_factor(
            info.debt, info.collateral_value_usd, self.parameters.liquidation_threshold
        )

    def health_factor_after(
        self,
        account: str,
        debt_delta: int = 0,
        collateral_deltas: Optional[Mapping[str, int]] = None,
    ) -> int:
        """
        Projected health factor if the given changes were applied.

        Read-only what-if: the ledger is not touched. Deltas are signed;
        a projection that would make a balance negative raises ValueError.

        Example:
            # would minting another 500 break alice?
            engine.health_factor_after("alice", debt_delta=500 * PRECISION)
        """
        collateral_deltas = collateral_deltas or {}
        for asset_id in collateral_deltas:
            self.converter.registry.require_supported(asset_id)

        debt = self.ledger.debt_of(account) + debt_delta
        if debt < 0:
            raise ValueError(f"Projected debt of {account} is negative: {debt}")

        value = 0
        for asset_id in self.converter.registry.list_assets():
            balance = self.ledger.collateral_balance(account, asset_id)
            balance += collateral_deltas.get(asset_id, 0)
            if balance < 0:
                raise ValueError(
                    f"Projected {asset_id} balance of {account} is negative: {balance}"
                )
            value += self.converter.to_usd(asset_id, balance)

        return calculate_health_factor(debt, value, self.parameters.liquidation_threshold)

    def max_mintable(self, account: str) -> int:
        """Additional debt account could mint right now without breaking its health factor."""
        info = self.account_information(account)
        capacity = calculate_max_debt(
            info.collateral_value_usd,
            self.parameters.liquidation_threshold,
            self.parameters.min_health_factor,
        )
        return max(0, capacity - info.debt)

    def is_healthy(self, account: str) -> bool:
        return self.health_factor(account) >= self.parameters.min_health_factor

    def assert_healthy(self, account: str) -> int:
        """
        Require account to be at or above the minimum health factor.

        Returns:
            The account's health factor

        Raises:
            HealthFactorBroken: With the actual and minimum health factor
        """
        actual = self.health_factor(account)
        if actual < self.parameters.min_health_factor:
            raise HealthFactorBroken(account, actual, self.parameters.min_health_factor)
        return actual
