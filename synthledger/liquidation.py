"""
liquidation.py - Seizing collateral from under-collateralized accounts

A liquidator repays part or all of an unsafe account's debt in the
synthetic unit and receives the equivalent collateral plus a bonus.

Flow:
    1. plan_liquidation(): pure checks and arithmetic, no mutation
       - debt_to_cover > 0, asset supported
       - target health factor must be below the minimum
       - base   = from_usd(asset, debt_to_cover)
       - bonus  = base * LIQUIDATION_BONUS // 100
       - seized = base + bonus
    2. apply(): ledger effects and post-conditions
       - debit seized collateral from the target (never clamped)
       - retire debt_to_cover from the target's debt
       - target must end at or above the minimum health factor
       - liquidator must remain healthy

The coordinator only touches the PositionLedger. The engine facade wraps
plan + apply in its atomic section and performs the token movements the
returned LiquidationOutcome describes.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from .core import (
    EngineParameters,
    HealthFactorAlreadySafe, LiquidationDidNotImprove,
    LIQUIDATION_PRECISION,
    require_positive,
)
from .health import HealthFactorEngine
from .positions import PositionLedger
from .pricing import PriceConverter


@dataclass(frozen=True, slots=True)
class LiquidationPlan:
    """
    Immutable result of the liquidation arithmetic, computed before any mutation.

    Attributes:
        asset_id: Collateral asset to seize
        target: Under-collateralized account
        liquidator: Account repaying the debt
        debt_to_cover: Debt retired (18 decimals, USD-denominated)
        base_amount: Collateral equal in value to debt_to_cover
        bonus_amount: Incentive on top of base_amount
        health_before: Target health factor before liquidation
    """
    asset_id: str
    target: str
    liquidator: str
    debt_to_cover: int
    base_amount: int
    bonus_amount: int
    health_before: int

    @property
    def total_seized(self) -> int:
        return self.base_amount + self.bonus_amount


@dataclass(frozen=True, slots=True)
class LiquidationOutcome:
    """Applied liquidation: the plan plus the target's resulting health factor."""
    plan: LiquidationPlan
    health_after: int

    @property
    def total_seized(self) -> int:
        return self.plan.total_seized


def calculate_liquidation_bonus(base_amount: int, bonus_percent: int) -> int:
    """
    Bonus collateral owed to a liquidator.

    PURE FUNCTION. Truncates toward zero.
    """
    return base_amount * bonus_percent // LIQUIDATION_PRECISION


class LiquidationCoordinator:
    """
    Orchestrates the ledger side of a liquidation.

    Args:
        ledger: Position ledger to mutate
        health: Health factor engine over the same ledger
        converter: Price converter for the debt -> collateral conversion
        parameters: Risk parameters (bonus, minimum health factor)
    """

    def __init__(
        self,
        ledger: PositionLedger,
        health: HealthFactorEngine,
        converter: PriceConverter,
        parameters: Optional[EngineParameters] = None,
    ):
        self.ledger = ledger
        self.health = health
        self.converter = converter
        self.parameters = parameters or EngineParameters()

    def plan_liquidation(
        self,
        asset_id: str,
        target: str,
        debt_to_cover: int,
        liquidator: str,
    ) -> LiquidationPlan:
        """
        Validate a liquidation request and compute its amounts.

        Raises:
            AmountMustBePositive: If debt_to_cover <= 0
            AssetNotSupported: If asset_id is not registered
            HealthFactorAlreadySafe: If the target is at or above the minimum
            PriceUnavailable: If the asset cannot be priced
        """
        require_positive(debt_to_cover, "debt_to_cover")
        self.converter.registry.require_supported(asset_id)

        minimum = self.parameters.min_health_factor
        health_before = self.health.health_factor(target)
        if health_before >= minimum:
            raise HealthFactorAlreadySafe(target, health_before, minimum)

        base_amount = self.converter.from_usd(asset_id, debt_to_cover)
        bonus_amount = calculate_liquidation_bonus(base_amount, self.parameters.liquidation_bonus)
        return LiquidationPlan(
            asset_id=asset_id,
            target=target,
            liquidator=liquidator,
            debt_to_cover=debt_to_cover,
            base_amount=base_amount,
            bonus_amount=bonus_amount,
            health_before=health_before,
        )

    def apply(self, plan: LiquidationPlan) -> LiquidationOutcome:
        """
        Apply a plan to the ledger and check the post-conditions.

        The ledger is left partially modified when this raises; callers
        restore their snapshot.

        Raises:
            InsufficientCollateral: If the target does not hold total_seized of the asset
            InsufficientDebt: If debt_to_cover exceeds the target's debt
            LiquidationDidNotImprove: If the target is still below the minimum
            HealthFactorBroken: If the liquidator ends up unhealthy
        """
        if plan.total_seized > 0:
            self.ledger.debit_collateral(plan.target, plan.asset_id, plan.total_seized)
        self.ledger.debit_debt(plan.target, plan.debt_to_cover)

        minimum = self.parameters.min_health_factor
        health_after = self.health.health_factor(plan.target)
        if health_after < minimum:
            raise LiquidationDidNotImprove(plan.target, plan.health_before, health_after, minimum)

        self.health.assert_healthy(plan.liquidator)
        return LiquidationOutcome(plan=plan, health_after=health_after)

    def liquidate(
        self,
        asset_id: str,
        target: str,
        debt_to_cover: int,
        liquidator: str,
    ) -> LiquidationOutcome:
        """Plan and apply in one call (ledger side only)."""
        plan = self.plan_liquidation(asset_id, target, debt_to_cover, liquidator)
        return self.apply(plan)
