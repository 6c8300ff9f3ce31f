"""
synthledger - Over-collateralized Synthetic Asset Engine

Users lock approved collateral, mint a USD-pegged synthetic unit against
it, and can be liquidated by third parties once their health factor drops
below the minimum.

Usage:
    from datetime import datetime
    from synthledger import (
        SyntheticEngine, Token, MintableToken, StaticPriceFeed, PRECISION,
    )

    t0 = datetime(2025, 1, 1)
    weth, synth = Token("WETH"), MintableToken("SYN")
    feed = StaticPriceFeed({"ETH/USD": 2000_00000000}, updated_at=t0)
    engine = SyntheticEngine(["WETH"], ["ETH/USD"], synth, feed,
                             {"WETH": weth}, initial_time=t0)

    weth.mint_to("alice", 10 * PRECISION)
    weth.approve("alice", engine.engine_account, 10 * PRECISION)
    engine.deposit_collateral_and_mint("alice", "WETH", 10 * PRECISION, 5000 * PRECISION)
    engine.health_factor("alice")    # 2 * PRECISION
"""

# Core types
from .core import (
    AssetConfig,
    PriceQuote,
    Position,
    AccountInformation,
    EngineEvent,
    EngineParameters,
    MinterCredential,
    PriceFeed,
    CollateralToken,
    SyntheticToken,
    AllowanceRefund,
    EngineError,
    ConfigurationMismatch,
    AmountMustBePositive,
    AssetNotSupported,
    PriceUnavailable,
    TransferFailed,
    CollateralTransferFailed,
    SyntheticTransferFailed,
    MintFailed,
    InsufficientCollateral,
    InsufficientDebt,
    HealthFactorBroken,
    HealthFactorAlreadySafe,
    LiquidationDidNotImprove,
    ReentrantCall,
    Unauthorized,
    require_positive,
    to_wad,
    from_wad,
    to_feed_price,
    PRECISION,
    FEED_DECIMALS,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ORACLE_TIMEOUT,
    ENGINE_ACCOUNT,
    EVENT_COLLATERAL_DEPOSITED,
    EVENT_COLLATERAL_REDEEMED,
    EVENT_SYNTHETIC_MINTED,
    EVENT_SYNTHETIC_BURNED,
    EVENT_LIQUIDATED,
)

# Components
from .registry import AssetRegistry
from .pricing import PriceConverter, check_quote
from .positions import PositionLedger, LedgerSnapshot
from .health import HealthFactorEngine, calculate_health_factor, calculate_max_debt
from .liquidation import (
    LiquidationCoordinator,
    LiquidationPlan,
    LiquidationOutcome,
    calculate_liquidation_bonus,
)
from .engine import SyntheticEngine, ReentrancyGuard, InteractionJournal

# Collaborators
from .price_feeds import StaticPriceFeed, TimeSeriesPriceFeed
from .tokens import Token, MintableToken

__all__ = [
    # Types
    'AssetConfig', 'PriceQuote', 'Position', 'AccountInformation', 'EngineEvent',
    'EngineParameters', 'MinterCredential',
    # Protocols
    'PriceFeed', 'CollateralToken', 'SyntheticToken', 'AllowanceRefund',
    # Errors
    'EngineError', 'ConfigurationMismatch', 'AmountMustBePositive', 'AssetNotSupported',
    'PriceUnavailable', 'TransferFailed', 'CollateralTransferFailed',
    'SyntheticTransferFailed', 'MintFailed', 'InsufficientCollateral', 'InsufficientDebt',
    'HealthFactorBroken', 'HealthFactorAlreadySafe', 'LiquidationDidNotImprove',
    'ReentrantCall', 'Unauthorized',
    # Helpers
    'require_positive', 'to_wad', 'from_wad', 'to_feed_price',
    # Constants
    'PRECISION', 'FEED_DECIMALS', 'ADDITIONAL_FEED_PRECISION',
    'LIQUIDATION_THRESHOLD', 'LIQUIDATION_PRECISION', 'LIQUIDATION_BONUS',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR', 'ORACLE_TIMEOUT', 'ENGINE_ACCOUNT',
    'EVENT_COLLATERAL_DEPOSITED', 'EVENT_COLLATERAL_REDEEMED',
    'EVENT_SYNTHETIC_MINTED', 'EVENT_SYNTHETIC_BURNED', 'EVENT_LIQUIDATED',
    # Registry & pricing
    'AssetRegistry', 'PriceConverter', 'check_quote',
    # Positions
    'PositionLedger', 'LedgerSnapshot',
    # Health - Pure Function Architecture
    'HealthFactorEngine', 'calculate_health_factor', 'calculate_max_debt',
    # Liquidation
    'LiquidationCoordinator', 'LiquidationPlan', 'LiquidationOutcome',
    'calculate_liquidation_bonus',
    # Engine
    'SyntheticEngine', 'ReentrancyGuard', 'InteractionJournal',
    # Collaborators
    'StaticPriceFeed', 'TimeSeriesPriceFeed', 'Token', 'MintableToken',
]

__version__ = '1.0.0'
