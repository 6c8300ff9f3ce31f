"""
core.py - Core types, constants and errors for the synthetic-asset engine

This module provides the foundational pieces every other module builds on:
1. Fixed-point constants: PRECISION, feed scaling, liquidation parameters
2. Exceptions: EngineError and one subclass per failure kind
3. Immutable data structures: AssetConfig, PriceQuote, Position, EngineEvent
4. Protocols: PriceFeed, CollateralToken, SyntheticToken (collaborator seams)
5. Helpers: require_positive, to_wad, from_wad

All amounts are Python ints in 18-decimal fixed point ("wad"). Integer
division truncates toward zero; every quantity handled by the engine is
non-negative, so floor division and truncation coincide.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN, InvalidOperation, localcontext
from typing import (
    Dict, Mapping, Optional, Any, Protocol, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point unit shared by USD values, debt and collateral amounts.
PRECISION = 10 ** 18

# Price feeds quote with 8 fractional digits; scaling them by 10**10 brings
# them onto the 18-digit ledger unit.
FEED_DECIMALS = 8
ADDITIONAL_FEED_PRECISION = 10 ** (18 - FEED_DECIMALS)

# Percentage of collateral value counted toward solvency (50 => 200% overcollateralized).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# Extra collateral percentage paid to a liquidator on top of the covered debt.
LIQUIDATION_BONUS = 10

MIN_HEALTH_FACTOR = PRECISION

# Health factor reported for debt-free accounts (no division is performed).
MAX_HEALTH_FACTOR = 2 ** 256 - 1

# Quotes older than this are treated as unavailable.
ORACLE_TIMEOUT = timedelta(hours=3)

# Default custody account of the engine on the token collaborators.
ENGINE_ACCOUNT = "engine"

# Event kinds (strings, not enum, matching the unit-type constants style).
EVENT_COLLATERAL_DEPOSITED = "COLLATERAL_DEPOSITED"
EVENT_COLLATERAL_REDEEMED = "COLLATERAL_REDEEMED"
EVENT_SYNTHETIC_MINTED = "SYNTHETIC_MINTED"
EVENT_SYNTHETIC_BURNED = "SYNTHETIC_BURNED"
EVENT_LIQUIDATED = "LIQUIDATED"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset id to a fixed-point amount held by one account.
CollateralMap = Dict[str, int]

# Mapping from asset id to the amount the engine holds in custody.
CustodyMap = Mapping[str, int]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine-related errors."""
    pass


class ConfigurationMismatch(EngineError):
    """Raised when construction-time configuration is inconsistent."""
    pass


class AmountMustBePositive(EngineError):
    """Raised when an amount argument is zero or negative."""

    def __init__(self, amount: int, name: str = "amount"):
        self.amount = amount
        self.name = name
        super().__init__(f"{name} must be positive, got {amount}")


class AssetNotSupported(EngineError):
    """Raised when an operation names an asset that is not registered."""

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"Asset {asset_id!r} is not supported")


class PriceUnavailable(EngineError):
    """Raised when the price feed returns a non-positive, malformed or stale quote."""
    pass


class TransferFailed(EngineError):
    """Base class for collaborator token transfers that report failure."""
    pass


class CollateralTransferFailed(TransferFailed):
    """Raised when a collateral token transfer or transfer_from reports failure."""
    pass


class SyntheticTransferFailed(TransferFailed):
    """Raised when pulling or burning the synthetic token fails."""
    pass


class MintFailed(EngineError):
    """Raised when the synthetic token declines to mint."""
    pass


class InsufficientCollateral(EngineError):
    """Raised when a collateral debit exceeds the stored balance."""

    def __init__(self, account: str, asset_id: str, requested: int, available: int):
        self.account = account
        self.asset_id = asset_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"{account} holds {available} of {asset_id}, cannot debit {requested}"
        )


class InsufficientDebt(EngineError):
    """Raised when a debt debit exceeds the recorded debt."""

    def __init__(self, account: str, requested: int, available: int):
        self.account = account
        self.requested = requested
        self.available = available
        super().__init__(
            f"{account} owes {available}, cannot retire {requested}"
        )


class HealthFactorBroken(EngineError):
    """Raised when an account would end an operation below the minimum health factor."""

    def __init__(self, account: str, actual: int, minimum: int):
        self.account = account
        self.actual = actual
        self.minimum = minimum
        super().__init__(
            f"Health factor of {account} broken: {actual} < {minimum}"
        )


class HealthFactorAlreadySafe(EngineError):
    """Raised when liquidation is attempted on a solvent account."""

    def __init__(self, account: str, actual: int, minimum: int):
        self.account = account
        self.actual = actual
        self.minimum = minimum
        super().__init__(
            f"Health factor of {account} is {actual} >= {minimum}, nothing to liquidate"
        )


class LiquidationDidNotImprove(EngineError):
    """Raised when a liquidation leaves the target below the minimum health factor."""

    def __init__(self, account: str, before: int, after: int, minimum: int):
        self.account = account
        self.before = before
        self.after = after
        self.minimum = minimum
        super().__init__(
            f"Liquidation of {account} did not restore solvency: "
            f"{before} -> {after} (minimum {minimum})"
        )


class ReentrantCall(EngineError):
    """Raised when a state-mutating operation is entered while another is active."""

    def __init__(self, operation: str, active: str):
        self.operation = operation
        self.active = active
        super().__init__(
            f"Re-entrant call to {operation} while {active} is in progress"
        )


class Unauthorized(EngineError):
    """Raised by the synthetic token when mint/burn is attempted without the minter credential."""
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class EngineParameters:
    """
    Immutable risk parameters fixed at engine construction.

    The defaults are the protocol constants; the dataclass exists so that a
    deployment can be described in one value and validated once.

    Attributes:
        liquidation_threshold: Percent of collateral value counted toward solvency.
        liquidation_bonus: Percent of seized collateral paid on top as incentive.
        min_health_factor: Minimum solvent health factor (fixed point).
        oracle_timeout: Maximum quote age; None disables the recency check.
    """
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    min_health_factor: int = MIN_HEALTH_FACTOR
    oracle_timeout: Optional[timedelta] = ORACLE_TIMEOUT

    def __post_init__(self):
        if not 0 < self.liquidation_threshold <= LIQUIDATION_PRECISION:
            raise ConfigurationMismatch(
                f"liquidation_threshold must be in (0, {LIQUIDATION_PRECISION}], "
                f"got {self.liquidation_threshold}"
            )
        if not 0 <= self.liquidation_bonus < LIQUIDATION_PRECISION:
            raise ConfigurationMismatch(
                f"liquidation_bonus must be in [0, {LIQUIDATION_PRECISION}), "
                f"got {self.liquidation_bonus}"
            )
        if self.min_health_factor <= 0:
            raise ConfigurationMismatch(
                f"min_health_factor must be positive, got {self.min_health_factor}"
            )
        if self.oracle_timeout is not None and self.oracle_timeout <= timedelta(0):
            raise ConfigurationMismatch(
                f"oracle_timeout must be positive, got {self.oracle_timeout}"
            )


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetConfig:
    """An approved collateral asset and the price source that values it."""
    asset_id: str
    price_source_id: str

    def __post_init__(self):
        if not self.asset_id or not self.asset_id.strip():
            raise ValueError("asset_id cannot be empty")
        if not self.price_source_id or not self.price_source_id.strip():
            raise ValueError("price_source_id cannot be empty")


@dataclass(frozen=True, slots=True)
class PriceQuote:
    """
    A single quote from a price feed.

    Attributes:
        price: USD price per whole asset unit with FEED_DECIMALS fractional digits.
        updated_at: When the feed last updated this quote.
    """
    price: int
    updated_at: datetime


@dataclass(frozen=True, slots=True)
class Position:
    """Read-only snapshot of one account's collateral balances and debt."""
    account: str
    collateral: Mapping[str, int]
    debt: int

    def collateral_of(self, asset_id: str) -> int:
        return self.collateral.get(asset_id, 0)

    @property
    def is_empty(self) -> bool:
        return self.debt == 0 and not any(self.collateral.values())


@dataclass(frozen=True, slots=True)
class AccountInformation:
    """Debt and USD collateral value of an account, both fixed point."""
    debt: int
    collateral_value_usd: int


@dataclass(frozen=True, slots=True)
class EngineEvent:
    """
    Immutable audit record of a committed engine operation.

    Attributes:
        sequence: Monotonic commit counter within one engine.
        kind: One of the EVENT_* constants.
        account: Account whose position changed.
        asset_id: Collateral asset involved, if any.
        amount: Fixed-point amount moved.
        timestamp: Engine logical time at commit.
        details: Extra context (e.g. liquidator, redeemed-to account).
    """
    sequence: int
    kind: str
    account: str
    asset_id: Optional[str]
    amount: int
    timestamp: datetime
    details: Mapping[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        asset = f" {self.asset_id}" if self.asset_id else ""
        return f"EngineEvent(#{self.sequence} {self.kind} {self.account}{asset} {self.amount})"


class MinterCredential:
    """
    Opaque capability proving the right to mint and burn a synthetic token.

    Issued exactly once by the token's grant_minter(); compared by identity,
    so it cannot be forged by constructing another instance.
    """
    __slots__ = ("holder", "token_name")

    def __init__(self, holder: str, token_name: str):
        self.holder = holder
        self.token_name = token_name

    def __repr__(self) -> str:
        return f"MinterCredential({self.token_name} -> {self.holder})"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceFeed(Protocol):
    """
    Price oracle collaborator.

    latest_quote() returns the most recent quote for a price source. The
    engine rejects non-positive prices and quotes older than its timeout.
    """

    def latest_quote(self, price_source_id: str) -> PriceQuote:
        ...


@runtime_checkable
class CollateralToken(Protocol):
    """
    Collateral token collaborator.

    Transfers report success with a bool; the engine treats False exactly
    like a raised failure and aborts the enclosing operation.
    """

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        ...

    def transfer_from(self, spender: str, source: str, to: str, amount: int) -> bool:
        ...


@runtime_checkable
class SyntheticToken(CollateralToken, Protocol):
    """
    Synthetic token collaborator with credential-gated supply changes.

    grant_minter() hands out the single MinterCredential; mint() and burn()
    reject any other credential with Unauthorized.
    """

    def grant_minter(self, holder: str) -> MinterCredential:
        ...

    def mint(self, credential: MinterCredential, to: str, amount: int) -> bool:
        ...

    def burn(self, credential: MinterCredential, amount: int) -> None:
        ...


@runtime_checkable
class AllowanceRefund(Protocol):
    """
    Optional token capability used when a pull is compensated.

    refund_allowance() gives back allowance that a transfer_from consumed,
    so a reverted operation leaves the owner's approval as it found it.
    Tokens without it keep the reduced allowance.
    """

    def refund_allowance(self, owner: str, spender: str, amount: int) -> None:
        ...


# ============================================================================
# HELPERS
# ============================================================================

def require_positive(amount: int, name: str = "amount") -> int:
    """
    Guard check for amount arguments.

    Raises:
        TypeError: if amount is not an int (bool is rejected too)
        AmountMustBePositive: if amount <= 0
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"{name} must be an int in fixed point, got {type(amount).__name__}")
    if amount <= 0:
        raise AmountMustBePositive(amount, name)
    return amount


def to_wad(value: Any) -> int:
    """
    Convert a human-readable decimal amount to 18-decimal fixed point.

    Digits beyond the 18th are truncated toward zero.

    Example:
        to_wad("1.5") == 1_500_000_000_000_000_000
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value * PRECISION
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Cannot convert {value!r} to fixed point")
    if not d.is_finite():
        raise ValueError(f"Cannot convert non-finite {value!r} to fixed point")
    return int((d * PRECISION).to_integral_value(rounding=ROUND_DOWN))


def from_wad(amount: int) -> Decimal:
    """Convert an 18-decimal fixed-point int back to a Decimal for display."""
    with localcontext() as ctx:
        ctx.prec = 96
        return Decimal(amount) / Decimal(PRECISION)


def to_feed_price(value: Any) -> int:
    """Convert a human-readable USD price to the feed's 8-decimal representation."""
    d = value if isinstance(value, Decimal) else Decimal(str(value))
    return int((d * 10 ** FEED_DECIMALS).to_integral_value(rounding=ROUND_DOWN))

