"""
engine.py - Public operation surface of the synthetic-asset engine

SyntheticEngine composes the registry, price converter, position ledger,
health factor engine and liquidation coordinator, and drives the
collateral and synthetic token collaborators.

Every state-mutating operation follows the same discipline:
    1. Take the engine's ReentrancyGuard (nested entry -> ReentrantCall)
    2. Guard checks (positive amounts, supported asset) before any mutation
    3. Snapshot the PositionLedger
    4. Ledger effects, then health checks (checks-effects-interactions)
    5. Collaborator calls through an InteractionJournal; each successful
       call records its compensating action
    6. On any failure: restore the snapshot, unwind the journal in reverse,
       re-raise. On success: commit the pending audit events.

A failed operation therefore leaves the ledger identical to before the call
and the collaborators' balances where they started.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .core import (
    # Types
    AccountInformation, EngineEvent, EngineParameters, MinterCredential, Position,
    PriceFeed, CollateralToken, SyntheticToken, AllowanceRefund,
    # Constants
    ENGINE_ACCOUNT, PRECISION,
    EVENT_COLLATERAL_DEPOSITED, EVENT_COLLATERAL_REDEEMED,
    EVENT_SYNTHETIC_MINTED, EVENT_SYNTHETIC_BURNED, EVENT_LIQUIDATED,
    # Exceptions
    EngineError, ConfigurationMismatch, ReentrantCall,
    CollateralTransferFailed, SyntheticTransferFailed, MintFailed,
    # Helpers
    require_positive,
)
from .health import HealthFactorEngine, calculate_health_factor
from .liquidation import LiquidationCoordinator, LiquidationOutcome
from .positions import PositionLedger
from .pricing import PriceConverter
from .registry import AssetRegistry


# ============================================================================
# REENTRANCY GUARD
# ============================================================================

class ReentrancyGuard:
    """
    Per-engine mutual-exclusion flag for state-mutating entry points.

    Acquired on entry and released on every exit path. A nested acquisition
    (for example a token callback re-entering the engine) raises ReentrantCall.
    """

    __slots__ = ("_active",)

    def __init__(self):
        self._active: Optional[str] = None

    @property
    def active(self) -> Optional[str]:
        """Name of the operation holding the guard, or None."""
        return self._active

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        if self._active is not None:
            raise ReentrantCall(operation, self._active)
        self._active = operation
        try:
            yield
        finally:
            self._active = None


# ============================================================================
# INTERACTION JOURNAL
# ============================================================================

class InteractionJournal:
    """
    Compensating actions for collaborator calls made inside one operation.

    Each successful interaction records how to undo itself. unwind() runs
    the recorded actions newest first. An interaction with no undo must be
    the last one of its operation.
    """

    def __init__(self):
        self._undo: List[Tuple[str, Callable[[], None]]] = []

    def record(self, label: str, undo: Callable[[], None]) -> None:
        self._undo.append((label, undo))

    def unwind(self) -> None:
        while self._undo:
            _, undo = self._undo.pop()
            undo()

    @property
    def labels(self) -> List[str]:
        return [label for label, _ in self._undo]

    def __len__(self) -> int:
        return len(self._undo)


class _Transaction:
    """Working state of one in-flight operation: its journal and pending events."""

    __slots__ = ("operation", "journal", "events")

    def __init__(self, operation: str):
        self.operation = operation
        self.journal = InteractionJournal()
        self.events: List[Tuple[str, str, Optional[str], int, Dict[str, Any]]] = []

    def emit(self, kind: str, account: str, asset_id: Optional[str], amount: int, **details: Any) -> None:
        self.events.append((kind, account, asset_id, amount, details))


# ============================================================================
# ENGINE FACADE
# ============================================================================

class SyntheticEngine:
    """
    Over-collateralized synthetic-asset engine.

    Users deposit approved collateral, mint the synthetic unit against it,
    and must stay at or above the minimum health factor (collateral value
    at least twice the debt with the default 50% threshold). Unsafe
    accounts can be liquidated by anyone holding the synthetic unit.

    Thread Safety:
        Not thread-safe. Operations are strictly sequential; the reentrancy
        guard rejects nested state-mutating calls.

    Example:
        weth, synth = Token("WETH"), MintableToken("SYN")
        feed = StaticPriceFeed({"ETH/USD": 2000_00000000}, updated_at=t0)
        engine = SyntheticEngine(["WETH"], ["ETH/USD"], synth, feed,
                                 {"WETH": weth}, initial_time=t0)

        weth.mint_to("alice", 10 * PRECISION)
        weth.approve("alice", engine.engine_account, 10 * PRECISION)
        engine.deposit_collateral_and_mint("alice", "WETH", 10 * PRECISION, 5000 * PRECISION)
    """

    def __init__(
        self,
        asset_ids: Sequence[str],
        price_source_ids: Sequence[str],
        synthetic_token: SyntheticToken,
        price_feed: PriceFeed,
        collateral_tokens: Mapping[str, CollateralToken],
        engine_account: str = ENGINE_ACCOUNT,
        parameters: Optional[EngineParameters] = None,
        minter_credential: Optional[MinterCredential] = None,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Create an engine.

        Args:
            asset_ids: Ordered supported collateral asset ids
            price_source_ids: Price source per asset, same order and length
            synthetic_token: Synthetic token collaborator
            price_feed: Price oracle collaborator
            collateral_tokens: Collateral token per supported asset id
            engine_account: Account holding custody on the token collaborators
            parameters: Risk parameters (default: protocol constants)
            minter_credential: Pre-granted minter credential; if None the engine
                claims it from synthetic_token.grant_minter()
            initial_time: Starting logical time (default: 1970-01-01)
            verbose: Print committed and rejected operations (default: True)

        Raises:
            ConfigurationMismatch: On list length mismatch, or if the collateral
                tokens do not match the supported assets one to one
            Unauthorized: If the synthetic token's minter was already granted
        """
        if not engine_account or not engine_account.strip():
            raise ConfigurationMismatch("engine_account cannot be empty")

        self.parameters = parameters or EngineParameters()
        self.registry = AssetRegistry(asset_ids, price_source_ids)

        missing = [a for a in self.registry.list_assets() if a not in collateral_tokens]
        if missing:
            raise ConfigurationMismatch(f"No collateral token for {', '.join(missing)}")
        unknown = sorted(a for a in collateral_tokens if a not in self.registry)
        if unknown:
            raise ConfigurationMismatch(f"Collateral tokens for unsupported assets: {', '.join(unknown)}")

        self.engine_account = engine_account
        self.synthetic_token = synthetic_token
        self._collateral_tokens: Dict[str, CollateralToken] = {
            asset_id: collateral_tokens[asset_id] for asset_id in self.registry.list_assets()
        }
        self._credential = minter_credential or synthetic_token.grant_minter(engine_account)
        if self._credential.holder != engine_account:
            raise ConfigurationMismatch(
                f"Minter credential belongs to {self._credential.holder}, not {engine_account}"
            )

        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose

        self.converter = PriceConverter(
            self.registry, price_feed,
            clock=lambda: self._current_time,
            max_quote_age=self.parameters.oracle_timeout,
        )
        self.ledger = PositionLedger()
        self.health = HealthFactorEngine(self.ledger, self.converter, self.parameters)
        self.liquidations = LiquidationCoordinator(
            self.ledger, self.health, self.converter, self.parameters
        )

        self._guard = ReentrancyGuard()
        self.event_log: List[EngineEvent] = []
        # Monotonic sequence counter for committed events
        self._next_sequence: int = 0

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time, used for quote staleness and event stamps."""
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the engine's logical clock. Time only moves forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # STATE-MUTATING OPERATIONS
    # ========================================================================

    def deposit_collateral(self, caller: str, asset_id: str, amount: int) -> None:
        """
        Deposit amount of asset_id from caller into engine custody.

        The caller must have approved the engine account on the collateral token.

        Raises:
            AmountMustBePositive, AssetNotSupported, CollateralTransferFailed
        """
        with self._transaction("deposit_collateral") as tx:
            require_positive(amount)
            self.registry.require_supported(asset_id)

            self.ledger.credit_collateral(caller, asset_id, amount)
            self._pull_collateral(tx, caller, asset_id, amount)
            tx.emit(EVENT_COLLATERAL_DEPOSITED, caller, asset_id, amount)

    def mint(self, caller: str, amount: int) -> None:
        """
        Mint amount of the synthetic unit to caller against its collateral.

        Raises:
            AmountMustBePositive, HealthFactorBroken, MintFailed, PriceUnavailable
        """
        with self._transaction("mint") as tx:
            require_positive(amount)

            self.ledger.credit_debt(caller, amount)
            self.health.assert_healthy(caller)
            self._mint_synthetic(tx, caller, amount)
            tx.emit(EVENT_SYNTHETIC_MINTED, caller, None, amount)

    def redeem_collateral(self, caller: str, asset_id: str, amount: int) -> None:
        """
        Return amount of asset_id from custody to caller.

        Raises:
            AmountMustBePositive, AssetNotSupported, InsufficientCollateral,
            HealthFactorBroken, CollateralTransferFailed, PriceUnavailable
        """
        with self._transaction("redeem_collateral") as tx:
            require_positive(amount)
            self.registry.require_supported(asset_id)

            self.ledger.debit_collateral(caller, asset_id, amount)
            self.health.assert_healthy(caller)
            self._push_collateral(tx, caller, asset_id, amount)
            tx.emit(EVENT_COLLATERAL_REDEEMED, caller, asset_id, amount, to=caller)

    def burn(self, caller: str, amount: int) -> None:
        """
        Pull amount of the synthetic unit from caller, burn it and retire the debt.

        The caller must have approved the engine account on the synthetic token.

        Raises:
            AmountMustBePositive, InsufficientDebt, HealthFactorBroken,
            SyntheticTransferFailed
        """
        with self._transaction("burn") as tx:
            require_positive(amount)

            self.ledger.debit_debt(caller, amount)
            self.health.assert_healthy(caller)
            self._pull_synthetic(tx, caller, amount)
            self._burn_synthetic(tx, amount)
            tx.emit(EVENT_SYNTHETIC_BURNED, caller, None, amount, payer=caller)

    def deposit_collateral_and_mint(
        self,
        caller: str,
        asset_id: str,
        collateral_amount: int,
        mint_amount: int,
    ) -> None:
        """Deposit collateral then mint, as one atomic operation."""
        with self._transaction("deposit_collateral_and_mint") as tx:
            require_positive(collateral_amount, "collateral_amount")
            require_positive(mint_amount, "mint_amount")
            self.registry.require_supported(asset_id)

            self.ledger.credit_collateral(caller, asset_id, collateral_amount)
            self.ledger.credit_debt(caller, mint_amount)
            self.health.assert_healthy(caller)
            self._pull_collateral(tx, caller, asset_id, collateral_amount)
            self._mint_synthetic(tx, caller, mint_amount)
            tx.emit(EVENT_COLLATERAL_DEPOSITED, caller, asset_id, collateral_amount)
            tx.emit(EVENT_SYNTHETIC_MINTED, caller, None, mint_amount)

    def redeem_collateral_for_synthetic(
        self,
        caller: str,
        asset_id: str,
        collateral_amount: int,
        burn_amount: int,
    ) -> None:
        """Burn the synthetic unit then redeem collateral, as one atomic operation."""
        with self._transaction("redeem_collateral_for_synthetic") as tx:
            require_positive(collateral_amount, "collateral_amount")
            require_positive(burn_amount, "burn_amount")
            self.registry.require_supported(asset_id)

            self.ledger.debit_debt(caller, burn_amount)
            self.ledger.debit_collateral(caller, asset_id, collateral_amount)
            self.health.assert_healthy(caller)
            self._pull_synthetic(tx, caller, burn_amount)
            self._burn_synthetic(tx, burn_amount)
            self._push_collateral(tx, caller, asset_id, collateral_amount)
            tx.emit(EVENT_SYNTHETIC_BURNED, caller, None, burn_amount, payer=caller)
            tx.emit(EVENT_COLLATERAL_REDEEMED, caller, asset_id, collateral_amount, to=caller)

    redeem_collateral_and_burn = redeem_collateral_for_synthetic

    def liquidate(
        self,
        liquidator: str,
        collateral_asset_id: str,
        target: str,
        debt_to_cover: int,
    ) -> LiquidationOutcome:
        """
        Repay debt_to_cover of target's debt and seize its collateral plus bonus.

        The liquidator must hold debt_to_cover of the synthetic unit and have
        approved the engine account to pull it.

        Returns:
            LiquidationOutcome with the seized amounts and target's new health factor

        Raises:
            AmountMustBePositive, AssetNotSupported, HealthFactorAlreadySafe,
            InsufficientCollateral, InsufficientDebt, LiquidationDidNotImprove,
            HealthFactorBroken, SyntheticTransferFailed, CollateralTransferFailed
        """
        with self._transaction("liquidate") as tx:
            outcome = self.liquidations.liquidate(
                collateral_asset_id, target, debt_to_cover, liquidator
            )
            plan = outcome.plan
            self._pull_synthetic(tx, liquidator, plan.debt_to_cover)
            self._burn_synthetic(tx, plan.debt_to_cover)
            if plan.total_seized > 0:
                self._push_collateral(tx, liquidator, plan.asset_id, plan.total_seized)
            tx.emit(
                EVENT_LIQUIDATED, target, plan.asset_id, plan.total_seized,
                liquidator=liquidator,
                debt_covered=plan.debt_to_cover,
                bonus=plan.bonus_amount,
                health_before=plan.health_before,
                health_after=outcome.health_after,
            )
        return outcome

    # ========================================================================
    # READ-ONLY QUERIES
    # ========================================================================

    def health_factor(self, account: str) -> int:
        return self.health.health_factor(account)

    def health_factor_after(
        self,
        account: str,
        debt_delta: int = 0,
        collateral_deltas: Optional[Mapping[str, int]] = None,
    ) -> int:
        return self.health.health_factor_after(account, debt_delta, collateral_deltas)

    def account_information(self, account: str) -> AccountInformation:
        return self.health.account_information(account)

    def collateral_value_usd(self, account: str) -> int:
        return self.health.collateral_value_usd(account)

    def max_mintable(self, account: str) -> int:
        return self.health.max_mintable(account)

    def calculate_health_factor(self, debt: int, collateral_value_usd: int) -> int:
        """Health factor for arbitrary inputs under this engine's threshold."""
        return calculate_health_factor(
            debt, collateral_value_usd, self.parameters.liquidation_threshold
        )

    def collateral_balance(self, account: str, asset_id: str) -> int:
        return self.ledger.collateral_balance(account, asset_id)

    def debt_of(self, account: str) -> int:
        return self.ledger.debt_of(account)

    def position(self, account: str) -> Position:
        return self.ledger.position(account)

    def usd_value(self, asset_id: str, amount: int) -> int:
        return self.converter.to_usd(asset_id, amount)

    def token_amount_from_usd(self, asset_id: str, usd_amount: int) -> int:
        return self.converter.from_usd(asset_id, usd_amount)

    def collateral_tokens(self) -> Tuple[str, ...]:
        """Supported collateral asset ids in registration order."""
        return self.registry.list_assets()

    def collateral_token(self, asset_id: str) -> CollateralToken:
        self.registry.require_supported(asset_id)
        return self._collateral_tokens[asset_id]

    def custody(self) -> Dict[str, int]:
        """Balance the engine account holds on each collateral token."""
        return {
            asset_id: token.balance_of(self.engine_account)
            for asset_id, token in self._collateral_tokens.items()
        }

    def verify_conservation(self) -> Dict[str, Any]:
        """Compare per-asset ledger totals with the custody reported by each token."""
        return self.ledger.verify_conservation(self.custody())

    @property
    def precision(self) -> int:
        return PRECISION

    @property
    def liquidation_threshold(self) -> int:
        return self.parameters.liquidation_threshold

    @property
    def liquidation_bonus(self) -> int:
        return self.parameters.liquidation_bonus

    @property
    def min_health_factor(self) -> int:
        return self.parameters.min_health_factor

    @property
    def active_operation(self) -> Optional[str]:
        """Operation currently holding the reentrancy guard, or None."""
        return self._guard.active

    # ========================================================================
    # TRANSACTION MACHINERY
    # ========================================================================

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[_Transaction]:
        """
        Run one state-mutating operation atomically.

        On failure the ledger snapshot is restored, collaborator calls are
        compensated newest first, and the error is re-raised unchanged. This
        includes KeyboardInterrupt and other BaseExceptions.
        """
        with self._guard.hold(operation):
            snapshot = self.ledger.snapshot()
            tx = _Transaction(operation)
            try:
                yield tx
            except BaseException as e:
                self.ledger.restore(snapshot)
                tx.journal.unwind()
                if self.verbose:
                    print(f"✗ REJECTED {operation}: {type(e).__name__}: {e}")
                raise
            self._commit(tx)

    def _commit(self, tx: _Transaction) -> None:
        for kind, account, asset_id, amount, details in tx.events:
            event = EngineEvent(
                sequence=self._next_sequence,
                kind=kind,
                account=account,
                asset_id=asset_id,
                amount=amount,
                timestamp=self._current_time,
                details=details,
            )
            self._next_sequence += 1
            self.event_log.append(event)
            if self.verbose:
                print(f"✓ {tx.operation}: {event!r}")

    @staticmethod
    def _interact(error: type, label: str, action: Callable[..., Any], *args: Any) -> Any:
        """
        Call a collaborator, converting foreign exceptions into error.

        Engine errors (including ReentrantCall from a nested entry) propagate
        unchanged.
        """
        try:
            return action(*args)
        except EngineError:
            raise
        except Exception as e:
            raise error(f"{label}: {type(e).__name__}: {e}") from e

    def _pull_collateral(self, tx: _Transaction, source: str, asset_id: str, amount: int) -> None:
        """
        Pull collateral from source into engine custody.

        The compensation transfers the tokens back and, for tokens that
        implement AllowanceRefund, restores the allowance transfer_from
        consumed. Other tokens keep the reduced allowance.
        """
        token = self._collateral_tokens[asset_id]
        label = f"pull {amount} {asset_id} from {source}"
        ok = self._interact(
            CollateralTransferFailed, label,
            token.transfer_from, self.engine_account, source, self.engine_account, amount,
        )
        if not ok:
            raise CollateralTransferFailed(f"{label}: transfer_from returned False")

        def undo() -> None:
            back = f"return {amount} {asset_id} to {source}"
            if not self._interact(
                CollateralTransferFailed, back,
                token.transfer, self.engine_account, source, amount,
            ):
                raise CollateralTransferFailed(f"{back}: transfer returned False")
            self._refund_allowance(CollateralTransferFailed, token, source, amount)

        tx.journal.record(label, undo)

    def _refund_allowance(self, error: type, token: Any, owner: str, amount: int) -> None:
        if isinstance(token, AllowanceRefund):
            self._interact(
                error, f"refund {amount} allowance to {owner}",
                token.refund_allowance, owner, self.engine_account, amount,
            )

    def _push_collateral(self, tx: _Transaction, to: str, asset_id: str, amount: int) -> None:
        # Not compensable without the recipient's allowance: always the last interaction.
        token = self._collateral_tokens[asset_id]
        label = f"send {amount} {asset_id} to {to}"
        ok = self._interact(
            CollateralTransferFailed, label,
            token.transfer, self.engine_account, to, amount,
        )
        if not ok:
            raise CollateralTransferFailed(f"{label}: transfer returned False")

    def _pull_synthetic(self, tx: _Transaction, source: str, amount: int) -> None:
        token = self.synthetic_token
        label = f"pull {amount} synthetic from {source}"
        ok = self._interact(
            SyntheticTransferFailed, label,
            token.transfer_from, self.engine_account, source, self.engine_account, amount,
        )
        if not ok:
            raise SyntheticTransferFailed(f"{label}: transfer_from returned False")

        def undo() -> None:
            back = f"return {amount} synthetic to {source}"
            if not self._interact(
                SyntheticTransferFailed, back,
                token.transfer, self.engine_account, source, amount,
            ):
                raise SyntheticTransferFailed(f"{back}: transfer returned False")
            self._refund_allowance(SyntheticTransferFailed, token, source, amount)

        tx.journal.record(label, undo)

    def _burn_synthetic(self, tx: _Transaction, amount: int) -> None:
        label = f"burn {amount} synthetic"
        self._interact(
            SyntheticTransferFailed, label,
            self.synthetic_token.burn, self._credential, amount,
        )

        def undo() -> None:
            back = f"re-mint {amount} synthetic"
            if not self._interact(
                SyntheticTransferFailed, back,
                self.synthetic_token.mint, self._credential, self.engine_account, amount,
            ):
                raise SyntheticTransferFailed(f"{back}: mint returned False")

        tx.journal.record(label, undo)

    def _mint_synthetic(self, tx: _Transaction, to: str, amount: int) -> None:
        # Always the last interaction of its operation.
        label = f"mint {amount} synthetic to {to}"
        ok = self._interact(
            MintFailed, label,
            self.synthetic_token.mint, self._credential, to, amount,
        )
        if not ok:
            raise MintFailed(f"{label}: mint returned False")

    def __repr__(self) -> str:
        return (
            f"SyntheticEngine({len(self.registry)} assets, "
            f"{len(self.ledger.accounts())} accounts, {len(self.event_log)} events)"
        )
