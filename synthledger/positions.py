"""
positions.py - Per-account collateral and debt ledger

The PositionLedger is the authoritative source of truth for every account's
collateral balances and minted debt. It is the only component that mutates
position state.

Key responsibilities:
    - Four bookkeeping operations: credit/debit collateral, credit/debit debt
    - Guard checks: positive amounts, no balance ever goes negative
    - Inverted index asset -> {account -> balance} for holder lookups
    - snapshot()/restore() so callers can make multi-step operations atomic
    - Conservation report against the custody reported by token collaborators

The ledger never moves tokens and never checks solvency; composition with
the health factor and external transfers belongs to the engine facade.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple

from .core import (
    Position, CustodyMap,
    InsufficientCollateral, InsufficientDebt,
    require_positive,
)


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """Frozen copy of ledger state, restorable with PositionLedger.restore()."""
    collateral: Tuple[Tuple[str, Tuple[Tuple[str, int], ...]], ...]
    debt: Tuple[Tuple[str, int], ...]


class PositionLedger:
    """
    Collateral/debt bookkeeping for all accounts.

    Positions are created implicitly on the first credit and never deleted:
    an account that redeems everything keeps zero entries.

    Thread Safety:
        Not thread-safe. The engine facade serializes writers.

    Example:
        ledger = PositionLedger()
        ledger.credit_collateral("alice", "WETH", 10 * PRECISION)
        ledger.credit_debt("alice", 5000 * PRECISION)
        ledger.position("alice")
    """

    def __init__(self):
        self._collateral: Dict[str, Dict[str, int]] = {}
        self._debt: Dict[str, int] = {}
        # Inverted index mapping asset -> {account -> balance} (non-zero only)
        self._holders: Dict[str, Dict[str, int]] = defaultdict(dict)

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    def collateral_balance(self, account: str, asset_id: str) -> int:
        """Balance of asset_id deposited by account (0 if none)."""
        return self._collateral.get(account, {}).get(asset_id, 0)

    def collateral_of(self, account: str) -> Mapping[str, int]:
        """Read-only view of all collateral balances of account."""
        return MappingProxyType(self._collateral.get(account, {}))

    def debt_of(self, account: str) -> int:
        """Minted debt recorded against account (0 if none)."""
        return self._debt.get(account, 0)

    def position(self, account: str) -> Position:
        """Snapshot of one account's position."""
        return Position(
            account=account,
            collateral=dict(self._collateral.get(account, {})),
            debt=self._debt.get(account, 0),
        )

    def has_position(self, account: str) -> bool:
        return account in self._collateral or account in self._debt

    def accounts(self) -> List[str]:
        """All accounts that ever held a position, sorted."""
        return sorted(set(self._collateral) | set(self._debt))

    def holders(self, asset_id: str) -> Dict[str, int]:
        """Accounts holding a non-zero balance of asset_id."""
        return dict(self._holders.get(asset_id, {}))

    def total_collateral(self, asset_id: str) -> int:
        """
        Sum of all accounts' balances of asset_id.

        Accounts are summed in sorted order for deterministic accumulation.
        """
        holders = self._holders.get(asset_id, {})
        return sum(holders[a] for a in sorted(holders))

    def total_debt(self) -> int:
        return sum(self._debt[a] for a in sorted(self._debt))

    def verify_conservation(self, custody: CustodyMap) -> Dict[str, Any]:
        """
        Check that ledger totals match the custody reported for each asset.

        Args:
            custody: Asset id -> amount the engine holds on the collateral token

        Returns:
            Dict with keys:
            - 'valid': bool - True if every asset's total equals its custody
            - 'totals': Dict[str, int] - ledger total per asset
            - 'discrepancies': List[Dict] - asset, ledger, custody, difference
        """
        totals: Dict[str, int] = {}
        discrepancies: List[Dict[str, Any]] = []
        for asset_id, held in custody.items():
            total = self.total_collateral(asset_id)
            totals[asset_id] = total
            if total != held:
                discrepancies.append({
                    'asset': asset_id,
                    'ledger': total,
                    'custody': held,
                    'difference': held - total,
                })
        return {
            'valid': len(discrepancies) == 0,
            'totals': totals,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # BOOKKEEPING (Mutating)
    # ========================================================================

    def credit_collateral(self, account: str, asset_id: str, amount: int) -> int:
        """
        Increase account's balance of asset_id.

        No solvency check: more collateral can only improve health.

        Returns:
            The new balance

        Raises:
            AmountMustBePositive: If amount <= 0
        """
        require_positive(amount)
        balances = self._collateral.setdefault(account, {})
        new_balance = balances.get(asset_id, 0) + amount
        balances[asset_id] = new_balance
        self._update_holder_index(account, asset_id, new_balance)
        return new_balance

    def debit_collateral(self, account: str, asset_id: str, amount: int) -> int:
        """
        Decrease account's balance of asset_id.

        The caller must verify the health factor afterwards.

        Returns:
            The new balance

        Raises:
            AmountMustBePositive: If amount <= 0
            InsufficientCollateral: If amount exceeds the balance (state untouched)
        """
        require_positive(amount)
        available = self.collateral_balance(account, asset_id)
        if amount > available:
            raise InsufficientCollateral(account, asset_id, amount, available)
        new_balance = available - amount
        self._collateral[account][asset_id] = new_balance
        self._update_holder_index(account, asset_id, new_balance)
        return new_balance

    def credit_debt(self, account: str, amount: int) -> int:
        """
        Increase account's minted debt.

        The caller must verify the health factor afterwards.

        Raises:
            AmountMustBePositive: If amount <= 0
        """
        require_positive(amount)
        new_debt = self._debt.get(account, 0) + amount
        self._debt[account] = new_debt
        return new_debt

    def debit_debt(self, account: str, amount: int) -> int:
        """
        Decrease account's minted debt.

        Raises:
            AmountMustBePositive: If amount <= 0
            InsufficientDebt: If amount exceeds the recorded debt (state untouched)
        """
        require_positive(amount)
        available = self.debt_of(account)
        if amount > available:
            raise InsufficientDebt(account, amount, available)
        new_debt = available - amount
        self._debt[account] = new_debt
        return new_debt

    def _update_holder_index(self, account: str, asset_id: str, balance: int) -> None:
        if balance:
            self._holders[asset_id][account] = balance
        else:
            self._holders[asset_id].pop(account, None)

    # ========================================================================
    # ROLLBACK SUPPORT
    # ========================================================================

    def snapshot(self) -> LedgerSnapshot:
        """Capture the full ledger state."""
        return LedgerSnapshot(
            collateral=tuple(
                (account, tuple(balances.items()))
                for account, balances in self._collateral.items()
            ),
            debt=tuple(self._debt.items()),
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """
        Replace the ledger state with a previously captured snapshot.

        Restores balances, debts and the holder index exactly, including
        which accounts have (possibly zero) positions.
        """
        self._collateral = {account: dict(items) for account, items in snapshot.collateral}
        self._debt = dict(snapshot.debt)
        self._holders = defaultdict(dict)
        for account, balances in self._collateral.items():
            for asset_id, balance in balances.items():
                self._update_holder_index(account, asset_id, balance)

    def clone(self) -> PositionLedger:
        """Independent deep copy of this ledger."""
        cloned = PositionLedger()
        cloned.restore(self.snapshot())
        return cloned

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PositionLedger):
            return NotImplemented
        return self.snapshot() == other.snapshot()

    __hash__ = None

    def __repr__(self) -> str:
        return f"PositionLedger({len(self.accounts())} accounts, debt={self.total_debt()})"
