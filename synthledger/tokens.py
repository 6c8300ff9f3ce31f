"""
tokens.py - In-memory token collaborators

Reference implementations of the CollateralToken and SyntheticToken
protocols. They keep plain balance and allowance books so that the engine
can be exercised end to end and conservation can be checked against a
real custodial balance.

Classes:
- Token: transferable token with allowances (collateral assets)
- MintableToken: Token whose supply changes are gated by a single
  MinterCredential (the synthetic unit)
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Optional, Tuple

from .core import MinterCredential, Unauthorized, require_positive


class Token:
    """
    Balance and allowance book for one token.

    transfer() and transfer_from() report failure by returning False
    (insufficient balance or allowance) and raise only on malformed
    arguments.

    Example:
        weth = Token("WETH")
        weth.mint_to("alice", 10 * PRECISION)
        weth.approve("alice", "engine", 10 * PRECISION)
        weth.transfer_from("engine", "alice", "engine", 10 * PRECISION)
    """

    def __init__(self, name: str):
        self.name = name
        self.balances: Dict[str, int] = defaultdict(int)
        self.allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.total_supply = 0

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative, got {amount}")
        self.allowances[(owner, spender)] = amount
        return True

    def mint_to(self, account: str, amount: int) -> None:
        """Faucet for unrestricted test supply."""
        require_positive(amount)
        self._credit(account, amount)
        self.total_supply += amount

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        self._check_recipient(to)
        if amount < 0:
            raise ValueError(f"Transfer amount cannot be negative, got {amount}")
        if self.balance_of(sender) < amount:
            return False
        self._move(sender, to, amount)
        return True

    def transfer_from(self, spender: str, source: str, to: str, amount: int) -> bool:
        self._check_recipient(to)
        if amount < 0:
            raise ValueError(f"Transfer amount cannot be negative, got {amount}")
        allowed = self.allowance(source, spender)
        if allowed < amount or self.balance_of(source) < amount:
            return False
        self.allowances[(source, spender)] = allowed - amount
        self._move(source, to, amount)
        return True

    def refund_allowance(self, owner: str, spender: str, amount: int) -> None:
        """Give back allowance consumed by a transfer_from that was reverted."""
        require_positive(amount)
        self.allowances[(owner, spender)] += amount

    def _check_recipient(self, to: str) -> None:
        if not to or not to.strip():
            raise ValueError("Recipient cannot be empty")

    def _credit(self, account: str, amount: int) -> None:
        self.balances[account] += amount

    def _move(self, source: str, dest: str, amount: int) -> None:
        self.balances[source] -= amount
        self.balances[dest] += amount

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name}, supply={self.total_supply})"


class MintableToken(Token):
    """
    Token with a single, non-transferable minter capability.

    grant_minter() issues the MinterCredential exactly once. Only that
    credential may mint, and burn() destroys tokens held by the
    credential's holder, so supply can only change through the holder.
    """

    def __init__(self, name: str):
        super().__init__(name)
        self._minter: Optional[MinterCredential] = None

    @property
    def minter(self) -> Optional[str]:
        return self._minter.holder if self._minter else None

    def grant_minter(self, holder: str) -> MinterCredential:
        """
        Issue the minter credential.

        Raises:
            Unauthorized: If a minter has already been granted
        """
        if self._minter is not None:
            raise Unauthorized(f"{self.name} minter already granted to {self._minter.holder}")
        self._check_recipient(holder)
        self._minter = MinterCredential(holder, self.name)
        return self._minter

    def mint(self, credential: MinterCredential, to: str, amount: int) -> bool:
        self._authorize(credential)
        self._check_recipient(to)
        require_positive(amount)
        self._credit(to, amount)
        self.total_supply += amount
        return True

    def burn(self, credential: MinterCredential, amount: int) -> None:
        """
        Destroy amount tokens held by the credential's holder.

        Raises:
            Unauthorized: If credential is not the granted one
            ValueError: If the holder's balance is too small
        """
        self._authorize(credential)
        require_positive(amount)
        holder = credential.holder
        if self.balance_of(holder) < amount:
            raise ValueError(
                f"Burn amount {amount} exceeds {holder} balance {self.balance_of(holder)}"
            )
        self.balances[holder] -= amount
        self.total_supply -= amount

    def mint_to(self, account: str, amount: int) -> None:
        raise Unauthorized(f"{self.name} supply can only change through the minter")

    def _authorize(self, credential: MinterCredential) -> None:
        if self._minter is None or credential is not self._minter:
            raise Unauthorized(f"Caller is not the {self.name} minter")
