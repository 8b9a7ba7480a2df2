"""
reflection.py - Pure tax and reflection accounting.

This module provides the arithmetic behind every taxed transfer:
1. compute_tax_split() - Split a gross amount into net, tax and reflection
2. initial_reflection_total() / shrink_reflection_total() - Scaling state
3. to_reflection() / reflected_balance() - Convert between raw and reflected units
4. plan_transfer() - Build the complete, immutable TransferPlan for one transfer

Model:
    Raw balances are the source of truth for supply. A non-excluded account also
    carries a reflection balance r. Its effective balance is

        r * total_supply // reflection_total

    Each reflection event shrinks reflection_total, so every non-excluded holder's
    effective balance rises without any balance write.

Rounding:
    Credits convert at the ceiling, debits and reads at the floor. The scale factor
    reflection_total / total_supply is astronomically large, so the sub-unit slack
    this introduces never reaches a whole raw unit, and an account that takes no
    part in a reflection event reads back exactly its raw balance.

All functions take explicit inputs and return immutable results.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from typing import AbstractSet, Dict, Optional, Tuple

from .core import (
    Move, TaxSplit, RangeError,
    BPS_DENOMINATOR, MAX_UINT256, GENESIS_ADDRESS,
)


@dataclass(frozen=True, slots=True)
class TransferPlan:
    """
    Everything a transfer will do, computed before anything is written.

    Attributes:
        moves: Raw-balance legs, applied in order
        split: Tax breakdown, or None for an untaxed mint/burn
        reflection_deltas: (account, signed delta) to reflection balances
        reflection_total_before: Scaling state the deltas were computed against
        reflection_total_after: Scaling state once the plan is applied
    """
    moves: Tuple[Move, ...]
    split: Optional[TaxSplit]
    reflection_deltas: Tuple[Tuple[str, int], ...]
    reflection_total_before: int
    reflection_total_after: int

    @property
    def taxed(self) -> bool:
        return self.split is not None


def initial_reflection_total(total_supply: int) -> int:
    """Largest multiple of total_supply that fits in an unsigned 256-bit word."""
    if total_supply <= 0:
        raise RangeError(f"total_supply must be positive, got {total_supply}")
    return MAX_UINT256 - (MAX_UINT256 % total_supply)


def compute_tax_split(amount: int, tax_rate_bps: int, reflection_rate_bps: int) -> TaxSplit:
    """
    Split a gross transfer amount.

    tax = amount * tax_rate_bps // 10000, halved to the treasury (floor) with the
    odd unit going to the vault; reflection = amount * reflection_rate_bps // 10000;
    the recipient gets the rest.

    Example:
        >>> s = compute_tax_split(100, 200, 0)
        >>> (s.tax, s.treasury_share, s.vault_share, s.net)
        (2, 1, 1, 98)
    """
    if amount < 0:
        raise RangeError(f"amount must be non-negative, got {amount}")
    tax = amount * tax_rate_bps // BPS_DENOMINATOR
    reflection = amount * reflection_rate_bps // BPS_DENOMINATOR
    treasury_share = tax // 2
    return TaxSplit(
        amount=amount,
        tax=tax,
        treasury_share=treasury_share,
        vault_share=tax - treasury_share,
        reflection=reflection,
        net=amount - tax - reflection,
    )


def shrink_reflection_total(reflection_total: int, reflection: int, total_supply: int) -> int:
    """
    Apply one reflection event.

    Returns reflection_total unchanged when there is nothing to reflect or the
    state is degenerate; never returns a value below 1.
    """
    if reflection <= 0 or reflection_total <= 0 or total_supply <= 0:
        return reflection_total
    reduced = reflection_total - reflection_total * reflection // total_supply
    return max(reduced, 1)


def to_reflection(amount: int, reflection_total: int, total_supply: int, round_up: bool = False) -> int:
    """Convert raw units to reflected units at the current rate."""
    if total_supply <= 0:
        return 0
    if round_up:
        return -(-amount * reflection_total // total_supply)
    return amount * reflection_total // total_supply


def reflected_balance(
    reflection_balance: int,
    reflection_total: int,
    total_supply: int,
    raw_balance: int,
    excluded: bool = False,
) -> int:
    """
    Effective balance of an account.

    Excluded accounts and degenerate scaling state report the raw balance.
    """
    if excluded or reflection_total <= 0 or total_supply <= 0:
        return raw_balance
    return reflection_balance * total_supply // reflection_total


def plan_transfer(
    source: str,
    dest: str,
    amount: int,
    *,
    taxed: bool,
    tax_rate_bps: int,
    reflection_rate_bps: int,
    treasury: str,
    prize_vault: str,
    holdings: str,
    reflection_total: int,
    total_supply: int,
    excluded: AbstractSet[str],
) -> TransferPlan:
    """
    Build the TransferPlan for one transfer.

    Untaxed transfers (mint from genesis, burn) produce a single leg. Taxed
    transfers produce up to four legs: net to dest, treasury share, vault share,
    and the raw reflection portion to the ledger's own holdings account.
    Reflection balances move at the pre-event rate; the reflection total
    shrinks afterwards.

    Args:
        source: Sender (GENESIS_ADDRESS for a mint)
        dest: Recipient
        amount: Gross raw amount (positive)
        taxed: Whether tax and reflection apply
        tax_rate_bps, reflection_rate_bps: Current rates
        treasury, prize_vault, holdings: Tax and reflection destinations
        reflection_total, total_supply: Current scaling state
        excluded: Accounts without reflection balances

    Returns:
        Immutable TransferPlan
    """
    if amount <= 0:
        raise RangeError(f"amount must be positive, got {amount}")

    split: Optional[TaxSplit] = None
    if taxed:
        split = compute_tax_split(amount, tax_rate_bps, reflection_rate_bps)
        legs = (
            (split.net, dest, "net"),
            (split.treasury_share, treasury, "treasury"),
            (split.vault_share, prize_vault, "vault"),
            (split.reflection, holdings, "reflection"),
        )
        moves = tuple(Move(qty, source, to, memo) for qty, to, memo in legs if qty > 0)
    else:
        memo = "mint" if source == GENESIS_ADDRESS else "transfer"
        moves = (Move(amount, source, dest, memo),)

    deltas: Dict[str, int] = defaultdict(int)
    if source != GENESIS_ADDRESS and source not in excluded:
        deltas[source] -= to_reflection(amount, reflection_total, total_supply)
    for move in moves:
        if move.dest not in excluded:
            deltas[move.dest] += to_reflection(move.amount, reflection_total, total_supply, round_up=True)

    reflection_after = reflection_total
    if split is not None:
        reflection_after = shrink_reflection_total(reflection_total, split.reflection, total_supply)

    return TransferPlan(
        moves=moves,
        split=split,
        reflection_deltas=tuple(sorted((a, d) for a, d in deltas.items() if d != 0)),
        reflection_total_before=reflection_total,
        reflection_total_after=reflection_after,
    )
