# src/zeromoney/ledger/emission.py
from __future__ import annotations

"""Emission schedule.

Pure functions of (started_at, now). Nothing here mutates state:

  era        = (now - started_at) // HALVING_PERIOD      (UNBOUNDED_ERA before start)
  multiplier = 1 / 2**era                                (0 once era > FINAL_ERA)
  reward     = amount >> era                             (0 once era > FINAL_ERA)
"""

from fractions import Fraction
from typing import Optional

from zeromoney.ledger.constants import FINAL_ERA, HALVING_PERIOD, UNBOUNDED_ERA


def current_era(started_at: Optional[int], now_s: int) -> int:
    """Return the halving era at `now_s`, or UNBOUNDED_ERA if emission never started."""
    if started_at is None:
        return UNBOUNDED_ERA
    elapsed = int(now_s) - int(started_at)
    if elapsed <= 0:
        return 0
    return elapsed // HALVING_PERIOD


def reward_multiplier(era: int) -> Fraction:
    e = int(era)
    if e < 0 or e > FINAL_ERA:
        return Fraction(0)
    return Fraction(1, 2**e)


def reward_for(amount: int, era: int) -> int:
    """Integer reward for a transfer of `amount` in `era` (right shift = halving)."""
    a = int(amount)
    e = int(era)
    if a <= 0 or e < 0 or e > FINAL_ERA:
        return 0
    return a >> e


def is_emitting(started_at: Optional[int], now_s: int) -> bool:
    return current_era(started_at, now_s) <= FINAL_ERA


__all__ = ["current_era", "reward_multiplier", "reward_for", "is_emitting"]
