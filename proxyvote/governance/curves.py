"""
Voting-Power Curves

Integer square root and the token power models built on it. Everything here
is pure integer arithmetic so that every node replaying the same ledger
derives exactly the same voting power.
"""

from enum import Enum

from ..constants import LOCK_MULTIPLIER_DIVISOR


class PowerModel(str, Enum):
    """How a token balance converts into voting power."""
    LINEAR = "linear"
    SQUARE_ROOT = "square-root"


def isqrt(value: int) -> int:
    """
    Integer square root, ``floor(sqrt(value))``.

    Babylonian iteration seeded at ``(value + 1) // 2``; iteration stops once
    two successive guesses differ by less than 2. That stopping rule can land
    one above the floor (e.g. 8 → 3), so the result is corrected to the exact
    floor, which keeps the function monotonic non-decreasing.
    """
    if value < 0:
        raise ValueError("Square root of a negative number")
    if value < 2:
        return value

    guess = (value + 1) // 2
    nxt = (guess + value // guess) // 2
    while abs(nxt - guess) >= 2:
        guess = nxt
        nxt = (guess + value // guess) // 2

    while nxt * nxt > value:
        nxt -= 1
    while (nxt + 1) * (nxt + 1) <= value:
        nxt += 1
    return nxt


def apply_power_model(balance: int, model: PowerModel) -> int:
    if model == PowerModel.SQUARE_ROOT:
        return isqrt(balance)
    return balance


def apply_lock_multiplier(
    power: int,
    multiplier_bps: int,
    divisor: int = LOCK_MULTIPLIER_DIVISOR,
) -> int:
    """Scale *power* by a basis-point multiplier (100 = 1.00x), flooring."""
    return power * multiplier_bps // divisor
