"""
Pure round rules: drawing dice, classifying the draw and settling a wager.

Nothing in here touches storage, so the whole outcome space can be checked
without a database.
"""

from __future__ import annotations

import secrets
from typing import Tuple, Union

from .errors import ValidationError
from .models import BetResult, Choice, Dice, Outcome, Settlement


FACES = 6

# Xỉu (low) and Tài (high) ranges for non-triple totals.
XIU_RANGE = range(4, 11)
TAI_RANGE = range(11, 18)

_system_random = secrets.SystemRandom()


def roll_dice() -> Dice:
    """Draw three independent faces from the operating system CSPRNG."""

    return (
        _system_random.randint(1, FACES),
        _system_random.randint(1, FACES),
        _system_random.randint(1, FACES),
    )


def classify(d1: int, d2: int, d3: int) -> Outcome:
    for face in (d1, d2, d3):
        if not 1 <= face <= FACES:
            raise ValueError(f"Die value out of range: {face}")

    total = d1 + d2 + d3
    triple = d1 == d2 == d3

    # Triples are checked first: (1,1,1) and (6,6,6) are the only ways to
    # reach 3 and 18, so UNKNOWN can never come out of a real draw.
    if triple:
        result = BetResult.TRIPLE
    elif total in XIU_RANGE:
        result = BetResult.XIU
    elif total in TAI_RANGE:
        result = BetResult.TAI
    else:
        result = BetResult.UNKNOWN

    return Outcome(dice=(d1, d2, d3), total=total, triple=triple, result=result)


def is_winning(choice: Choice, result: BetResult) -> bool:
    # House takes every side bet on a triple.
    if result is BetResult.TRIPLE:
        return False
    return (result is BetResult.TAI and choice is Choice.TAI) or (
        result is BetResult.XIU and choice is Choice.XIU
    )


def settle(choice: Choice, amount: int, outcome: Outcome) -> Settlement:
    """
    Decide a round with a flat 1:1 payout.

    The delta is what the wager would do to the balance; the ledger
    transaction applies it with the zero floor.
    """

    won = is_winning(choice, outcome.result)
    delta = amount if won else -amount
    return Settlement(result=outcome.result, won=won, delta=delta)


def validate_wager(choice: Union[Choice, str], amount: int) -> Tuple[Choice, int]:
    if isinstance(choice, Choice):
        parsed_choice = choice
    elif isinstance(choice, str) and choice.strip().lower() in ("tai", "xiu"):
        parsed_choice = Choice(choice.strip().lower())
    else:
        raise ValidationError("invalid choice")

    # bool is an int subclass; True is not a wager.
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("invalid amount")
    if amount <= 0:
        raise ValidationError("invalid amount")

    return parsed_choice, amount
