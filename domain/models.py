from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Tuple


Dice = Tuple[int, int, int]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Choice(str, Enum):
    """The two bettable sides of a round."""

    TAI = "tai"
    XIU = "xiu"


class BetResult(str, Enum):
    TAI = "TAI"
    XIU = "XIU"
    TRIPLE = "TRIPLE"
    UNKNOWN = "UNKNOWN"


@dataclass
class Account:
    """
    A player's wallet on the Tài/Xỉu table.

    This model is intentionally simple and independent of any
    particular transport (Telegram, Discord, web) or database schema.
    The balance is kept in the smallest currency unit and never drops
    below zero.
    """

    id: str
    username: str
    balance: int
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Credentials:
    """
    Login material for an account.

    Kept apart from `Account` so the settlement path never carries
    password hashes around.
    """

    account_id: str
    username: str
    password_hash: str


@dataclass(frozen=True)
class Outcome:
    dice: Dice
    total: int
    triple: bool
    result: BetResult


@dataclass(frozen=True)
class Settlement:
    result: BetResult
    won: bool
    delta: int


@dataclass(frozen=True)
class BetRecord:
    """
    One settled round. Created exactly once and never modified.
    """

    id: str
    account_id: str
    username: str
    amount: int
    choice: Choice
    dice: Dice
    total: int
    triple: bool
    result: BetResult
    won: bool
    balance_after: int
    created_at: datetime = field(default_factory=utcnow)
