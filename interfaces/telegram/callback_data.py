from __future__ import annotations

from typing import Tuple

from domain.models import Choice


def encode_bet_again(choice: Choice, amount: int) -> str:
    """
    Encode a "bet again" button attached to a round result.

    Format: bet:{choice}:{amount}
    """

    return f"bet:{choice.value}:{amount}"


def parse_bet_again(data: str) -> Tuple[Choice, int]:
    parts = data.split(":")
    if len(parts) != 3 or parts[0] != "bet":
        raise ValueError(f"Invalid bet-again callback data: {data}")

    choice = Choice(parts[1])
    amount = int(parts[2])
    return choice, amount
