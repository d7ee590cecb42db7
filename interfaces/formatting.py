from __future__ import annotations

from typing import List

from application.betting import BetReceipt
from domain.models import Account, BetRecord


DIE_FACES = {1: "⚀", 2: "⚁", 3: "⚂", 4: "⚃", 5: "⚄", 6: "⚅"}

RESULT_LABELS = {"TAI": "Tài", "XIU": "Xỉu", "TRIPLE": "Triple (house wins)"}


def format_dice(dice) -> str:
    return " ".join(f"{DIE_FACES[d]}{d}" for d in dice)


def format_receipt(receipt: BetReceipt) -> str:
    verdict = "You win!" if receipt.won else "You lose."
    return (
        f"{format_dice(receipt.dice)}  total {receipt.total}\n"
        f"Result: {RESULT_LABELS.get(receipt.result, receipt.result)}. {verdict}\n"
        f"Balance: {receipt.balance}"
    )


def format_bet_line(record: BetRecord) -> str:
    sign = "+" if record.won else "-"
    return (
        f"{record.created_at:%Y-%m-%d %H:%M} {record.choice.value} {record.amount} -> "
        f"{'/'.join(str(d) for d in record.dice)} {record.result.value} "
        f"{sign}{record.amount} (balance {record.balance_after})"
    )


def format_history(records: List[BetRecord]) -> str:
    if not records:
        return "No bets yet."
    return "\n".join(format_bet_line(r) for r in records)


def format_profile(account: Account, records: List[BetRecord]) -> str:
    return (
        f"{account.username}: balance {account.balance}\n"
        f"Last bets:\n{format_history(records)}"
    )
