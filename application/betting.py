from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from application.locks import AccountLocks
from domain.dice import classify, roll_dice, settle, validate_wager
from domain.errors import (
    AccountNotFoundError,
    ConcurrencyConflictError,
    InsufficientFundsError,
    ValidationError,
)
from domain.models import Account, BetRecord, Choice, Dice, Outcome, Settlement
from domain.repositories import AccountRepository, LedgerRepository


logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100


@dataclass
class BetReceipt:
    """What the player gets back after a settled round."""

    dice: Dice
    total: int
    triple: bool
    result: str
    won: bool
    balance: int
    bet_id: str

    def to_dict(self) -> dict:
        return {
            "dice": list(self.dice),
            "total": self.total,
            "triple": self.triple,
            "result": self.result,
            "won": self.won,
            "balance": self.balance,
            "betId": self.bet_id,
        }


class BettingService:
    """
    Places and settles single-round Tài/Xỉu wagers.

    The storage handles are injected once at construction time. `draw` can be
    swapped for a deterministic callable in tests; production code keeps the
    default CSPRNG-backed `roll_dice`.
    """

    def __init__(
        self,
        account_repo: AccountRepository,
        ledger_repo: LedgerRepository,
        draw: Callable[[], Dice] = roll_dice,
        locks: Optional[AccountLocks] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._account_repo = account_repo
        self._ledger_repo = ledger_repo
        self._draw = draw
        self._locks = locks or AccountLocks()
        self._history_limit = history_limit

    def place_bet(
        self,
        account_id: str,
        choice: Union[Choice, str],
        amount: int,
    ) -> BetReceipt:
        """
        Validate, draw, settle and commit one round for `account_id`.

        Raises:
            ValidationError: bad choice or amount; nothing is drawn.
            AccountNotFoundError: unknown account; nothing is drawn.
            InsufficientFundsError: the balance does not cover the wager,
                either up front or at commit time (`ConcurrencyConflictError`).
            PersistenceError: the commit failed and was rolled back.
        """

        parsed_choice, amount = validate_wager(choice, amount)

        with self._locks.hold(account_id):
            account = self._account_repo.get_account(account_id)
            if account is None:
                raise AccountNotFoundError("account not found")
            if account.balance < amount:
                logger.info(
                    "Rejected bet of %s by account %s: balance %s",
                    amount,
                    account_id,
                    account.balance,
                )
                raise InsufficientFundsError()

            outcome = classify(*self._draw())
            settlement = settle(parsed_choice, amount, outcome)
            new_balance, record = self.apply_settlement(
                account, amount, parsed_choice, outcome, settlement
            )

        logger.info(
            "Settled bet %s: account=%s choice=%s amount=%s dice=%s result=%s won=%s balance=%s",
            record.id,
            account_id,
            parsed_choice.value,
            amount,
            outcome.dice,
            outcome.result.value,
            settlement.won,
            new_balance,
        )

        return BetReceipt(
            dice=outcome.dice,
            total=outcome.total,
            triple=outcome.triple,
            result=outcome.result.value,
            won=settlement.won,
            balance=new_balance,
            bet_id=record.id,
        )

    def apply_settlement(
        self,
        account: Account,
        amount: int,
        choice: Choice,
        outcome: Outcome,
        settlement: Settlement,
    ) -> Tuple[int, BetRecord]:
        """
        Commit the balance change and its bet record in one transaction.

        The balance is re-read under the storage row lock. A losing wager the
        fresh balance can no longer cover is aborted; otherwise the new
        balance is floored at zero, so a loss may take less than `amount`.
        """

        with self._ledger_repo.transaction() as tx:
            current = tx.get_account_for_update(account.id)
            if current is None:
                raise AccountNotFoundError("account not found")
            if settlement.delta < 0 and current.balance < amount:
                logger.warning(
                    "Balance of account %s changed before commit (%s -> %s)",
                    account.id,
                    account.balance,
                    current.balance,
                )
                raise ConcurrencyConflictError()

            new_balance = max(0, current.balance + settlement.delta)
            tx.save_account(dataclasses.replace(current, balance=new_balance))

            record = BetRecord(
                id=uuid.uuid4().hex,
                account_id=current.id,
                username=current.username,
                amount=amount,
                choice=choice,
                dice=outcome.dice,
                total=outcome.total,
                triple=outcome.triple,
                result=settlement.result,
                won=settlement.won,
                balance_after=new_balance,
            )
            tx.save_bet_record(record)

        return new_balance, record

    def recent_bets(
        self,
        account_id: str,
        limit: Optional[int] = None,
    ) -> List[BetRecord]:
        if limit is None:
            limit = self._history_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError("invalid limit")
        return self._ledger_repo.recent(account_id, min(limit, MAX_HISTORY_LIMIT))
