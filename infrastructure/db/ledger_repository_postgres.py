from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

import psycopg2
from psycopg2.extensions import cursor
from psycopg2.pool import ThreadedConnectionPool

from domain.errors import PersistenceError
from domain.models import Account, BetRecord, BetResult, Choice
from domain.repositories import LedgerRepository, LedgerTransaction
from infrastructure.db.postgres_pool import pooled_connection


logger = logging.getLogger(__name__)


class PostgresLedgerTransaction(LedgerTransaction):
    def __init__(self, cur: cursor) -> None:
        self._cur = cur

    def get_account_for_update(self, account_id: str) -> Optional[Account]:
        # Row lock held until commit/rollback; concurrent settlements for the
        # same account wait here.
        self._cur.execute(
            """
            SELECT id, username, balance, created_at
            FROM accounts
            WHERE id = %s
            FOR UPDATE
            """,
            (account_id,),
        )
        row = self._cur.fetchone()
        if not row:
            return None
        return Account(
            id=str(row[0]),
            username=row[1],
            balance=int(row[2]),
            created_at=row[3],
        )

    def save_account(self, account: Account) -> None:
        self._cur.execute(
            "UPDATE accounts SET balance = %s WHERE id = %s",
            (account.balance, account.id),
        )

    def save_bet_record(self, record: BetRecord) -> None:
        self._cur.execute(
            """
            INSERT INTO bets (
                id, account_id, username, amount, choice, dice,
                total, triple, result, won, balance_after, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                record.id,
                record.account_id,
                record.username,
                record.amount,
                record.choice.value,
                list(record.dice),
                record.total,
                record.triple,
                record.result.value,
                record.won,
                record.balance_after,
                record.created_at,
            ),
        )


class PostgresLedgerRepository(LedgerRepository):
    """
    Postgres-backed implementation of `LedgerRepository`.

    Owns the append-only `bets` table; settlements lock the account row
    with `SELECT ... FOR UPDATE` and commit the balance and the bet together.
    """

    def __init__(self, pool: ThreadedConnectionPool) -> None:
        self._pool = pool
        self._ensure_table()

    def _ensure_table(self) -> None:
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS bets (
                        seq BIGSERIAL PRIMARY KEY,
                        id TEXT NOT NULL UNIQUE,
                        account_id TEXT NOT NULL REFERENCES accounts (id),
                        username TEXT NOT NULL,
                        amount BIGINT NOT NULL CHECK (amount > 0),
                        choice TEXT NOT NULL,
                        dice SMALLINT[] NOT NULL,
                        total SMALLINT NOT NULL,
                        triple BOOLEAN NOT NULL,
                        result TEXT NOT NULL,
                        won BOOLEAN NOT NULL,
                        balance_after BIGINT NOT NULL,
                        created_at TIMESTAMPTZ NOT NULL
                    )
                    """
                )
                cur.execute(
                    "CREATE INDEX IF NOT EXISTS bets_account_seq ON bets (account_id, seq)"
                )
                conn.commit()

    @staticmethod
    def _to_domain(row: tuple) -> BetRecord:
        d1, d2, d3 = row[5]
        return BetRecord(
            id=row[0],
            account_id=row[1],
            username=row[2],
            amount=int(row[3]),
            choice=Choice(row[4]),
            dice=(int(d1), int(d2), int(d3)),
            total=int(row[6]),
            triple=bool(row[7]),
            result=BetResult(row[8]),
            won=bool(row[9]),
            balance_after=int(row[10]),
            created_at=row[11],
        )

    @contextmanager
    def transaction(self) -> Iterator[PostgresLedgerTransaction]:
        try:
            with pooled_connection(self._pool) as conn:
                # `with conn` commits on success and rolls back on error.
                with conn:
                    with conn.cursor() as cur:
                        yield PostgresLedgerTransaction(cur)
        except psycopg2.Error as exc:
            logger.exception("Ledger transaction failed and was rolled back")
            raise PersistenceError() from exc

    def recent(self, account_id: str, limit: int) -> List[BetRecord]:
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, account_id, username, amount, choice, dice,
                           total, triple, result, won, balance_after, created_at
                    FROM bets
                    WHERE account_id = %s
                    ORDER BY seq DESC
                    LIMIT %s
                    """,
                    (account_id, limit),
                )
                rows = cur.fetchall()
                conn.commit()
                return [self._to_domain(row) for row in rows]
