from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from domain.errors import PersistenceError
from domain.models import Account, BetRecord, BetResult, Choice
from domain.repositories import LedgerRepository, LedgerTransaction


logger = logging.getLogger(__name__)


class SqliteLedgerTransaction(LedgerTransaction):
    """Works on a connection that already holds the database write lock."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get_account_for_update(self, account_id: str) -> Optional[Account]:
        cur = self._conn.execute(
            "SELECT id, username, balance, created_at FROM accounts WHERE id = ?",
            (account_id,),
        )
        row = cur.fetchone()
        if not row:
            return None
        return Account(
            id=str(row[0]),
            username=row[1],
            balance=int(row[2]),
            created_at=datetime.fromisoformat(row[3]),
        )

    def save_account(self, account: Account) -> None:
        self._conn.execute(
            "UPDATE accounts SET balance = ? WHERE id = ?",
            (account.balance, account.id),
        )

    def save_bet_record(self, record: BetRecord) -> None:
        d1, d2, d3 = record.dice
        self._conn.execute(
            """
            INSERT INTO bets (
                id, account_id, username, amount, choice, d1, d2, d3,
                total, triple, result, won, balance_after, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.account_id,
                record.username,
                record.amount,
                record.choice.value,
                d1,
                d2,
                d3,
                record.total,
                int(record.triple),
                record.result.value,
                int(record.won),
                record.balance_after,
                record.created_at.isoformat(),
            ),
        )


class SqliteLedgerRepository(LedgerRepository):
    """
    SQLite-backed implementation of `LedgerRepository`.

    Owns the append-only `bets` table. Settlements run under
    `BEGIN IMMEDIATE`, which takes the database write lock up front, so
    the balance read, the balance update and the bet insert see no other
    writer in between, even across processes.
    """

    def __init__(self, db_path: str, timeout: float = 30.0) -> None:
        self._db_path = db_path
        self._timeout = timeout
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path, timeout=self._timeout)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS bets (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    account_id TEXT NOT NULL,
                    username TEXT NOT NULL,
                    amount INTEGER NOT NULL CHECK (amount > 0),
                    choice TEXT NOT NULL,
                    d1 INTEGER NOT NULL,
                    d2 INTEGER NOT NULL,
                    d3 INTEGER NOT NULL,
                    total INTEGER NOT NULL,
                    triple INTEGER NOT NULL,
                    result TEXT NOT NULL,
                    won INTEGER NOT NULL,
                    balance_after INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS bets_account_seq ON bets (account_id, seq)"
            )
            conn.commit()

    @staticmethod
    def _to_domain(row: sqlite3.Row) -> BetRecord:
        return BetRecord(
            id=row[0],
            account_id=row[1],
            username=row[2],
            amount=int(row[3]),
            choice=Choice(row[4]),
            dice=(int(row[5]), int(row[6]), int(row[7])),
            total=int(row[8]),
            triple=bool(row[9]),
            result=BetResult(row[10]),
            won=bool(row[11]),
            balance_after=int(row[12]),
            created_at=datetime.fromisoformat(row[13]),
        )

    @contextmanager
    def transaction(self) -> Iterator[SqliteLedgerTransaction]:
        # Autocommit mode so BEGIN/COMMIT/ROLLBACK are entirely ours.
        conn = sqlite3.connect(self._db_path, timeout=self._timeout, isolation_level=None)
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield SqliteLedgerTransaction(conn)
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                logger.exception("Ledger transaction failed and was rolled back")
                raise PersistenceError() from exc
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    def recent(self, account_id: str, limit: int) -> List[BetRecord]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, account_id, username, amount, choice, d1, d2, d3,
                       total, triple, result, won, balance_after, created_at
                FROM bets
                WHERE account_id = ?
                ORDER BY seq DESC
                LIMIT ?
                """,
                (account_id, limit),
            )
            rows = cur.fetchall()
            return [self._to_domain(row) for row in rows]
