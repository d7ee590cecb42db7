from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from domain.errors import AccountNotFoundError, UsernameTakenError
from domain.models import Account, Credentials
from domain.repositories import AccountRepository


class SqliteAccountRepository(AccountRepository):
    """
    SQLite-backed implementation of `AccountRepository`.

    Manages the `accounts` table, which stores usernames, password hashes
    and balances. `SqliteLedgerRepository` updates the same rows when it
    settles bets, so both must point at the same database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path, timeout=30)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    username TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    @staticmethod
    def _to_domain(row: sqlite3.Row) -> Account:
        return Account(
            id=str(row[0]),
            username=row[1],
            balance=int(row[2]),
            created_at=datetime.fromisoformat(row[3]),
        )

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT id, username, balance, created_at FROM accounts WHERE id = ?",
                (account_id,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def get_by_username(self, username: str) -> Optional[Account]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT id, username, balance, created_at FROM accounts WHERE username = ?",
                (username,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def get_credentials(self, username: str) -> Optional[Credentials]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT id, username, password_hash FROM accounts WHERE username = ?",
                (username,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return Credentials(account_id=str(row[0]), username=row[1], password_hash=row[2])

    def create_account(self, account: Account, password_hash: str) -> None:
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                cur.execute(
                    """
                    INSERT INTO accounts (id, username, password_hash, balance, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        account.id,
                        account.username,
                        password_hash,
                        account.balance,
                        account.created_at.isoformat(),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise UsernameTakenError() from exc

    def adjust_balance(self, account_id: str, delta: int) -> int:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE accounts
                SET balance = balance + ?
                WHERE id = ?
                """,
                (delta, account_id),
            )
            if cur.rowcount == 0:
                raise AccountNotFoundError("account not found")
            cur.execute("SELECT balance FROM accounts WHERE id = ?", (account_id,))
            balance = int(cur.fetchone()[0])
            conn.commit()
            return balance
