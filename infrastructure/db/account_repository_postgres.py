from __future__ import annotations

from typing import Optional

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from domain.errors import AccountNotFoundError, UsernameTakenError
from domain.models import Account, Credentials
from domain.repositories import AccountRepository
from infrastructure.db.postgres_pool import pooled_connection


class PostgresAccountRepository(AccountRepository):
    """
    Postgres-backed implementation of `AccountRepository`.

    Owns the `accounts` table. Balances are also written by
    `PostgresLedgerRepository` inside its settlement transactions.
    """

    def __init__(self, pool: ThreadedConnectionPool) -> None:
        self._pool = pool
        self._ensure_table()

    def _ensure_table(self) -> None:
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS accounts (
                        id TEXT PRIMARY KEY,
                        username TEXT NOT NULL UNIQUE,
                        password_hash TEXT NOT NULL,
                        balance BIGINT NOT NULL DEFAULT 0 CHECK (balance >= 0),
                        created_at TIMESTAMPTZ NOT NULL
                    )
                    """
                )
                conn.commit()

    @staticmethod
    def _to_domain(row: tuple) -> Account:
        return Account(
            id=str(row[0]),
            username=row[1],
            balance=int(row[2]),
            created_at=row[3],
        )

    def get_account(self, account_id: str) -> Optional[Account]:
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id, username, balance, created_at FROM accounts WHERE id = %s",
                    (account_id,),
                )
                row = cur.fetchone()
                conn.commit()
                if not row:
                    return None
                return self._to_domain(row)

    def get_by_username(self, username: str) -> Optional[Account]:
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id, username, balance, created_at FROM accounts WHERE username = %s",
                    (username,),
                )
                row = cur.fetchone()
                conn.commit()
                if not row:
                    return None
                return self._to_domain(row)

    def get_credentials(self, username: str) -> Optional[Credentials]:
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id, username, password_hash FROM accounts WHERE username = %s",
                    (username,),
                )
                row = cur.fetchone()
                conn.commit()
                if not row:
                    return None
                return Credentials(
                    account_id=str(row[0]), username=row[1], password_hash=row[2]
                )

    def create_account(self, account: Account, password_hash: str) -> None:
        try:
            with pooled_connection(self._pool) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO accounts (id, username, password_hash, balance, created_at)
                        VALUES (%s, %s, %s, %s, %s)
                        """,
                        (
                            account.id,
                            account.username,
                            password_hash,
                            account.balance,
                            account.created_at,
                        ),
                    )
                    conn.commit()
        except psycopg2.IntegrityError as exc:
            raise UsernameTakenError() from exc

    def adjust_balance(self, account_id: str, delta: int) -> int:
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET balance = balance + %s
                    WHERE id = %s
                    RETURNING balance
                    """,
                    (delta, account_id),
                )
                row = cur.fetchone()
                if not row:
                    raise AccountNotFoundError("account not found")
                conn.commit()
                return int(row[0])
