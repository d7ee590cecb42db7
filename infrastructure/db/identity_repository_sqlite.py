from __future__ import annotations

import sqlite3
from typing import Optional

from domain.repositories import IdentityRepository


class SqliteIdentityRepository(IdentityRepository):
    """
    SQLite-backed implementation of `IdentityRepository`.

    Stores mappings from (provider, provider_user_id) to internal account IDs
    in an `account_identities` table.
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
                CREATE TABLE IF NOT EXISTS account_identities (
                    provider TEXT NOT NULL,
                    provider_user_id TEXT NOT NULL,
                    account_id TEXT NOT NULL,
                    PRIMARY KEY (provider, provider_user_id)
                )
                """
            )
            conn.commit()

    def find_account_id(
        self,
        provider: str,
        provider_user_id: str,
    ) -> Optional[str]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT account_id
                FROM account_identities
                WHERE provider = ? AND provider_user_id = ?
                """,
                (provider, str(provider_user_id)),
            )
            row = cur.fetchone()
            if not row:
                return None
            return str(row[0])

    def set_external_identity(
        self,
        provider: str,
        provider_user_id: str,
        account_id: str,
    ) -> None:
        """
        Upsert a mapping from external identity to internal account ID.
        """

        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO account_identities (provider, provider_user_id, account_id)
                VALUES (?, ?, ?)
                ON CONFLICT (provider, provider_user_id)
                DO UPDATE SET account_id = excluded.account_id
                """,
                (provider, str(provider_user_id), account_id),
            )
            conn.commit()

    def clear_external_identity(
        self,
        provider: str,
        provider_user_id: str,
    ) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                DELETE FROM account_identities
                WHERE provider = ? AND provider_user_id = ?
                """,
                (provider, str(provider_user_id)),
            )
            conn.commit()
