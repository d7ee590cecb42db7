from __future__ import annotations

from typing import Optional

from psycopg2.pool import ThreadedConnectionPool

from domain.repositories import IdentityRepository
from infrastructure.db.postgres_pool import pooled_connection


class PostgresIdentityRepository(IdentityRepository):
    """
    Postgres-backed implementation of `IdentityRepository`.

    It uses a dedicated `account_identities` table to map external identities
    (provider + provider_user_id) to internal account IDs stored in the
    `accounts` table managed by `PostgresAccountRepository`.
    """

    def __init__(self, pool: ThreadedConnectionPool) -> None:
        self._pool = pool
        self._ensure_table()

    def _ensure_table(self) -> None:
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
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
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT account_id
                    FROM account_identities
                    WHERE provider = %s AND provider_user_id = %s
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
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO account_identities (provider, provider_user_id, account_id)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (provider, provider_user_id)
                    DO UPDATE SET account_id = EXCLUDED.account_id
                    """,
                    (provider, str(provider_user_id), account_id),
                )
                conn.commit()

    def clear_external_identity(
        self,
        provider: str,
        provider_user_id: str,
    ) -> None:
        with pooled_connection(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    DELETE FROM account_identities
                    WHERE provider = %s AND provider_user_id = %s
                    """,
                    (provider, str(provider_user_id)),
                )
                conn.commit()
