from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from psycopg2.pool import ThreadedConnectionPool

from config import Settings
from domain.repositories import AccountRepository, IdentityRepository, LedgerRepository


logger = logging.getLogger(__name__)


@dataclass
class Repositories:
    """Storage handles shared by one process, opened once at start-up."""

    accounts: AccountRepository
    ledger: LedgerRepository
    identities: IdentityRepository
    pool: Optional[ThreadedConnectionPool] = None

    def close(self) -> None:
        if self.pool is not None:
            self.pool.closeall()
            self.pool = None


def build_repositories(settings: Settings) -> Repositories:
    if settings.db_backend == "postgres":
        from infrastructure.db.account_repository_postgres import PostgresAccountRepository
        from infrastructure.db.identity_repository_postgres import PostgresIdentityRepository
        from infrastructure.db.ledger_repository_postgres import PostgresLedgerRepository
        from infrastructure.db.postgres_pool import create_pool

        pool = create_pool(settings.db_params, settings.db_pool_max)
        logger.info(
            "Using Postgres at %s:%s/%s",
            settings.db_params.get("host"),
            settings.db_params.get("port"),
            settings.db_params.get("dbname"),
        )
        # `bets` references `accounts`, so accounts go first.
        accounts = PostgresAccountRepository(pool)
        return Repositories(
            accounts=accounts,
            ledger=PostgresLedgerRepository(pool),
            identities=PostgresIdentityRepository(pool),
            pool=pool,
        )

    from infrastructure.db.account_repository_sqlite import SqliteAccountRepository
    from infrastructure.db.identity_repository_sqlite import SqliteIdentityRepository
    from infrastructure.db.ledger_repository_sqlite import SqliteLedgerRepository

    logger.info("Using SQLite database %s", settings.db_path)
    return Repositories(
        accounts=SqliteAccountRepository(settings.db_path),
        ledger=SqliteLedgerRepository(settings.db_path),
        identities=SqliteIdentityRepository(settings.db_path),
    )
