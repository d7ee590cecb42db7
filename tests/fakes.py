from __future__ import annotations

import dataclasses
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from domain.errors import AccountNotFoundError, PersistenceError, UsernameTakenError
from domain.models import Account, BetRecord, Credentials
from domain.repositories import (
    AccountRepository,
    IdentityRepository,
    LedgerRepository,
    LedgerTransaction,
)


class InMemoryAccountRepository(AccountRepository):
    def __init__(self):
        self.accounts: Dict[str, Account] = {}
        self.password_hashes: Dict[str, str] = {}

    def add(self, account: Account) -> Account:
        self.accounts[account.id] = account
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        account = self.accounts.get(account_id)
        return dataclasses.replace(account) if account else None

    def get_by_username(self, username: str) -> Optional[Account]:
        for account in self.accounts.values():
            if account.username == username:
                return dataclasses.replace(account)
        return None

    def get_credentials(self, username: str) -> Optional[Credentials]:
        account = self.get_by_username(username)
        if account is None:
            return None
        return Credentials(
            account_id=account.id,
            username=account.username,
            password_hash=self.password_hashes[account.id],
        )

    def create_account(self, account: Account, password_hash: str) -> None:
        if self.get_by_username(account.username) is not None:
            raise UsernameTakenError()
        self.accounts[account.id] = dataclasses.replace(account)
        self.password_hashes[account.id] = password_hash

    def adjust_balance(self, account_id: str, delta: int) -> int:
        if account_id not in self.accounts:
            raise AccountNotFoundError("account not found")
        self.accounts[account_id].balance += delta
        return self.accounts[account_id].balance


class InMemoryLedgerTransaction(LedgerTransaction):
    def __init__(self, account_repo: InMemoryAccountRepository, fail_on_record: bool):
        self._account_repo = account_repo
        self._fail_on_record = fail_on_record
        self.staged_accounts: List[Account] = []
        self.staged_records: List[BetRecord] = []

    def get_account_for_update(self, account_id: str) -> Optional[Account]:
        return self._account_repo.get_account(account_id)

    def save_account(self, account: Account) -> None:
        self.staged_accounts.append(account)

    def save_bet_record(self, record: BetRecord) -> None:
        if self._fail_on_record:
            raise PersistenceError()
        self.staged_records.append(record)


class InMemoryLedgerRepository(LedgerRepository):
    """
    Stages writes and applies them only when the transaction block exits
    cleanly. A single lock stands in for the storage row lock.
    """

    def __init__(self, account_repo: InMemoryAccountRepository):
        self._account_repo = account_repo
        self._lock = threading.Lock()
        self.records: List[BetRecord] = []
        self.fail_on_record = False
        self.commits = 0

    @contextmanager
    def transaction(self):
        with self._lock:
            tx = InMemoryLedgerTransaction(self._account_repo, self.fail_on_record)
            yield tx
            for account in tx.staged_accounts:
                self._account_repo.accounts[account.id] = account
            self.records.extend(tx.staged_records)
            self.commits += 1

    def recent(self, account_id: str, limit: int) -> List[BetRecord]:
        owned = [r for r in self.records if r.account_id == account_id]
        return list(reversed(owned))[:limit]


class InMemoryIdentityRepository(IdentityRepository):
    def __init__(self):
        self.mapping: Dict[tuple, str] = {}

    def find_account_id(self, provider: str, provider_user_id: str) -> Optional[str]:
        return self.mapping.get((provider, provider_user_id))

    def set_external_identity(self, provider: str, provider_user_id: str, account_id: str) -> None:
        self.mapping[(provider, provider_user_id)] = account_id

    def clear_external_identity(self, provider: str, provider_user_id: str) -> None:
        self.mapping.pop((provider, provider_user_id), None)


class FixedDraw:
    """Returns the queued dice in order and counts how often it was asked."""

    def __init__(self, *rolls):
        self._rolls = list(rolls)
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            if len(self._rolls) == 1:
                return self._rolls[0]
            return self._rolls.pop(0)
