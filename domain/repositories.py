from __future__ import annotations

from typing import ContextManager, List, Optional, Protocol

from .models import Account, BetRecord, Credentials


class AccountRepository(Protocol):
    """
    Abstraction over account persistence.

    Implementations are responsible for:
    - Mapping between database rows and the `Account` domain model.
    - Hiding any SQL / driver details from the application layer.
    """

    def get_account(self, account_id: str) -> Optional[Account]:
        """Return the account with the given internal ID, or None if not found."""

        ...

    def get_by_username(self, username: str) -> Optional[Account]:
        ...

    def get_credentials(self, username: str) -> Optional[Credentials]:
        ...

    def create_account(self, account: Account, password_hash: str) -> None:
        """
        Persist a new account together with its password hash.

        Raises `UsernameTakenError` if the username is already taken.
        """

        ...

    def adjust_balance(self, account_id: str, delta: int) -> int:
        """
        Atomically add `delta` to the balance and return the new value.

        Only used by the administrative top-up; bets go through
        `LedgerRepository.transaction()`.
        """

        ...


class LedgerTransaction(Protocol):
    """
    The storage side of a single settlement.

    Everything done through one instance is committed together when the
    surrounding `LedgerRepository.transaction()` block exits normally, and
    rolled back when it raises.
    """

    def get_account_for_update(self, account_id: str) -> Optional[Account]:
        """Read the account and hold its row until the transaction ends."""

        ...

    def save_account(self, account: Account) -> None:
        ...

    def save_bet_record(self, record: BetRecord) -> None:
        ...


class LedgerRepository(Protocol):
    """
    Append-only bet history plus the transactional commit of settlements.
    """

    def transaction(self) -> ContextManager[LedgerTransaction]:
        """
        Open a storage transaction.

        Storage failures surface as `PersistenceError` after rollback.
        """

        ...

    def recent(self, account_id: str, limit: int) -> List[BetRecord]:
        """Return at most `limit` bets of the account, newest first."""

        ...


class IdentityRepository(Protocol):
    """
    Maps external identities (Telegram/Discord) to internal account IDs.

    The application layer should work exclusively with internal account IDs
    and leave provider‑specific identifiers to this abstraction.
    """

    def find_account_id(
        self,
        provider: str,
        provider_user_id: str,
    ) -> Optional[str]:
        """Return the account mapped to the given external identity, if any."""

        ...

    def set_external_identity(
        self,
        provider: str,
        provider_user_id: str,
        account_id: str,
    ) -> None:
        """
        Associate an external identity with an internal account ID.

        Used by the login/registration flow so that a single account can
        be reused across multiple channels and sessions.
        """

        ...

    def clear_external_identity(
        self,
        provider: str,
        provider_user_id: str,
    ) -> None:
        """Remove any mapping for the given external identity (logout)."""

        ...
