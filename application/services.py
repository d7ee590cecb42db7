from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Tuple

from application.betting import BettingService
from application.passwords import hash_password, verify_password
from domain.errors import (
    AccountNotFoundError,
    NotAuthorizedError,
    UsernameTakenError,
    ValidationError,
)
from domain.models import Account, BetRecord
from domain.repositories import AccountRepository, IdentityRepository


logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,32}$")
MIN_PASSWORD_LENGTH = 6


@dataclass
class ExternalContext:
    """
    Information about the caller from a particular channel (Telegram, Discord).

    The application layer never depends on concrete SDK types; it only sees
    this small context object.
    """

    provider: str
    provider_user_id: str
    display_name: str = ""


@dataclass
class OperationResult:
    """Generic result type for simple operations."""

    success: bool
    error_message: Optional[str] = None


@dataclass
class AuthResult:
    """Result of a registration or login attempt."""

    success: bool
    error_message: Optional[str] = None
    account: Optional[Account] = None


@dataclass
class ProfileResult:
    success: bool
    error_message: Optional[str] = None
    account: Optional[Account] = None
    recent_bets: List[BetRecord] = field(default_factory=list)


@dataclass(frozen=True)
class AdminPolicy:
    """
    Who may use the administrative top-up.

    Admins are identified by (provider, provider_user_id) pairs, independent
    of which account they happen to be logged into.
    """

    admin_ids: FrozenSet[Tuple[str, str]] = frozenset()

    def is_admin(self, provider: str, provider_user_id: str) -> bool:
        return (provider, str(provider_user_id)) in self.admin_ids


def _validate_credentials_input(username: str, password: str) -> Optional[str]:
    if not username or not password:
        return "username & password required"
    if not USERNAME_PATTERN.match(username):
        return "Username must be 3-32 letters, digits or underscores."
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    return None


def register(
    external_ctx: ExternalContext,
    username: str,
    password: str,
    account_repo: AccountRepository,
    identity_repo: IdentityRepository,
    start_balance: int,
    pepper: str = "",
) -> AuthResult:
    """
    Create an account with the configured starting balance and log the
    caller's channel identity into it.
    """

    error = _validate_credentials_input(username, password)
    if error:
        return AuthResult(success=False, error_message=error)

    if account_repo.get_by_username(username) is not None:
        return AuthResult(success=False, error_message="username taken")

    account = Account(id=uuid.uuid4().hex, username=username, balance=start_balance)
    try:
        account_repo.create_account(account, hash_password(password, pepper))
    except UsernameTakenError as exc:
        # Lost a race against another registration for the same name.
        return AuthResult(success=False, error_message=exc.message)

    identity_repo.set_external_identity(
        external_ctx.provider, external_ctx.provider_user_id, account.id
    )
    logger.info("Registered account %s via %s", account.id, external_ctx.provider)
    return AuthResult(success=True, account=account)


def login(
    external_ctx: ExternalContext,
    username: str,
    password: str,
    account_repo: AccountRepository,
    identity_repo: IdentityRepository,
    pepper: str = "",
) -> AuthResult:
    if not username or not password:
        return AuthResult(success=False, error_message="username & password required")

    credentials = account_repo.get_credentials(username)
    # Same message for unknown user and wrong password.
    if credentials is None or not verify_password(
        password, credentials.password_hash, pepper
    ):
        return AuthResult(success=False, error_message="invalid credentials")

    identity_repo.set_external_identity(
        external_ctx.provider, external_ctx.provider_user_id, credentials.account_id
    )
    account = account_repo.get_account(credentials.account_id)
    return AuthResult(success=True, account=account)


def logout(
    external_ctx: ExternalContext,
    identity_repo: IdentityRepository,
) -> OperationResult:
    if identity_repo.find_account_id(
        external_ctx.provider, external_ctx.provider_user_id
    ) is None:
        return OperationResult(success=False, error_message="You are not logged in.")

    identity_repo.clear_external_identity(
        external_ctx.provider, external_ctx.provider_user_id
    )
    return OperationResult(success=True)


def resolve_account(
    external_ctx: ExternalContext,
    identity_repo: IdentityRepository,
    account_repo: AccountRepository,
) -> Optional[Account]:
    """Return the account the channel identity is logged into, if any."""

    account_id = identity_repo.find_account_id(
        external_ctx.provider, external_ctx.provider_user_id
    )
    if account_id is None:
        return None
    return account_repo.get_account(account_id)


def get_profile(
    external_ctx: ExternalContext,
    identity_repo: IdentityRepository,
    account_repo: AccountRepository,
    betting: BettingService,
    limit: Optional[int] = None,
) -> ProfileResult:
    account = resolve_account(external_ctx, identity_repo, account_repo)
    if account is None:
        return ProfileResult(success=False, error_message="You are not logged in.")

    return ProfileResult(
        success=True,
        account=account,
        recent_bets=betting.recent_bets(account.id, limit),
    )


def top_up_balance(
    external_ctx: ExternalContext,
    amount: int,
    admin_policy: AdminPolicy,
    identity_repo: IdentityRepository,
    account_repo: AccountRepository,
) -> int:
    """
    Administrative credit of the caller's own account.

    Deliberately separate from the settlement path: no bet record is written
    and the per-account settlement lock is not involved.
    """

    if not admin_policy.is_admin(external_ctx.provider, external_ctx.provider_user_id):
        logger.warning(
            "Top-up refused for %s:%s",
            external_ctx.provider,
            external_ctx.provider_user_id,
        )
        raise NotAuthorizedError("not allowed")

    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("invalid amount")

    account_id = identity_repo.find_account_id(
        external_ctx.provider, external_ctx.provider_user_id
    )
    if account_id is None:
        raise AccountNotFoundError("You are not logged in.")

    balance = account_repo.adjust_balance(account_id, amount)
    logger.info("Topped up account %s by %s", account_id, amount)
    return balance
