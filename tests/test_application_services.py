import unittest

from application.betting import BettingService
from application.passwords import hash_password, verify_password
from application.services import (
    AdminPolicy,
    ExternalContext,
    get_profile,
    login,
    logout,
    register,
    resolve_account,
    top_up_balance,
)
from domain.errors import AccountNotFoundError, NotAuthorizedError, ValidationError

from fakes import (
    FixedDraw,
    InMemoryAccountRepository,
    InMemoryIdentityRepository,
    InMemoryLedgerRepository,
)


class ApplicationServicesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.account_repo = InMemoryAccountRepository()
        self.identity_repo = InMemoryIdentityRepository()
        self.ledger_repo = InMemoryLedgerRepository(self.account_repo)
        self.betting = BettingService(
            self.account_repo, self.ledger_repo, draw=FixedDraw((4, 5, 6))
        )
        self.ctx = ExternalContext(
            provider="telegram",
            provider_user_id="12345",
            display_name="John Doe",
        )

    def _register(self, ctx=None, username="john_doe", password="secret123"):
        return register(
            ctx or self.ctx,
            username,
            password,
            self.account_repo,
            self.identity_repo,
            start_balance=1000,
        )

    def test_register_creates_account_with_start_balance(self):
        result = self._register()

        self.assertTrue(result.success)
        self.assertEqual(result.account.balance, 1000)
        stored = self.account_repo.get_by_username("john_doe")
        self.assertEqual(stored.id, result.account.id)
        # Channel identity is logged in straight away.
        self.assertEqual(
            resolve_account(self.ctx, self.identity_repo, self.account_repo).id,
            result.account.id,
        )
        # Password is never stored in clear text.
        self.assertNotIn("secret123", self.account_repo.password_hashes[stored.id])

    def test_register_rejects_taken_username(self):
        self._register()
        other = ExternalContext(provider="discord", provider_user_id="9")

        result = self._register(ctx=other)

        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "username taken")
        self.assertIsNone(self.identity_repo.find_account_id("discord", "9"))

    def test_register_validates_input(self):
        for username, password in (("", "secret123"), ("ab", "secret123"), ("john doe", "secret123"), ("john", "123")):
            result = self._register(username=username, password=password)
            self.assertFalse(result.success, (username, password))
        self.assertEqual(self.account_repo.accounts, {})

    def test_login_links_identity_across_channels(self):
        registered = self._register()
        discord_ctx = ExternalContext(provider="discord", provider_user_id="777")

        result = login(discord_ctx, "john_doe", "secret123", self.account_repo, self.identity_repo)

        self.assertTrue(result.success)
        self.assertEqual(result.account.id, registered.account.id)
        self.assertEqual(self.identity_repo.find_account_id("discord", "777"), registered.account.id)

    def test_login_with_wrong_password_or_user(self):
        self._register()

        bad_password = login(self.ctx, "john_doe", "nope-nope", self.account_repo, self.identity_repo)
        unknown_user = login(self.ctx, "ghost", "secret123", self.account_repo, self.identity_repo)

        self.assertFalse(bad_password.success)
        self.assertFalse(unknown_user.success)
        self.assertEqual(bad_password.error_message, unknown_user.error_message)

    def test_logout(self):
        self._register()

        self.assertTrue(logout(self.ctx, self.identity_repo).success)
        self.assertIsNone(resolve_account(self.ctx, self.identity_repo, self.account_repo))
        self.assertFalse(logout(self.ctx, self.identity_repo).success)

    def test_profile_lists_recent_bets(self):
        registered = self._register()
        self.betting.place_bet(registered.account.id, "tai", 100)

        result = get_profile(self.ctx, self.identity_repo, self.account_repo, self.betting)

        self.assertTrue(result.success)
        self.assertEqual(result.account.balance, 1100)
        self.assertEqual(len(result.recent_bets), 1)

    def test_profile_requires_login(self):
        result = get_profile(self.ctx, self.identity_repo, self.account_repo, self.betting)
        self.assertFalse(result.success)

    def test_top_up_requires_admin(self):
        self._register()

        with self.assertRaises(NotAuthorizedError):
            top_up_balance(self.ctx, 500, AdminPolicy(), self.identity_repo, self.account_repo)

        self.assertEqual(self.account_repo.get_by_username("john_doe").balance, 1000)

    def test_admin_top_up_skips_ledger(self):
        self._register()
        policy = AdminPolicy(frozenset({("telegram", "12345")}))

        balance = top_up_balance(self.ctx, 500, policy, self.identity_repo, self.account_repo)

        self.assertEqual(balance, 1500)
        self.assertEqual(self.ledger_repo.records, [])
        self.assertEqual(self.ledger_repo.commits, 0)

    def test_admin_top_up_validation(self):
        policy = AdminPolicy(frozenset({("telegram", "12345")}))

        with self.assertRaises(AccountNotFoundError):
            top_up_balance(self.ctx, 500, policy, self.identity_repo, self.account_repo)

        self._register()
        for amount in (0, -10, True):
            with self.assertRaises(ValidationError):
                top_up_balance(self.ctx, amount, policy, self.identity_repo, self.account_repo)


class PasswordHashingTests(unittest.TestCase):
    def test_verify(self):
        hashed = hash_password("secret123")
        self.assertTrue(verify_password("secret123", hashed))
        self.assertFalse(verify_password("secret124", hashed))

    def test_salted(self):
        self.assertNotEqual(hash_password("secret123"), hash_password("secret123"))

    def test_pepper_required(self):
        hashed = hash_password("secret123", pepper="pepper")
        self.assertTrue(verify_password("secret123", hashed, pepper="pepper"))
        self.assertFalse(verify_password("secret123", hashed))

    def test_malformed_hash(self):
        self.assertFalse(verify_password("secret123", "garbage"))
        self.assertFalse(verify_password("secret123", "md5$1$aa$bb"))


if __name__ == "__main__":
    unittest.main()
