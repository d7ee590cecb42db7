import random
import threading
import unittest

from application.betting import MAX_HISTORY_LIMIT, BettingService
from domain.errors import (
    AccountNotFoundError,
    ConcurrencyConflictError,
    InsufficientFundsError,
    PersistenceError,
    ValidationError,
)
from domain.models import Account, BetResult, Choice

from fakes import FixedDraw, InMemoryAccountRepository, InMemoryLedgerRepository


class BettingServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.accounts = InMemoryAccountRepository()
        self.ledger = InMemoryLedgerRepository(self.accounts)
        self.accounts.add(Account(id="acc-1", username="john", balance=1000))

    def _service(self, draw) -> BettingService:
        return BettingService(self.accounts, self.ledger, draw=draw)

    def _balance(self, account_id: str = "acc-1") -> int:
        return self.accounts.get_account(account_id).balance

    def test_triple_loses_tai_bet(self):
        receipt = self._service(FixedDraw((3, 3, 3))).place_bet("acc-1", "tai", 100)

        self.assertEqual(receipt.result, "TRIPLE")
        self.assertTrue(receipt.triple)
        self.assertFalse(receipt.won)
        self.assertEqual(receipt.balance, 900)
        self.assertEqual(self._balance(), 900)

    def test_tai_wins_on_fifteen(self):
        receipt = self._service(FixedDraw((4, 5, 6))).place_bet("acc-1", "tai", 200)

        self.assertEqual(receipt.total, 15)
        self.assertEqual(receipt.result, "TAI")
        self.assertTrue(receipt.won)
        self.assertEqual(receipt.balance, 1200)
        self.assertEqual(self._balance(), 1200)

    def test_insufficient_balance_rejected_without_draw(self):
        self.accounts.add(Account(id="acc-2", username="jane", balance=50))
        draw = FixedDraw((1, 2, 1))

        with self.assertRaises(InsufficientFundsError) as cm:
            self._service(draw).place_bet("acc-2", "xiu", 100)

        self.assertEqual(cm.exception.kind, "insufficient_funds")
        self.assertEqual(draw.calls, 0)
        self.assertEqual(self._balance("acc-2"), 50)
        self.assertEqual(self.ledger.records, [])

    def test_all_in_xiu_win(self):
        self.accounts.add(Account(id="acc-2", username="jane", balance=50))

        receipt = self._service(FixedDraw((1, 2, 1))).place_bet("acc-2", "xiu", 50)

        self.assertEqual(receipt.total, 4)
        self.assertEqual(receipt.result, "XIU")
        self.assertTrue(receipt.won)
        self.assertEqual(receipt.balance, 100)

    def test_bet_record_matches_receipt(self):
        receipt = self._service(FixedDraw((2, 2, 5))).place_bet("acc-1", Choice.TAI, 300)

        self.assertEqual(len(self.ledger.records), 1)
        record = self.ledger.records[0]
        self.assertEqual(record.id, receipt.bet_id)
        self.assertEqual(record.account_id, "acc-1")
        self.assertEqual(record.username, "john")
        self.assertEqual(record.amount, 300)
        self.assertEqual(record.choice, Choice.TAI)
        self.assertEqual(record.dice, (2, 2, 5))
        self.assertEqual(record.total, 9)
        self.assertFalse(record.triple)
        self.assertEqual(record.result, BetResult.XIU)
        self.assertFalse(record.won)
        self.assertEqual(record.balance_after, 700)

    def test_receipt_wire_shape(self):
        receipt = self._service(FixedDraw((6, 5, 6))).place_bet("acc-1", "tai", 10)

        self.assertEqual(
            receipt.to_dict(),
            {
                "dice": [6, 5, 6],
                "total": 17,
                "triple": False,
                "result": "TAI",
                "won": True,
                "balance": 1010,
                "betId": receipt.bet_id,
            },
        )

    def test_invalid_input_performs_no_draw(self):
        draw = FixedDraw((4, 5, 6))
        service = self._service(draw)

        for choice, amount in (("big", 10), ("tai", 0), ("xiu", -1), ("tai", 2.5)):
            with self.assertRaises(ValidationError):
                service.place_bet("acc-1", choice, amount)

        self.assertEqual(draw.calls, 0)
        self.assertEqual(self._balance(), 1000)
        self.assertEqual(self.ledger.commits, 0)

    def test_unknown_account(self):
        draw = FixedDraw((4, 5, 6))
        with self.assertRaises(AccountNotFoundError):
            self._service(draw).place_bet("missing", "tai", 10)
        self.assertEqual(draw.calls, 0)

    def test_failed_record_write_leaves_balance_untouched(self):
        self.ledger.fail_on_record = True

        with self.assertRaises(PersistenceError):
            self._service(FixedDraw((3, 3, 3))).place_bet("acc-1", "tai", 100)

        self.assertEqual(self._balance(), 1000)
        self.assertEqual(self.ledger.records, [])

    def test_balance_drained_before_commit_is_a_conflict(self):
        def draw_while_someone_else_spends():
            # Another writer lowers the balance after the up-front check.
            self.accounts.accounts["acc-1"].balance = 10
            return (1, 2, 3)

        service = self._service(draw_while_someone_else_spends)

        with self.assertRaises(ConcurrencyConflictError) as cm:
            service.place_bet("acc-1", "tai", 100)

        self.assertIsInstance(cm.exception, InsufficientFundsError)
        self.assertEqual(cm.exception.kind, "insufficient_funds")
        self.assertEqual(self._balance(), 10)
        self.assertEqual(self.ledger.records, [])

    def test_win_is_not_revalidated(self):
        def draw_while_someone_else_spends():
            self.accounts.accounts["acc-1"].balance = 10
            return (6, 6, 5)

        receipt = self._service(draw_while_someone_else_spends).place_bet("acc-1", "tai", 100)

        self.assertTrue(receipt.won)
        self.assertEqual(receipt.balance, 110)

    def test_concurrent_all_in_bets_do_not_double_spend(self):
        service = self._service(FixedDraw((3, 3, 3)))
        attempts = 8
        barrier = threading.Barrier(attempts)
        successes = []
        rejections = []
        lock = threading.Lock()

        def attempt():
            barrier.wait()
            try:
                receipt = service.place_bet("acc-1", "xiu", 1000)
            except InsufficientFundsError as exc:
                with lock:
                    rejections.append(exc)
            else:
                with lock:
                    successes.append(receipt)

        threads = [threading.Thread(target=attempt) for _ in range(attempts)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(successes), 1)
        self.assertEqual(len(rejections), attempts - 1)
        self.assertEqual(self._balance(), 0)
        self.assertEqual(len(self.ledger.records), 1)

    def test_balance_never_negative_over_many_rounds(self):
        rng = random.Random(1234)
        service = BettingService(self.accounts, self.ledger)
        balance = self._balance()

        for _ in range(300):
            if balance == 0:
                break
            amount = rng.randint(1, balance)
            receipt = service.place_bet("acc-1", rng.choice(["tai", "xiu"]), amount)
            delta = amount if receipt.won else -amount
            self.assertEqual(receipt.balance, max(0, balance + delta))
            self.assertGreaterEqual(receipt.balance, 0)
            balance = receipt.balance

        self.assertEqual(self._balance(), balance)
        for record in self.ledger.records:
            expected = record.result.value.lower() == record.choice.value
            self.assertEqual(record.won, expected)

    def test_recent_bets_newest_first_and_limited(self):
        service = self._service(FixedDraw((1, 2, 3), (4, 5, 6), (2, 2, 2)))
        ids = [service.place_bet("acc-1", "tai", 10).bet_id for _ in range(3)]

        recent = service.recent_bets("acc-1", 2)

        self.assertEqual([r.id for r in recent], [ids[2], ids[1]])
        self.assertEqual(len(service.recent_bets("acc-1")), 3)

    def test_recent_bets_limit_validation(self):
        service = self._service(FixedDraw((1, 2, 3)))
        for limit in (0, -1, True, "5"):
            with self.assertRaises(ValidationError):
                service.recent_bets("acc-1", limit)

    def test_recent_bets_limit_is_capped(self):
        captured = []
        original = self.ledger.recent

        def spy(account_id, limit):
            captured.append(limit)
            return original(account_id, limit)

        self.ledger.recent = spy
        self._service(FixedDraw((1, 2, 3))).recent_bets("acc-1", 10_000)
        self.assertEqual(captured, [MAX_HISTORY_LIMIT])


if __name__ == "__main__":
    unittest.main()
