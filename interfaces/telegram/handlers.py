from __future__ import annotations

import logging

import telebot
from telebot.apihelper import ApiTelegramException
from telebot.types import InlineKeyboardButton, InlineKeyboardMarkup

from application.betting import BettingService
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
from domain.errors import TaiXiuError
from domain.models import Choice
from domain.repositories import AccountRepository, IdentityRepository
from interfaces.formatting import format_history, format_profile, format_receipt
from interfaces.telegram.callback_data import encode_bet_again, parse_bet_again


logger = logging.getLogger(__name__)


def _build_external_context(user) -> ExternalContext:
    """Extract a channel-agnostic context object from a Telegram user."""

    name = " ".join(p for p in (user.first_name, user.last_name) if p)
    return ExternalContext(
        provider="telegram",
        provider_user_id=str(user.id),
        display_name=name,
    )


def _bet_again_markup(choice: Choice, amount: int) -> InlineKeyboardMarkup:
    other = Choice.XIU if choice is Choice.TAI else Choice.TAI
    markup = InlineKeyboardMarkup(row_width=2)
    markup.add(
        InlineKeyboardButton(
            f"{choice.value} {amount} again",
            callback_data=encode_bet_again(choice, amount),
        ),
        InlineKeyboardButton(
            f"{other.value} {amount}",
            callback_data=encode_bet_again(other, amount),
        ),
    )
    return markup


def create_telegram_bot(
    bot_token: str,
    account_repo: AccountRepository,
    identity_repo: IdentityRepository,
    betting: BettingService,
    admin_policy: AdminPolicy,
    start_balance: int,
    pepper: str = "",
) -> telebot.TeleBot:
    """
    Configure and return a TeleBot instance wired to the application layer.

    This module contains only Telegram-specific concerns: parsing Telegram
    messages/callbacks and mapping them to/from application services.
    """

    bot = telebot.TeleBot(bot_token)

    def _forget_secret(message) -> None:
        # Credentials should not linger in the chat history.
        try:
            bot.delete_message(message.chat.id, message.message_id)
        except ApiTelegramException:
            logger.debug("Could not delete credentials message in chat %s", message.chat.id)

    def _place_bet(chat_id: int, ctx: ExternalContext, choice: Choice, amount: int) -> None:
        account = resolve_account(ctx, identity_repo, account_repo)
        if account is None:
            bot.send_message(chat_id, "Please /register or /login first.")
            return

        try:
            receipt = betting.place_bet(account.id, choice, amount)
        except TaiXiuError as exc:
            bot.send_message(chat_id, exc.message)
            return
        except Exception:
            logger.exception("Unexpected failure placing bet for %s", account.id)
            bot.send_message(chat_id, "server error")
            return

        bot.send_message(
            chat_id,
            format_receipt(receipt),
            reply_markup=_bet_again_markup(choice, amount),
        )

    @bot.message_handler(commands=["start", "hello"])
    def handle_start(message):
        bot.send_message(
            message.chat.id,
            "Welcome to the Tài Xỉu table!\n"
            "Use /register or /login, then /tai or /xiu to bet.\n"
            "Type /help to see available commands.",
        )

    @bot.message_handler(commands=["help"])
    def handle_help(message):
        bot.send_message(
            message.chat.id,
            "/register <user> <pass>   - create an account\n"
            "/login <user> <pass>      - log into an account\n"
            "/logout                   - log out of this chat\n"
            "/tai <amount>             - bet <amount> on Tài (11-17)\n"
            "/xiu <amount>             - bet <amount> on Xỉu (4-10)\n"
            "/me                       - balance and last bets\n"
            "/history [n]              - your last n bets\n"
            "Triples always go to the house.",
        )

    @bot.message_handler(commands=["register", "login"])
    def handle_auth(message):
        parts = message.text.split()
        op = parts[0][1:].split("@")[0]
        ctx = _build_external_context(message.from_user)

        if len(parts) != 3:
            bot.send_message(message.chat.id, f"Usage: /{op} <username> <password>")
            return
        _forget_secret(message)

        username, password = parts[1], parts[2]
        if op == "register":
            result = register(
                ctx, username, password, account_repo, identity_repo, start_balance, pepper
            )
        else:
            result = login(ctx, username, password, account_repo, identity_repo, pepper)

        if not result.success:
            bot.send_message(message.chat.id, result.error_message)
            return

        bot.send_message(
            message.chat.id,
            f"Logged in as {result.account.username}. Balance: {result.account.balance}",
        )

    @bot.message_handler(commands=["logout"])
    def handle_logout(message):
        result = logout(_build_external_context(message.from_user), identity_repo)
        bot.send_message(message.chat.id, result.error_message or "Logged out.")

    @bot.message_handler(commands=["me", "balance"])
    def handle_me(message):
        ctx = _build_external_context(message.from_user)
        result = get_profile(ctx, identity_repo, account_repo, betting)
        if not result.success:
            bot.send_message(message.chat.id, result.error_message)
            return
        bot.send_message(message.chat.id, format_profile(result.account, result.recent_bets))

    @bot.message_handler(commands=["history"])
    def handle_history(message):
        parts = message.text.split()
        ctx = _build_external_context(message.from_user)
        account = resolve_account(ctx, identity_repo, account_repo)
        if account is None:
            bot.send_message(message.chat.id, "You are not logged in.")
            return

        try:
            limit = int(parts[1]) if len(parts) > 1 else None
            records = betting.recent_bets(account.id, limit)
        except ValueError:
            bot.send_message(message.chat.id, "Limit must be a number.")
            return
        except TaiXiuError as exc:
            bot.send_message(message.chat.id, exc.message)
            return

        bot.send_message(message.chat.id, format_history(records))

    @bot.message_handler(commands=["tai", "xiu"])
    def handle_bet(message):
        parts = message.text.split()
        choice = Choice(parts[0][1:].split("@")[0].lower())
        if len(parts) < 2:
            bot.send_message(message.chat.id, "Please enter amount of chips.")
            return

        try:
            amount = int(parts[1])
        except ValueError:
            bot.send_message(message.chat.id, "Amount must be a number.")
            return

        _place_bet(message.chat.id, _build_external_context(message.from_user), choice, amount)

    @bot.message_handler(commands=["topup"])
    def handle_topup(message):
        parts = message.text.split()
        try:
            amount = int(parts[1])
        except (IndexError, ValueError):
            bot.send_message(message.chat.id, "Usage: /topup <amount>")
            return

        ctx = _build_external_context(message.from_user)
        try:
            balance = top_up_balance(ctx, amount, admin_policy, identity_repo, account_repo)
        except TaiXiuError as exc:
            bot.send_message(message.chat.id, exc.message)
            return
        bot.send_message(message.chat.id, f"Balance: {balance}")

    @bot.callback_query_handler(func=lambda call: call.data.startswith("bet:"))
    def handle_bet_again(call):
        """
        Handle the "bet again" buttons under a round result.
        """

        try:
            choice, amount = parse_bet_again(call.data)
        except ValueError:
            bot.answer_callback_query(call.id, "Invalid selection.")
            return

        bot.answer_callback_query(call.id)
        _place_bet(call.message.chat.id, _build_external_context(call.from_user), choice, amount)

    return bot
