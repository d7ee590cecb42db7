from __future__ import annotations

import logging

import discord
from discord.ext import commands

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


logger = logging.getLogger(__name__)


def _build_external_context(user: discord.abc.User) -> ExternalContext:
    """Create an `ExternalContext` from a Discord user."""

    return ExternalContext(
        provider="discord",
        provider_user_id=str(user.id),
        display_name=user.display_name or user.name,
    )


def create_discord_bot(
    account_repo: AccountRepository,
    identity_repo: IdentityRepository,
    betting: BettingService,
    admin_policy: AdminPolicy,
    start_balance: int,
    pepper: str = "",
) -> commands.Bot:
    """
    Configure and return a Discord bot with behaviour analogous to
    the Telegram interface: accounts, !tai / !xiu bets and history.
    """

    intents = discord.Intents.default()
    intents.message_content = True

    # Disable the default help command so we can provide our own `!help`.
    bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)

    async def _forget_secret(ctx: commands.Context) -> None:
        # Credentials should not linger in the channel.
        try:
            await ctx.message.delete()
        except (discord.Forbidden, discord.HTTPException):
            logger.debug("Could not delete credentials message %s", ctx.message.id)

    async def _place_bet(ctx: commands.Context, choice: Choice, amount: int) -> None:
        external_ctx = _build_external_context(ctx.author)
        account = resolve_account(external_ctx, identity_repo, account_repo)
        if account is None:
            await ctx.send("Please !register or !login first.")
            return

        try:
            receipt = betting.place_bet(account.id, choice, amount)
        except TaiXiuError as exc:
            await ctx.send(exc.message)
            return
        except Exception:
            logger.exception("Unexpected failure placing bet for %s", account.id)
            await ctx.send("server error")
            return

        await ctx.send(f"{ctx.author.mention}\n{format_receipt(receipt)}")

    @bot.event
    async def on_ready():
        logger.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, (commands.BadArgument, commands.MissingRequiredArgument)):
            await ctx.send("Invalid arguments. Type !help to see usage.")
            return
        if isinstance(error, commands.CommandNotFound):
            return
        logger.error("Command %s failed", ctx.command, exc_info=error)
        await ctx.send("server error")

    @bot.command(name="start")
    async def start_cmd(ctx: commands.Context):
        await ctx.send(
            "Welcome to the Tài Xỉu table (Discord)!\n"
            "Use !register or !login, then !tai or !xiu to bet.\n"
            "Type !help to see available commands."
        )

    @bot.command(name="help")
    async def help_cmd(ctx: commands.Context):
        await ctx.send(
            "!register <user> <pass>   - create an account\n"
            "!login <user> <pass>      - log into an account\n"
            "!logout                   - log out\n"
            "!tai <amount>             - bet <amount> on Tài (11-17)\n"
            "!xiu <amount>             - bet <amount> on Xỉu (4-10)\n"
            "!me                       - balance and last bets\n"
            "!history [n]              - your last n bets\n"
            "Triples always go to the house."
        )

    @bot.command(name="register")
    async def register_cmd(ctx: commands.Context, username: str, password: str):
        await _forget_secret(ctx)
        result = register(
            _build_external_context(ctx.author),
            username,
            password,
            account_repo,
            identity_repo,
            start_balance,
            pepper,
        )
        if not result.success:
            await ctx.send(result.error_message)
            return
        await ctx.send(
            f"Welcome {result.account.username}! Balance: {result.account.balance}"
        )

    @bot.command(name="login")
    async def login_cmd(ctx: commands.Context, username: str, password: str):
        await _forget_secret(ctx)
        result = login(
            _build_external_context(ctx.author),
            username,
            password,
            account_repo,
            identity_repo,
            pepper,
        )
        if not result.success:
            await ctx.send(result.error_message)
            return
        await ctx.send(
            f"Logged in as {result.account.username}. Balance: {result.account.balance}"
        )

    @bot.command(name="logout")
    async def logout_cmd(ctx: commands.Context):
        result = logout(_build_external_context(ctx.author), identity_repo)
        await ctx.send(result.error_message or "Logged out.")

    @bot.command(name="me", aliases=["balance"])
    async def me_cmd(ctx: commands.Context):
        result = get_profile(
            _build_external_context(ctx.author), identity_repo, account_repo, betting
        )
        if not result.success:
            await ctx.send(result.error_message)
            return
        await ctx.send(format_profile(result.account, result.recent_bets))

    @bot.command(name="history")
    async def history_cmd(ctx: commands.Context, limit: int = None):
        account = resolve_account(
            _build_external_context(ctx.author), identity_repo, account_repo
        )
        if account is None:
            await ctx.send("You are not logged in.")
            return
        try:
            records = betting.recent_bets(account.id, limit)
        except TaiXiuError as exc:
            await ctx.send(exc.message)
            return
        await ctx.send(format_history(records))

    @bot.command(name="tai")
    async def tai_cmd(ctx: commands.Context, amount: int):
        await _place_bet(ctx, Choice.TAI, amount)

    @bot.command(name="xiu")
    async def xiu_cmd(ctx: commands.Context, amount: int):
        await _place_bet(ctx, Choice.XIU, amount)

    @bot.command(name="topup")
    async def topup_cmd(ctx: commands.Context, amount: int):
        try:
            balance = top_up_balance(
                _build_external_context(ctx.author),
                amount,
                admin_policy,
                identity_repo,
                account_repo,
            )
        except TaiXiuError as exc:
            await ctx.send(exc.message)
            return
        await ctx.send(f"Balance: {balance}")

    return bot
