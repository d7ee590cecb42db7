import logging

from application.betting import BettingService
from application.services import AdminPolicy
from config import load_settings
from infrastructure.db.factory import build_repositories
from interfaces.discord.handlers import create_discord_bot


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not settings.discord_token:
        raise RuntimeError("DISCORD_TOKEN environment variable is not set.")

    repos = build_repositories(settings)
    try:
        betting = BettingService(
            repos.accounts, repos.ledger, history_limit=settings.history_limit
        )
        bot = create_discord_bot(
            repos.accounts,
            repos.identities,
            betting,
            AdminPolicy(settings.admin_ids),
            settings.start_balance,
            settings.password_pepper,
        )
        # discord.py configures its own handlers unless told otherwise.
        bot.run(settings.discord_token, log_handler=None)
    finally:
        repos.close()


if __name__ == "__main__":
    main()
