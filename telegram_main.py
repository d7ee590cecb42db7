import logging

from application.betting import BettingService
from application.services import AdminPolicy
from config import load_settings
from infrastructure.db.factory import build_repositories
from interfaces.telegram.handlers import create_telegram_bot


logger = logging.getLogger(__name__)


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not settings.telegram_token:
        raise RuntimeError("TELEGRAM_TOKEN environment variable is not set.")

    repos = build_repositories(settings)
    try:
        betting = BettingService(
            repos.accounts, repos.ledger, history_limit=settings.history_limit
        )
        bot = create_telegram_bot(
            settings.telegram_token,
            repos.accounts,
            repos.identities,
            betting,
            AdminPolicy(settings.admin_ids),
            settings.start_balance,
            settings.password_pepper,
        )
        logger.info("Telegram bot polling")
        bot.infinity_polling()
    finally:
        repos.close()


if __name__ == "__main__":
    main()
