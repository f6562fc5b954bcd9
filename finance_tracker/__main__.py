from .bot import create_bot, run_polling
from .config import build_repository, configure_logging, load_settings
from .service import ExpenseTracker


def main() -> None:
    settings = load_settings()
    configure_logging(settings)
    if not settings.bot_token:
        raise SystemExit("TELEGRAM_BOT_TOKEN is not set")
    tracker = ExpenseTracker(build_repository(settings), settings.tz)
    run_polling(create_bot(settings.bot_token, tracker))


if __name__ == "__main__":
    main()
