"""Telegram front end: commands, keyboards and the add-transaction dialog."""

from __future__ import annotations

import functools
import html
import io
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import telebot
from telebot import types
from telebot.apihelper import ApiTelegramException

from .charts import render_all
from .formatting import export_csv, format_history, format_money, format_report
from .models import CATEGORY_EXPENSE, CATEGORY_INCOME, Category, ReportKind, UserState
from .service import ExpenseTracker, ReportError
from .storage import StorageError


MAX_LOG_LEN = 400

AWAIT_AMOUNT = "amount"
AWAIT_DESCRIPTION = "description"
AWAIT_CATEGORY_NAME = "category_name"

SKIP_COMMENT_CALLBACK = "skip_comment"

ERROR_TEXT = "⚠️ Не удалось выполнить запрос. Попробуйте позже."


def _clip(text: Optional[str]) -> str:
    if text is None:
        return ""
    sanitized = text.replace("\n", "\\n")
    if len(sanitized) <= MAX_LOG_LEN:
        return sanitized
    return sanitized[:MAX_LOG_LEN] + "…"


class LoggingTeleBot(telebot.TeleBot):
    def _log_outbound(self, method: str, payload: Dict[str, Any]) -> None:
        logging.info("-> %s %s", method, payload)

    def send_message(self, chat_id: Any, text: Any, *args: Any, **kwargs: Any) -> Any:
        self._log_outbound("send_message", {"chat_id": chat_id, "text": _clip(str(text))})
        return super().send_message(chat_id, text, *args, **kwargs)

    def edit_message_reply_markup(self, chat_id: Any, message_id: Any, *args: Any, **kwargs: Any) -> Any:
        self._log_outbound("edit_message_reply_markup", {"chat_id": chat_id, "message_id": message_id})
        return super().edit_message_reply_markup(chat_id, message_id, *args, **kwargs)

    def send_document(self, chat_id: Any, document: Any, *args: Any, **kwargs: Any) -> Any:
        name = getattr(document, "name", getattr(document, "filename", "document"))
        self._log_outbound("send_document", {"chat_id": chat_id, "document": name})
        return super().send_document(chat_id, document, *args, **kwargs)

    def send_photo(self, chat_id: Any, photo: Any, *args: Any, **kwargs: Any) -> Any:
        self._log_outbound("send_photo", {"chat_id": chat_id, "photo": getattr(photo, "name", str(photo)[:60])})
        return super().send_photo(chat_id, photo, *args, **kwargs)

    def answer_callback_query(self, callback_query_id: Any, text: Optional[str] = None, *args: Any, **kwargs: Any) -> Any:
        self._log_outbound(
            "answer_callback_query",
            {"callback_query_id": callback_query_id, "text": _clip(text) if text else ""},
        )
        return super().answer_callback_query(callback_query_id, text, *args, **kwargs)


def log_updates(messages: List[Any]) -> None:
    for message in messages:
        if isinstance(message, types.Message):
            payload = {
                "chat_id": message.chat.id,
                "user_id": message.from_user.id if message.from_user else None,
                "type": message.content_type,
                "text": _clip(message.text if message.content_type == "text" else message.caption),
            }
            logging.info("<- message %s", payload)


def log_callback(callback: types.CallbackQuery) -> None:
    payload = {
        "chat_id": callback.message.chat.id if callback.message else None,
        "user_id": callback.from_user.id if callback.from_user else None,
        "data": _clip(callback.data),
    }
    logging.info("<- callback %s", payload)


BOT_COMMANDS: Tuple[Tuple[str, str], ...] = (
    ("start", "Начать работу"),
    ("help", "Справка"),
    ("add", "Добавить расход"),
    ("income", "Добавить доход"),
    ("report", "Отчеты"),
    ("today", "Отчет за сегодня"),
    ("week", "Отчет за неделю"),
    ("month", "Отчет за месяц"),
    ("year", "Отчет за год"),
    ("summary", "Итоги месяца"),
    ("charts", "Графики за месяц"),
    ("history", "История операций"),
    ("categories", "Категории"),
    ("export", "Экспорт CSV"),
)

MAIN_MENU_LAYOUT: Tuple[Tuple[str, ...], ...] = (
    ("➕ Расход", "💰 Доход"),
    ("📊 Сегодня", "📈 Неделя", "🗓️ Месяц", "📅 Год"),
    ("📰 История", "🗂 Категории", "📋 Отчеты"),
)

REPORT_BUTTONS: Tuple[Tuple[str, str], ...] = (
    ("📊 За день", "report:daily"),
    ("📈 За неделю", "report:weekly"),
    ("📋 За месяц", "report:monthly"),
    ("📅 За год", "report:yearly"),
    ("🧾 Итоги месяца", "report:summary"),
    ("🖼 Графики", "charts:monthly"),
)

HELP_TEXT = """<b>Основные команды</b>
/add — добавить расход
/income — записать доход
/report — выбрать отчет
/today, /week, /month, /year — отчет за период со сравнением с предыдущим
/summary — итоги месяца в сравнении с прошлым месяцем
/charts — графики за текущий месяц
/history — последние операции и удаление
/categories — управление категориями
/export YYYY-MM — выгрузка CSV за месяц
"""


def parse_amount(value: str) -> float:
    normalized = value.replace(" ", "").replace(",", ".")
    amount = float(normalized)
    if amount <= 0:
        raise ValueError("amount must be positive")
    return round(amount, 2)


def build_main_menu_keyboard() -> types.ReplyKeyboardMarkup:
    markup = types.ReplyKeyboardMarkup(resize_keyboard=True)
    for row in MAIN_MENU_LAYOUT:
        markup.row(*(types.KeyboardButton(btn) for btn in row))
    return markup


def build_categories_keyboard(categories: List[Category], kind: str) -> types.InlineKeyboardMarkup:
    markup = types.InlineKeyboardMarkup(row_width=2)
    buttons = [
        types.InlineKeyboardButton(text=category.name, callback_data=f"pick:{kind}:{category.id}")
        for category in categories
    ]
    while buttons:
        markup.row(*buttons[:2])
        buttons = buttons[2:]
    markup.row(types.InlineKeyboardButton(text="➕ Новая категория", callback_data=f"add_cat:{kind}"))
    return markup


def build_report_keyboard() -> types.InlineKeyboardMarkup:
    markup = types.InlineKeyboardMarkup(row_width=2)
    buttons = [types.InlineKeyboardButton(text=text, callback_data=data) for text, data in REPORT_BUTTONS]
    while buttons:
        markup.row(*buttons[:2])
        buttons = buttons[2:]
    return markup


def build_comment_keyboard() -> types.InlineKeyboardMarkup:
    markup = types.InlineKeyboardMarkup()
    markup.add(types.InlineKeyboardButton(text="Пропустить 💨", callback_data=SKIP_COMMENT_CALLBACK))
    return markup


def build_history_keyboard(transaction_ids: List[str]) -> Optional[types.InlineKeyboardMarkup]:
    if not transaction_ids:
        return None
    markup = types.InlineKeyboardMarkup(row_width=1)
    for number, tx_id in enumerate(transaction_ids, start=1):
        markup.add(types.InlineKeyboardButton(text=f"Удалить #{number}", callback_data=f"delete_tx:{tx_id}"))
    return markup


def build_manage_categories_keyboard(categories: List[Category]) -> types.InlineKeyboardMarkup:
    markup = types.InlineKeyboardMarkup(row_width=1)
    for category in categories:
        icon = "💰" if category.is_income else "💸"
        markup.add(
            types.InlineKeyboardButton(text=f"🗑 {icon} {category.name}", callback_data=f"delete_cat:{category.id}")
        )
    markup.row(
        types.InlineKeyboardButton(text="➕ Расход", callback_data=f"add_cat:{CATEGORY_EXPENSE}"),
        types.InlineKeyboardButton(text="➕ Доход", callback_data=f"add_cat:{CATEGORY_INCOME}"),
    )
    return markup


def create_bot(token: str, tracker: ExpenseTracker, threaded: bool = True) -> LoggingTeleBot:
    bot = LoggingTeleBot(token, parse_mode="HTML", threaded=threaded)
    bot.set_update_listener(log_updates)
    register_handlers(bot, tracker)
    return bot


def register_handlers(bot: telebot.TeleBot, tracker: ExpenseTracker) -> None:
    def send_with_main_menu(chat_id: int, text: str, **kwargs: Any) -> Any:
        kwargs.setdefault("reply_markup", build_main_menu_keyboard())
        return bot.send_message(chat_id, text, **kwargs)

    def guarded(action: Callable[..., None]) -> Callable[..., None]:
        @functools.wraps(action)
        def wrapper(*args: Any) -> None:
            if args and isinstance(args[0], types.CallbackQuery):
                log_callback(args[0])
            try:
                action(*args)
            except (ReportError, StorageError):
                logging.exception("request failed in %s", action.__name__)
                chat_id = _chat_id(args[0])
                if chat_id is not None:
                    send_with_main_menu(chat_id, ERROR_TEXT)

        return wrapper

    def start_transaction_flow(chat_id: int, user_id: int, kind: str) -> None:
        tracker.clear_user_state(user_id)
        categories = tracker.get_categories(user_id, kind)
        title = "расхода" if kind == CATEGORY_EXPENSE else "дохода"
        bot.send_message(
            chat_id,
            f"<b>Добавление {title}</b>\nВыберите категорию:",
            reply_markup=build_categories_keyboard(categories, kind),
        )

    def send_report(chat_id: int, user_id: int, kind: ReportKind) -> None:
        report = tracker.get_report(user_id, kind)
        markup = types.InlineKeyboardMarkup()
        markup.add(types.InlineKeyboardButton(text="🖼 Графики", callback_data=f"charts:{kind.value}"))
        bot.send_message(chat_id, format_report(report), reply_markup=markup)

    def send_summary(chat_id: int, user_id: int) -> None:
        report = tracker.get_monthly_report(user_id)
        send_with_main_menu(chat_id, f"<b>Итоги: {report.period}</b>\n\n{report.text}")

    def send_charts(chat_id: int, user_id: int, kind: ReportKind) -> None:
        report = tracker.get_report(user_id, kind)
        charts = render_all(report)
        if not charts:
            send_with_main_menu(chat_id, "Недостаточно данных для графиков.")
            return
        for name, buf in charts:
            buf.name = f"{name}.png"
            bot.send_photo(chat_id, buf)

    def send_history(chat_id: int, user_id: int) -> None:
        transactions = tracker.get_recent_transactions(user_id)
        names = {c.id: c.name for c in tracker.get_categories(user_id)}
        text = format_history(transactions, names)
        bot.send_message(chat_id, text, reply_markup=build_history_keyboard([t.id for t in transactions]))

    def send_categories(chat_id: int, user_id: int) -> None:
        categories = tracker.get_categories(user_id)
        lines = ["<b>Ваши категории</b>"]
        for category in categories:
            icon = "💰" if category.is_income else "💸"
            lines.append(f"{icon} {html.escape(category.name)}")
        if len(lines) == 1:
            lines.append("Категорий пока нет.")
        lines.append("\nНажмите на категорию, чтобы удалить её.")
        bot.send_message(chat_id, "\n".join(lines), reply_markup=build_manage_categories_keyboard(categories))

    def finalize_transaction(chat_id: int, user_id: int, state: UserState, description: str) -> None:
        amount = state.pending_amount or 0.0
        signed = amount if state.transaction_type == CATEGORY_INCOME else -amount
        tracker.add_transaction(user_id, state.selected_category_id or None, signed, description)
        tracker.clear_user_state(user_id)
        category = tracker.get_category(user_id, state.selected_category_id)
        title = html.escape(category.name) if category else "Без категории"
        icon = "💰" if signed > 0 else "💸"
        send_with_main_menu(chat_id, f"Записано: {icon} {title} — {format_money(amount)}")

    report_commands = {
        "today": ReportKind.DAILY,
        "week": ReportKind.WEEKLY,
        "month": ReportKind.MONTHLY,
        "year": ReportKind.YEARLY,
    }

    main_menu_actions: Dict[str, Callable[[types.Message], None]] = {
        "➕ Расход": lambda m: start_transaction_flow(m.chat.id, m.from_user.id, CATEGORY_EXPENSE),
        "💰 Доход": lambda m: start_transaction_flow(m.chat.id, m.from_user.id, CATEGORY_INCOME),
        "📊 Сегодня": lambda m: send_report(m.chat.id, m.from_user.id, ReportKind.DAILY),
        "📈 Неделя": lambda m: send_report(m.chat.id, m.from_user.id, ReportKind.WEEKLY),
        "🗓️ Месяц": lambda m: send_report(m.chat.id, m.from_user.id, ReportKind.MONTHLY),
        "📅 Год": lambda m: send_report(m.chat.id, m.from_user.id, ReportKind.YEARLY),
        "📰 История": lambda m: send_history(m.chat.id, m.from_user.id),
        "🗂 Категории": lambda m: send_categories(m.chat.id, m.from_user.id),
        "📋 Отчеты": lambda m: bot.send_message(m.chat.id, "Выберите отчет:", reply_markup=build_report_keyboard()),
    }

    @bot.message_handler(commands=["start"])
    @guarded
    def cmd_start(message: types.Message) -> None:
        tracker.clear_user_state(message.from_user.id)
        tracker.create_default_categories(message.from_user.id)
        send_with_main_menu(
            message.chat.id,
            "<b>Привет! Я помогу вести учет финансов</b> 💰\n\n"
            "• Записывать доходы и расходы\n"
            "• Показывать отчеты по категориям и сравнение с прошлым периодом\n"
            "• Управлять категориями\n\n"
            "Выбирайте кнопки ниже или используйте команды из /help.",
        )

    @bot.message_handler(commands=["help"])
    def cmd_help(message: types.Message) -> None:
        send_with_main_menu(message.chat.id, HELP_TEXT)

    @bot.message_handler(commands=["add"])
    @guarded
    def cmd_add(message: types.Message) -> None:
        start_transaction_flow(message.chat.id, message.from_user.id, CATEGORY_EXPENSE)

    @bot.message_handler(commands=["income"])
    @guarded
    def cmd_income(message: types.Message) -> None:
        start_transaction_flow(message.chat.id, message.from_user.id, CATEGORY_INCOME)

    @bot.message_handler(commands=["report"])
    def cmd_report(message: types.Message) -> None:
        bot.send_message(message.chat.id, "Выберите отчет:", reply_markup=build_report_keyboard())

    @bot.message_handler(commands=list(report_commands))
    @guarded
    def cmd_period_report(message: types.Message) -> None:
        command = message.text.split()[0].lstrip("/").split("@")[0]
        send_report(message.chat.id, message.from_user.id, report_commands[command])

    @bot.message_handler(commands=["summary"])
    @guarded
    def cmd_summary(message: types.Message) -> None:
        send_summary(message.chat.id, message.from_user.id)

    @bot.message_handler(commands=["charts"])
    @guarded
    def cmd_charts(message: types.Message) -> None:
        send_charts(message.chat.id, message.from_user.id, ReportKind.MONTHLY)

    @bot.message_handler(commands=["history"])
    @guarded
    def cmd_history(message: types.Message) -> None:
        send_history(message.chat.id, message.from_user.id)

    @bot.message_handler(commands=["categories"])
    @guarded
    def cmd_categories(message: types.Message) -> None:
        send_categories(message.chat.id, message.from_user.id)

    @bot.message_handler(commands=["export"])
    @guarded
    def cmd_export(message: types.Message) -> None:
        parts = message.text.split(maxsplit=1)
        if len(parts) < 2:
            send_with_main_menu(message.chat.id, "Использование: /export YYYY-MM")
            return
        try:
            period = datetime.strptime(parts[1].strip(), "%Y-%m").replace(tzinfo=tracker.tz)
        except ValueError:
            send_with_main_menu(message.chat.id, "Неверный формат. Используйте YYYY-MM, например 2025-01.")
            return
        transactions = tracker.get_month_transactions(message.from_user.id, period)
        if not transactions:
            send_with_main_menu(message.chat.id, "За выбранный месяц нет операций.")
            return
        names = {c.id: c.name for c in tracker.get_categories(message.from_user.id)}
        binary = io.BytesIO(export_csv(transactions, names))
        binary.name = f"finance_{message.from_user.id}_{period.strftime('%Y_%m')}.csv"
        bot.send_document(message.chat.id, binary)

    @bot.message_handler(func=lambda message: message.content_type == "text" and message.text in main_menu_actions)
    @guarded
    def handle_main_menu_buttons(message: types.Message) -> None:
        tracker.clear_user_state(message.from_user.id)
        main_menu_actions[message.text](message)

    @bot.callback_query_handler(func=lambda call: call.data.startswith("report:"))
    @guarded
    def cb_report(call: types.CallbackQuery) -> None:
        choice = call.data.split(":", 1)[1]
        bot.answer_callback_query(call.id)
        if choice == "summary":
            send_summary(call.message.chat.id, call.from_user.id)
        else:
            send_report(call.message.chat.id, call.from_user.id, ReportKind(choice))

    @bot.callback_query_handler(func=lambda call: call.data.startswith("charts:"))
    @guarded
    def cb_charts(call: types.CallbackQuery) -> None:
        bot.answer_callback_query(call.id, "Готовлю графики…")
        send_charts(call.message.chat.id, call.from_user.id, ReportKind(call.data.split(":", 1)[1]))

    @bot.callback_query_handler(func=lambda call: call.data.startswith("pick:"))
    @guarded
    def cb_pick_category(call: types.CallbackQuery) -> None:
        _, kind, category_id = call.data.split(":", 2)
        category = tracker.get_category(call.from_user.id, category_id)
        if category is None:
            bot.answer_callback_query(call.id, "Категория не найдена.", show_alert=True)
            return
        tracker.save_user_state(
            UserState(
                user_id=call.from_user.id,
                awaiting_action=AWAIT_AMOUNT,
                transaction_type=kind,
                selected_category_id=category.id,
                updated_at=tracker.now(),
            )
        )
        bot.answer_callback_query(call.id, text=f"Категория: {category.name}")
        bot.send_message(call.message.chat.id, f"Введите сумму для «{html.escape(category.name)}» (например, 450):")

    @bot.callback_query_handler(func=lambda call: call.data.startswith("add_cat:"))
    @guarded
    def cb_add_category(call: types.CallbackQuery) -> None:
        kind = call.data.split(":", 1)[1]
        tracker.save_user_state(
            UserState(
                user_id=call.from_user.id,
                awaiting_action=AWAIT_CATEGORY_NAME,
                transaction_type=kind,
                updated_at=tracker.now(),
            )
        )
        bot.answer_callback_query(call.id)
        title = "дохода" if kind == CATEGORY_INCOME else "расхода"
        bot.send_message(call.message.chat.id, f"Введите название новой категории {title}:")

    @bot.callback_query_handler(func=lambda call: call.data.startswith("delete_cat:"))
    @guarded
    def cb_delete_category(call: types.CallbackQuery) -> None:
        category_id = call.data.split(":", 1)[1]
        if tracker.delete_category(category_id, call.from_user.id):
            bot.answer_callback_query(call.id, "Категория удалена ✅")
            send_categories(call.message.chat.id, call.from_user.id)
        else:
            bot.answer_callback_query(call.id, "Не удалось удалить.", show_alert=True)

    @bot.callback_query_handler(func=lambda call: call.data.startswith("delete_tx:"))
    @guarded
    def cb_delete_transaction(call: types.CallbackQuery) -> None:
        tx_id = call.data.split(":", 1)[1]
        if not tx_id:
            bot.answer_callback_query(call.id, "Некорректный запрос.", show_alert=True)
            return
        if tracker.delete_transaction(tx_id, call.from_user.id):
            bot.answer_callback_query(call.id, "Запись удалена ✅")
            send_history(call.message.chat.id, call.from_user.id)
        else:
            bot.answer_callback_query(call.id, "Не удалось удалить.", show_alert=True)

    @bot.callback_query_handler(func=lambda call: call.data == SKIP_COMMENT_CALLBACK)
    @guarded
    def cb_skip_comment(call: types.CallbackQuery) -> None:
        state = tracker.get_user_state(call.from_user.id)
        if not state or state.awaiting_action != AWAIT_DESCRIPTION:
            bot.answer_callback_query(call.id, "Нет ожидаемого комментария.", show_alert=True)
            return
        try:
            bot.edit_message_reply_markup(call.message.chat.id, call.message.message_id)
        except ApiTelegramException as exc:
            logging.warning("could not drop comment keyboard: %s", exc)
        finalize_transaction(call.message.chat.id, call.from_user.id, state, "")
        bot.answer_callback_query(call.id, "Комментарий пропущен")

    def handle_amount(message: types.Message, state: UserState) -> None:
        try:
            amount = parse_amount(message.text.strip())
        except ValueError:
            bot.send_message(message.chat.id, "Сумма должна быть положительным числом. Попробуйте снова:")
            return
        tracker.save_user_state(
            UserState(
                user_id=state.user_id,
                awaiting_action=AWAIT_DESCRIPTION,
                transaction_type=state.transaction_type,
                selected_category_id=state.selected_category_id,
                pending_amount=amount,
                updated_at=tracker.now(),
            )
        )
        bot.send_message(
            message.chat.id,
            "Добавьте комментарий или нажмите кнопку, чтобы пропустить.",
            reply_markup=build_comment_keyboard(),
        )

    def handle_category_name(message: types.Message, state: UserState) -> None:
        try:
            category = tracker.create_category(message.from_user.id, message.text, state.transaction_type)
        except ValueError:
            bot.send_message(message.chat.id, "Название не может быть пустым. Попробуйте снова:")
            return
        tracker.clear_user_state(message.from_user.id)
        send_with_main_menu(message.chat.id, f"Категория «{html.escape(category.name)}» создана.")

    @bot.message_handler(content_types=["text"])
    @guarded
    def handle_text(message: types.Message) -> None:
        state = tracker.get_user_state(message.from_user.id)
        if state and not message.text.startswith("/"):
            if state.awaiting_action == AWAIT_AMOUNT:
                handle_amount(message, state)
                return
            if state.awaiting_action == AWAIT_DESCRIPTION:
                finalize_transaction(message.chat.id, message.from_user.id, state, message.text.strip())
                return
            if state.awaiting_action == AWAIT_CATEGORY_NAME:
                handle_category_name(message, state)
                return
        if message.text.startswith("/"):
            return
        send_with_main_menu(message.chat.id, "Выберите действие через кнопки ниже или используйте /help.")


def _chat_id(update: Any) -> Optional[int]:
    if isinstance(update, types.Message):
        return update.chat.id
    if isinstance(update, types.CallbackQuery) and update.message is not None:
        return update.message.chat.id
    return None


def run_polling(bot: telebot.TeleBot) -> None:
    bot.set_my_commands([types.BotCommand(name, description) for name, description in BOT_COMMANDS])
    bot.infinity_polling(skip_pending=True)
