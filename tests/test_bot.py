import pytest
from telebot import types

from finance_tracker.bot import (
    ERROR_TEXT,
    SKIP_COMMENT_CALLBACK,
    build_categories_keyboard,
    build_history_keyboard,
    build_manage_categories_keyboard,
    build_report_keyboard,
    create_bot,
    parse_amount,
)
from finance_tracker.models import Category
from finance_tracker.service import ExpenseTracker

from .factories import FOOD, SALARY, FailingRepository, MemoryRepository


CHAT = {"id": 10, "type": "private"}
USER = {"id": 10, "is_bot": False, "first_name": "Test"}
DATE = 1790000000


def message_update(update_id, text):
    return types.Update.de_json(
        {
            "update_id": update_id,
            "message": {"message_id": update_id, "date": DATE, "chat": CHAT, "from": USER, "text": text},
        }
    )


def callback_update(update_id, data):
    return types.Update.de_json(
        {
            "update_id": update_id,
            "callback_query": {
                "id": f"cb{update_id}",
                "from": USER,
                "chat_instance": "1",
                "data": data,
                "message": {"message_id": update_id, "date": DATE, "chat": CHAT, "text": "menu"},
            },
        }
    )


class Outbox:
    def __init__(self):
        self.messages = []
        self.answers = []
        self.documents = []

    def send_message(self, chat_id, text, **kwargs):
        self.messages.append(text)

    def answer_callback_query(self, callback_query_id, text=None, **kwargs):
        self.answers.append(text)

    def edit_message_reply_markup(self, chat_id, message_id, **kwargs):
        return None

    def send_document(self, chat_id, document, **kwargs):
        self.documents.append(document)


@pytest.fixture
def outbox():
    return Outbox()


def make_bot(repo, outbox):
    bot = create_bot("123456:TEST", ExpenseTracker(repo), threaded=False)
    bot.send_message = outbox.send_message
    bot.answer_callback_query = outbox.answer_callback_query
    bot.edit_message_reply_markup = outbox.edit_message_reply_markup
    bot.send_document = outbox.send_document
    return bot


@pytest.mark.parametrize("raw, expected", [("450", 450.0), ("1 250,5", 1250.5), ("0.333", 0.33)])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "0", "-5"])
def test_parse_amount_rejects(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_category_keyboard_callbacks():
    markup = build_categories_keyboard([FOOD], "expense")
    data = [button.callback_data for row in markup.keyboard for button in row]
    assert data == ["pick:expense:c-food", "add_cat:expense"]


def test_report_keyboard_covers_every_report():
    data = [button.callback_data for row in build_report_keyboard().keyboard for button in row]
    assert data == [
        "report:daily",
        "report:weekly",
        "report:monthly",
        "report:yearly",
        "report:summary",
        "charts:monthly",
    ]


def test_history_and_manage_keyboards():
    assert build_history_keyboard([]) is None
    history = build_history_keyboard(["t1", "t2"])
    assert [row[0].callback_data for row in history.keyboard] == ["delete_tx:t1", "delete_tx:t2"]
    manage = build_manage_categories_keyboard([FOOD, SALARY])
    data = [button.callback_data for row in manage.keyboard for button in row]
    assert data == ["delete_cat:c-food", "delete_cat:c-salary", "add_cat:expense", "add_cat:income"]


def test_add_expense_dialog(outbox):
    repo = MemoryRepository()
    bot = make_bot(repo, outbox)

    bot.process_new_updates([message_update(1, "/start")])
    food = next(c for c in repo.categories if c.name == "Продукты")

    bot.process_new_updates([callback_update(2, f"pick:expense:{food.id}")])
    assert repo.states[10].awaiting_action == "amount"

    bot.process_new_updates([message_update(3, "abc")])
    assert "положительным числом" in outbox.messages[-1]

    bot.process_new_updates([message_update(4, "450")])
    assert repo.states[10].pending_amount == 450.0

    bot.process_new_updates([message_update(5, "обед")])
    assert 10 not in repo.states
    (stored,) = repo.transactions
    assert stored.amount == -450.0
    assert stored.description == "обед"
    assert stored.category_id == food.id
    assert "Продукты" in outbox.messages[-1]


def test_income_dialog_with_skipped_comment(outbox):
    repo = MemoryRepository(categories=[Category(id="c-salary", user_id=10, name="Зарплата", type="income")])
    bot = make_bot(repo, outbox)

    bot.process_new_updates([callback_update(1, "pick:income:c-salary")])
    bot.process_new_updates([message_update(2, "1000")])
    bot.process_new_updates([callback_update(3, SKIP_COMMENT_CALLBACK)])

    (stored,) = repo.transactions
    assert stored.amount == 1000.0
    assert stored.description == ""
    assert outbox.answers[-1] == "Комментарий пропущен"


def test_new_category_dialog(outbox):
    repo = MemoryRepository()
    bot = make_bot(repo, outbox)
    bot.process_new_updates([callback_update(1, "add_cat:income")])
    bot.process_new_updates([message_update(2, "Фриланс")])
    assert [(c.name, c.type) for c in repo.categories] == [("Фриланс", "income")]
    assert 10 not in repo.states


def test_report_command_sends_report(outbox):
    repo = MemoryRepository(categories=[FOOD])
    bot = make_bot(repo, outbox)
    bot.process_new_updates([message_update(1, "/month")])
    assert outbox.messages[-1].startswith("📊 <b>Отчет за ")


def test_storage_failure_is_reported_to_user(outbox):
    bot = make_bot(FailingRepository(fail_on_call=1), outbox)
    bot.process_new_updates([message_update(1, "/week")])
    assert outbox.messages == [ERROR_TEXT]


def test_export_without_month_shows_usage(outbox):
    bot = make_bot(MemoryRepository(), outbox)
    bot.process_new_updates([message_update(1, "/export")])
    bot.process_new_updates([message_update(2, "/export 2026-13")])
    assert outbox.messages[0].startswith("Использование")
    assert outbox.messages[1].startswith("Неверный формат")
    assert outbox.documents == []
