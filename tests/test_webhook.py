import base64
import json

import pytest

from finance_tracker import webhook
from finance_tracker.bot import LoggingTeleBot
from finance_tracker.config import Settings
from finance_tracker.webhook import handler

from .factories import MemoryRepository


@pytest.fixture
def settings(tmp_path):
    return Settings(bot_token="123456:TEST", db_path=str(tmp_path / "finance.sqlite3"), timezone="UTC")


def test_update_without_content_is_acknowledged(settings):
    response = handler({"body": json.dumps({"update_id": 1})}, settings=settings)
    assert response["statusCode"] == 200
    assert response["headers"]["Content-Type"] == "application/json"


def test_invalid_body_returns_error(settings):
    response = handler({"body": "not json"}, settings=settings)
    assert response["statusCode"] == 500
    assert response["body"]


def test_base64_message_is_dispatched(settings, monkeypatch):
    sent = []
    monkeypatch.setattr(LoggingTeleBot, "send_message", lambda self, chat_id, text, **kwargs: sent.append(text))
    update = {
        "update_id": 2,
        "message": {
            "message_id": 2,
            "date": 1790000000,
            "chat": {"id": 5, "type": "private"},
            "from": {"id": 5, "is_bot": False, "first_name": "Test"},
            "text": "/help",
        },
    }
    body = base64.b64encode(json.dumps(update).encode("utf-8")).decode("ascii")
    response = handler({"body": body, "isBase64Encoded": True}, settings=settings)
    assert response["statusCode"] == 200
    assert sent and sent[0].startswith("<b>Основные команды</b>")


def test_repository_is_closed_after_update(settings, monkeypatch):
    repo = MemoryRepository()
    monkeypatch.setattr(webhook, "build_repository", lambda _settings: repo)
    response = handler({"body": json.dumps({"update_id": 3})}, settings=settings)
    assert response["statusCode"] == 200
    assert repo.closed


def test_repository_is_closed_when_dispatch_fails(settings, monkeypatch):
    repo = MemoryRepository()

    def broken_bot(*args, **kwargs):
        raise RuntimeError("telegram unavailable")

    monkeypatch.setattr(webhook, "build_repository", lambda _settings: repo)
    monkeypatch.setattr(webhook, "create_bot", broken_bot)
    response = handler({"body": json.dumps({"update_id": 4})}, settings=settings)
    assert response["statusCode"] == 500
    assert response["body"] == "telegram unavailable"
    assert repo.closed
