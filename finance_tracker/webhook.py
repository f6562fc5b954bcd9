"""Serverless entry point: one Telegram update per invocation."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, Optional

from telebot import types

from .bot import create_bot
from .config import Settings, build_repository, configure_logging, load_settings
from .service import ExpenseTracker

JSON_HEADERS = {"Content-Type": "application/json"}


def _response(status: int, body: str = "") -> Dict[str, Any]:
    return {"statusCode": status, "body": body, "headers": dict(JSON_HEADERS)}


def _event_body(event: Dict[str, Any]) -> str:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")
    return body


def handle_update(body: str, settings: Settings) -> None:
    update = types.Update.de_json(json.loads(body))
    repo = build_repository(settings)
    try:
        bot = create_bot(settings.bot_token, ExpenseTracker(repo, settings.tz), threaded=False)
        bot.process_new_updates([update])
    finally:
        repo.close()


def handler(event: Dict[str, Any], context: Any = None, settings: Optional[Settings] = None) -> Dict[str, Any]:
    try:
        settings = settings or load_settings()
        configure_logging(settings)
        handle_update(_event_body(event), settings)
    except Exception as exc:
        logging.exception("webhook update failed")
        return _response(500, str(exc))
    return _response(200)
