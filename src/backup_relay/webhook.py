"""Telegram webhook receiver that starts backups for allow-listed chats."""
from __future__ import annotations

import html
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.concurrency import run_in_threadpool

from .allowlist import AllowListStore
from .config import Settings
from .runner import CommandResult, CommandRunner
from .telegram import TelegramClient

logger = logging.getLogger(__name__)


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None


class TelegramUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    chat: Optional[TelegramChat] = None
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    text: Optional[str] = None


class TelegramUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None


@dataclass
class InboundMessage:
    chat_id: int
    user_id: int
    text: str


@dataclass
class DispatchResult:
    status_code: int
    body: str


class Replier(Protocol):
    def send_message(self, chat_id: Union[int, str], text: str) -> bool:
        ...

    def close(self) -> None:
        ...


class TriggerRunner(Protocol):
    def run(self, command, **kwargs) -> CommandResult:
        ...


class WebhookDispatcher:
    """Authorize one inbound update and act on it.

    The backup itself runs in a separate process started from the configured
    trigger command; only its exit code is observed here.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        allowlist: AllowListStore,
        replier: Replier,
        runner: TriggerRunner,
    ) -> None:
        self.settings = settings
        self.allowlist = allowlist
        self.replier = replier
        self.runner = runner

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookDispatcher":
        return cls(
            settings,
            allowlist=AllowListStore(settings.webhook.allowlist_path),
            replier=TelegramClient(settings.telegram),
            runner=CommandRunner(),
        )

    def handle(self, raw_body: bytes) -> DispatchResult:
        if not raw_body or not raw_body.strip():
            logger.error("Webhook received empty input.")
            return DispatchResult(400, "No input received.")
        try:
            payload = json.loads(raw_body)
            if not isinstance(payload, dict):
                raise ValueError("update is not a JSON object")
            update = TelegramUpdate.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            logger.error("Webhook failed to decode update: %s", exc)
            return DispatchResult(400, "Invalid JSON received.")

        if update.message is None:
            return DispatchResult(200, "OK")

        message = self._extract(update.message)
        if message is None:
            logger.error("Webhook received message with missing chat_id or user_id (update %s)", update.update_id)
            return DispatchResult(400, "Missing chat or user ID.")

        if not self.allowlist.is_allowed(message.chat_id):
            logger.warning("Unauthorized access attempt from Chat ID: %s, User ID: %s", message.chat_id, message.user_id)
            return DispatchResult(200, "Unauthorized.")

        if message.text.lower() == self.settings.webhook.trigger_keyword.strip().lower():
            return self._trigger_backup(message)

        logger.info(
            "Received unknown command %r from authorized Chat ID: %s, User ID: %s",
            message.text,
            message.chat_id,
            message.user_id,
        )
        self.replier.send_message(
            message.chat_id,
            f"Sorry, I only understand the <code>{html.escape(self.settings.webhook.trigger_keyword)}</code> command.",
        )
        return DispatchResult(200, "OK")

    def close(self) -> None:
        self.replier.close()

    @staticmethod
    def _extract(message: TelegramMessage) -> Optional[InboundMessage]:
        chat_id = message.chat.id if message.chat else None
        user_id = message.from_user.id if message.from_user else None
        if chat_id is None or user_id is None:
            return None
        return InboundMessage(chat_id=chat_id, user_id=user_id, text=(message.text or "").strip())

    def _trigger_backup(self, message: InboundMessage) -> DispatchResult:
        logger.info("Received backup command from authorized Chat ID: %s, User ID: %s", message.chat_id, message.user_id)
        database = html.escape(self.settings.database.name or "database")
        self.replier.send_message(message.chat_id, f"Backup initiated for database <code>{database}</code>. Please wait...")

        webhook = self.settings.webhook
        if webhook.trigger_script is not None and not webhook.trigger_script.exists():
            logger.error("Cannot execute backup: trigger script not found: %s", webhook.trigger_script)
            return self._configuration_error(message)

        result = self.runner.run(webhook.trigger_command)
        if not result.launched:
            logger.error("Cannot execute backup: %s (%s)", result.display, result.reason)
            return self._configuration_error(message)

        if result.return_code == 0:
            logger.info("Backup run triggered by Chat ID %s finished with exit code 0.", message.chat_id)
        else:
            logger.error(
                "Backup run triggered by Chat ID %s FAILED with exit code %s. Check backup logs.",
                message.chat_id,
                result.return_code,
            )
            self.replier.send_message(
                message.chat_id,
                f"⚠️ An error occurred while trying to <b>run</b> the backup process "
                f"(Code: {result.return_code}). Please check server logs.",
            )
        return DispatchResult(200, "OK")

    def _configuration_error(self, message: InboundMessage) -> DispatchResult:
        self.replier.send_message(message.chat_id, "⚠️ Configuration error: Cannot locate backup script.")
        return DispatchResult(500, "Configuration Error")


def create_app(settings: Settings, dispatcher: Optional[WebhookDispatcher] = None) -> FastAPI:
    """Build the FastAPI application serving the webhook endpoint."""

    dispatcher = dispatcher or WebhookDispatcher.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        dispatcher.close()

    app = FastAPI(title="Backup Relay Webhook", version="1.0.0", lifespan=lifespan)

    @app.get("/health")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(settings.webhook.path, response_class=PlainTextResponse)
    async def telegram_webhook(request: Request) -> PlainTextResponse:
        body = await request.body()
        result = await run_in_threadpool(dispatcher.handle, body)
        return PlainTextResponse(result.body, status_code=result.status_code)

    return app
