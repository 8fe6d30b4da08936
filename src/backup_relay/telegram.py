from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import requests

from .config import TelegramConfig


LOGGER = logging.getLogger(__name__)

PLACEHOLDER_TOKEN = "YOUR_TELEGRAM_BOT_TOKEN_HERE"


@dataclass
class TelegramClient:
    """Minimal Bot API client for ``sendDocument`` and ``sendMessage``.

    Every call returns ``True`` only for an HTTP 200 whose JSON body has
    ``ok: true``; transport errors, timeouts and API errors are logged and
    reported as ``False``.
    """

    config: TelegramConfig
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def __enter__(self) -> "TelegramClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    @property
    def configured(self) -> bool:
        token = self.config.bot_token.get_secret_value()
        return ":" in token and token != PLACEHOLDER_TOKEN

    def send_document(self, path: Path, caption: str = "", chat_id: Union[int, str, None] = None) -> bool:
        path = Path(path)
        target = chat_id if chat_id is not None else self.config.chat_id
        if not path.exists():
            LOGGER.error("File not found for Telegram send: %s", path)
            return False
        if not self.configured or not target:
            LOGGER.error("Telegram bot token or chat id is not configured correctly.")
            return False

        data = {"chat_id": str(target), "caption": caption, "disable_notification": "false"}
        try:
            with path.open("rb") as document:
                ok = self._post(
                    "sendDocument",
                    data=data,
                    files={"document": (path.name, document)},
                    timeout=self.config.document_timeout,
                )
        except OSError as exc:
            LOGGER.error("Could not read %s for Telegram upload: %s", path, exc)
            return False
        if ok:
            LOGGER.info("Successfully sent %s to Telegram chat ID %s", path.name, target)
        return ok

    def send_message(self, chat_id: Union[int, str], text: str) -> bool:
        if not self.configured:
            LOGGER.error("Cannot send message: Telegram bot token not configured.")
            return False
        data = {"chat_id": str(chat_id), "text": text, "parse_mode": "HTML"}
        return self._post("sendMessage", data=data, timeout=self.config.message_timeout)

    def _post(self, method: str, *, data: Dict[str, Any], timeout: float, files: Optional[Dict[str, Any]] = None) -> bool:
        url = f"{self.config.api_base_url.rstrip('/')}/bot{self.config.bot_token.get_secret_value()}/{method}"
        try:
            response = self.session.post(url, data=data, files=files, timeout=timeout)
        except requests.RequestException as exc:
            # the exception text can embed the request URL, which carries the token
            LOGGER.error("Telegram %s request failed: %s", method, type(exc).__name__)
            return False

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if response.status_code != 200 or not isinstance(payload, dict) or not payload.get("ok"):
            LOGGER.error("Telegram API error on %s (HTTP %s): %s", method, response.status_code, response.text[:500])
            return False
        return True
