from __future__ import annotations

from pathlib import Path

import pytest

from backup_relay.config import DatabaseConfig, Settings, TelegramConfig, ToolsConfig, WebhookConfig


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path: Path):
    """Keep developer .env files and BACKUP_RELAY_* variables out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("BACKUP_RELAY_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    allowlist = tmp_path / "allowed_chats.txt"
    allowlist.write_text("555\n\n  777  \n", encoding="utf-8")
    return Settings(
        database=DatabaseConfig(host="db.internal", name="shop", user="reader", password="s3cr3t!"),
        tools=ToolsConfig(dump_path="mysqldump", gzip_path="gzip"),
        telegram=TelegramConfig(bot_token="123456:ABC-token", chat_id="42"),
        webhook=WebhookConfig(allowlist_path=allowlist, trigger_command=["backup-relay-run"]),
        staging_dir=tmp_path / "staging",
        log_dir=tmp_path / "logs",
        timezone="Asia/Tehran",
    )
