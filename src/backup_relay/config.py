"""Application configuration using Pydantic settings."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or invalid."""


class DatabaseConfig(BaseModel):
    """Connection details for the database being backed up (read-only account)."""

    host: str = "localhost"
    port: int = 3306
    name: str = ""
    user: str = ""
    password: SecretStr = SecretStr("")
    driver: str = "mysql+pymysql"
    url: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL overriding host/port/user/password for the CSV export.",
    )

    def sqlalchemy_url(self) -> URL:
        if self.url:
            return make_url(self.url)
        return URL.create(
            self.driver,
            username=self.user or None,
            password=self.password.get_secret_value() or None,
            host=self.host,
            port=self.port,
            database=self.name,
            query={"charset": "utf8mb4"} if self.driver.startswith("mysql") else {},
        )


class ToolsConfig(BaseModel):
    """Paths of the external programs used by the dump and compress steps."""

    dump_path: str = "/usr/bin/mysqldump"
    gzip_path: str = "/usr/bin/gzip"


class TelegramConfig(BaseModel):
    """Telegram Bot API credentials and limits."""

    bot_token: SecretStr = SecretStr("")
    chat_id: str = ""
    api_base_url: str = "https://api.telegram.org"
    document_timeout: float = 90.0
    message_timeout: float = 10.0


class WebhookConfig(BaseModel):
    """Settings for the webhook receiver."""

    path: str = "/telegram/webhook"
    allowlist_path: Path = Path("allowed_chats.txt")
    trigger_keyword: str = "/backup"
    trigger_command: List[str] = Field(default_factory=lambda: [sys.executable, "-m", "backup_relay"])
    trigger_script: Optional[Path] = Field(
        default=None,
        description="Script the trigger command runs; checked for existence before launching.",
    )


class Settings(BaseSettings):
    """Central application settings."""

    model_config = SettingsConfigDict(
        env_prefix="BACKUP_RELAY_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    staging_dir: Path = Path("backups")
    log_dir: Path = Path("logs")
    timezone: str = "UTC"

    def zone(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"Unknown timezone: {self.timezone}") from exc

    def validate_for_backup(self) -> None:
        """Raise ``ConfigurationError`` naming every option the pipeline cannot run without."""

        missing = []
        if not self.database.name:
            missing.append("database.name")
        if not self.database.url and not self.database.user:
            missing.append("database.user")
        if not self.tools.dump_path:
            missing.append("tools.dump_path")
        if not self.tools.gzip_path:
            missing.append("tools.gzip_path")
        if not self.telegram.bot_token.get_secret_value():
            missing.append("telegram.bot_token")
        if not self.telegram.chat_id:
            missing.append("telegram.chat_id")
        if missing:
            raise ConfigurationError("Missing required settings: " + ", ".join(missing))
        self.zone()

    def validate_for_webhook(self) -> None:
        missing = []
        if not self.telegram.bot_token.get_secret_value():
            missing.append("telegram.bot_token")
        if not self.webhook.trigger_command:
            missing.append("webhook.trigger_command")
        if not self.webhook.trigger_keyword.strip():
            missing.append("webhook.trigger_keyword")
        if missing:
            raise ConfigurationError("Missing required settings: " + ", ".join(missing))

    def to_dict(self) -> Dict[str, Any]:
        """Return settings as a dictionary with secrets masked."""

        return {
            "database": self.database.model_dump(mode="json"),
            "tools": self.tools.model_dump(),
            "telegram": self.telegram.model_dump(mode="json"),
            "webhook": self.webhook.model_dump(mode="json"),
            "staging_dir": str(self.staging_dir),
            "log_dir": str(self.log_dir),
            "timezone": self.timezone,
        }


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment, wrapping validation failures."""

    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "Settings",
    "TelegramConfig",
    "ToolsConfig",
    "WebhookConfig",
    "load_settings",
]
