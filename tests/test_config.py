import pytest

from backup_relay.config import ConfigurationError, DatabaseConfig, Settings, load_settings


def test_settings_read_nested_environment(monkeypatch):
    monkeypatch.setenv("BACKUP_RELAY_DATABASE__NAME", "shop")
    monkeypatch.setenv("BACKUP_RELAY_DATABASE__PORT", "3307")
    monkeypatch.setenv("BACKUP_RELAY_WEBHOOK__TRIGGER_KEYWORD", "/dump")
    monkeypatch.setenv("BACKUP_RELAY_TIMEZONE", "Asia/Tehran")

    settings = load_settings()

    assert settings.database.name == "shop"
    assert settings.database.port == 3307
    assert settings.webhook.trigger_keyword == "/dump"
    assert settings.zone().key == "Asia/Tehran"


def test_validate_for_backup_lists_missing_options():
    with pytest.raises(ConfigurationError) as excinfo:
        Settings().validate_for_backup()
    message = str(excinfo.value)
    for option in ("database.name", "database.user", "telegram.bot_token", "telegram.chat_id"):
        assert option in message


def test_unknown_timezone_is_a_configuration_error(settings):
    settings.timezone = "Mars/Olympus_Mons"
    with pytest.raises(ConfigurationError):
        settings.validate_for_backup()


def test_invalid_values_raise_configuration_error(monkeypatch):
    monkeypatch.setenv("BACKUP_RELAY_DATABASE__PORT", "not-a-port")
    with pytest.raises(ConfigurationError):
        load_settings()


def test_secrets_are_masked_in_dump(settings):
    dumped = str(settings.to_dict())
    assert "s3cr3t!" not in dumped
    assert "ABC-token" not in dumped


def test_sqlalchemy_url_uses_mysql_defaults():
    url = DatabaseConfig(host="db", name="shop", user="reader", password="pw").sqlalchemy_url()
    assert url.drivername == "mysql+pymysql"
    assert url.database == "shop"
    assert url.password == "pw"
    assert url.query["charset"] == "utf8mb4"

    override = DatabaseConfig(url="sqlite:///local.db").sqlalchemy_url()
    assert override.drivername == "sqlite"
