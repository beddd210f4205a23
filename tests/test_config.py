"""Tests for config loading and credential resolution."""
import json

import pytest

from agentbot.config.loader import (
    ConfigError,
    load_config,
    resolve_credentials,
    save_config,
    select_credentials,
)
from agentbot.config.schema import AgentCredentials, BotSettings, Config
from agentbot.utils.helpers import normalize_log_level


def test_environment_wins_over_file_per_field():
    creds = resolve_credentials(
        {"accountId": "111", "username": "file-user", "password": "file-pass"},
        {"LP_PASSWORD": "env-pass", "LP_CSDSDOMAIN": "csds.example.com"},
    )
    assert creds.account_id == "111"
    assert creds.username == "file-user"
    assert creds.password == "env-pass"
    assert creds.csds_domain == "csds.example.com"


def test_empty_and_unset_values_are_omitted():
    creds = resolve_credentials({"username": "", "token": None}, {"LP_PASSWORD": ""})
    assert creds.to_options() == {}


def test_account_and_user_aliases():
    creds = resolve_credentials({}, {"LP_ACCOUNT": "222", "LP_USER": "bot"})
    assert creds.account_id == "222"
    assert creds.username == "bot"

    explicit = resolve_credentials({}, {"LP_ACCOUNTID": "333", "LP_ACCOUNT": "222"})
    assert explicit.account_id == "333"


def test_numeric_values_from_file_and_environment():
    creds = resolve_credentials({"accountId": 12345678, "requestTimeout": 5000}, {"LP_APIVERSION": "2"})
    assert creds.account_id == "12345678"
    assert creds.request_timeout == 5000
    assert creds.api_version == 2


def test_to_options_uses_camel_case():
    creds = AgentCredentials(account_id="1", access_token_secret="s")
    assert creds.to_options() == {"accountId": "1", "accessTokenSecret": "s"}


def test_load_missing_file_returns_defaults(tmp_path):
    config = load_config(tmp_path / "missing.json")
    assert config.bot == BotSettings()
    assert config.bot.reconnect_attempts == 35
    assert config.bot.clock_ping_interval == 300
    assert config.accounts == {}


def test_load_and_select_credentials(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "bot": {"reconnectAttempts": 10, "logLevel": "silly"},
        "accounts": {
            "12345678": {
                "mbolton@initech.com": {"accountId": 12345678, "username": "mbolton@initech.com", "password": "pw"},
            },
        },
    }))

    config = load_config(path)
    assert config.bot.reconnect_attempts == 10
    assert config.bot.log_level == "silly"

    values = select_credentials(config, "12345678", "mbolton@initech.com")
    assert values == {"account_id": "12345678", "username": "mbolton@initech.com", "password": "pw"}
    assert select_credentials(config, "12345678", "nobody") == {}
    assert select_credentials(config, None, None) == {}


def test_invalid_file_raises_config_error(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError):
        load_config(path)

    path.write_text(json.dumps({"bot": {"reconnectAttempts": "many"}}))
    with pytest.raises(ConfigError):
        load_config(path)


def test_saved_config_keeps_account_keys(tmp_path):
    path = tmp_path / "config.json"
    config = Config(accounts={"987654321": {"routing_bot": AgentCredentials(account_id="98765432", username="routing_bot")}})
    save_config(config, path)

    data = json.loads(path.read_text())
    assert data["accounts"]["987654321"]["routing_bot"] == {"accountId": "98765432", "username": "routing_bot"}
    assert data["bot"]["clockPingInterval"] == 300
    assert load_config(path).accounts["987654321"]["routing_bot"].username == "routing_bot"


def test_log_level_aliases():
    assert normalize_log_level("silly") == "TRACE"
    assert normalize_log_level("verbose") == "DEBUG"
    assert normalize_log_level("warn") == "WARNING"
    assert normalize_log_level("info") == "INFO"
    assert normalize_log_level("ERROR") == "ERROR"
    assert normalize_log_level(None) == "WARNING"
    assert normalize_log_level("loud") == "WARNING"
