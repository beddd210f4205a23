"""
配置加载工具模块 (config/loader.py)
=================================
本模块负责 agentbot 配置文件的加载、保存以及凭据解析：
- 配置文件默认路径: ~/.agentbot/config.json
- 凭据按账号与用户名从配置文件中选出（CLI 通过 --account / --user 或 LP_ACCOUNT / LP_USER 选择）
- 环境变量逐字段覆盖配置文件中的值（环境变量优先），未设置的字段直接省略

对于 Java 开发者：
- 类似于 Spring Boot 的 application.yml 加载 + 环境变量覆盖机制
"""

import json
import os
from pathlib import Path
from typing import Any, Mapping

from loguru import logger
from pydantic import ValidationError

from agentbot.config.schema import AgentCredentials, Config

# 字段 → 环境变量名（按优先级排列，第一个非空值生效）
CREDENTIAL_ENV_VARS: dict[str, tuple[str, ...]] = {
    "account_id": ("LP_ACCOUNTID", "LP_ACCOUNT"),
    "username": ("LP_USERNAME", "LP_USER"),
    "password": ("LP_PASSWORD",),
    "token": ("LP_TOKEN",),
    "user_id": ("LP_USERID",),
    "assertion": ("LP_ASSERTION",),
    "app_key": ("LP_APPKEY",),
    "secret": ("LP_SECRET",),
    "access_token": ("LP_ACCESSTOKEN",),
    "access_token_secret": ("LP_ACCESSTOKENSECRET",),
    "csds_domain": ("LP_CSDSDOMAIN",),
    "request_timeout": ("LP_REQUESTTIMEOUT",),
    "error_check_interval": ("LP_ERRORCHECKINTERVAL",),
    "api_version": ("LP_APIVERSION",),
}


class ConfigError(Exception):
    """配置文件不可用（无法解析或字段非法）。"""


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.agentbot/config.json"""
    return Path.home() / ".agentbot" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    从 JSON 文件加载配置，若文件不存在则返回默认配置。

    参数:
        config_path: 可选的配置文件路径。为 None 时使用默认路径。

    返回:
        Config 配置对象实例

    异常:
        ConfigError: 文件存在但无法解析或验证失败
    """
    path = config_path or get_config_path()

    if not path.exists():
        logger.debug(f"Config file {path} not found, using defaults")
        return Config()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return Config(**data)
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """
    将配置对象保存为 JSON 文件（camelCase 键名，省略未设置的凭据字段）。

    返回:
        实际写入的文件路径
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(by_alias=True, exclude_none=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return path


def select_credentials(config: Config, account: str | None, user: str | None) -> dict[str, Any]:
    """
    从配置中选出 accounts[account][user] 的原始凭据字典。

    找不到对应条目时记录警告并返回空字典（此时凭据可能完全来自环境变量）。
    """
    if not account or not user:
        logger.warning("No account/user selected, relying on environment credentials")
        return {}
    entry = config.accounts.get(str(account), {}).get(user)
    if entry is None:
        logger.warning(f"No credentials for {account}/{user} in config file")
        return {}
    return entry.model_dump(exclude_none=True)


def resolve_credentials(
    file_values: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> AgentCredentials:
    """
    合并文件与环境变量中的凭据，环境变量逐字段优先。

    参数:
        file_values: 配置文件中的凭据（snake_case 或 camelCase 键均可）
        environ: 环境变量映射，默认使用 os.environ

    返回:
        AgentCredentials，未设置（或为空字符串）的字段保持 None
    """
    env = os.environ if environ is None else environ
    source = AgentCredentials.model_validate(dict(file_values or {})).model_dump()

    merged: dict[str, Any] = {}
    for field_name, env_names in CREDENTIAL_ENV_VARS.items():
        value = next((env[name] for name in env_names if env.get(name)), None)
        if value is None:
            value = source.get(field_name)
        if value is None or value == "":
            continue
        merged[field_name] = value
    return AgentCredentials.model_validate(merged)
