"""
配置模块 (config)
================
本模块是 agentbot 的配置系统入口，负责：
1. 定义配置数据模型（schema.py）：使用 Pydantic 定义凭据与运行参数的结构和默认值
2. 加载/保存配置文件并解析凭据（loader.py）：环境变量逐字段覆盖文件中的值
"""

from agentbot.config.loader import (
    ConfigError,
    get_config_path,
    load_config,
    resolve_credentials,
    save_config,
    select_credentials,
)
from agentbot.config.schema import AgentCredentials, BotSettings, Config

__all__ = [
    "AgentCredentials",
    "BotSettings",
    "Config",
    "ConfigError",
    "get_config_path",
    "load_config",
    "resolve_credentials",
    "save_config",
    "select_credentials",
]
