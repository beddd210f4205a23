"""
工具函数集合 - agentbot 项目全局通用的辅助函数。

函数分类：
- 日志工具：dumps, normalize_log_level, setup_logging
"""

import json
import sys
from typing import Any

from loguru import logger

# 兼容 winston 风格的日志级别名称（如环境变量 loglevel=silly）
_LEVEL_ALIASES = {
    "silly": "TRACE",
    "verbose": "DEBUG",
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
}


def dumps(value: Any) -> str:
    """将任意载荷序列化为单行 JSON，用于日志输出。无法序列化的对象退化为 str()。"""
    try:
        return json.dumps(value, ensure_ascii=False, default=str, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(value)


def normalize_log_level(level: str | None, default: str = "WARNING") -> str:
    """
    将日志级别名称标准化为 loguru 级别。

    支持 loguru 原生名称（TRACE/DEBUG/INFO/...）以及 silly、verbose、warn 等别名，
    未知名称回退到 default。
    """
    if not level:
        return default
    name = level.strip()
    alias = _LEVEL_ALIASES.get(name.lower())
    if alias:
        return alias
    upper = name.upper()
    if upper in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
        return upper
    return default


def setup_logging(level: str | None = None) -> str:
    """
    配置 loguru：移除默认 sink，安装一个带时间戳的 stderr sink。

    参数:
        level: 日志级别（支持别名），为空时使用 WARNING

    返回:
        实际生效的 loguru 级别名称
    """
    resolved = normalize_log_level(level)
    logger.remove()
    logger.add(
        sys.stderr,
        level=resolved,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
               "<cyan>{name}</cyan> - <level>{message}</level>",
    )
    return resolved
