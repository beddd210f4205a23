"""
工具函数模块 - 提供 agentbot 项目全局通用的辅助函数。

本模块包含：
- dumps：日志用的紧凑 JSON 序列化
- setup_logging：配置 loguru 日志输出
"""

from agentbot.utils.helpers import dumps, setup_logging

__all__ = ["dumps", "setup_logging"]
