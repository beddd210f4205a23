"""
事件总线模块 - 实现会话管理器与机器人逻辑之间的解耦通信。

事件流向：
  传输层原始通知 → SessionManager（标准化/去重） → EventBus → 机器人回调
"""

from agentbot.bus.emitter import EventBus
from agentbot.bus.events import (
    AgentStateNotification,
    Connected,
    ContentNotification,
    ConversationNotification,
    ErrorEvent,
    Event,
    EventKind,
    RoutingNotification,
    SocketClosed,
)

__all__ = [
    "EventBus",
    "EventKind",
    "Event",
    "Connected",
    "RoutingNotification",
    "ConversationNotification",
    "AgentStateNotification",
    "ContentNotification",
    "SocketClosed",
    "ErrorEvent",
]
