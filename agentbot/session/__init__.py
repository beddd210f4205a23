"""会话管理模块：连接生命周期、会话跟踪、重连与出站操作。"""

from agentbot.session.conversations import (
    JOINABLE_ROLES,
    ConversationTable,
    LastContentEvent,
    PendingReceipt,
    Role,
    TrackedConversation,
    get_consumer_id,
    get_role,
)
from agentbot.session.manager import SessionManager
from agentbot.session.reconnect import Reconnector, ReconnectState

__all__ = [
    "JOINABLE_ROLES",
    "ConversationTable",
    "LastContentEvent",
    "PendingReceipt",
    "ReconnectState",
    "Reconnector",
    "Role",
    "SessionManager",
    "TrackedConversation",
    "get_consumer_id",
    "get_role",
]
