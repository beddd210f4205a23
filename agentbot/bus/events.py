"""
事件类型定义模块 - 定义会话管理器向下游分发的标准化事件。

本模块定义了 agentbot 对外暴露的全部事件类型：
- Connected：传输层连接建立
- RoutingNotification：路由任务（振铃）通知
- ConversationNotification：会话变更通知（UPSERT / DELETE）
- AgentStateNotification：坐席状态通知
- ContentNotification：去重后的入站消息内容
- SocketClosed：底层 socket 关闭
- ErrorEvent：传输层错误

所有事件都是 @dataclass，并通过类属性 kind 绑定到 EventKind 枚举，
EventBus 以 EventKind 为键进行订阅与分发，避免字符串形式的事件名。

【Java 开发者类比】
- EventKind 类似于 Java 的 enum
- 各事件类类似于 Java 的 record 类
- kind 类属性类似于 static final 常量
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class EventKind(str, Enum):
    """下游可订阅的事件种类。"""

    CONNECTED = "connected"
    ROUTING_NOTIFICATION = "routing_notification"
    CONVERSATION_NOTIFICATION = "conversation_notification"
    AGENT_STATE_NOTIFICATION = "agent_state_notification"
    CONTENT_NOTIFICATION = "content_notification"
    SOCKET_CLOSED = "socket_closed"
    ERROR = "error"


@dataclass
class Connected:
    """连接建立事件，raw 为传输层给出的原始载荷。"""

    kind: ClassVar[EventKind] = EventKind.CONNECTED
    raw: Any = None


@dataclass
class RoutingNotification:
    """路由任务通知（routing.RoutingTaskNotification），原样转发。"""

    kind: ClassVar[EventKind] = EventKind.ROUTING_NOTIFICATION
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConversationNotification:
    """会话变更通知（cqm.ExConversationChangeNotification），在更新本地会话表之后转发。"""

    kind: ClassVar[EventKind] = EventKind.CONVERSATION_NOTIFICATION
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentStateNotification:
    """坐席状态通知（routing.AgentStateNotification），原样转发。"""

    kind: ClassVar[EventKind] = EventKind.AGENT_STATE_NOTIFICATION
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ContentNotification:
    """
    入站消息内容事件。

    只针对已跟踪会话中、非本机器人发出、且在同一批次内未被本机器人
    标记为已读的 ContentEvent 生成，每条消息一个事件。

    属性:
        conversation_id: 会话 ID（即 dialogId）
        sequence: 消息在会话中的序列号
        message: 消息正文
        originator_metadata: 发送者元数据（包含 role 等）
    """

    kind: ClassVar[EventKind] = EventKind.CONTENT_NOTIFICATION
    conversation_id: str
    sequence: int
    message: Any = None
    originator_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SocketClosed:
    """底层 socket 关闭事件。"""

    kind: ClassVar[EventKind] = EventKind.SOCKET_CLOSED
    raw: Any = None


@dataclass
class ErrorEvent:
    """传输层错误事件。"""

    kind: ClassVar[EventKind] = EventKind.ERROR
    raw: Any = None


Event = (
    Connected
    | RoutingNotification
    | ConversationNotification
    | AgentStateNotification
    | ContentNotification
    | SocketClosed
    | ErrorEvent
)
