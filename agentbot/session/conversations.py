"""
会话跟踪模块 - 维护"我参与的会话"的本地权威视图。

上游在当前版本的 Messaging Agent API 中会推送未显式订阅的会话的
MessagingEventNotification，因此必须在本地维护一张会话表：
只有收到过 UPSERT 通知（且之后未被 DELETE）的会话才算"已跟踪"，
下游的逐条消息逻辑只处理已跟踪会话的通知。

本模块包含：
- Role：会话参与者角色
- LastContentEvent：最后一条内容事件的精简投影
- TrackedConversation：单个已跟踪会话
- PendingReceipt：单个消息批次内待处理（尚未已读）的入站消息
- ConversationTable：会话表（仅由会话管理器在单一执行上下文内修改）
- get_role()：在会话详情中查找参与者角色
- get_consumer_id()：在会话详情中查找访客 ID
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """会话参与者角色。"""

    CONSUMER = "CONSUMER"
    ASSIGNED_AGENT = "ASSIGNED_AGENT"
    READER = "READER"
    MANAGER = "MANAGER"


# 机器人可以主动加入会话时使用的角色
JOINABLE_ROLES = frozenset({Role.READER.value, Role.MANAGER.value, Role.ASSIGNED_AGENT.value})


@dataclass
class LastContentEvent:
    """
    lastContentEventNotification 的精简投影。

    originatorMetadata 只保留 role，其余字段丢弃。
    """

    sequence: int | None = None
    server_timestamp: int | None = None
    originator_id: str | None = None
    originator_pid: str | None = None
    originator_role: str | None = None
    event_type: str | None = None

    @classmethod
    def from_notification(cls, data: dict[str, Any]) -> "LastContentEvent":
        metadata = data.get("originatorMetadata") or {}
        event = data.get("event") or {}
        return cls(
            sequence=data.get("sequence"),
            server_timestamp=data.get("serverTimestamp"),
            originator_id=data.get("originatorId"),
            originator_pid=data.get("originatorPId"),
            originator_role=metadata.get("role"),
            event_type=event.get("type"),
        )


@dataclass
class TrackedConversation:
    """
    已跟踪会话。

    属性:
        conversation_id: 会话 ID
        details: 会话详情快照（participants 列表等）
        consumer_profile: 访客资料（异步懒加载，获取失败时保持 None）
        last_content_event: 最后一条内容事件的精简投影
    """

    conversation_id: str
    details: dict[str, Any] = field(default_factory=dict)
    consumer_profile: Any = None
    last_content_event: LastContentEvent | None = None

    @property
    def participants(self) -> list[dict[str, Any]]:
        return list(self.details.get("participants") or [])


@dataclass
class PendingReceipt:
    """单个批次内尚待处理的入站消息。"""

    conversation_id: str
    sequence: int
    message: Any = None
    originator_metadata: dict[str, Any] = field(default_factory=dict)


class ConversationTable:
    """
    已跟踪会话表，键为会话 ID。

    【Java 开发者类比】
    类似于一个只在单线程中访问的 HashMap<String, TrackedConversation>，
    因此不需要任何锁。
    """

    def __init__(self):
        self._items: dict[str, TrackedConversation] = {}

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def get(self, conversation_id: str) -> TrackedConversation | None:
        return self._items.get(conversation_id)

    def ids(self) -> list[str]:
        return list(self._items)

    def add(self, conversation_id: str) -> TrackedConversation:
        """开始跟踪会话；已存在时返回已有条目。"""
        conversation = self._items.get(conversation_id)
        if conversation is None:
            conversation = TrackedConversation(conversation_id=conversation_id)
            self._items[conversation_id] = conversation
        return conversation

    def update(self, conversation_id: str, result: dict[str, Any]) -> TrackedConversation:
        """
        用 ExConversationChangeNotification 的 result 刷新会话。

        详情快照与最后内容事件投影被替换，已缓存的访客资料保留。
        """
        conversation = self.add(conversation_id)
        conversation.details = result.get("conversationDetails") or {}
        last = result.get("lastContentEventNotification")
        conversation.last_content_event = LastContentEvent.from_notification(last) if last else None
        return conversation

    def remove(self, conversation_id: str) -> TrackedConversation | None:
        """停止跟踪会话，返回被移除的条目（不存在时返回 None）。"""
        return self._items.pop(conversation_id, None)


def get_role(details: dict[str, Any] | None, participant_id: str | None) -> str | None:
    """
    查找参与者在会话中的角色。

    参数:
        details: 会话详情快照（含 participants 列表）
        participant_id: 参与者 ID

    返回:
        角色字符串；参与者不存在时返回 None
    """
    if not details or participant_id is None:
        return None
    for participant in details.get("participants") or []:
        if participant.get("id") == participant_id:
            return participant.get("role")
    return None


def get_consumer_id(details: dict[str, Any] | None) -> str | None:
    """返回会话中角色为 CONSUMER 的第一个参与者 ID，不存在时返回 None。"""
    for participant in (details or {}).get("participants") or []:
        if participant.get("role") == Role.CONSUMER:
            return participant.get("id")
    return None
