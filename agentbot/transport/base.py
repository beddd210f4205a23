"""
传输层基类模块 - 定义会话管理器所依赖的传输层契约。

本模块提供了 Transport 抽象基类。会话管理器通过组合（而非继承）持有一个
Transport 实例：传输层负责 socket 连接与请求/响应关联，会话管理器负责
连接生命周期、会话跟踪与事件标准化。

【核心抽象方法】
- connect() / reconnect() / close()：建立、重建、关闭连接
- request()：发送一条请求并等待响应，失败时抛出 TransportError

【公共能力】
- add_listener() / _emit()：原始事件（connected / notification / closed / error）投递
- subscribe_* / publish_event / update_* 等 RPC 辅助方法：封装请求类型字符串

【Java 开发者类比】
- Transport 相当于 Java 的 abstract class + interface
- RPC 辅助方法相当于 Template Method 模式中的具体方法，都委托给 request()
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

# 原始事件种类
CONNECTED = "connected"
NOTIFICATION = "notification"
CLOSED = "closed"
ERROR = "error"


class TransportError(Exception):
    """
    传输层调用失败（连接不可用、超时、服务端返回错误码等）。

    属性:
        code: 服务端返回的状态码（若有）
        body: 服务端返回的响应体（若有）
    """

    def __init__(self, message: str, code: int | None = None, body: Any = None):
        super().__init__(message)
        self.code = code
        self.body = body


@dataclass
class TransportEvent:
    """
    传输层投递给会话管理器的原始事件。

    属性:
        kind: connected | notification | closed | error
        payload: 原始载荷；notification 的载荷形如 {"type": ..., "body": ...}
    """

    kind: str
    payload: Any = field(default=None)


Listener = Callable[[TransportEvent], None]


class Transport(ABC):
    """
    传输层抽象基类 - 所有传输实现的统一契约。

    监听器是同步、非阻塞的回调（通常只是把事件放进队列），
    这样传输层的读循环永远不会被下游处理阻塞，请求的响应也总能被及时关联。

    属性:
        _listeners: 原始事件监听器列表
        _agent_id: 连接建立后由服务端分配的坐席 ID
    """

    name: str = "base"

    def __init__(self):
        self._listeners: list[Listener] = []
        self._agent_id: str | None = None

    @property
    def agent_id(self) -> str | None:
        """当前登录坐席的稳定 ID（连接成功后可用）。"""
        return self._agent_id

    def add_listener(self, listener: Listener) -> None:
        """注册原始事件监听器。"""
        self._listeners.append(listener)

    def _emit(self, kind: str, payload: Any = None) -> None:
        """把原始事件投递给所有监听器；监听器异常只记录日志。"""
        event = TransportEvent(kind=kind, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Transport listener failed on {kind}: {e}")

    @abstractmethod
    async def connect(self) -> None:
        """建立连接。成功后应投递 connected 事件。"""
        pass

    @abstractmethod
    async def reconnect(self) -> None:
        """重建连接（丢弃旧 socket）。成功后应投递 connected 事件。"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """主动关闭连接，不触发 closed 事件。"""
        pass

    @abstractmethod
    async def request(
        self,
        type_: str,
        body: Any,
        headers: list[dict[str, Any]] | None = None,
        metadata: list[dict[str, Any]] | None = None,
    ) -> Any:
        """
        发送一条请求并等待响应体。

        参数:
            type_: 请求类型（如 "ms.PublishEvent"）
            body: 请求体
            headers: 可选请求头列表
            metadata: 可选元数据列表（如 ExternalId）

        返回:
            响应体

        异常:
            TransportError: 连接不可用、超时或服务端返回错误
        """
        pass

    # ---- RPC 辅助方法 ---------------------------------------------------------

    async def subscribe_agents_state(self, body: dict[str, Any]) -> Any:
        return await self.request("routing.SubscribeAgentsState", body)

    async def subscribe_ex_conversations(self, body: dict[str, Any]) -> Any:
        return await self.request("cqm.SubscribeExConversations", body)

    async def subscribe_routing_tasks(self, body: dict[str, Any]) -> Any:
        return await self.request("routing.SubscribeRoutingTasks", body)

    async def subscribe_messaging_events(self, body: dict[str, Any]) -> Any:
        return await self.request("ms.SubscribeMessagingEvents", body)

    async def set_agent_state(self, body: dict[str, Any]) -> Any:
        return await self.request("routing.SetAgentState", body)

    async def get_user_profile(self, user_id: str) -> Any:
        return await self.request("userprofile.GetUserProfile", {"_id": user_id})

    async def get_clock(self, body: dict[str, Any] | None = None) -> Any:
        return await self.request("GetClock", body or {})

    async def publish_event(
        self,
        body: dict[str, Any],
        headers: list[dict[str, Any]] | None = None,
        metadata: list[dict[str, Any]] | None = None,
    ) -> Any:
        return await self.request("ms.PublishEvent", body, headers=headers, metadata=metadata)

    async def update_conversation_field(self, body: dict[str, Any]) -> Any:
        return await self.request("cm.UpdateConversationField", body)

    async def update_ring_state(self, body: dict[str, Any]) -> Any:
        return await self.request("routing.UpdateRingState", body)
