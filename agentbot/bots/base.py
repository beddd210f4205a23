"""
机器人基类模块 - 会话管理器的下游消费者。

本模块提供 BaseBot 基类，所有示例机器人（agent、reader、manager）都继承它。
BaseBot 在 attach() 时订阅事件总线上的全部事件种类：
1. 每个事件先以机器人名为前缀记录日志（错误事件记为 error，其余为 info）
2. 然后分发给同名钩子方法 on_<事件种类>()，子类按需覆盖

【核心类属性】
- name: 机器人名（用于 CLI 选择与日志前缀）
- initial_state: 连接后设置的坐席状态
- subscribe_all_conversations: 是否订阅账号下全部会话

【Java 开发者类比】
- BaseBot 相当于 Template Method 模式中的抽象类
- on_xxx() 钩子相当于带空实现的回调接口（Adapter 类）
"""

from dataclasses import asdict
from typing import Any

from loguru import logger

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
from agentbot.session.manager import SessionManager
from agentbot.utils.helpers import dumps


class BaseBot:
    """
    示例机器人基类。

    属性:
        session: 会话管理器实例
    """

    name: str = "base"
    initial_state: str = "ONLINE"
    subscribe_all_conversations: bool = False

    def __init__(self, session: SessionManager):
        self.session = session

    @classmethod
    def session_options(cls) -> dict[str, Any]:
        """创建 SessionManager 时需要的机器人相关参数。"""
        return {
            "initial_state": cls.initial_state,
            "subscribe_all_conversations": cls.subscribe_all_conversations,
        }

    def attach(self) -> None:
        """订阅事件总线上的全部事件种类。"""
        for kind in EventKind:
            self.session.events.subscribe(kind, self._dispatch)

    async def _dispatch(self, event: Event) -> None:
        payload = asdict(event) if isinstance(event, ContentNotification) else event.raw
        label = event.kind.name
        if event.kind is EventKind.ERROR:
            logger.error(f"[{self.name}] {label} {dumps(payload)}")
        else:
            logger.info(f"[{self.name}] {label} {dumps(payload)}")

        handler = getattr(self, f"on_{event.kind.value}", None)
        if handler is not None:
            await handler(event)

    # ---- 钩子（默认空实现） ---------------------------------------------------------

    async def on_connected(self, event: Connected) -> None:
        pass

    async def on_routing_notification(self, event: RoutingNotification) -> None:
        pass

    async def on_conversation_notification(self, event: ConversationNotification) -> None:
        pass

    async def on_agent_state_notification(self, event: AgentStateNotification) -> None:
        pass

    async def on_content_notification(self, event: ContentNotification) -> None:
        pass

    async def on_socket_closed(self, event: SocketClosed) -> None:
        pass

    async def on_error(self, event: ErrorEvent) -> None:
        pass
