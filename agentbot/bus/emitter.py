"""
事件总线模块 - 会话管理器与下游机器人逻辑之间的解耦层。

本模块实现了 EventBus 类：以 EventKind 为键维护一张回调表，
会话管理器调用 emit() 时按注册顺序依次调用该事件种类的所有订阅者。

【核心设计】
- 多订阅者扇出：同一事件种类可以注册多个回调
- 顺序执行：emit() 依次 await 每个回调，保证单执行上下文内的处理顺序
- 故障隔离：单个回调抛出的异常只记录日志，不影响其他订阅者

【Java 开发者类比】
- subscribe/emit 类似于 Spring 的 ApplicationEventPublisher + @EventListener
- on() 装饰器类似于在方法上标注 @EventListener(SomeEvent.class)
"""

from typing import Awaitable, Callable

from loguru import logger

from agentbot.bus.events import Event, EventKind

Callback = Callable[[Event], Awaitable[None]]


class EventBus:
    """
    事件总线 - 按事件种类分发标准化事件。

    属性:
        _subscribers: 订阅者字典 {EventKind: [异步回调列表]}
    """

    def __init__(self):
        self._subscribers: dict[EventKind, list[Callback]] = {}

    def subscribe(self, kind: EventKind, callback: Callback) -> None:
        """
        订阅指定种类的事件。

        参数:
            kind: 事件种类
            callback: 异步回调函数，接收对应的事件对象
        """
        self._subscribers.setdefault(kind, []).append(callback)

    def unsubscribe(self, kind: EventKind, callback: Callback) -> None:
        """取消订阅；回调未注册时静默忽略。"""
        callbacks = self._subscribers.get(kind, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def on(self, kind: EventKind) -> Callable[[Callback], Callback]:
        """
        装饰器形式的订阅。

        用法:
            @session.events.on(EventKind.CONTENT_NOTIFICATION)
            async def handle(event): ...
        """
        def decorator(callback: Callback) -> Callback:
            self.subscribe(kind, callback)
            return callback
        return decorator

    async def emit(self, event: Event) -> None:
        """
        分发事件给该种类的所有订阅者。

        回调按注册顺序依次执行；单个回调的异常只记录错误日志，
        不会中断对其他订阅者的分发。
        """
        for callback in list(self._subscribers.get(event.kind, [])):
            try:
                await callback(event)
            except Exception as e:
                logger.error(f"Error in {event.kind.value} subscriber {getattr(callback, '__name__', callback)}: {e}")

    def subscriber_count(self, kind: EventKind) -> int:
        """返回指定事件种类的订阅者数量。"""
        return len(self._subscribers.get(kind, []))
