"""
传输层模块 - 会话管理器所消费的外部协作者。

- Transport：传输层契约（连接、重连、原始事件投递、RPC 请求）
- WebSocketTransport：基于 websockets + httpx 的默认实现
"""

from agentbot.transport.base import Transport, TransportError, TransportEvent
from agentbot.transport.websocket import WebSocketTransport

__all__ = ["Transport", "TransportError", "TransportEvent", "WebSocketTransport"]
