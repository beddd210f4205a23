"""
WebSocket 传输实现模块 - 基于 Messaging Agent API 的 WebSocket 协议。

本模块直接使用 websockets + httpx 实现传输层契约，而非依赖官方 SDK，
保持了极简的依赖。

【核心功能】
1. 通过 CSDS 服务发现获取消息服务与登录服务的域名
2. 用户名/密码登录换取 bearer token（已配置 token 时跳过）
3. 建立 WebSocket 连接，后台读循环接收帧
4. 请求/响应关联（按请求 id），带超时
5. 通知帧转为原始 notification 事件投递给会话管理器
6. 连接意外断开时投递 closed 事件（由会话管理器负责重连）

【帧格式】
- 请求：{"kind": "req", "id": 1, "type": "ms.PublishEvent", "body": {...}}
- 响应：{"kind": "resp", "reqId": 1, "code": 200, "body": {...}}
- 通知：{"kind": "notification", "type": "ms.MessagingEventNotification", "body": {...}}

【Java 开发者类比】
- 读循环类似于 Java-WebSocket 的 onMessage 回调线程
- _pending 字典 + Future 类似于 CompletableFuture 的请求关联表
"""

import asyncio
import json
from typing import Any, Callable

import httpx
import websockets
from loguru import logger

from agentbot.config.schema import AgentCredentials
from agentbot.transport.base import CLOSED, CONNECTED, ERROR, NOTIFICATION, Transport, TransportError

DEFAULT_CSDS_DOMAIN = "adminlogin.liveperson.net"
DEFAULT_REQUEST_TIMEOUT_MS = 10000
DEFAULT_API_VERSION = 2
MESSAGING_SERVICE = "asyncMessagingEnt"
LOGIN_SERVICE = "agentVep"


class WebSocketTransport(Transport):
    """
    Messaging Agent API 的 WebSocket 传输实现。

    属性:
        credentials: 解析后的凭据
        _connect: websockets.connect 或测试替身
        _http: httpx 异步客户端（CSDS 查询与登录）
        _ws: 当前 WebSocket 连接
        _reader_task: 后台读循环任务
        _pending: 请求 id → 等待响应的 Future
        _domains: CSDS 服务名 → 域名
        _closing: 是否正在主动关闭（主动关闭不投递 closed 事件）
    """

    name = "websocket"

    def __init__(
        self,
        credentials: AgentCredentials,
        *,
        connect: Callable[..., Any] | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        super().__init__()
        self.credentials = credentials
        self._connect = connect or websockets.connect
        self._http = http
        self._ws: Any = None
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[int, asyncio.Future] = {}
        self._next_id = 0
        self._domains: dict[str, str] = {}
        self._token: str | None = credentials.token
        self._user_id: str | None = credentials.user_id
        self._logged_in = False  # token 是否来自登录（重连时需要重新登录）
        self._closing = False

    @property
    def request_timeout_s(self) -> float:
        """单个请求的超时时间（秒）。"""
        return (self.credentials.request_timeout or DEFAULT_REQUEST_TIMEOUT_MS) / 1000.0

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    # ---- 生命周期 ---------------------------------------------------------

    async def connect(self) -> None:
        """
        建立消息 WebSocket 连接。

        流程：服务发现 → 登录（按需） → 打开 socket → 启动读循环 → 投递 connected。
        """
        account_id = self.credentials.account_id
        if not account_id:
            raise TransportError("accountId not configured")

        await self._ensure_domains()
        await self._ensure_token()

        url = self._socket_url()
        logger.info(f"Connecting to messaging socket for account {account_id}...")
        try:
            ws = await self._connect(url)
        except Exception as e:
            raise TransportError(f"Failed to open messaging socket: {e}") from e

        self._ws = ws
        self._closing = False
        self._agent_id = f"{account_id}.{self._user_id}"
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        self._emit(CONNECTED, {"connected": True, "agentId": self._agent_id})

    async def reconnect(self) -> None:
        """丢弃旧 socket 后重新连接；登录得到的 token 会重新申请。"""
        await self._shutdown_socket()
        if self._logged_in:
            self._token = None
            self._logged_in = False
        await self.connect()

    async def close(self) -> None:
        """主动关闭连接和 HTTP 客户端。"""
        await self._shutdown_socket()
        if self._http:
            await self._http.aclose()
            self._http = None

    async def _shutdown_socket(self) -> None:
        """停止读循环并关闭当前 socket，不投递 closed 事件。"""
        self._closing = True
        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        if self._ws:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing messaging socket: {e}")
            self._ws = None
        self._fail_pending(TransportError("Messaging socket closed"))

    # ---- 请求/响应 ---------------------------------------------------------

    async def request(
        self,
        type_: str,
        body: Any,
        headers: list[dict[str, Any]] | None = None,
        metadata: list[dict[str, Any]] | None = None,
    ) -> Any:
        if self._ws is None:
            raise TransportError(f"{type_}: messaging socket not connected")

        self._next_id += 1
        req_id = self._next_id
        frame: dict[str, Any] = {"kind": "req", "id": req_id, "type": type_, "body": body}
        if headers:
            frame["headers"] = headers
        if metadata:
            frame["metadata"] = metadata

        future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future
        try:
            await self._ws.send(json.dumps(frame))
            return await asyncio.wait_for(future, timeout=self.request_timeout_s)
        except asyncio.TimeoutError:
            raise TransportError(f"{type_} timed out after {self.request_timeout_s}s") from None
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"{type_} failed: {e}") from e
        finally:
            self._pending.pop(req_id, None)

    def _fail_pending(self, error: TransportError) -> None:
        """让所有等待中的请求以 error 结束。"""
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    # ---- 读循环 ---------------------------------------------------------

    async def _read_loop(self, ws: Any) -> None:
        """
        后台读循环：逐帧解析并分发。

        循环结束（服务端断开或网络异常）时，若不是主动关闭，投递 closed 事件。
        """
        reason = "connection closed"
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.warning(f"Messaging socket error: {reason}")

        if ws is not self._ws or self._closing:
            return
        self._ws = None
        self._fail_pending(TransportError(f"Messaging socket closed: {reason}"))
        self._emit(CLOSED, {"reason": reason, "code": getattr(ws, "close_code", None)})

    def _handle_frame(self, raw: str | bytes) -> None:
        """解析一帧：响应交给对应的 Future，通知投递给监听器。"""
        try:
            frame = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Invalid JSON from messaging socket: {str(raw)[:100]}")
            self._emit(ERROR, {"message": "invalid frame", "raw": str(raw)[:200]})
            return
        if not isinstance(frame, dict):
            return

        kind = frame.get("kind")
        if kind == "resp":
            future = self._pending.get(frame.get("reqId"))
            if future is None or future.done():
                return
            code = frame.get("code", 200)
            if isinstance(code, int) and code >= 400:
                future.set_exception(TransportError(
                    f"{frame.get('type', 'request')} failed with code {code}",
                    code=code, body=frame.get("body"),
                ))
            else:
                future.set_result(frame.get("body"))
        elif kind == "notification":
            self._emit(NOTIFICATION, {"type": frame.get("type"), "body": frame.get("body")})
        else:
            logger.debug(f"Ignoring messaging frame of kind {kind}")

    # ---- 服务发现与登录 ---------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=30.0)
        return self._http

    async def _ensure_domains(self) -> None:
        """通过 CSDS 查询各服务域名（只查询一次）。"""
        if self._domains:
            return
        csds = self.credentials.csds_domain or DEFAULT_CSDS_DOMAIN
        url = f"https://{csds}/api/account/{self.credentials.account_id}/service/baseURI.json"
        try:
            response = await self._client().get(url, params={"version": "1.0"})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"CSDS lookup failed: {e}") from e

        for entry in data.get("baseURIs") or []:
            if isinstance(entry, dict) and entry.get("service") and entry.get("baseURI"):
                self._domains[entry["service"]] = entry["baseURI"]
        if MESSAGING_SERVICE not in self._domains:
            raise TransportError(f"CSDS did not return a {MESSAGING_SERVICE} domain")

    async def _ensure_token(self) -> None:
        """确保持有 bearer token：已配置则直接使用，否则用用户名/密码登录。"""
        creds = self.credentials
        if self._token:
            if not self._user_id:
                raise TransportError("userId is required when authenticating with a token")
            return
        if not (creds.username and creds.password):
            raise TransportError(
                "WebSocketTransport supports token or username/password authentication only"
            )
        domain = self._domains.get(LOGIN_SERVICE)
        if not domain:
            raise TransportError(f"CSDS did not return a {LOGIN_SERVICE} domain")

        url = f"https://{domain}/api/account/{creds.account_id}/login"
        try:
            response = await self._client().post(
                url, params={"v": "1.3"},
                json={"username": creds.username, "password": creds.password},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"Login failed: {e}") from e

        token = data.get("bearer")
        if not token:
            raise TransportError("Login response did not contain a bearer token")
        self._token = token
        self._user_id = str((data.get("config") or {}).get("userId") or self._user_id or "")
        self._logged_in = True
        logger.info(f"Logged in as {creds.username}")

    def _socket_url(self) -> str:
        domain = self._domains[MESSAGING_SERVICE]
        version = self.credentials.api_version or DEFAULT_API_VERSION
        return (
            f"wss://{domain}/ws_api/account/{self.credentials.account_id}"
            f"/messaging/brand/{self._token}?v={version}"
        )
