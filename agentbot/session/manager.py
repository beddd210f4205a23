"""
会话管理器实现 - 连接生命周期、通知标准化与出站操作。

本模块是 agentbot 的核心，SessionManager 通过组合持有一个 Transport，负责：
- 连接生命周期：建立连接、周期性保活（GetClock）、有界几何退避重连
- 通知标准化：把四类原始通知转换为 EventBus 上的类型化事件，
  并维护已跟踪会话表（上游会推送未订阅会话的通知，必须在本地过滤）
- 出站操作：加入/离开会话、发送文本/富文本、已读回执、转接、关闭、接受振铃

架构特点：
- 单执行上下文：传输层只把原始事件放进收件箱（asyncio.Queue），
  SessionManager 的主循环按到达顺序逐个处理，一个批次处理完成前不会开始下一个
- 订阅、资料查询以及全部出站操作均为"发后即忘"的后台任务，失败只记录日志，
  慢请求不会阻塞收件箱
- 保活任务与重连任务相互独立，分别在 socket 关闭与重新连接时取消

二开提示：
- 新增通知类型时，在 _notification_handlers 中注册处理函数即可
- 下游逻辑通过 session.events.subscribe(EventKind.XXX, callback) 接入
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Mapping, Sequence

from loguru import logger

from agentbot.bus.emitter import EventBus
from agentbot.bus.events import (
    AgentStateNotification,
    Connected,
    ContentNotification,
    ConversationNotification,
    ErrorEvent,
    RoutingNotification,
    SocketClosed,
)
from agentbot.config.schema import BotSettings
from agentbot.session.conversations import (
    JOINABLE_ROLES,
    ConversationTable,
    PendingReceipt,
    Role,
    get_consumer_id,
    get_role,
)
from agentbot.session.reconnect import Reconnector
from agentbot.transport.base import CLOSED, CONNECTED, ERROR, NOTIFICATION, Transport, TransportEvent
from agentbot.utils.helpers import dumps

# 上游通知类型
ROUTING_TASK_NOTIFICATION = "routing.RoutingTaskNotification"
AGENT_STATE_NOTIFICATION = "routing.AgentStateNotification"
CONVERSATION_CHANGE_NOTIFICATION = "cqm.ExConversationChangeNotification"
MESSAGING_EVENT_NOTIFICATION = "ms.MessagingEventNotification"

# 消息事件类型
CONTENT_EVENT = "ContentEvent"
ACCEPT_STATUS_EVENT = "AcceptStatusEvent"
CHAT_STATE_EVENT = "ChatStateEvent"
RICH_CONTENT_EVENT = "RichContentEvent"

DRAIN_TIMEOUT_S = 5.0

# stop() 投递的唤醒事件，让主循环无需等待超时即可退出
_WAKEUP = "wakeup"


class SessionManager:
    """
    会话管理器 - 每个进程一个，断线后重建连接而不是重新创建实例。

    属性:
        transport: 传输层实例
        events: 事件总线，下游在此订阅类型化事件
        conversations: 已跟踪会话表
        reconnector: 重连状态机
        initial_state: 连接后设置的初始坐席状态（ONLINE / OCCUPIED / AWAY）
        subscribe_all_conversations: False 时只订阅自己的会话，True 时订阅全部会话
        clock_ping_interval: 保活探测间隔（秒）
        _inbox: 原始事件收件箱
        _keepalive_task: 保活循环任务
        _reconnect_task: 重连循环任务
        _tasks: 进行中的"发后即忘"任务
    """

    def __init__(
        self,
        transport: Transport,
        *,
        initial_state: str = "ONLINE",
        subscribe_all_conversations: bool = False,
        settings: BotSettings | None = None,
        events: EventBus | None = None,
    ):
        settings = settings or BotSettings()
        self.transport = transport
        self.events = events or EventBus()
        self.conversations = ConversationTable()
        self.reconnector = Reconnector(
            interval=settings.reconnect_interval,
            ratio=settings.reconnect_ratio,
            max_attempts=settings.reconnect_attempts,
        )
        self.initial_state = initial_state
        self.subscribe_all_conversations = subscribe_all_conversations
        self.clock_ping_interval = settings.clock_ping_interval

        self._inbox: asyncio.Queue[TransportEvent] = asyncio.Queue()
        self._keepalive_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._running = False

        self._notification_handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            ROUTING_TASK_NOTIFICATION: self._on_routing_task,
            AGENT_STATE_NOTIFICATION: self._on_agent_state,
            CONVERSATION_CHANGE_NOTIFICATION: self._on_conversation_change,
            MESSAGING_EVENT_NOTIFICATION: self._on_messaging_event,
        }

        transport.add_listener(self._inbox.put_nowait)

    @property
    def agent_id(self) -> str | None:
        """本机器人的坐席 ID（由传输层在连接时分配）。"""
        return self.transport.agent_id

    @property
    def is_running(self) -> bool:
        return self._running

    # ---- 生命周期管理 ---------------------------------------------------------

    async def start(self) -> None:
        """
        建立连接并开始处理原始事件，直到 stop() 被调用。

        首次连接失败不会抛出，而是记录日志并进入重连流程。
        """
        self._running = True
        try:
            await self.transport.connect()
        except Exception as e:
            logger.error(f"Initial connect failed: {e}")
            self._start_reconnect()
        await self.run()

    async def run(self) -> None:
        """事件主循环：按到达顺序逐个处理收件箱中的原始事件。"""
        while self._running:
            try:
                event = await asyncio.wait_for(self._inbox.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            try:
                if event.kind == _WAKEUP:
                    continue
                await self.handle_event(event)
            finally:
                self._inbox.task_done()

    async def stop(self) -> None:
        """
        停止会话管理器。

        清理顺序：保活任务 → 重连任务 → 进行中的出站调用 → 传输层连接。
        """
        self._running = False
        self._inbox.put_nowait(TransportEvent(kind=_WAKEUP))
        self._cancel_keepalive()
        self._cancel_reconnect()
        await self.drain(timeout=DRAIN_TIMEOUT_S)
        try:
            await self.transport.close()
        except Exception as e:
            logger.error(f"Error closing transport: {e}")
        logger.info("Session stopped")

    async def drain(self, timeout: float | None = None) -> None:
        """等待进行中的"发后即忘"任务完成；超时后取消剩余任务。"""
        while self._tasks:
            pending = list(self._tasks)
            done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                logger.warning(f"Cancelling {len(not_done)} in-flight calls")
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)
                return

    async def wait_idle(self) -> None:
        """等待收件箱中已排队的事件全部处理完毕，且没有进行中的出站调用。"""
        while True:
            await self._inbox.join()
            await self.drain()
            if self._inbox.empty() and not self._tasks:
                return

    async def handle_event(self, event: TransportEvent) -> None:
        """按种类分发一个原始传输事件。处理异常只记录日志，不中断主循环。"""
        try:
            if event.kind == CONNECTED:
                await self._on_connected(event.payload)
            elif event.kind == NOTIFICATION:
                await self._on_notification(event.payload or {})
            elif event.kind == CLOSED:
                await self._on_closed(event.payload)
            elif event.kind == ERROR:
                await self._on_error(event.payload)
            else:
                logger.warning(f"Unknown transport event: {event.kind}")
        except Exception as e:
            logger.exception(f"Error handling {event.kind} event: {e}")

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        """以后台任务运行一个"发后即忘"调用，并跟踪其句柄。"""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _call(self, label: str, call: Awaitable[Any], quiet: bool = False) -> bool:
        """
        执行一次传输层调用并记录结果。

        参数:
            label: 日志标签（如 "subscribeExConversations"）
            call: 传输层调用的协程
            quiet: True 时成功结果只记录 trace 级日志

        返回:
            成功返回 True，失败（已记录错误日志）返回 False
        """
        try:
            response = await call
        except Exception as e:
            logger.error(f"{label} failed: {e}")
            return False
        if quiet:
            logger.trace(f"{label} successful: {dumps(response)}")
        else:
            logger.info(f"{label}: {dumps(response)}")
        return True

    # ---- 连接事件 ---------------------------------------------------------

    async def _on_connected(self, payload: Any) -> None:
        """
        连接建立（首次或重连成功）。

        流程：
        1. 取消挂起的重连任务，重置重连计数
        2. 转发 Connected 事件
        3. 启动保活循环
        4. 订阅坐席状态、设置初始状态、订阅会话、订阅路由任务
        5. 为断线前已跟踪的会话重新订阅消息事件
        """
        self._cancel_reconnect()
        self.reconnector.reset()
        logger.info(f"Connected: {dumps(payload)}")
        await self.events.emit(Connected(raw=payload))

        self._start_keepalive()

        self._spawn(self._call("subscribeAgentsState", self.transport.subscribe_agents_state({})))
        self._spawn(self._call(
            "setAgentState", self.transport.set_agent_state({"availability": self.initial_state}),
        ))
        self._spawn(self._call(
            "subscribeExConversations",
            self.transport.subscribe_ex_conversations(self._conversation_subscription()),
        ))
        self._spawn(self._call("subscribeRoutingTasks", self.transport.subscribe_routing_tasks({})))

        for conversation_id in self.conversations.ids():
            self._spawn(self._subscribe_messaging_events(conversation_id))

        logger.info(f"agentId: {self.agent_id}")

    def _conversation_subscription(self) -> dict[str, Any]:
        """会话订阅参数：只订阅 OPEN 会话；非全量模式下只订阅自己的会话。"""
        params: dict[str, Any] = {"convState": ["OPEN"]}
        if not self.subscribe_all_conversations:
            params["agentIds"] = [self.agent_id]
        return params

    async def _on_closed(self, payload: Any) -> None:
        """socket 关闭：停止保活，转发 SocketClosed，必要时开始重连。"""
        self._cancel_keepalive()
        logger.warning(f"Socket closed: {dumps(payload)}")
        await self.events.emit(SocketClosed(raw=payload))

        if not self._running:
            return
        if self.reconnector.in_progress:
            logger.debug("Reconnect already in progress")
            return
        if self.reconnector.exhausted:
            logger.error("Reconnect attempts exhausted, staying disconnected")
            return
        self._start_reconnect()

    async def _on_error(self, payload: Any) -> None:
        logger.error(f"Transport error: {dumps(payload)}")
        await self.events.emit(ErrorEvent(raw=payload))

    # ---- 保活 ---------------------------------------------------------

    def _start_keepalive(self) -> None:
        self._cancel_keepalive()
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())

    def _cancel_keepalive(self) -> None:
        if self._keepalive_task:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    async def _keepalive_loop(self) -> None:
        """每隔 clock_ping_interval 秒请求一次服务器时钟，仅用于保持连接活跃。"""
        while True:
            await asyncio.sleep(self.clock_ping_interval)
            await self._ping_clock()

    async def _ping_clock(self) -> None:
        """请求服务器时钟并记录请求耗时与时钟偏差，结果不参与任何逻辑。"""
        before = time.monotonic()
        try:
            response = await self.transport.get_clock({})
        except Exception as e:
            logger.error(f"getClock failed: {e}")
            return
        elapsed_ms = round((time.monotonic() - before) * 1000)
        server_time = response.get("currentTime") if isinstance(response, dict) else None
        diff = server_time - time.time() * 1000 if isinstance(server_time, (int, float)) else None
        logger.trace(f"getClock: request took {elapsed_ms}ms, diff = {diff}")

    # ---- 重连 ---------------------------------------------------------

    def _start_reconnect(self) -> None:
        self.reconnector.begin()
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task and task is not asyncio.current_task():
            task.cancel()

    async def _reconnect_loop(self) -> None:
        """
        重连循环：等待 delay 后调用 transport.reconnect()。

        重连调用成功后退出循环，由随之而来的 connected 事件重置状态机；
        失败则按比例增大延迟继续尝试，次数用尽后记录终止错误并停止。
        """
        r = self.reconnector
        while r.in_progress:
            logger.warning(f"Reconnecting in {round(r.delay)}s (attempt {r.attempt} of {r.max_attempts})")
            await asyncio.sleep(r.delay)
            try:
                await self.transport.reconnect()
                logger.info(f"Reconnect attempt {r.attempt} succeeded")
                return
            except Exception as e:
                logger.warning(f"Reconnect attempt {r.attempt} failed: {e}")
            if not r.in_progress:
                return
            if not r.advance():
                logger.error(f"Failed to reconnect after {r.max_attempts} attempts")

    # ---- 通知标准化 ---------------------------------------------------------

    async def _on_notification(self, payload: dict[str, Any]) -> None:
        kind = payload.get("type")
        handler = self._notification_handlers.get(kind)
        if handler is None:
            logger.warning(f"Got an unhandled notification: {kind} {dumps(payload)}")
            return
        await handler(payload.get("body") or {})

    async def _on_routing_task(self, body: dict[str, Any]) -> None:
        logger.info(f"{ROUTING_TASK_NOTIFICATION}: {dumps(body)}")
        for index, change in enumerate(body.get("changes") or []):
            logger.trace(f"{ROUTING_TASK_NOTIFICATION} change {index}: {dumps(change)}")
        await self.events.emit(RoutingNotification(raw=body))

    async def _on_agent_state(self, body: dict[str, Any]) -> None:
        logger.info(f"{AGENT_STATE_NOTIFICATION}: {dumps(body)}")
        for index, change in enumerate(body.get("changes") or []):
            logger.trace(f"{AGENT_STATE_NOTIFICATION} change {index}: {dumps(change)}")
        await self.events.emit(AgentStateNotification(raw=body))

    async def _on_conversation_change(self, body: dict[str, Any]) -> None:
        """
        处理会话变更通知。

        UPSERT：首次出现的会话加入会话表，并异步获取访客资料、订阅消息事件；
                无论新旧都刷新详情快照与最后内容事件投影。
        DELETE：从会话表移除。
        整个批次处理完成后转发一次 ConversationNotification（携带原始批次）。
        """
        logger.info(f"{CONVERSATION_CHANGE_NOTIFICATION}: {dumps(body)}")
        for index, change in enumerate(body.get("changes") or []):
            result = change.get("result") or {}
            conversation_id = result.get("convId")
            logger.trace(f"{CONVERSATION_CHANGE_NOTIFICATION} change {index}: {dumps(change)}")
            if not conversation_id:
                continue

            if change.get("type") == "UPSERT":
                if conversation_id not in self.conversations:
                    self.conversations.add(conversation_id)
                    logger.debug(f"{conversation_id} added to tracked conversations")
                    self._spawn(self._fetch_consumer_profile(conversation_id, result.get("conversationDetails") or {}))
                    self._spawn(self._subscribe_messaging_events(conversation_id))
                self.conversations.update(conversation_id, result)
            elif change.get("type") == "DELETE":
                if self.conversations.remove(conversation_id):
                    logger.debug(f"{conversation_id} removed from tracked conversations")

        await self.events.emit(ConversationNotification(raw=body))

    async def _on_messaging_event(self, body: dict[str, Any]) -> None:
        """
        处理消息事件通知（同一批次共享一个 dialogId）。

        流程：
        1. 批次的 dialogId 不在会话表中时整批忽略
        2. 非本机器人发出的 ContentEvent 加入待处理表，键为 sequence
        3. 本机器人发出的 AcceptStatusEvent 把其 sequenceList 中的消息移出待处理表
        4. 批次结束后：若本机器人是 ASSIGNED_AGENT 则逐条发送已读回执；
           无论角色如何，逐条转发 ContentNotification
        """
        changes = body.get("changes") or []
        if changes and all((c.get("event") or {}).get("type") == CHAT_STATE_EVENT for c in changes):
            logger.trace(f"{MESSAGING_EVENT_NOTIFICATION}: {dumps(body)}")
        else:
            logger.info(f"{MESSAGING_EVENT_NOTIFICATION}: {dumps(body)}")

        dialog_id = body.get("dialogId") or next((c.get("dialogId") for c in changes if c.get("dialogId")), None)
        conversation = self.conversations.get(dialog_id) if dialog_id else None
        if conversation is None:
            return

        pending: dict[int, PendingReceipt] = {}
        for change in changes:
            event = change.get("event") or {}
            event_type = event.get("type")
            originator = change.get("originatorId")

            if event_type == CONTENT_EVENT and originator != self.agent_id:
                sequence = change.get("sequence")
                pending[sequence] = PendingReceipt(
                    conversation_id=dialog_id,
                    sequence=sequence,
                    message=event.get("message"),
                    originator_metadata=change.get("originatorMetadata") or {},
                )
            elif event_type == ACCEPT_STATUS_EVENT and originator == self.agent_id:
                for sequence in event.get("sequenceList") or []:
                    pending.pop(sequence, None)

        assigned = self.get_role(conversation.details) == Role.ASSIGNED_AGENT
        for receipt in pending.values():
            if assigned:
                self.mark_as_read(receipt.conversation_id, [receipt.sequence])
            await self.events.emit(ContentNotification(
                conversation_id=receipt.conversation_id,
                sequence=receipt.sequence,
                message=receipt.message,
                originator_metadata=receipt.originator_metadata,
            ))

    async def _fetch_consumer_profile(self, conversation_id: str, details: dict[str, Any]) -> None:
        """异步获取访客资料并缓存到会话表；失败时资料保持为空。"""
        consumer_id = get_consumer_id(details)
        if not consumer_id:
            logger.warning(f"getConsumerProfile: no consumer in conversation {conversation_id}")
            return
        try:
            profile = await self.transport.get_user_profile(consumer_id)
        except Exception as e:
            logger.error(f"getConsumerProfile failed for conversation {conversation_id}: {e}")
            return
        conversation = self.conversations.get(conversation_id)
        if conversation is not None:
            conversation.consumer_profile = profile
        logger.info(f"getConsumerProfile: conversation {conversation_id} consumerProfile {dumps(profile)}")

    async def _subscribe_messaging_events(self, conversation_id: str) -> bool:
        return await self._call(
            f"subscribeMessagingEvents {conversation_id}",
            self.transport.subscribe_messaging_events({"dialogId": conversation_id}),
        )

    # ---- 出站操作 ---------------------------------------------------------
    # 每个操作立即返回，传输层调用作为后台任务运行（结果只进日志）；
    # 需要等待完成的调用方可以 await 返回的任务。

    def join_conversation(self, conversation_id: str, role: str, announce: bool = False) -> bool:
        """
        以指定角色加入会话。

        参数:
            conversation_id: 会话 ID
            role: READER / MANAGER / ASSIGNED_AGENT，其他值直接拒绝（不调用传输层）
            announce: 加入成功且角色不是 READER 时，发送 "<role> joined" 文本

        返回:
            已发出加入请求返回 True；角色非法返回 False
        """
        role_name = role.value if isinstance(role, Role) else str(role)
        if role_name not in JOINABLE_ROLES:
            logger.warning(f"joinConversation: rejected role {role_name!r}")
            return False
        self._spawn(self._join(conversation_id, role_name, announce))
        return True

    async def _join(self, conversation_id: str, role_name: str, announce: bool) -> None:
        joined = await self._call(
            f"joinConversation {conversation_id}",
            self.transport.update_conversation_field({
                "conversationId": conversation_id,
                "conversationField": [{"field": "ParticipantsChange", "type": "ADD", "role": role_name}],
            }),
        )
        if joined and announce and role_name != Role.READER:
            self.send_text(conversation_id, f"{role_name} joined")

    def send_text(self, conversation_id: str, text: Any) -> asyncio.Task:
        """发送纯文本消息。"""
        message = str(text)
        logger.trace(f"Sending text {message} to conversation {conversation_id}")
        return self._spawn(self._call(
            f"sendText {conversation_id}",
            self.transport.publish_event({
                "dialogId": conversation_id,
                "event": {"type": CONTENT_EVENT, "contentType": "text/plain", "message": message},
            }),
            quiet=True,
        ))

    def send_rich_content(self, conversation_id: str, card: Mapping[str, Any]) -> asyncio.Task:
        """
        发送结构化内容卡片。

        参数:
            conversation_id: 会话 ID
            card: {"id": 卡片 ID（用于关联报表）, "content": 结构化内容 JSON}
        """
        card_id = str(card.get("id", ""))
        logger.trace(f"Sending structured content card {card_id} to conversation {conversation_id}")
        return self._spawn(self._call(
            f"sendRichContent card {card_id}",
            self.transport.publish_event(
                {"dialogId": conversation_id, "event": {"type": RICH_CONTENT_EVENT, "content": card.get("content")}},
                metadata=[{"type": "ExternalId", "id": card_id}],
            ),
            quiet=True,
        ))

    def mark_as_read(self, conversation_id: str, sequences: Sequence[int]) -> asyncio.Task:
        """发送已读回执，覆盖给定的消息序列号。"""
        return self._spawn(self._call(
            f"markAsRead {conversation_id}",
            self.transport.publish_event({
                "dialogId": conversation_id,
                "event": {"type": ACCEPT_STATUS_EVENT, "status": "READ", "sequenceList": list(sequences)},
            }),
            quiet=True,
        ))

    def transfer_conversation(self, conversation_id: str, target_skill_id: str) -> asyncio.Task:
        """在一个请求中移除 ASSIGNED_AGENT 并把会话转到目标技能组。"""
        logger.info(f"Transferring conversation {conversation_id} to skill {target_skill_id}")
        return self._spawn(self._call(
            f"transferConversation {conversation_id}",
            self.transport.update_conversation_field({
                "conversationId": conversation_id,
                "conversationField": [
                    {"field": "ParticipantsChange", "type": "REMOVE", "role": Role.ASSIGNED_AGENT.value},
                    {"field": "Skill", "type": "UPDATE", "skill": target_skill_id},
                ],
            }),
            quiet=True,
        ))

    def remove_participant(self, conversation_id: str, role: str) -> asyncio.Task:
        """按角色移除参与者（离开会话）。"""
        role_name = role.value if isinstance(role, Role) else str(role)
        logger.info(f"Leaving conversation {conversation_id} as {role_name}")
        return self._spawn(self._call(
            f"removeParticipant {conversation_id}",
            self.transport.update_conversation_field({
                "conversationId": conversation_id,
                "conversationField": [{"field": "ParticipantsChange", "type": "REMOVE", "role": role_name}],
            }),
            quiet=True,
        ))

    def close_conversation(self, conversation_id: str) -> asyncio.Task:
        """关闭会话。"""
        return self._spawn(self._call(
            f"closeConversation {conversation_id}",
            self.transport.update_conversation_field({
                "conversationId": conversation_id,
                "conversationField": [{"field": "ConversationStateField", "conversationState": "CLOSE"}],
            }),
            quiet=True,
        ))

    def set_agent_state(self, availability: str) -> asyncio.Task:
        """设置坐席状态（ONLINE / OCCUPIED / AWAY / BACK_SOON / OFFLINE）。"""
        return self._spawn(self._call(
            f"setAgentState {availability}", self.transport.set_agent_state({"availability": availability}),
        ))

    def accept_waiting_conversations(self, routing_body: Mapping[str, Any]) -> int:
        """
        接受路由通知批次中所有处于 WAITING 状态的振铃，各振铃的接受请求并行发出。

        参数:
            routing_body: 完整的 RoutingTaskNotification 载荷

        返回:
            发出的接受请求数量
        """
        accepted = 0
        for change in routing_body.get("changes") or []:
            if change.get("type") != "UPSERT":
                continue
            result = change.get("result") or {}
            for ring in result.get("ringsDetails") or []:
                if ring.get("ringState") != "WAITING":
                    continue
                accepted += 1
                self._spawn(self._call(
                    f"acceptWaitingConversations: conversation {result.get('conversationId')}",
                    self.transport.update_ring_state({"ringId": ring.get("ringId"), "ringState": "ACCEPTED"}),
                ))
        return accepted

    def get_role(self, details: dict[str, Any] | None, participant_id: str | None = None) -> str | None:
        """查找参与者（默认为本机器人）在会话详情中的角色，不存在时返回 None。"""
        return get_role(details, participant_id if participant_id is not None else self.agent_id)
