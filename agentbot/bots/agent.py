"""
agent 机器人 - 以 ONLINE 状态上线，只订阅自己的会话。

行为：
- 路由通知：接受所有 WAITING 振铃
- 来自 CONSUMER、且本机器人是 ASSIGNED_AGENT 的消息按命令处理：
    transfer   → 提示后转接到 transfer_skill 技能组
    close      → 关闭会话
    time/date  → 回复当前时间/日期
    online / back soon / away / offline → 切换坐席状态
    content    → 发送一张结构化内容卡片
    其他       → 回显 "you said <消息>!"
"""

import random
from datetime import datetime
from typing import Any

from loguru import logger

from agentbot.bots.base import BaseBot
from agentbot.bus.events import ContentNotification, RoutingNotification
from agentbot.session.conversations import Role
from agentbot.session.manager import SessionManager

DEFAULT_TRANSFER_SKILL = "277498214"

# 命令 → 坐席状态
AVAILABILITY_COMMANDS = {
    "online": "ONLINE",
    "back soon": "BACK_SOON",
    "away": "AWAY",
    "offline": "OFFLINE",
}


def product_card() -> dict[str, Any]:
    """演示用的结构化内容卡片，id 随机生成（用于报表关联）。"""
    return {
        "id": str(random.randint(0, 99999)),
        "content": {
            "type": "vertical",
            "elements": [
                {
                    "type": "text",
                    "text": "Product Name",
                    "tooltip": "text tooltip",
                    "style": {"bold": True, "size": "large"},
                },
                {"type": "text", "text": "Product description", "tooltip": "text tooltip"},
                {
                    "type": "button",
                    "tooltip": "button tooltip",
                    "title": "Add to cart",
                    "click": {
                        "actions": [{"type": "link", "name": "Add to cart", "uri": "http://www.google.com"}],
                    },
                },
            ],
        },
    }


class AgentBot(BaseBot):
    """
    应答型机器人。

    属性:
        transfer_skill: "transfer" 命令的目标技能组 ID
    """

    name = "agent"
    initial_state = "ONLINE"
    subscribe_all_conversations = False

    def __init__(self, session: SessionManager, transfer_skill: str | None = None):
        super().__init__(session)
        self.transfer_skill = transfer_skill or DEFAULT_TRANSFER_SKILL

    async def on_routing_notification(self, event: RoutingNotification) -> None:
        self.session.accept_waiting_conversations(event.raw)

    async def on_content_notification(self, event: ContentNotification) -> None:
        if event.originator_metadata.get("role") != Role.CONSUMER:
            return
        conversation = self.session.conversations.get(event.conversation_id)
        if conversation is None or self.session.get_role(conversation.details) != Role.ASSIGNED_AGENT:
            return
        if not isinstance(event.message, str):
            logger.debug(f"[{self.name}] ignoring non-text message in {event.conversation_id}")
            return
        self.handle_command(event.conversation_id, event.message)

    def handle_command(self, conversation_id: str, message: str) -> None:
        """按消息文本（不区分大小写）执行对应命令。"""
        command = message.lower()
        session = self.session

        if command == "transfer":
            session.send_text(conversation_id, "transferring you to a new skill")
            session.transfer_conversation(conversation_id, self.transfer_skill)
        elif command == "close":
            session.close_conversation(conversation_id)
        elif command == "time":
            session.send_text(conversation_id, datetime.now().astimezone().strftime("%H:%M:%S GMT%z (%Z)"))
        elif command == "date":
            session.send_text(conversation_id, datetime.now().strftime("%a %b %d %Y"))
        elif command in AVAILABILITY_COMMANDS:
            session.set_agent_state(AVAILABILITY_COMMANDS[command])
        elif command == "content":
            session.send_rich_content(conversation_id, product_card())
        else:
            session.send_text(conversation_id, f"you said {message}!")
