"""reader 机器人 - 以 AWAY 状态上线，订阅全部会话，以 READER 身份加入尚未参与的会话。"""

from agentbot.bots.base import BaseBot
from agentbot.bus.events import ConversationNotification
from agentbot.session.conversations import Role


class ReaderBot(BaseBot):
    """
    旁听型机器人。

    二开提示：
    - 需要以其他角色加入时，继承本类并覆盖 join_role（参见 ManagerBot）
    """

    name = "reader"
    initial_state = "AWAY"
    subscribe_all_conversations = True
    join_role: str = Role.READER.value

    async def on_conversation_notification(self, event: ConversationNotification) -> None:
        for change in event.raw.get("changes") or []:
            if change.get("type") == "DELETE":
                continue
            result = change.get("result") or {}
            conversation_id = result.get("convId")
            # 已经是参与者（任意角色）时不再加入
            if conversation_id and not self.session.get_role(result.get("conversationDetails")):
                self.session.join_conversation(conversation_id, self.join_role)
