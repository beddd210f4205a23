"""manager 机器人 - 与 reader 相同，但以 MANAGER 身份加入会话。"""

from agentbot.bots.reader import ReaderBot
from agentbot.session.conversations import Role


class ManagerBot(ReaderBot):
    name = "manager"
    join_role = Role.MANAGER.value
