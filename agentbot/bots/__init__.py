"""示例机器人注册表。"""

from agentbot.bots.agent import AgentBot
from agentbot.bots.base import BaseBot
from agentbot.bots.manager import ManagerBot
from agentbot.bots.reader import ReaderBot

BOTS: dict[str, type[BaseBot]] = {
    AgentBot.name: AgentBot,
    ReaderBot.name: ReaderBot,
    ManagerBot.name: ManagerBot,
}


def get_bot(name: str) -> type[BaseBot]:
    """
    按名称查找机器人类。

    异常:
        KeyError: 未知的机器人名
    """
    try:
        return BOTS[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown bot '{name}', expected one of: {', '.join(BOTS)}") from None


__all__ = ["BOTS", "AgentBot", "BaseBot", "ManagerBot", "ReaderBot", "get_bot"]
