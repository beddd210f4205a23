"""
重连状态机模块 - 有界几何退避。

状态流转：
    IDLE → RECONNECTING(attempt, delay) → RECONNECTED | EXHAUSTED

第 n 次重连前的等待时间为 interval * ratio ** (n - 1)，n = 1..max_attempts，
不存在第 max_attempts + 1 次尝试。EXHAUSTED 为终止状态，只有新的 connected
事件（reset）才能使状态机离开它。

本模块只负责状态与计时参数，实际的 sleep 与 transport.reconnect() 调用由
SessionManager 的重连任务驱动。
"""

from enum import Enum

DEFAULT_RECONNECT_INTERVAL_S = 5.0
DEFAULT_RECONNECT_RATIO = 1.2
DEFAULT_RECONNECT_ATTEMPTS = 35


class ReconnectState(str, Enum):
    IDLE = "idle"
    RECONNECTING = "reconnecting"
    RECONNECTED = "reconnected"
    EXHAUSTED = "exhausted"


class Reconnector:
    """
    重连状态机。

    属性:
        interval: 首次重连延迟（秒）
        ratio: 每次尝试后延迟的增长比例
        max_attempts: 最大尝试次数
        state: 当前状态
        attempt: 当前（下一次）尝试的序号，从 1 开始
        delay: 当前尝试前的等待时间（秒）
    """

    def __init__(
        self,
        interval: float = DEFAULT_RECONNECT_INTERVAL_S,
        ratio: float = DEFAULT_RECONNECT_RATIO,
        max_attempts: int = DEFAULT_RECONNECT_ATTEMPTS,
    ):
        self.interval = interval
        self.ratio = ratio
        self.max_attempts = max_attempts
        self.state = ReconnectState.IDLE
        self.attempt = 1
        self.delay = interval

    @property
    def in_progress(self) -> bool:
        return self.state is ReconnectState.RECONNECTING

    @property
    def exhausted(self) -> bool:
        return self.state is ReconnectState.EXHAUSTED

    def begin(self) -> None:
        """进入 RECONNECTING，从第 1 次尝试开始。"""
        self.state = ReconnectState.RECONNECTING
        self.attempt = 1
        self.delay = self.interval

    def advance(self) -> bool:
        """
        当前尝试完成后推进到下一次尝试。

        返回:
            还有剩余尝试时返回 True（delay 已按 ratio 增长）；
            否则进入 EXHAUSTED 并返回 False
        """
        if self.state is not ReconnectState.RECONNECTING:
            return False
        if self.attempt >= self.max_attempts:
            self.state = ReconnectState.EXHAUSTED
            return False
        self.attempt += 1
        self.delay *= self.ratio
        return True

    def reset(self) -> None:
        """收到 connected：计数器回到 1；若此前处于重连流程中则标记为 RECONNECTED。"""
        if self.state is not ReconnectState.IDLE:
            self.state = ReconnectState.RECONNECTED
        self.attempt = 1
        self.delay = self.interval

    def schedule(self) -> list[float]:
        """返回该策略下每次尝试前的等待时间列表。"""
        return [self.interval * self.ratio ** n for n in range(self.max_attempts)]
