"""
agentbot - 聊天平台消息 Agent 会话管理框架

模块概述：
    本文件是 agentbot 包的入口文件（__init__.py），定义了包的元信息。
    agentbot 维护一条到第三方聊天平台（Messaging Agent API）的长连接会话，
    负责保活、断线重连、会话跟踪与事件标准化，并将稳定的事件分类
    分发给下游的机器人逻辑。

    整个框架的核心功能包括：
    - 长连接生命周期管理（连接、保活、有界指数退避重连）
    - 原始通知的标准化与去重（路由、会话、坐席状态、消息内容）
    - 出站操作（加入/离开会话、发送文本/富文本、已读回执、转接、关闭）
    - 示例机器人（agent / reader / manager）与命令行启动入口
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🤖"
