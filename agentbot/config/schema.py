"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 agentbot 的完整配置结构。

整体配置结构（树形）：
Config (根配置)
├── bot        - 会话管理器运行参数（保活间隔、重连策略、日志级别）
└── accounts   - 账号凭据表 {accountId: {用户名: AgentCredentials}}

凭据字段与 Messaging Agent SDK 的配置对象一一对应，JSON 文件中使用
camelCase（accountId、csdsDomain ...），Python 内部使用 snake_case。

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 中的 POJO/DTO，但自带数据验证功能
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentCredentials(BaseModel):
    """
    机器人用户的登录凭据与连接参数。

    认证方式（四选一）：
    - username + password
    - token + userId（已有的 bearer token）
    - assertion（SAML）
    - username + appKey + secret + accessToken + accessTokenSecret（OAuth1）

    所有字段均可缺省；未设置的字段在 to_options() 中被省略，而不是以空值传递。
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,  # accountId 在配置文件中常写成数字
    )

    account_id: str | None = None  # 账号 ID，始终必填
    username: str | None = None  # 机器人用户登录名
    password: str | None = None
    token: str | None = None  # 有效的 bearer token，配合 user_id 使用
    user_id: str | None = None
    assertion: str | None = None  # SAML 断言
    app_key: str | None = None  # OAuth1 参数
    secret: str | None = None
    access_token: str | None = None
    access_token_secret: str | None = None
    csds_domain: str | None = None  # 覆盖 CSDS 域名
    request_timeout: int | None = None  # 请求超时（毫秒），默认 10000
    error_check_interval: int | None = None  # 超时检查间隔（毫秒），默认 1000
    api_version: int | None = None  # Messaging API 版本，默认 2

    def to_options(self) -> dict[str, str | int]:
        """导出为 camelCase 字典，省略未设置的字段。"""
        return self.model_dump(by_alias=True, exclude_none=True)


class BotSettings(BaseModel):
    """会话管理器运行参数（保活间隔与重连策略）。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    clock_ping_interval: float = 300  # 保活探测间隔（秒）
    reconnect_attempts: int = 35  # 最大重连次数
    reconnect_interval: float = 5  # 首次重连延迟（秒）
    reconnect_ratio: float = 1.2  # 重连延迟的几何增长比例
    log_level: str = "WARNING"  # 日志级别（支持 silly/verbose/warn 等别名）


class Config(BaseSettings):
    """
    agentbot 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: AGENTBOT_
    - 嵌套分隔符: __ (双下划线)
    - 示例: AGENTBOT_BOT__RECONNECT_ATTEMPTS=10 可覆盖 bot.reconnect_attempts

    注意 accounts 的键是账号 ID 与用户名，原样保留，不做大小写转换。
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTBOT_",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    bot: BotSettings = Field(default_factory=BotSettings)
    accounts: dict[str, dict[str, AgentCredentials]] = Field(default_factory=dict)
