"""
CLI 命令模块 - agentbot 的所有命令行命令定义。

本模块使用 Typer 框架定义 agentbot 的 CLI 命令体系：
- run：以指定示例机器人（agent / reader / manager）连接并持续运行
- onboard：生成配置文件模板
- status：查看配置文件、解析后的凭据（密钥脱敏）与运行参数

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、颜色）

凭据选择方式：--account/--user（或环境变量 LP_ACCOUNT / LP_USER）
从配置文件的 accounts 表中选出一组凭据，再由 LP_* 环境变量逐字段覆盖。
"""

import asyncio
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from agentbot import __logo__, __version__

# 创建 Typer 应用实例（CLI 根命令）
app = typer.Typer(
    name="agentbot",
    help=f"{__logo__} agentbot - Messaging agent session runner",
    no_args_is_help=True,
)

console = Console()

# status 命令中需要脱敏显示的字段
SECRET_FIELDS = {"password", "token", "assertion", "secret", "access_token", "access_token_secret"}


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} agentbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """agentbot CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


def _mask(value: object) -> str:
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"{text[:2]}{'*' * (len(text) - 4)}{text[-2:]}"


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    bot: str = typer.Argument(..., help="Bot to run: agent, reader or manager"),
    account: str = typer.Option(None, "--account", "-a", envvar="LP_ACCOUNT", help="Account id in the config file"),
    user: str = typer.Option(None, "--user", "-u", envvar="LP_USER", help="Bot user name in the config file"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    transfer_skill: str = typer.Option(None, "--transfer-skill", help="Target skill id for the agent bot"),
    log_level: str = typer.Option(None, "--log-level", "-l", envvar="loglevel", help="Log level (silly, debug, info, warn, error)"),
):
    """
    连接消息平台并运行示例机器人，直到 Ctrl+C。

    执行流程：
    1. 加载配置文件，按 account/user 选出凭据，LP_* 环境变量逐字段覆盖
    2. 配置日志级别（命令行 > 环境变量 loglevel > 配置文件 bot.logLevel）
    3. 创建 WebSocketTransport 与 SessionManager，挂载机器人
    4. 启动会话并进入运行循环；退出时关闭会话
    """
    from agentbot.bots import AgentBot, get_bot
    from agentbot.config.loader import ConfigError, load_config, resolve_credentials, select_credentials
    from agentbot.session.manager import SessionManager
    from agentbot.transport.websocket import WebSocketTransport
    from agentbot.utils.helpers import setup_logging

    try:
        bot_cls = get_bot(bot)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        raise typer.Exit(1)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    level = setup_logging(log_level or config.bot.log_level)
    credentials = resolve_credentials(select_credentials(config, account, user))
    if not credentials.account_id:
        console.print("[red]No accountId configured (set it in the config file or LP_ACCOUNTID)[/red]")
        raise typer.Exit(1)

    transport = WebSocketTransport(credentials)
    session = SessionManager(transport, settings=config.bot, **bot_cls.session_options())
    if bot_cls is AgentBot:
        instance = AgentBot(session, transfer_skill=transfer_skill)
    else:
        instance = bot_cls(session)
    instance.attach()

    console.print(
        f"{__logo__} Starting [cyan]{bot_cls.name}[/cyan] bot for account "
        f"{credentials.account_id} (log level {level})..."
    )

    async def _run():
        try:
            await session.start()
        finally:
            await session.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Onboard / Status
# ============================================================================


@app.command()
def onboard(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """
    生成配置文件模板（~/.agentbot/config.json）。

    模板包含默认运行参数和一个示例账号条目，填写凭据后即可运行：
        agentbot run agent -a <accountId> -u <user>
    """
    from agentbot.config.loader import get_config_path, save_config
    from agentbot.config.schema import AgentCredentials, Config

    path = config_path or get_config_path()
    if path.exists():
        console.print(f"[yellow]Config already exists at {path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config(accounts={
        "12345678": {
            "bot_user": AgentCredentials(account_id="12345678", username="bot_user", password="change-me"),
        },
    })
    save_config(config, path)
    console.print(f"[green]✓[/green] Created config at {path}")
    console.print("\nNext steps:")
    console.print(f"  1. Add your bot user credentials to [cyan]{path}[/cyan]")
    console.print("  2. Run: [cyan]agentbot run agent -a 12345678 -u bot_user[/cyan]")


@app.command()
def status(
    account: str = typer.Option(None, "--account", "-a", envvar="LP_ACCOUNT", help="Account id in the config file"),
    user: str = typer.Option(None, "--user", "-u", envvar="LP_USER", help="Bot user name in the config file"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """
    显示 agentbot 配置状态。

    展示内容：
    - 配置文件路径和状态
    - 解析后的凭据（环境变量覆盖之后，密钥字段脱敏）
    - 会话管理器运行参数
    """
    from agentbot.config.loader import ConfigError, get_config_path, load_config, resolve_credentials, select_credentials

    path = config_path or get_config_path()
    console.print(f"{__logo__} agentbot Status\n")
    console.print(f"Config: {path} {'[green]✓[/green]' if path.exists() else '[red]✗[/red]'}")

    try:
        config = load_config(path)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    credentials = resolve_credentials(select_credentials(config, account, user), os.environ)

    table = Table(title="Credentials")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for name, value in credentials.model_dump(exclude_none=True).items():
        table.add_row(name, _mask(value) if name in SECRET_FIELDS else str(value))
    if not table.row_count:
        table.add_row("[dim]none[/dim]", "[dim]not set[/dim]")
    console.print(table)

    settings = Table(title="Bot settings")
    settings.add_column("Setting", style="cyan")
    settings.add_column("Value")
    for name, value in config.bot.model_dump().items():
        settings.add_row(name, str(value))
    console.print(settings)


if __name__ == "__main__":
    app()
