#!/usr/bin/env python3
"""
Landscape 命令行工具

对 Landscape API 执行签名调用：
- 管理脚本附件（上传、删除、列出）
- 在选定主机上执行脚本
- 查询主机和脚本信息

凭证从环境变量 LANDSCAPE_API_KEY / LANDSCAPE_API_SECRET 读取，
API 地址从 LANDSCAPE_API_URI 读取（也可以写在 .landscape_config.yaml 中）。
"""

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional

import typer
from pydantic import BaseModel, ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from landscape import LandscapeAPI, LandscapeError, __version__, load_settings
from landscape.models import Computer

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

app = typer.Typer(
    name="landscape-cli",
    no_args_is_help=True,
    add_completion=False,
    help="The landscape-api command that actually works.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

_console = Console()
_err_console = Console(stderr=True)


def _version_callback(value: bool) -> None:
    if value:
        _console.print(f"landscape-cli {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML 配置文件路径（默认 .landscape_config.yaml）"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="显示版本并退出",
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )
    ctx.obj = {"config": config}


def _build_api(ctx: typer.Context) -> LandscapeAPI:
    settings = load_settings(ctx.obj.get("config") if ctx.obj else None)
    return LandscapeAPI(settings)


def _to_jsonable(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json", by_alias=True)
    if isinstance(result, list):
        return [_to_jsonable(item) for item in result]
    return result


def _run(ctx: typer.Context, operation: Callable[[LandscapeAPI], Any]) -> Any:
    """执行一次 API 操作；任何核心错误都以非零退出码结束进程。"""
    try:
        api = _build_api(ctx)
    except LandscapeError as e:
        _err_console.print(f"[red]错误:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    try:
        return operation(api)
    except LandscapeError as e:
        logger.debug("命令失败", exc_info=True)
        _err_console.print(f"[red]错误:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except OSError as e:
        _err_console.print(f"[red]文件错误:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except ValidationError as e:
        _err_console.print(f"[red]参数错误:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    finally:
        api.close()


def _print_json(result: Any) -> None:
    _console.print_json(data=_to_jsonable(result))


def build_hosts_table(hosts: List[Computer]) -> Table:
    table = Table(title="Landscape Hosts")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Hostname", style="white")
    table.add_column("Access group", style="dim")
    table.add_column("Tags", style="magenta")
    for host in hosts:
        table.add_row(
            str(host.id),
            host.title or "",
            host.hostname or "",
            host.access_group or "",
            ", ".join(host.tags or []),
        )
    return table


@app.command("get-script")
def get_script(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="脚本标题（前缀匹配）"),
) -> None:
    """Get script details."""
    _print_json(_run(ctx, lambda api: api.get_script(title)))


@app.command("get-scripts")
def get_scripts(ctx: typer.Context) -> None:
    """List all scripts."""
    _print_json(_run(ctx, lambda api: api.get_scripts()))


@app.command("get-script-attachments")
def get_script_attachments(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="脚本标题（前缀匹配）"),
) -> None:
    """Check the existing attachments."""
    for attachment in _run(ctx, lambda api: api.get_script_attachments(title)):
        _console.print(attachment)


@app.command("create-script-attachment")
def create_script_attachment(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="脚本标题（前缀匹配）"),
    attachment: Path = typer.Argument(..., help="要上传的本地文件"),
) -> None:
    """Upload the attachment to the script."""
    _print_json(_run(ctx, lambda api: api.create_script_attachment(title, attachment)))


@app.command("remove-script-attachment")
def remove_script_attachment(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="脚本标题（前缀匹配）"),
    attachment: str = typer.Argument(..., help="要删除的附件名称"),
) -> None:
    """Remove script attachment if found."""
    if not Path(attachment).name:
        raise typer.BadParameter(f"无效的附件名称: {attachment}", param_hint="ATTACHMENT")
    _print_json(_run(ctx, lambda api: api.remove_script_attachment(title, attachment)))


@app.command("execute-script")
def execute_script(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="脚本标题（前缀匹配）"),
    query: str = typer.Argument(..., help="选择主机的 Landscape 查询，如 tag:web"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="执行脚本的用户"),
    time_limit: Optional[int] = typer.Option(None, "--time-limit", min=1, help="超时时间（秒）"),
) -> None:
    """Execute the script over the hosts."""
    _print_json(
        _run(
            ctx,
            lambda api: api.execute_script(
                title, query, username=username, time_limit=time_limit
            ),
        )
    )


@app.command("get-all-hosts")
def get_all_hosts(
    ctx: typer.Context,
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Landscape 主机查询"),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="最多返回的主机数"),
    offset: Optional[int] = typer.Option(None, "--offset", min=0, help="结果偏移量"),
    with_annotations: bool = typer.Option(False, "--with-annotations", help="包含主机注解"),
    table: bool = typer.Option(False, "--table", help="以表格形式输出"),
) -> None:
    """Get information about all registered hosts."""
    hosts = _run(
        ctx,
        lambda api: api.get_all_hosts(
            query=query, limit=limit, offset=offset, with_annotations=with_annotations
        ),
    )
    if table:
        _console.print(build_hosts_table(hosts))
    else:
        _print_json(hosts)


def main() -> None:
    """主函数"""
    app()


if __name__ == "__main__":
    main()
