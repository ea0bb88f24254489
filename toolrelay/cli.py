from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click
import questionary
from rich.console import Console
from rich.logging import RichHandler

import toolrelay.config as config_mod
from toolrelay.connectors import get_connector
from toolrelay.errors import ToolrelayError
from toolrelay.renderer import render_error, render_result, render_settings
from toolrelay.repl import run_repl
from toolrelay.session import ConversationSession

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _resolve_settings(ctx: click.Context) -> config_mod.Settings:
    return config_mod.resolve(config_mod.load(), **ctx.obj["overrides"])


@click.group(invoke_without_command=True)
@click.option("--use-ai-gateway", is_flag=True, help="Use AI Gateway instead of the direct provider.")
@click.option("--mode", type=click.Choice(["gateway", "direct"]), default=None, help="Backend mode.")
@click.option("--ai-gateway-url", default=None, help="AI Gateway URL.")
@click.option("--base-url", default=None, help="Provider base URL for direct mode.")
@click.option("--aws-access-key-id", default=None, help="AWS Access Key ID.")
@click.option("--aws-secret-key", default=None, help="AWS Secret Key.")
@click.option("--aws-session-token", default=None, help="AWS Session Token (optional).")
@click.option("--model-name", default=None, help="Model identifier.")
@click.option("--tool-url", default=None, help="External weather service URL ({location} is substituted).")
@click.option("--timeout", type=float, default=None, help="Per-query time budget in seconds.")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
@click.pass_context
def main(
    ctx: click.Context,
    use_ai_gateway: bool,
    mode: str | None,
    ai_gateway_url: str | None,
    base_url: str | None,
    aws_access_key_id: str | None,
    aws_secret_key: str | None,
    aws_session_token: str | None,
    model_name: str | None,
    tool_url: str | None,
    timeout: float | None,
    verbose: bool,
) -> None:
    """toolrelay: ask a tool-calling model a question through an AI gateway or directly."""
    _setup_logging(verbose)

    if use_ai_gateway:
        mode = "gateway"
    overrides: dict[str, Any] = {
        "mode": mode,
        "aws_access_key_id": aws_access_key_id,
        "aws_secret_access_key": aws_secret_key,
        "aws_session_token": aws_session_token,
        "model": model_name,
        "tool_url": tool_url,
        "timeout": timeout,
        "gateway_url": ai_gateway_url,
        "direct_base_url": base_url,
    }
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = overrides

    if ctx.invoked_subcommand is None:
        ctx.invoke(cmd_ask)


@main.command("ask")
@click.option("--question", "-q", default=config_mod.DEFAULT_QUESTION, show_default=True, help="Question to ask.")
@click.option("--raw", is_flag=True, help="Print the final response as raw JSON.")
@click.pass_context
def cmd_ask(ctx: click.Context, question: str = config_mod.DEFAULT_QUESTION, raw: bool = False) -> None:
    """Ask one question and print the final answer."""
    try:
        settings = _resolve_settings(ctx)
        with get_connector(settings) as connector:
            session = ConversationSession(settings, connector)
            with console.status("[dim]thinking...[/dim]", spinner="dots"):
                result = session.ask(question)
    except ToolrelayError as e:
        render_error(str(e))
        sys.exit(1)
    render_result(result, raw=raw)


@main.command("chat")
@click.pass_context
def cmd_chat(ctx: click.Context) -> None:
    """Interactive loop; each line is an independent question."""
    try:
        settings = _resolve_settings(ctx)
        connector = get_connector(settings)
    except ToolrelayError as e:
        render_error(str(e))
        sys.exit(1)
    with connector:
        run_repl(ConversationSession(settings, connector), f"{connector.name} @ {settings.base_url or 'default endpoint'}")


@main.command("show-config")
@click.pass_context
def cmd_show_config(ctx: click.Context) -> None:
    """Print the resolved settings (credentials masked)."""
    try:
        render_settings(_resolve_settings(ctx))
    except ToolrelayError as e:
        render_error(str(e))
        sys.exit(1)


@main.command("credentials")
@click.option("--path", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Output file.")
@click.pass_context
def cmd_credentials(ctx: click.Context, path: Path | None) -> None:
    """Write an AWS shared-credentials file from the configured keys."""
    try:
        written = config_mod.write_credentials(_resolve_settings(ctx), path)
    except ToolrelayError as e:
        render_error(str(e))
        sys.exit(1)
    console.print(f"[green]Credentials written to {written}[/green]")


@main.command("config")
def cmd_config() -> None:
    """Interactive configuration wizard."""
    try:
        cfg = config_mod.load()
    except ToolrelayError as e:
        render_error(str(e))
        sys.exit(1)

    console.print("[bold cyan]toolrelay configuration[/bold cyan]\n")

    mode = questionary.select(
        "Backend:",
        choices=["direct", "gateway"],
        default=cfg["backend"]["mode"],
    ).ask()

    model = questionary.text(
        "Model name:",
        default=cfg["backend"]["model"],
    ).ask()

    if mode == "gateway":
        url = questionary.text("AI Gateway URL:", default=cfg["gateway"]["url"]).ask()
    else:
        url = questionary.text("Provider base URL (blank for default):", default=cfg["direct"]["base_url"]).ask()

    tool_url = questionary.text(
        "Weather service URL (blank for mock data):",
        default=cfg["tool"]["url"],
    ).ask()

    if mode is None or model is None or url is None or tool_url is None:
        console.print("[yellow]Configuration cancelled.[/yellow]")
        return

    cfg["backend"]["mode"] = mode
    cfg["backend"]["model"] = model
    if mode == "gateway":
        cfg["gateway"]["url"] = url
    else:
        cfg["direct"]["base_url"] = url
    cfg["tool"]["url"] = tool_url

    config_mod.save(cfg)

    console.print(f"\n[green]Config saved to {config_mod.CONFIG_FILE}[/green]")
    if mode == "gateway":
        console.print("\n[dim]Gateway mode reads the bearer token from the TOKEN environment variable.[/dim]")
