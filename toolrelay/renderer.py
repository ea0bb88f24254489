from __future__ import annotations

import json

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from toolrelay.config import Settings
from toolrelay.models import QueryResult

console = Console()

_SECRET_FIELDS = {"token", "api_key", "aws_access_key_id", "aws_secret_access_key", "aws_session_token"}


def render_result(result: QueryResult, raw: bool = False) -> None:
    """Print tool activity, then the final answer (or its raw JSON)."""
    for tr in result.tool_results:
        console.print(f"[dim]  tool: {tr.name} [{escape(tr.call_id)}] → {escape(_truncate(tr.content))}[/dim]")

    if raw:
        console.print_json(json.dumps(result.raw, ensure_ascii=False))
        return

    console.print("\n[bold]Assistant:[/bold]")
    if result.answer:
        console.print(Markdown(result.answer))
    else:
        console.print("[yellow](empty answer)[/yellow]")
    console.print()


def render_settings(settings: Settings) -> None:
    """Show resolved settings as a Rich table, masking credentials."""
    table = Table(title="toolrelay settings", show_lines=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.model_dump().items():
        if key in _SECRET_FIELDS:
            value = _mask(value)
        table.add_row(key, escape(str(value)) if value != "" else "[dim](unset)[/dim]")
    console.print(table)


def render_error(message: str) -> None:
    console.print(Panel(escape(message), title="[bold red]error[/bold red]", border_style="red"))


def _mask(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 4:
        return "****"
    return value[:2] + "…" + value[-2:]


def _truncate(text: str, limit: int = 60) -> str:
    text = text.replace("\n", " ")
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text
