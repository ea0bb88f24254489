from __future__ import annotations

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from rich.console import Console
from rich.markup import escape

from toolrelay.errors import ToolrelayError
from toolrelay.renderer import render_result
from toolrelay.session import ConversationSession

console = Console()


def _make_toolbar(backend: str, model: str) -> HTML:
    return HTML(
        "<b>[{}]</b>  <i>[{}]</i>  "
        "<dim>Enter to send | /exit to quit</dim>"
    ).format(backend, model)


def run_repl(session: ConversationSession, backend_label: str) -> None:
    """
    Run the interactive prompt_toolkit loop.
    Every line is an independent query; no history is carried between them.
    """
    prompt_session: PromptSession = PromptSession(
        bottom_toolbar=lambda: _make_toolbar(backend_label, session.settings.model),
    )

    console.print(
        f"[bold cyan]toolrelay[/bold cyan] — backend: [bold]{escape(backend_label)}[/bold]\n"
        "[dim]/exit or Ctrl+D to quit[/dim]\n"
    )

    while True:
        try:
            text = prompt_session.prompt("> ")
        except KeyboardInterrupt:
            continue
        except EOFError:
            break

        text = text.strip()
        if not text:
            continue

        if text.lower() in ("/exit", "/quit"):
            break

        try:
            with console.status("[dim]thinking...[/dim]", spinner="dots"):
                result = session.ask(text)
            render_result(result)
        except ToolrelayError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")

    console.print("[bold cyan]Goodbye![/bold cyan]")
