# display.py
# All terminal output for the orchestration loop and the CLI.
#
# This module owns presentation entirely. harness.py never formats strings;
# it calls named functions here. Output goes to stderr so the server's stdout
# stays clean.
#
# Colour language:
#   cyan    : routing events and model calls
#   magenta : tool directives
#   green   : successful steps and final replies
#   red     : failed steps
#   yellow  : turn cap reached

import json

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from api_eater.models import Message, Step, ToolDirective

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _summary(step: Step) -> str:
    if not step.ok and step.error:
        return step.error
    if isinstance(step.result, dict) and "status" in step.result:
        return f"HTTP {step.result['status']}"
    return json.dumps(step.result, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# Request lifecycle
# ---------------------------------------------------------------------------


def banner(model: str, home: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]api-eater[/bold cyan]\n"
            "[dim]Natural language → one verified HTTP call[/dim]\n\n"
            f"[dim]Model :[/dim] [white]{model}[/white]\n"
            f"[dim]Home  :[/dim] [white]{home}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def request_received(messages: list[Message]) -> None:
    last = next((m.content for m in reversed(messages) if m.role == "user"), "")
    console.print()
    console.print(Rule("[cyan]NEW REQUEST[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(_mono(last, 400))}[/white]",
            title=_label("USER", "cyan"),
            subtitle=f"[dim]{len(messages)} message(s) of history[/dim]",
            border_style="cyan",
            padding=(0, 2),
        )
    )


def calling_model(turn: int, max_turns: int) -> None:
    console.print(_label("LOOP", "cyan"), f"[cyan] → Model call, turn {turn}/{max_turns}…[/cyan]")


def tool_directive(directive: ToolDirective) -> None:
    console.print(
        f"  [magenta]Tool[/magenta]     [bold white]{directive.tool or '?'}[/bold white]"
        f"  [dim]{escape(_mono(json.dumps(directive.args, ensure_ascii=False), 160))}[/dim]"
    )


def step_recorded(step: Step) -> None:
    if step.ok:
        console.print(f"  [bold green]✓ {step.tool}[/bold green]  [dim]{escape(_mono(_summary(step), 140))}[/dim]")
    else:
        console.print(f"  [bold red]✗ {step.tool}[/bold red]  [white]{escape(_mono(_summary(step), 140))}[/white]")


def turn_cap_reached(max_turns: int) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold yellow]{max_turns} tool turns used.[/bold yellow]\n"
            "[dim]Asking the model for a final answer with everything gathered so far.[/dim]",
            title=_label("TURN CAP", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def final_reply(content: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(content)}[/white]",
            title=_label("REPLY", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )


# ---------------------------------------------------------------------------
# CLI views
# ---------------------------------------------------------------------------


def steps_summary(steps: list[Step]) -> None:
    if not steps:
        return
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Tool", width=18)
    table.add_column("OK", justify="center", width=4)
    table.add_column("Args", style="dim white", width=40)
    table.add_column("Outcome", style="dim white")

    for index, step in enumerate(steps, start=1):
        ok = "[bold green]✓[/bold green]" if step.ok else "[bold red]✗[/bold red]"
        args = json.dumps(step.args, ensure_ascii=False) if step.args else ""
        table.add_row(str(index), step.tool, ok, escape(_mono(args, 38)), escape(_mono(_summary(step), 60)))

    console.print(Panel(table, title="[dim]STEPS[/dim]", border_style="dim", padding=(0, 1)))


def env_view(values: dict[str, str], missing: list[str]) -> None:
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold cyan", padding=(0, 1))
    table.add_column("Key", style="bold white")
    table.add_column("Value", style="white")
    for key in sorted(values):
        table.add_row(key, escape(values[key]))
    console.print(table)
    if missing:
        console.print(f"[bold red]Missing:[/bold red] [white]{', '.join(missing)}[/white]")
    else:
        console.print("[bold green]All required keys are set.[/bold green]")
