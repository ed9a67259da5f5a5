"""Themed terminal display: console, semantic styles, display helpers."""

import signal

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.theme import Theme

from permgate._approval import Verdict
from permgate.config import settings
from permgate.gate import ApprovalChoice

# -- Theme palettes (keyed by theme name) ------------------------------------

_THEMES: dict[str, dict[str, str]] = {
    "dark":  {"status": "yellow",      "info": "cyan", "accent": "bold cyan", "error": "bold red", "success": "green", "warning": "orange3", "hint": "dim", "shell": "dim"},
    "light": {"status": "dark_orange", "info": "blue", "accent": "bold blue", "error": "bold red", "success": "green", "warning": "orange3", "hint": "dim", "shell": "dim"},
}

# -- Console (single instance, themed) --------------------------------------

console = Console(theme=Theme(_THEMES.get(settings.theme, _THEMES["light"])))

# -- Indicators ------------------------------------------------------------

SUCCESS = "✦"
ERROR   = "✖"
INFO    = "◈"

# -- Theme switching -------------------------------------------------------


def set_theme(name: str) -> None:
    """Switch the console theme at runtime (e.g. from --theme flag)."""
    console.push_theme(Theme(_THEMES.get(name, _THEMES["light"])))


# -- Display helpers -------------------------------------------------------


def display_error(message: str, hint: str | None = None) -> None:
    """Red-bordered panel with optional recovery hint."""
    body = f"[bold red]{ERROR} {message}[/bold red]"
    if hint:
        body += f"\n[dim]{hint}[/dim]"
    console.print(Panel(body, border_style="red", title="Error", title_align="left"))


def display_info(message: str) -> None:
    """Themed info message."""
    console.print(f"[info]{INFO} {message}[/info]")


def render_verdict(command: str, verdict: Verdict) -> Panel:
    """Panel with the overall verdict and, when known, one row per segment."""
    if verdict.safe:
        headline = f"[success]{SUCCESS} safe[/success] [hint]{escape(verdict.reason)}[/hint]"
    else:
        headline = f"[error]{ERROR} needs confirmation[/error] [hint]{escape(verdict.reason)}[/hint]"

    body: Table | str = headline
    if verdict.segments:
        table = Table.grid(padding=(0, 2))
        table.add_column()
        table.add_column()
        for seg in verdict.segments:
            rule = f"[success]{seg.rule}[/success]" if seg.safe else "[error]not whitelisted[/error]"
            table.add_row(escape(seg.segment), rule)
        body = Table.grid()
        body.add_row(headline)
        body.add_row(table)

    return Panel(body, title=f"$ {escape(command)}", title_align="left", border_style="shell")


# -- TerminalFrontend (FrontendProtocol implementation) --------------------

_CHOICES = {"a": ApprovalChoice.ALLOW, "s": ApprovalChoice.SKIP, "b": ApprovalChoice.ABORT}
_CHOICES_HINT = "[[green]a[/green]llow/[orange3]s[/orange3]kip/a[red]b[/red]ort]"


class TerminalFrontend:
    """Rich-based terminal frontend implementing FrontendProtocol.

    Swaps the SIGINT handler around the blocking prompt so Ctrl-C dismisses
    the prompt instead of killing the caller mid-decision.
    """

    def __init__(self, interactive: bool | None = None) -> None:
        self._interactive = interactive

    @property
    def has_ui(self) -> bool:
        if self._interactive is not None:
            return self._interactive
        return console.is_terminal

    def prompt_approval(self, message: str) -> ApprovalChoice | None:
        """Prompt for allow/skip/abort. Returns None if the prompt is dismissed."""
        console.print(Panel(escape(message), border_style="warning", title="Confirm", title_align="left"))
        console.print(_CHOICES_HINT, end=" ")

        prev_handler = signal.getsignal(signal.SIGINT)
        signal.signal(signal.SIGINT, signal.default_int_handler)
        try:
            choice = Prompt.ask(
                "", choices=list(_CHOICES), default="s",
                show_choices=False, show_default=False, console=console,
            )
        except (EOFError, KeyboardInterrupt):
            console.print()
            return None
        finally:
            signal.signal(signal.SIGINT, prev_handler)

        return _CHOICES.get(choice)
