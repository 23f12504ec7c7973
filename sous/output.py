"""Terminal output: answer, thinking and action styles on a shared Rich console."""

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

__all__ = [
    "console", "THINK", "ANSWER", "ACTION", "ERROR", "DIM", "AGENT_LABEL",
    "print_label", "print_think", "print_answer", "print_action",
    "print_error", "print_tool_call", "print_tool_result", "end_line",
]

console = Console()

# ── Visual theme ───────────────────────────────────
THINK = "bright_yellow"
ANSWER = "bold cyan"
ACTION = "bold italic bright_magenta"
ERROR = "#F85149"
DIM = "#6E7681"
USER_LABEL = "bold bright_blue"
AGENT_LABEL = "bold bright_yellow"


def _write(text: str, style: str) -> None:
    if not text:
        return
    console.print(Text(text, style=style), end="", soft_wrap=True, highlight=False)


def print_label() -> None:
    console.print(Text("Sous", style=AGENT_LABEL), Text(": "), sep="", end="")


def print_think(text: str) -> None:
    _write(text, THINK)


def print_answer(text: str) -> None:
    _write(text, ANSWER)


def print_action(text: str) -> None:
    _write(text if text.endswith("\n") else text + "\n", ACTION)


def end_line() -> None:
    console.print()


def print_error(message: str, title: str = "Error") -> None:
    panel = Panel(
        Text(message, style=ERROR),
        title=f"[bold {ERROR}]{title}[/bold {ERROR}]",
        title_align="left",
        border_style=ERROR,
        padding=(0, 2),
    )
    console.print()
    console.print(panel)


def print_tool_call(name: str, arguments: str) -> None:
    line = Text("  ▸ ", style=DIM)
    line.append(name, style="bold")
    line.append(f" {arguments}", style=DIM)
    console.print(line, soft_wrap=True)


def print_tool_result(text: str, failed: bool = False, max_lines: int = 6) -> None:
    lines = text.strip().splitlines() or ["(no output)"]
    shown = lines[:max_lines]
    style = ERROR if failed else DIM
    for ln in shown:
        console.print(Text(f"    {ln}", style=style), soft_wrap=True, highlight=False)
    if len(lines) > max_lines:
        console.print(Text(f"    … {len(lines) - max_lines} more lines", style=DIM))
