"""
sous v0.3.0: a terminal coding assistant driven by a local model.

Command: sous run
"""

import signal
import sys
from pathlib import Path
from typing import Callable, Optional

import click
from rich.table import Table

from . import __version__
from .agent import Agent, InputSource
from .config import HISTORY_FILE, Config, ModelPreset
from .errors import AgentError, RequestCancelled
from .llm import DEFAULT_SYSTEM_PROMPT, LLMAdapter
from .logger import setup_logger
from .notify import Notifier
from .output import USER_LABEL, console
from .tools import build_default_registry

BANNER = (
    f"[bold bright_yellow]sous[/bold bright_yellow] "
    f"[dim]v{__version__} · local coding assistant[/dim]"
)


class PromptInput:
    """Interactive operator input with persistent history."""

    def __init__(self, history_file: Path = HISTORY_FILE):
        from prompt_toolkit import HTML, PromptSession
        from prompt_toolkit.history import FileHistory

        history_file.parent.mkdir(parents=True, exist_ok=True)
        self._prompt = HTML("<ansiblue><b>You</b></ansiblue>: ")
        self.session = PromptSession(history=FileHistory(str(history_file)))

    def __call__(self) -> Optional[str]:
        try:
            return self.session.prompt(self._prompt)
        except EOFError:
            return None


def stdin_input() -> Optional[str]:
    console.print("You", style=USER_LABEL, end="")
    console.print(": ", end="")
    line = sys.stdin.readline()
    if not line:
        return None
    return line.rstrip("\n")


def single_message(message: str) -> InputSource:
    pending = [message]

    def _read() -> Optional[str]:
        return pending.pop() if pending else None

    return _read


def _load_config(project_dir: str, model: Optional[str], api_key: Optional[str],
                 api_base: Optional[str]) -> Config:
    config = Config.load(project_dir)
    if model:
        if model in config.models:
            config.active_model = model
        else:
            config.models["_cli"] = ModelPreset(
                name="_cli",
                provider="openai",
                model=model,
                api_base=api_base,
                api_key=api_key or "not-needed",
            )
            config.active_model = "_cli"

    preset = config.get_active_preset()
    if api_key:
        preset.api_key = api_key
    if api_base:
        preset.api_base = api_base
    return config


def build_agent(config: Config, read_input: InputSource, notify: bool = True) -> Agent:
    project_root = Path(config.project_root).resolve()
    if not project_root.is_dir():
        raise click.ClickException(f"'{project_root}' is not a valid directory.")

    preset = config.get_active_preset()
    llm = LLMAdapter(**preset.get_llm_kwargs(),
                     system_prompt=config.system_prompt or DEFAULT_SYSTEM_PROMPT)
    registry = build_default_registry(
        str(project_root),
        blocked_commands=config.blocked_commands,
        command_timeout=config.command_timeout or None,
    )
    notifier = Notifier(config.notify_command, enabled=notify and config.notify)
    return Agent(
        llm, registry, read_input,
        compaction_threshold=config.compaction_threshold,
        notifier=notifier,
        reasoning_open=config.reasoning_open,
        reasoning_close=config.reasoning_close,
        keep_reasoning=config.keep_reasoning,
    )


def install_interrupt_handler(agent: Agent) -> Callable:
    """Ctrl-C cancels the running turn; with nothing running it ends the session.

    After cancelling, the handler raises RequestCancelled on the main thread so a
    backend call blocked on the network is abandoned instead of awaited.
    """

    def _on_sigint(signum, frame):
        if not agent.interrupt():
            raise KeyboardInterrupt
        raise RequestCancelled("interrupted")

    return signal.signal(signal.SIGINT, _on_sigint)


def run_session(agent: Agent) -> None:
    previous = install_interrupt_handler(agent)
    try:
        agent.run()
    except KeyboardInterrupt:
        console.print("\n[dim]Goodbye![/dim]")
        sys.exit(130)
    except AgentError as error:
        console.print(f"\n[red]  Error: {error}[/red]")
        sys.exit(1)
    finally:
        signal.signal(signal.SIGINT, previous)


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx):
    """sous: a terminal coding assistant driven by a local model."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.option("--model", "-m", default=None, help="Model preset name or litellm model id")
@click.option("--api-key", "-k", default=None, help="API key override")
@click.option("--api-base", "-b", default=None, help="API base override")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--compact-threshold", type=click.IntRange(1, 1000), default=None,
              help="Summarize history once it exceeds this many messages")
@click.option("--no-notify", is_flag=True, help="Disable the completion cue")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(model, api_key, api_base, project_dir, compact_threshold, no_notify, verbose):
    """Start an interactive session."""
    config = _load_config(project_dir, model, api_key, api_base)
    if compact_threshold:
        config.compaction_threshold = compact_threshold
    if verbose:
        config.verbose = True
    setup_logger(verbose=config.verbose, log_file=config.log_file)

    read_input = PromptInput() if sys.stdin.isatty() else stdin_input
    agent = build_agent(config, read_input, notify=not no_notify)

    console.print(BANNER)
    preset = config.get_active_preset()
    console.print(f"[dim]  {preset.name} → {preset.model} · {config.project_root}[/dim]")
    console.print(f"[dim]  tools: {', '.join(agent.registry.names)}[/dim]")
    run_session(agent)


@cli.command()
@click.argument("message", nargs=-1, required=True)
@click.option("--model", "-m", default=None)
@click.option("--project-dir", "-d", default=".")
def ask(message, model, project_dir):
    """Run a single request, following tool calls until the model answers."""
    config = _load_config(project_dir, model, None, None)
    setup_logger(verbose=config.verbose, log_file=config.log_file)
    agent = build_agent(config, single_message(" ".join(message)), notify=False)
    run_session(agent)


@cli.command("config")
@click.option("--project-dir", "-d", default=".")
@click.option("--set", "assignments", nargs=2, multiple=True, metavar="KEY VALUE",
              help="Validate and save a setting, e.g. --set compaction-threshold 20")
def config_cmd(project_dir, assignments):
    """Show configuration, or change settings with --set."""
    cfg = Config.load(project_dir)
    if assignments:
        for key, value in assignments:
            try:
                cfg.set_value(key, value)
            except ValueError as e:
                raise click.BadParameter(str(e), param_hint="--set")
        cfg.save()
        console.print(f"[dim]  saved to {cfg.source}[/dim]")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    for key, value in cfg.summary().items():
        table.add_row(key, str(value))
    console.print(table)

    models = Table(title="Model presets", title_justify="left")
    models.add_column("Name")
    models.add_column("Model")
    models.add_column("API base")
    models.add_column("Description", style="dim")
    for name, preset in cfg.models.items():
        marker = " *" if name == cfg.active_model else ""
        models.add_row(name + marker, preset.model, preset.api_base or "", preset.description)
    console.print(models)


if __name__ == "__main__":
    cli()
