"""Click CLI: config loading, request building, pipeline run and output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, ConfigError, load_config
from roast_council.errors import RequestError, RoastError
from roast_council.orchestrator import Phase, RunOptions
from roast_council.output import print_agents_table, print_page, print_round_summary, save_to_file
from roast_council.pipeline import build_pipeline
from roast_council.requests import (
    DEFAULT_DOMAIN,
    CritiqueRequest,
    parse_agent,
    parse_model_overrides,
    parse_request_file,
)

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_PHASE_LABELS = {
    Phase.DETECTING: "Detecting installed agents...",
    Phase.SELECTING: "Selecting critics...",
    Phase.DISPATCHING: "Agents are working...",
    Phase.COLLECTING: "Collecting responses...",
    Phase.SYNTHESIZING: "Writing report...",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def build_request(
    target: str | None,
    meta: dict,
    *,
    domain: str | None,
    context: str | None,
    agents: tuple[str, ...],
    models: tuple[str, ...],
    workdir: str | None,
    debate: bool,
    rounds: int | None,
    offset: int | None,
    limit: int | None,
) -> CritiqueRequest:
    """Merge CLI flags with request-file frontmatter.

    Precedence: CLI flag > frontmatter > default.

    Raises:
        RequestError: no target, an unknown agent, a malformed model override
            or a non-integer rounds value in the front matter.
    """
    if not target:
        raise RequestError("Provide a TARGET argument or --file.")

    agent_names = list(agents)
    if not agent_names and meta.get("agent"):
        file_agents = meta["agent"]
        agent_names = [file_agents] if isinstance(file_agents, str) else [str(a) for a in file_agents]

    return CritiqueRequest(
        target=target,
        domain=domain or str(meta.get("domain", DEFAULT_DOMAIN)),
        context=context if context is not None else meta.get("context"),
        agents=[parse_agent(name) for name in agent_names] or None,
        models=parse_model_overrides(models),
        working_directory=workdir or meta.get("workdir"),
        debate=debate or bool(meta.get("debate", False)),
        rounds=rounds if rounds is not None else _file_rounds(meta),
        offset=offset,
        limit=limit,
    )


def _file_rounds(meta: dict) -> int | None:
    if "rounds" not in meta:
        return None
    try:
        return int(meta["rounds"])
    except (TypeError, ValueError):
        raise RequestError(f"Front matter 'rounds' must be an integer, got {meta['rounds']!r}") from None


async def _list_agents(config: AppConfig) -> None:
    async with build_pipeline(config) as pipeline:
        context = await pipeline.orchestrator.agent_context.get()
    print_agents_table(context)


async def _run(config: AppConfig, request: CritiqueRequest, save_dir: Path | None) -> None:
    async with build_pipeline(config) as pipeline:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Starting...", total=None)

            def on_phase(phase: Phase) -> None:
                if phase in _PHASE_LABELS:
                    progress.update(task, description=_PHASE_LABELS[phase])

            response = await pipeline.handle(request, RunOptions(on_phase=on_phase))

    result = response.result
    if result is not None and result.debate_state is not None:
        for round_num in range(1, result.debate_state.round + 1):
            print_round_summary(round_num, [r for r in result.responses if r.round_number == round_num])

    print_page(response, show_handles=False)

    if save_dir is not None and result is not None:
        saved_path = save_to_file(result, save_dir)
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")

    if not response.success:
        sys.exit(1)


@click.command()
@click.argument("target", required=False)
@click.option("--domain", default=None, help=f"Analysis domain, e.g. code, architecture, idea, security (default: {DEFAULT_DOMAIN})")
@click.option("--context", default=None, help="Additional context passed to every critic")
@click.option("--agent", "agents", multiple=True, help="Preferred agent: claude, codex or gemini (repeatable)")
@click.option("--model", "models", multiple=True, help="Model override as agent=model (repeatable)")
@click.option("--workdir", default=None, type=click.Path(file_okay=False), help="Working directory for the agents")
@click.option("--debate", is_flag=True, default=False, help="Run an adversarial debate on TARGET")
@click.option("--rounds", default=None, type=int, help="Debate rounds (default: from config)")
@click.option("--offset", default=None, type=int, help="Character offset of the page to show (runs the agents again)")
@click.option("--limit", default=None, type=int, help="Page size in characters")
@click.option("--file", "request_file", type=click.Path(exists=True, dir_okay=False), help="Read the request from a .md file")
@click.option("--list-agents", is_flag=True, default=False, help="Show installed agents and exit")
@click.option("--save", "save_dir", default=None, type=click.Path(file_okay=False), help="Save the full report to this directory")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    target: str | None,
    domain: str | None,
    context: str | None,
    agents: tuple[str, ...],
    models: tuple[str, ...],
    workdir: str | None,
    debate: bool,
    rounds: int | None,
    offset: int | None,
    limit: int | None,
    request_file: str | None,
    list_agents: bool,
    save_dir: str | None,
    verbose: bool,
) -> None:
    """Roast Council -- adversarial critique by a council of CLI agents.

    \b
    Examples:
      roast-council src/ --domain codebase
      roast-council "A marketplace for used textbooks" --domain idea --agent codex
      roast-council "Microservices for a 3-person team" --debate --rounds 2
      roast-council --file request.md --save ./reports
      roast-council --list-agents
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if list_agents:
        asyncio.run(_list_agents(config))
        return

    try:
        meta: dict = {}
        if request_file:
            file_target, meta = parse_request_file(Path(request_file))
            target = target or file_target

        request = build_request(
            target,
            meta,
            domain=domain,
            context=context,
            agents=agents,
            models=models,
            workdir=workdir,
            debate=debate,
            rounds=rounds,
            offset=offset,
            limit=limit,
        )
        asyncio.run(_run(config, request, Path(save_dir) if save_dir else None))
    except RoastError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
