"""Rich console output and markdown file save for critique results."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from roast_council.models import AgentIdentity, AgentResponse, AnalysisResult, CLIContext
from roast_council.pagination import format_pagination_status
from roast_council.pipeline import CritiqueResponse

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len] or "critique"


def _response_preview(response: AgentResponse, words: int = 50) -> str:
    """Return first N words of a response, or its error."""
    if not response.success:
        return f"[red]{response.error or 'failed'}[/red]"
    all_words = response.output.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_round_summary(round_num: int, responses: list[AgentResponse]) -> None:
    """Print a brief summary of one debate round to the console."""
    console.print(Rule(f"[bold cyan]Round {round_num} Summary[/bold cyan]"))
    for resp in responses:
        console.print(
            Panel(
                _response_preview(resp),
                title=f"[bold]{resp.agent.label}[/bold]",
                subtitle=f"{resp.execution_time_ms / 1000:.1f}s",
                border_style="dim" if resp.success else "red",
            )
        )


def print_agents_table(context: CLIContext) -> None:
    table = Table(title="CLI Agents")
    table.add_column("Agent")
    table.add_column("Command")
    table.add_column("Status")
    table.add_column("Host")
    for identity in AgentIdentity:
        available = identity in context.available_agents
        table.add_row(
            identity.label,
            identity.value,
            "[green]available[/green]" if available else "[red]not found[/red]",
            "current" if identity == context.current_agent else "",
        )
    console.print(table)


def print_page(response: CritiqueResponse, show_handles: bool = True) -> None:
    """Print one page of a report with its pagination status.

    show_handles=False is for callers whose cache dies with the process; they
    get a hint about --offset and --save instead of a context id and cursor.
    """
    title = "[bold green]Critique[/bold green]" if response.success else "[bold red]Critique Failed[/bold red]"
    console.print(Rule(title))
    status = format_pagination_status(response.pagination)
    if response.cached:
        status += " • served from cache"
    console.print(Text(status, style="dim"))
    if response.result is not None:
        summary = response.result.execution_summary
        console.print(
            Text(
                f"Agents: {summary.successful_agents}/{summary.total_agents} succeeded | "
                f"Agent time: {summary.total_execution_ms / 1000:.1f}s | "
                f"Selection: {summary.selection_method}",
                style="dim",
            )
        )
    if show_handles:
        if response.context_id:
            console.print(Text(f"Context ID: {response.context_id}", style="dim"))
        if response.pagination.next_cursor:
            console.print(Text(f"Next cursor: {response.pagination.next_cursor}", style="dim"))
    elif response.pagination.has_more:
        next_offset = response.pagination.offset + response.pagination.limit
        console.print(
            f"[yellow]More of this report follows. --offset {next_offset} shows it but runs "
            "the agents again; use --save to keep the full report.[/yellow]"
        )
    if response.notice:
        console.print(f"[yellow]{response.notice}[/yellow]")
    console.print(Markdown(response.content))


def save_to_file(result: AnalysisResult, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the full report as a markdown file.

    Args:
        result: The completed AnalysisResult.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the target.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(result.target)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    summary = result.execution_summary
    agents = ", ".join(dict.fromkeys(r.agent.label for r in result.responses))
    lines: list[str] = [
        f"<!-- roast-council {result.analysis_kind} -->",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Agents:** {agents or 'none'}",
        f"**Succeeded:** {summary.successful_agents}/{summary.total_agents}",
        f"**Agent time:** {summary.total_execution_ms / 1000:.1f}s",
        f"**Selection:** {summary.selection_method}",
        "",
        "---",
        "",
        result.synthesis or "",
        "",
    ]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath
