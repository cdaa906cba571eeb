"""Rich console rendering of debates, history, statistics and transcripts."""

import logging

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from dialectic.models import (
    DebateRecord,
    DebateRound,
    DebateStatistics,
    QueueStatus,
    TranscriptMetadata,
)

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_ROUND_STYLES = {"thesis": "green", "antithesis": "red", "synthesis": "cyan"}
_PHASE_STYLES = {"complete": "green", "cancelled": "red", "governance_review": "yellow"}


def _preview(text: str, words: int = 50) -> str:
    """Return the first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_round(rnd: DebateRound) -> None:
    content = rnd.content
    body = [_preview(content.position), ""]
    body += [f"- {item}" for item in content.evidence]
    console.print(
        Panel(
            "\n".join(body),
            title=f"[bold]{rnd.phase.title()}[/bold] ({rnd.agent_id})",
            subtitle=f"confidence {content.confidence}%",
            border_style=_ROUND_STYLES.get(rnd.phase, "dim"),
        )
    )


def print_debate(record: DebateRecord) -> None:
    """Print every round, the governance verdicts and the final decision."""
    style = _PHASE_STYLES.get(record.current_phase, "white")
    console.print(Rule(f"[bold cyan]{record.topic}[/bold cyan]"))
    console.print(
        Text(
            f"{record.team} | domain {record.domain} | v{record.version} | "
            f"priority {record.priority} | ",
            style="dim",
        )
        + Text(record.current_phase, style=style)
    )
    for rnd in record.rounds():
        print_round(rnd)

    for review in record.governance_reviews:
        verdict = "[green]approved[/green]" if review.approved else "[red]rejected[/red]"
        console.print(f"  {review.reviewer_role}: {verdict} (score {review.score})")
        for issue in review.issues:
            console.print(f"    [dim]- \\[{issue.severity}] {escape(issue.description)}[/dim]")

    decision = record.final_decision
    if decision is not None:
        console.print(Rule("[bold green]Final Decision[/bold green]"))
        lines = [f"**{decision.recommendation}**", "", decision.reasoning, ""]
        lines += [f"{i}. {action}" for i, action in enumerate(decision.actions, 1)]
        if decision.dissent:
            lines += ["", f"*Dissent:* {decision.dissent}"]
        console.print(Markdown("\n".join(lines)))
        console.print(Text(f"Confidence: {decision.confidence}%", style="dim"))
    elif record.cancel_reason:
        console.print(f"[red]Cancelled:[/red] {record.cancel_reason}")


def print_history(records: list[DebateRecord]) -> None:
    if not records:
        console.print("No finished debates.")
        return
    table = Table(title="Debate History")
    table.add_column("ID", style="dim")
    table.add_column("Team")
    table.add_column("Topic")
    table.add_column("Phase")
    table.add_column("Confidence", justify="right")
    for r in records:
        confidence = f"{r.final_decision.confidence}%" if r.final_decision else "-"
        table.add_row(
            r.id[:8], r.team, _preview(r.topic, 8),
            Text(r.current_phase, style=_PHASE_STYLES.get(r.current_phase, "white")),
            confidence,
        )
    console.print(table)


def print_statistics(stats: DebateStatistics, queue: QueueStatus) -> None:
    table = Table(title="Debate Statistics", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total debates", str(stats.total_debates))
    table.add_row("Completed", str(stats.completed_debates))
    table.add_row("Cancelled", str(stats.cancelled_debates))
    table.add_row("Active", f"{queue.active_count}/{queue.max_active}")
    table.add_row("Queued", str(queue.queued_count))
    table.add_row("Average confidence", f"{stats.average_confidence:.1f}%")
    table.add_row("Average duration", f"{stats.average_duration_sec:.1f}s")
    table.add_row("Governance approval", f"{stats.governance_approval_rate:.0%}")
    console.print(table)
    for domain, count in sorted(stats.by_domain.items()):
        console.print(f"  [dim]{domain}:[/dim] {count}")


def print_transcripts(entries: list[TranscriptMetadata]) -> None:
    if not entries:
        console.print("No transcripts.")
        return
    table = Table(title="Transcripts")
    table.add_column("File")
    table.add_column("Team")
    table.add_column("Phase")
    table.add_column("Updated")
    for e in entries:
        table.add_row(e.filename, e.team, e.phase, e.updated_at.strftime("%Y-%m-%d %H:%M:%S"))
    console.print(table)


def print_insights(summary: str | None) -> None:
    if not summary:
        return
    console.print(Rule("[bold magenta]Cross-domain Insights[/bold magenta]"))
    console.print(Markdown(summary))
