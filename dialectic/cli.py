"""Click CLI: loads config, wires the engine, starts debates and renders results."""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from dialectic.engine import Engine, build_engine, build_provider
from dialectic.errors import DebateError
from dialectic.healthcheck import run_health_checks
from dialectic.inbox import archive_file, ensure_dirs, parse_request, scan_inbox
from dialectic.manager import DebateManager
from dialectic.models import DOMAINS, PRIORITIES, QUEUED, TEAMS, DebateRecord
from dialectic.output import (
    print_debate,
    print_history,
    print_insights,
    print_statistics,
    print_transcripts,
)
from dialectic.providers.base import AIProvider
from dialectic.store import FileDebateStore, row_to_debate
from dialectic.transcript import TranscriptSink

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    sys.exit(1)


def _parse_context(raw: str | None) -> dict:
    if not raw:
        return {}
    path = Path(raw)
    text = path.read_text(encoding="utf-8") if path.is_file() else raw
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="--context") from exc
    if not isinstance(value, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--context")
    return value


def _check_provider(provider: AIProvider) -> AIProvider | None:
    """Ping the generator. On failure ask whether to continue on fallback content."""
    console.print("\n[bold]Checking generator...[/bold]")
    results = asyncio.run(run_health_checks({provider.name(): provider}))
    ok, err = results[provider.name()]
    if ok:
        console.print(f"  [green]OK  [/green] {provider.name()}\n")
        return provider

    short_err = err.splitlines()[0][:120] if err else "unknown error"
    console.print(f"  [red]FAIL[/red] {provider.name()}: {short_err}")
    if not click.confirm("Continue with built-in fallback content?", default=True):
        sys.exit(0)
    console.print()
    return None


def _make_engine(ctx: click.Context) -> Engine:
    obj = ctx.obj
    config: AppConfig = obj["config"]
    provider = None if obj["offline"] else build_provider(config, obj["generator"])
    if provider is not None and not obj["skip_health_check"]:
        provider = _check_provider(provider)
    if provider is None:
        console.print("[dim]Running on built-in fallback content.[/dim]")
    return build_engine(config, provider=provider)


def _read_manager(config: AppConfig) -> DebateManager:
    """A manager loaded from storage, for read-only commands. Nothing is resumed."""
    manager = DebateManager(
        store=FileDebateStore(config.output.store_dir),
        max_active=config.engine.max_active_debates,
        max_history=config.engine.max_history,
    )
    asyncio.run(manager.restore_from_database())
    return manager


async def _with_engine(engine: Engine, work):
    """Start the engine, run `work(engine)`, drain the bus, stop."""
    restored = await engine.start(restore=True)
    if restored and (restored.admitted or restored.queued):
        console.print(
            f"[dim]Resumed {restored.admitted} stored debates "
            f"({restored.queued} waiting for a slot)[/dim]"
        )
    try:
        return await work(engine)
    finally:
        await engine.bus.join()
        await engine.stop()


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the generator connectivity check at startup")
@click.option("--offline", is_flag=True, default=False,
              help="Do not call any generator; use built-in fallback content")
@click.option("--generator", default=None, help="Provider that generates content (default: from config)")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False),
              help="Path to settings.yaml")
@click.pass_context
def main(
    ctx: click.Context,
    verbose: bool,
    skip_health_check: bool,
    offline: bool,
    generator: str | None,
    config_path: str | None,
) -> None:
    """Dialectic Council -- thesis, antithesis and synthesis debates across domain teams.

    \b
    Examples:
      dialectic debate inventory-team "Raise safety stock for top SKUs?"
      dialectic debate bom-waste-team "Switch resin supplier" --priority high
      dialectic all-teams --priority low
      dialectic history --team inventory-team
      dialectic inbox
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(Path(config_path)) if config_path else load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.obj = {
        "config": config,
        "offline": offline,
        "generator": generator,
        "skip_health_check": skip_health_check,
    }


@main.command()
@click.argument("team", type=click.Choice(TEAMS))
@click.argument("topic")
@click.option("--priority", default="medium", type=click.Choice(PRIORITIES), show_default=True)
@click.option("--context", "context_raw", default=None, help="JSON object, or a path to a JSON file")
@click.option("--timeout", default=600.0, show_default=True, help="Seconds to wait for completion")
@click.pass_context
def debate(ctx: click.Context, team: str, topic: str, priority: str, context_raw: str | None, timeout: float) -> None:
    """Run one debate for TEAM on TOPIC and print the result."""
    context_data = _parse_context(context_raw)
    engine = _make_engine(ctx)

    async def work(engine: Engine) -> DebateRecord | None:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Debating for {team}...", total=None)
            return await engine.run_debate(team, topic, context_data, priority, timeout=timeout)

    try:
        record = asyncio.run(_with_engine(engine, work))
    except (DebateError, ValueError) as exc:
        _fail(str(exc))
    except TimeoutError:
        _fail(f"Debate did not finish within {timeout:.0f}s; it stays stored and resumes next run.")

    if record is None:
        console.print(
            f"[yellow]Debate {QUEUED}:[/yellow] every slot is busy. "
            "It runs when a slot frees; see `history` for its result."
        )
        return
    print_debate(record)
    if engine.transcripts is not None:
        saved = next((e for e in engine.transcripts.list() if e.debate_id == record.id), None)
        if saved is not None:
            console.print(f"\n[dim]Transcript: {saved.filename}[/dim]")


@main.command("all-teams")
@click.option("--priority", default="medium", type=click.Choice(PRIORITIES), show_default=True)
@click.option("--timeout", default=900.0, show_default=True, help="Seconds to wait for completion")
@click.pass_context
def all_teams(ctx: click.Context, priority: str, timeout: float) -> None:
    """Run one debate per team with the default topics and print the insight summary."""
    engine = _make_engine(ctx)

    async def work(engine: Engine) -> tuple[list[DebateRecord], str | None]:
        records = await engine.run_all_teams(priority=priority, timeout=timeout)
        summary = await engine.orchestrator.synthesize_all_insights()
        return records, summary

    try:
        records, summary = asyncio.run(_with_engine(engine, work))
    except TimeoutError:
        _fail(f"Debates did not finish within {timeout:.0f}s; they stay stored and resume next run.")

    for record in records:
        print_debate(record)
    print_insights(summary)


@main.command()
@click.option("--team", default=None, type=click.Choice(TEAMS))
@click.option("--domain", default=None, type=click.Choice(DOMAINS))
@click.option("--limit", default=20, show_default=True)
@click.pass_context
def history(ctx: click.Context, team: str | None, domain: str | None, limit: int) -> None:
    """List finished debates, most recent first."""
    manager = _read_manager(ctx.obj["config"])
    print_history(manager.get_debate_history(domain=domain, team=team, limit=limit))


@main.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show aggregate debate statistics."""
    manager = _read_manager(ctx.obj["config"])
    print_statistics(manager.get_statistics(), manager.get_queue_status())


@main.command()
@click.argument("debate_id")
@click.pass_context
def show(ctx: click.Context, debate_id: str) -> None:
    """Print one stored debate."""
    store = FileDebateStore(ctx.obj["config"].output.store_dir)
    row = asyncio.run(store.get_debate(debate_id))
    if row is None:
        _fail(f"Debate {debate_id} not found")
    print_debate(row_to_debate(row))


@main.command()
@click.option("--cleanup", is_flag=True, help="Delete archived transcripts past the retention period")
@click.pass_context
def transcripts(ctx: click.Context, cleanup: bool) -> None:
    """List WIP transcripts, newest first."""
    config: AppConfig = ctx.obj["config"]
    sink = TranscriptSink(config.output.transcript_dir)
    if cleanup:
        removed = sink.cleanup_old_archives(config.output.archive_retention_days)
        console.print(f"Removed {removed} archived transcript(s).")
    print_transcripts(sink.list())


@main.command()
@click.option("--inbox-dir", "inbox_dir_override", default=None,
              help="Override inbox folder path (default: from config)")
@click.option("--team", default=None, type=click.Choice(TEAMS), help="Team for every file, overrides frontmatter")
@click.option("--priority", default=None, type=click.Choice(PRIORITIES), help="Overrides frontmatter")
@click.option("--timeout", default=600.0, show_default=True, help="Seconds to wait per debate")
@click.pass_context
def inbox(
    ctx: click.Context,
    inbox_dir_override: str | None,
    team: str | None,
    priority: str | None,
    timeout: float,
) -> None:
    """Process every debate request .md file in the inbox folder.

    Precedence for per-file settings: CLI flag > frontmatter > default.
    """
    config: AppConfig = ctx.obj["config"]
    inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
    archive_dir = config.inbox.archive_dir
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)
    if not files:
        click.echo("No files in inbox.")
        return

    engine = _make_engine(ctx)

    async def work(engine: Engine) -> None:
        for file_path in files:
            try:
                request = parse_request(file_path, team_override=team, priority_override=priority)
                record = await engine.run_debate(
                    request.team, request.topic, request.context_data, request.priority, timeout=timeout
                )
            except (DebateError, ValueError, TimeoutError) as exc:
                logger.error("Failed: %s -- %s", file_path.name, exc)
                archive_file(file_path, archive_dir, failed=True)
                continue
            archived = archive_file(file_path, archive_dir)
            status = record.current_phase if record is not None else QUEUED
            click.echo(f"Processed: {file_path.name} -> {status} (archived: {archived.name})")
            if record is not None:
                print_debate(record)

    asyncio.run(_with_engine(engine, work))


if __name__ == "__main__":
    main()
