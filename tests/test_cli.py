"""CLI tests: every command runs offline against the bundled settings in a temp working dir."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

import dialectic.cli as cli
import dialectic.output as output
from dialectic.cli import _parse_context, main
from dialectic.store import debate_to_row
from tests.conftest import make_record


@pytest.fixture
def runner(tmp_path, monkeypatch) -> CliRunner:
    # Relative output paths in settings.yaml resolve under tmp_path
    monkeypatch.chdir(tmp_path)
    for console in (cli.console, output.console):
        monkeypatch.setattr(console, "width", 200)
    return CliRunner()


def _invoke(runner: CliRunner, *args: str):
    return runner.invoke(main, ["--offline", *args], catch_exceptions=False)


def _stored_ids(tmp_path: Path) -> list[str]:
    return [p.stem for p in (tmp_path / "data" / "debates").glob("*.json")]


def test_parse_context_accepts_json_and_files(tmp_path):
    assert _parse_context(None) == {}
    assert _parse_context('{"sku": 12}') == {"sku": 12}
    path = tmp_path / "ctx.json"
    path.write_text('{"rate": 0.1}', encoding="utf-8")
    assert _parse_context(str(path)) == {"rate": 0.1}


def test_debate_runs_offline_and_stores(runner, tmp_path):
    result = _invoke(runner, "debate", "inventory-team", "Safety stock", "--context", '{"sku": 12}')
    assert result.exit_code == 0, result.output
    assert "Final Decision" in result.output
    assert "Transcript: debate_v1_inventory_" in result.output
    assert len(_stored_ids(tmp_path)) == 1
    assert list((tmp_path / "wip").glob("debate_v1_inventory_*.md"))


def test_debate_rejects_bad_context(runner):
    result = runner.invoke(main, ["--offline", "debate", "inventory-team", "t", "--context", "[1, 2]"])
    assert result.exit_code == 2
    assert "JSON object" in result.output


def test_debate_rejects_unknown_team(runner):
    result = runner.invoke(main, ["--offline", "debate", "sales-team", "t"])
    assert result.exit_code == 2


def test_history_stats_and_show_read_the_store(runner, tmp_path):
    _invoke(runner, "debate", "bom-waste-team", "Resin supplier", "--priority", "high")
    debate_id = _stored_ids(tmp_path)[0]

    history = _invoke(runner, "history", "--team", "bom-waste-team")
    assert history.exit_code == 0
    assert debate_id[:8] in history.output

    stats = _invoke(runner, "stats")
    assert stats.exit_code == 0
    assert "Total debates" in stats.output

    show = _invoke(runner, "show", debate_id)
    assert show.exit_code == 0
    assert "Resin supplier" in show.output
    assert "quality-specialist" in show.output


def test_show_missing_debate_fails(runner):
    result = runner.invoke(main, ["--offline", "show", "no-such-id"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_history_empty(runner):
    result = _invoke(runner, "history")
    assert "No finished debates." in result.output


def test_transcripts_lists_files(runner):
    _invoke(runner, "debate", "inventory-team", "Safety stock")
    result = _invoke(runner, "transcripts", "--cleanup")
    assert result.exit_code == 0
    assert "Removed 0 archived transcript(s)." in result.output
    assert "inventory-team" in result.output


def test_inbox_empty(runner):
    result = _invoke(runner, "inbox")
    assert "No files in inbox." in result.output


def test_inbox_processes_and_archives(runner, tmp_path):
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    (inbox / "stock.md").write_text(
        "---\nteam: inventory-team\ncontext:\n  sku: 12\n---\nShould we raise safety stock?\n",
        encoding="utf-8",
    )
    (inbox / "broken.md").write_text("No team here", encoding="utf-8")

    result = _invoke(runner, "inbox")
    assert result.exit_code == 0, result.output
    assert "Processed: stock.md -> complete" in result.output

    archived = sorted(p.name for p in (inbox / "archive").iterdir())
    assert any(name.startswith("FAILED_") and name.endswith("_broken.md") for name in archived)
    assert any(not name.startswith("FAILED_") and name.endswith("_stock.md") for name in archived)
    assert list(inbox.glob("*.md")) == []


def test_debate_queued_behind_resumed_debates(runner, tmp_path):
    store_dir = tmp_path / "data" / "debates"
    store_dir.mkdir(parents=True)
    for i in range(10):  # bundled settings allow 10 active debates
        record = make_record(debate_id=f"stored-{i}")
        record.thesis = record.antithesis = record.synthesis = None
        record.current_phase = "pending"
        (store_dir / f"{record.id}.json").write_text(json.dumps(debate_to_row(record)), encoding="utf-8")

    result = _invoke(runner, "debate", "bom-waste-team", "Resin supplier")
    assert result.exit_code == 0, result.output
    assert "Resumed 10 stored debates" in result.output
    assert "It runs when a slot frees" in result.output

    history = _invoke(runner, "history", "--team", "bom-waste-team")
    assert "Resin supplier" in history.output
    assert len(_stored_ids(tmp_path)) == 11
