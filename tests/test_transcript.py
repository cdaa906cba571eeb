"""Tests for dialectic/transcript.py — markdown logs with frontmatter and archiving."""

import os
import time

import frontmatter

from dialectic.models import FinalDecision
from dialectic.transcript import TranscriptSink, render_transcript
from tests.conftest import make_record


def test_render_includes_rounds_and_decision():
    record = make_record()
    record.final_decision = FinalDecision(
        "Reduce in stages", "Balanced", 72, ["Monitor weekly"], dissent="Not approved by compliance-auditor."
    )
    text = render_transcript(record)
    assert text.startswith("# Debate: Safety stock levels")
    assert "## Thesis (optimist: inventory-optimist)" in text
    assert "## Synthesis (mediator: inventory-mediator)" in text
    assert "**Recommendation:** Reduce in stages" in text
    assert "**Dissent:** Not approved by compliance-auditor." in text


def test_write_names_file_and_sets_metadata(tmp_path):
    sink = TranscriptSink(tmp_path)
    record = make_record(debate_id="12345678-aaaa-bbbb")
    path = sink.write(record)

    assert path.name.startswith("debate_v1_inventory_")
    assert path.name.endswith("_12345678.md")
    meta = frontmatter.load(str(path)).metadata
    assert meta["debate_id"] == record.id
    assert meta["phase"] == "synthesis"


def test_update_archives_previous_snapshot(tmp_path):
    sink = TranscriptSink(tmp_path)
    record = make_record()
    first = sink.write(record)
    created = frontmatter.load(str(first)).metadata["created_at"]

    record.current_phase = "complete"
    current = sink.update(record.id, record)

    archived = list((tmp_path / "archive").glob("*.md"))
    assert len(archived) == 1
    assert "_archived_" in archived[0].name
    assert frontmatter.load(str(current)).metadata["created_at"] == created
    assert "**Phase:** complete" in sink.read(record.id)


def test_update_unknown_debate_writes_fresh(tmp_path):
    sink = TranscriptSink(tmp_path)
    path = sink.update("new-id", make_record(debate_id="new-id"))
    assert path.exists()
    assert list((tmp_path / "archive").glob("*.md")) == []


def test_locate_after_restart(tmp_path):
    record = make_record()
    TranscriptSink(tmp_path).write(record)
    assert "Safety stock levels" in TranscriptSink(tmp_path).read(record.id)
    assert TranscriptSink(tmp_path).read("missing") is None


def test_list_newest_first(tmp_path):
    sink = TranscriptSink(tmp_path)
    older = make_record()
    newer = make_record()
    sink.write(older)
    sink.write(newer)
    # rewrite the older one so its updated_at is later
    time.sleep(1.1)
    sink.update(older.id, older)

    entries = sink.list()
    assert [e.debate_id for e in entries] == [older.id, newer.id]
    assert entries[0].domain == "inventory"


def test_list_missing_directory(tmp_path):
    assert TranscriptSink(tmp_path / "nope").list() == []


def test_cleanup_old_archives(tmp_path):
    sink = TranscriptSink(tmp_path)
    record = make_record()
    sink.write(record)
    sink.update(record.id, record)
    archived = next((tmp_path / "archive").glob("*.md"))
    old = time.time() - 40 * 86400
    os.utime(archived, (old, old))

    assert sink.cleanup_old_archives(days=30) == 1
    assert sink.cleanup_old_archives(days=30) == 0
