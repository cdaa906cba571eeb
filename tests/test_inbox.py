"""Unit tests for dialectic/inbox.py — no API calls."""

import textwrap
from pathlib import Path

import pytest

from dialectic.inbox import archive_file, ensure_dirs, parse_file, parse_request, scan_inbox


def _write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def test_parse_file_no_frontmatter(tmp_path: Path) -> None:
    """File without frontmatter returns full content and empty metadata."""
    f = _write(tmp_path / "question.md", "Should we raise safety stock?")
    content, metadata = parse_file(f)
    assert content == "Should we raise safety stock?"
    assert metadata == {}


def test_parse_request_reads_frontmatter(tmp_path: Path) -> None:
    f = _write(tmp_path / "stock.md", """\
        ---
        team: inventory-team
        priority: high
        context:
          stockout_rate: 0.12
          skus: 20
        ---
        Should we raise safety stock for the top 20 SKUs?
    """)
    request = parse_request(f)
    assert request.team == "inventory-team"
    assert request.priority == "high"
    assert request.topic == "Should we raise safety stock for the top 20 SKUs?"
    assert request.context_data == {"stockout_rate": 0.12, "skus": 20}
    assert request.source == str(f)


def test_parse_request_overrides_win(tmp_path: Path) -> None:
    f = _write(tmp_path / "q.md", """\
        ---
        team: inventory-team
        priority: low
        ---
        Review scrap rates
    """)
    request = parse_request(f, team_override="bom-waste-team", priority_override="critical")
    assert request.team == "bom-waste-team"
    assert request.priority == "critical"


def test_parse_request_defaults_priority(tmp_path: Path) -> None:
    f = _write(tmp_path / "q.md", "Review channel margins")
    request = parse_request(f, team_override="profitability-team")
    assert request.priority == "medium"
    assert request.context_data == {}


@pytest.mark.parametrize(
    "text,match",
    [
        ("---\nteam: inventory-team\n---\n", "empty topic"),
        ("Review scrap", "unknown or missing team"),
        ("---\nteam: sales-team\n---\nReview scrap", "unknown or missing team"),
        ("---\nteam: inventory-team\npriority: urgent\n---\nReview scrap", "unknown priority"),
        ("---\nteam: inventory-team\ncontext: [1, 2]\n---\nReview scrap", "context must be a mapping"),
    ],
)
def test_parse_request_rejects_bad_files(tmp_path: Path, text: str, match: str) -> None:
    f = tmp_path / "bad.md"
    f.write_text(text, encoding="utf-8")
    with pytest.raises(ValueError, match=match):
        parse_request(f)


def test_archive_file_success(tmp_path: Path) -> None:
    """archive_file() moves file to archive dir with timestamp prefix."""
    inbox = tmp_path / "inbox"
    archive = tmp_path / "archive"
    ensure_dirs(inbox, archive)

    src = _write(inbox / "my-question.md", "A question")
    dest = archive_file(src, archive)

    assert not src.exists()
    assert dest.exists()
    assert dest.parent == archive
    # Timestamp prefix: YYYY-MM-DDTHHMM_my-question.md
    assert dest.name.endswith("_my-question.md")
    assert not dest.name.startswith("FAILED_")


def test_archive_file_failed(tmp_path: Path) -> None:
    """archive_file(failed=True) prefixes filename with FAILED_."""
    inbox = tmp_path / "inbox"
    archive = tmp_path / "archive"
    ensure_dirs(inbox, archive)

    src = _write(inbox / "broken.md", "Bad question")
    dest = archive_file(src, archive, failed=True)

    assert not src.exists()
    assert dest.name.startswith("FAILED_")
    assert "broken.md" in dest.name


def test_scan_inbox_only_markdown(tmp_path: Path) -> None:
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    assert scan_inbox(inbox) == []
    _write(inbox / "a.md", "one")
    _write(inbox / "notes.txt", "ignored")
    assert [p.name for p in scan_inbox(inbox)] == ["a.md"]
