"""Inbox folder scanning, debate-request parsing, and archive logic.

A request file is markdown whose body is the debate topic. YAML frontmatter
names the team and optionally the priority and a context mapping:

    ---
    team: inventory-team
    priority: high
    context:
      stockout_rate: 0.12
    ---
    Should we raise safety stock for the top 20 SKUs?
"""

import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import frontmatter

from dialectic.models import PRIORITIES, TEAM_TO_DOMAIN


@dataclass
class DebateRequest:
    team: str
    topic: str
    priority: str = "medium"
    context_data: dict[str, Any] = field(default_factory=dict)
    source: str = ""


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, sorted by mtime ascending (oldest first)."""
    files = list(inbox_dir.glob("*.md"))
    return sorted(files, key=lambda p: p.stat().st_mtime)


def parse_file(file_path: Path) -> tuple[str, dict]:
    """Parse a markdown file with optional YAML frontmatter. Returns (body, metadata)."""
    post = frontmatter.load(str(file_path))
    return post.content.strip(), dict(post.metadata)


def parse_request(
    file_path: Path,
    team_override: str | None = None,
    priority_override: str | None = None,
) -> DebateRequest:
    """Read a debate request file. CLI overrides win over frontmatter.

    Raises ValueError when the topic is empty or the team or priority is unknown.
    """
    topic, meta = parse_file(file_path)
    if not topic:
        raise ValueError(f"{file_path.name}: empty topic")

    team = team_override or meta.get("team")
    if team not in TEAM_TO_DOMAIN:
        raise ValueError(f"{file_path.name}: unknown or missing team {team!r}")

    priority = priority_override or str(meta.get("priority", "medium"))
    if priority not in PRIORITIES:
        raise ValueError(f"{file_path.name}: unknown priority {priority!r}")

    context = meta.get("context") or {}
    if not isinstance(context, dict):
        raise ValueError(f"{file_path.name}: context must be a mapping")

    return DebateRequest(
        team=team,
        topic=topic,
        priority=priority,
        context_data=dict(context),
        source=str(file_path),
    )


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move file to archive_dir with a timestamp prefix ("FAILED_" first when failed)."""
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest
