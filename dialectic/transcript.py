"""WIP transcript sink: one human-readable markdown log per debate, archived on update."""

import logging
import time
from datetime import datetime
from pathlib import Path

import frontmatter

from dialectic.models import DebateRecord, DebateRound, TranscriptMetadata

logger = logging.getLogger(__name__)

_PHASE_TITLES = {"thesis": "Thesis", "antithesis": "Antithesis", "synthesis": "Synthesis"}


def _round_lines(rnd: DebateRound) -> list[str]:
    content = rnd.content
    lines = [
        f"## {_PHASE_TITLES[rnd.phase]} ({rnd.role}: {rnd.agent_id})",
        "",
        f"**Position:** {content.position}",
        "",
        f"**Reasoning:** {content.reasoning}",
        "",
        f"**Confidence:** {content.confidence}%",
        "",
    ]
    if content.evidence:
        lines.append("**Evidence:**")
        lines.extend(f"- {item}" for item in content.evidence)
        lines.append("")
    if content.suggested_actions:
        lines.append("**Suggested actions:**")
        lines.extend(f"{i}. {action}" for i, action in enumerate(content.suggested_actions, 1))
        lines.append("")
    if rnd.directive is not None:
        lines.append(f"*Directive: {rnd.directive.task}*")
        lines.append("")
    return lines


def render_transcript(record: DebateRecord) -> str:
    """Markdown body for a debate at its current phase."""
    lines: list[str] = [
        f"# Debate: {record.topic}",
        "",
        f"**Debate ID:** {record.id}",
        f"**Team:** {record.team} | **Domain:** {record.domain} | **Version:** {record.version}",
        f"**Priority:** {record.priority}",
        f"**Phase:** {record.current_phase}",
        f"**Started:** {record.started_at.strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if record.completed_at is not None:
        lines.append(f"**Finished:** {record.completed_at.strftime('%Y-%m-%d %H:%M:%S')}")
    lines += ["", "---", ""]

    for rnd in record.rounds():
        lines += _round_lines(rnd)

    if record.governance_reviews:
        lines += ["## Governance Reviews", ""]
        for review in record.governance_reviews:
            verdict = "approved" if review.approved else "rejected"
            lines.append(f"### {review.reviewer_role}: {verdict} (score {review.score})")
            lines.append("")
            for issue in review.issues:
                lines.append(f"- [{issue.severity}] {issue.type}: {issue.description}")
            for rec in review.recommendations:
                lines.append(f"- Recommendation: {rec}")
            lines.append("")

    if record.final_decision is not None:
        decision = record.final_decision
        lines += [
            "## Final Decision",
            "",
            f"**Recommendation:** {decision.recommendation}",
            "",
            f"**Reasoning:** {decision.reasoning}",
            "",
            f"**Confidence:** {decision.confidence}% | **Priority:** {decision.priority}",
            "",
        ]
        lines.extend(f"{i}. {action}" for i, action in enumerate(decision.actions, 1))
        if decision.dissent:
            lines += ["", f"**Dissent:** {decision.dissent}"]
        lines.append("")

    if record.cancel_reason:
        lines += ["## Cancelled", "", record.cancel_reason, ""]

    return "\n".join(lines)


class TranscriptSink:
    """Writes `debate_v{version}_{domain}_{timestamp}_{id}.md` files under `directory`.

    Updating a debate moves its current file into `directory/archive` before
    writing the new one, so every earlier snapshot stays readable.
    """

    def __init__(self, directory: Path) -> None:
        self._dir = Path(directory)
        self._archive_dir = self._dir / "archive"
        self._index: dict[str, Path] = {}

    def _ensure_dirs(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        self._archive_dir.mkdir(parents=True, exist_ok=True)

    def _filename(self, record: DebateRecord) -> str:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        short_id = record.id.replace("-", "")[:8]
        return f"debate_v{record.version}_{record.domain}_{timestamp}_{short_id}.md"

    def _locate(self, debate_id: str) -> Path | None:
        path = self._index.get(debate_id)
        if path is not None and path.exists():
            return path
        if not self._dir.exists():
            return None
        for candidate in sorted(self._dir.glob("debate_v*.md")):
            try:
                post = frontmatter.load(str(candidate))
            except Exception as exc:
                logger.warning("Unreadable transcript %s: %s", candidate.name, exc)
                continue
            if post.metadata.get("debate_id") == debate_id:
                self._index[debate_id] = candidate
                return candidate
        return None

    def write(self, record: DebateRecord, created_at: datetime | None = None) -> Path:
        self._ensure_dirs()
        now = datetime.now()
        post = frontmatter.Post(
            render_transcript(record),
            debate_id=record.id,
            version=record.version,
            domain=record.domain,
            team=record.team,
            topic=record.topic,
            phase=record.current_phase,
            priority=record.priority,
            created_at=(created_at or now).isoformat(timespec="seconds"),
            updated_at=now.isoformat(timespec="seconds"),
        )
        path = self._dir / self._filename(record)
        path.write_text(frontmatter.dumps(post), encoding="utf-8")
        self._index[record.id] = path
        logger.debug("Transcript written: %s", path.name)
        return path

    def update(self, debate_id: str, record: DebateRecord) -> Path:
        """Archive the current log for `debate_id` (if any) and write a fresh one."""
        created_at: datetime | None = None
        current = self._locate(debate_id)
        if current is not None:
            created_raw = frontmatter.load(str(current)).metadata.get("created_at")
            if created_raw:
                created_at = datetime.fromisoformat(str(created_raw))
            self._ensure_dirs()
            stamp = datetime.now().strftime("%Y%m%d%H%M%S%f")
            archived = self._archive_dir / f"{current.stem}_archived_{stamp}.md"
            current.replace(archived)
            logger.debug("Archived transcript %s -> %s", current.name, archived.name)
        return self.write(record, created_at=created_at)

    def read(self, debate_id: str) -> str | None:
        path = self._locate(debate_id)
        if path is None:
            return None
        return path.read_text(encoding="utf-8")

    def list(self) -> list[TranscriptMetadata]:
        """Metadata for every live transcript, most recently updated first."""
        if not self._dir.exists():
            return []
        entries: list[TranscriptMetadata] = []
        for path in self._dir.glob("debate_v*.md"):
            try:
                meta = frontmatter.load(str(path)).metadata
                entries.append(
                    TranscriptMetadata(
                        debate_id=str(meta["debate_id"]),
                        version=int(meta["version"]),
                        domain=str(meta["domain"]),
                        team=str(meta["team"]),
                        phase=str(meta["phase"]),
                        filename=path.name,
                        created_at=datetime.fromisoformat(str(meta["created_at"])),
                        updated_at=datetime.fromisoformat(str(meta["updated_at"])),
                    )
                )
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping transcript %s with bad metadata: %s", path.name, exc)
        return sorted(entries, key=lambda e: e.updated_at, reverse=True)

    def cleanup_old_archives(self, days: int = 30) -> int:
        """Delete archived snapshots older than `days`. Returns how many were removed."""
        if not self._archive_dir.exists():
            return 0
        cutoff = time.time() - days * 86400
        removed = 0
        for path in self._archive_dir.glob("*.md"):
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        if removed:
            logger.info("Removed %d archived transcripts older than %d days", removed, days)
        return removed
