from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .ids import id_from_seed
from .storage import format_timestamp

logger = logging.getLogger(__name__)

_REFLOG_LINE = re.compile(
    r"^([0-9a-f]+)\s+HEAD@\{(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}\s+[+-]\d{4})\}:"
    r"\s+checkout:\s+moving from (\S+) to (\S+)$"
)
_COMMIT_HASH = re.compile(r"^[0-9a-f]{7,40}$")


@dataclass(frozen=True)
class CheckoutRecord:
    commit_ref: str
    timestamp: datetime
    previous: str
    next: str


def parse_reflog(output: str) -> list[CheckoutRecord]:
    """Extract checkout transitions from ``git reflog --date=iso`` output, newest first."""
    records: list[CheckoutRecord] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        match = _REFLOG_LINE.match(line)
        if match is None:
            continue
        commit_ref, stamp, previous, next_branch = match.groups()
        try:
            timestamp = datetime.strptime(" ".join(stamp.split()), "%Y-%m-%d %H:%M:%S %z")
        except ValueError:
            logger.debug("Skipping reflog line with bad timestamp: %s", line)
            continue
        records.append(
            CheckoutRecord(
                commit_ref=commit_ref,
                timestamp=timestamp.astimezone(timezone.utc),
                previous=previous,
                next=next_branch,
            )
        )
    return records


def record_id(record: CheckoutRecord) -> str:
    """Deterministic checkout ID, stable across repeated syncs of the same reflog line."""
    return id_from_seed(
        record.commit_ref + format_timestamp(record.timestamp) + record.previous + record.next
    )


def looks_like_commit_hash(name: str) -> bool:
    return bool(_COMMIT_HASH.match(name))


def is_trackable(record: CheckoutRecord) -> bool:
    """Whether a record is a real branch switch worth recording."""
    if looks_like_commit_hash(record.previous) or looks_like_commit_hash(record.next):
        return False
    if "remotes/" in record.previous or "remotes/" in record.next:
        return False
    return record.previous != record.next


def read_reflog(repo: Path, since: datetime | None = None) -> str:
    command = ["git", "-C", str(repo), "reflog", "--date=iso"]
    if since is not None:
        # git reads a bare timestamp in the local zone
        command.append(f"--since={since.astimezone():%Y-%m-%d %H:%M:%S}")
    logger.debug("Running %s", " ".join(command))
    result = subprocess.run(command, capture_output=True, text=True, check=True)
    return result.stdout


def current_branch(repo: Path) -> str:
    result = subprocess.run(
        ["git", "-C", str(repo), "rev-parse", "--abbrev-ref", "HEAD"],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()
