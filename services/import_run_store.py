"""
Temporary storage for import runs.

Keeps each commit's request and outcomes in memory with TTL expiration so
failed or skipped rows can be retried. Single-process only: runs are lost
on restart.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import settings
from models.import_result import CommitRequest, ImportSummary, RowOutcome


@dataclass
class ImportRun:
    """
    One commit attempt and everything needed to retry parts of it.

    row_indices[i] is the original 1-based index of request.rows[i]; for a
    first run it is 1..n, for retries it carries the parent's indices.
    """
    request: CommitRequest
    row_indices: list[int]
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    parent_run_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    results: list[RowOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def summary(self) -> ImportSummary:
        return ImportSummary.from_outcomes(self.results)

    def rows_for(self, outcomes: list[RowOutcome]) -> tuple[list[int], list]:
        """Original indices and raw rows behind the given outcomes."""
        position = {index: i for i, index in enumerate(self.row_indices)}
        indices, rows = [], []
        for outcome in outcomes:
            i = position.get(outcome.row_index)
            if i is None:
                continue
            indices.append(outcome.row_index)
            rows.append(self.request.rows[i])
        return indices, rows


_runs: dict[str, tuple[datetime, ImportRun]] = {}
_lock = threading.Lock()


def store_run(run: ImportRun, ttl_minutes: Optional[int] = None) -> str:
    """Store a run, return its run_id."""
    ttl = ttl_minutes if ttl_minutes is not None else settings.import_run_ttl_minutes
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl)
    with _lock:
        _runs[run.run_id] = (expires_at, run)
        _cleanup_expired()
    return run.run_id


def retrieve_run(run_id: str) -> Optional[ImportRun]:
    """Retrieve a run by id. Returns None if expired/not found."""
    with _lock:
        entry = _runs.get(run_id)
        if entry is None:
            return None
        expires_at, run = entry
        if datetime.now(timezone.utc) > expires_at:
            del _runs[run_id]
            return None
        return run


def delete_run(run_id: str) -> None:
    with _lock:
        _runs.pop(run_id, None)


def clear_runs() -> None:
    """Drop every stored run."""
    with _lock:
        _runs.clear()


def _cleanup_expired() -> None:
    """Remove all expired entries. Caller holds the lock."""
    now = datetime.now(timezone.utc)
    expired = [k for k, (exp, _) in _runs.items() if now > exp]
    for k in expired:
        del _runs[k]
