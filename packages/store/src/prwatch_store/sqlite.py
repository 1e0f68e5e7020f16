"""SQLiteStore: local file-based store for tracked PRs.

Schema:
  tracked_prs  one row per PR number (UNIQUE), never deleted.
  pr_changes   append-only commit history, ordered by id.

List-valued fields (reviewers, files, match details) are JSON text columns;
they are decoded back into typed fields before leaving this module.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from prwatch_store.base import BaseStore
from prwatch_store.errors import DuplicatePRError, NotFoundError, StaleRecordError
from prwatch_store.models import MatchDetails, PRChange, TrackedPR

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tracked_prs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    pr_number           INTEGER NOT NULL UNIQUE,
    title               TEXT NOT NULL DEFAULT '',
    author              TEXT,
    url                 TEXT,
    branch              TEXT,
    description         TEXT DEFAULT '',
    reviewers_json      TEXT DEFAULT '[]',
    status              TEXT NOT NULL DEFAULT 'open',
    is_draft            INTEGER DEFAULT 0,
    match_reason        TEXT DEFAULT 'none',
    match_details_json  TEXT DEFAULT '{}',
    opened_at           TEXT,
    created_at          TEXT,
    updated_at          TEXT,
    merged_at           TEXT,
    version             INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_tracked_prs_status ON tracked_prs (status);

CREATE TABLE IF NOT EXISTS pr_changes (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    tracked_pr_id       INTEGER NOT NULL REFERENCES tracked_prs (id),
    commit_sha          TEXT NOT NULL,
    summary             TEXT DEFAULT '',
    files_changed_json  TEXT DEFAULT '[]',
    diff_stats          TEXT DEFAULT '',
    created_at          TEXT,
    notified_at         TEXT
);
CREATE INDEX IF NOT EXISTS idx_pr_changes_tracked ON pr_changes (tracked_pr_id, id);
"""


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class SQLiteStore(BaseStore):
    """Stores tracked PRs in a local SQLite database file.

    The path defaults to `.prwatch.db` in the current working directory.
    Configure via prwatch.yml: `store_path: /path/to/prwatch.db`. One
    connection is shared by all threads and serialized with a lock.
    """

    def __init__(self, db_path: str = ".prwatch.db"):
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def create_pr(self, pr: TrackedPR) -> TrackedPR:
        with self._lock:
            try:
                with self._conn:
                    cursor = self._conn.execute(
                        """
                        INSERT INTO tracked_prs
                          (pr_number, title, author, url, branch, description, reviewers_json,
                           status, is_draft, match_reason, match_details_json,
                           opened_at, created_at, updated_at, merged_at, version)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                        """,
                        (
                            pr.pr_number,
                            pr.title,
                            pr.author,
                            pr.url,
                            pr.branch,
                            pr.description,
                            json.dumps(pr.reviewers),
                            pr.status,
                            int(pr.is_draft),
                            pr.match_reason,
                            json.dumps(pr.match_details.to_dict()),
                            _iso(pr.opened_at),
                            _iso(pr.created_at),
                            _iso(pr.updated_at),
                            _iso(pr.merged_at),
                        ),
                    )
            except sqlite3.IntegrityError:
                raise DuplicatePRError(pr.pr_number)
            return replace(pr, id=cursor.lastrowid, version=0)

    def get_pr(self, pr_id: int) -> TrackedPR | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM tracked_prs WHERE id=?", (pr_id,)).fetchone()
        return self._row_to_pr(row) if row else None

    def get_pr_by_number(self, pr_number: int) -> TrackedPR | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM tracked_prs WHERE pr_number=?", (pr_number,)).fetchone()
        return self._row_to_pr(row) if row else None

    def list_prs(self, status: str | None = None) -> list[TrackedPR]:
        with self._lock:
            if status is not None:
                rows = self._conn.execute("SELECT * FROM tracked_prs WHERE status=? ORDER BY id", (status,)).fetchall()
            else:
                rows = self._conn.execute("SELECT * FROM tracked_prs ORDER BY id").fetchall()
        return [self._row_to_pr(r) for r in rows]

    def tracked_numbers(self) -> set[int]:
        with self._lock:
            rows = self._conn.execute("SELECT pr_number FROM tracked_prs").fetchall()
        return {r["pr_number"] for r in rows}

    def update_pr(self, pr: TrackedPR) -> TrackedPR:
        with self._lock:
            with self._conn:
                cursor = self._conn.execute(
                    """
                    UPDATE tracked_prs SET
                      title=?, author=?, url=?, branch=?, description=?, reviewers_json=?,
                      status=?, is_draft=?, match_reason=?, match_details_json=?,
                      opened_at=?, updated_at=?, merged_at=?, version=version + 1
                    WHERE id=? AND version=?
                    """,
                    (
                        pr.title,
                        pr.author,
                        pr.url,
                        pr.branch,
                        pr.description,
                        json.dumps(pr.reviewers),
                        pr.status,
                        int(pr.is_draft),
                        pr.match_reason,
                        json.dumps(pr.match_details.to_dict()),
                        _iso(pr.opened_at),
                        _iso(pr.updated_at),
                        _iso(pr.merged_at),
                        pr.id,
                        pr.version,
                    ),
                )
            if cursor.rowcount == 0:
                if self.get_pr(pr.id) is None:
                    raise NotFoundError(f"PR #{pr.pr_number} is not tracked")
                raise StaleRecordError(pr.pr_number, pr.version)
        return replace(pr, version=pr.version + 1)

    def transition_status(
        self,
        pr_number: int,
        allowed: Iterable[str],
        to_status: str,
        at: datetime,
        merged_at: datetime | None = None,
    ) -> TrackedPR | None:
        allowed = list(allowed)
        placeholders = ", ".join("?" for _ in allowed)
        with self._lock:
            with self._conn:
                cursor = self._conn.execute(
                    f"""
                    UPDATE tracked_prs SET
                      status=?, updated_at=?, merged_at=COALESCE(?, merged_at), version=version + 1
                    WHERE pr_number=? AND status IN ({placeholders})
                    """,
                    (to_status, _iso(at), _iso(merged_at), pr_number, *allowed),
                )
            if cursor.rowcount == 0:
                return None
            return self.get_pr_by_number(pr_number)

    def append_change(self, change: PRChange, skip_if_same_head: bool = True) -> PRChange | None:
        with self._lock:
            with self._conn:
                if skip_if_same_head:
                    last = self._conn.execute(
                        "SELECT commit_sha FROM pr_changes WHERE tracked_pr_id=? ORDER BY id DESC LIMIT 1",
                        (change.tracked_pr_id,),
                    ).fetchone()
                    if last is not None and last["commit_sha"] == change.commit_sha:
                        return None
                cursor = self._conn.execute(
                    """
                    INSERT INTO pr_changes
                      (tracked_pr_id, commit_sha, summary, files_changed_json, diff_stats, created_at, notified_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        change.tracked_pr_id,
                        change.commit_sha,
                        change.summary,
                        json.dumps(change.files_changed),
                        change.diff_stats,
                        _iso(change.created_at),
                        _iso(change.notified_at),
                    ),
                )
        return replace(change, id=cursor.lastrowid)

    def list_changes(self, tracked_pr_id: int) -> list[PRChange]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM pr_changes WHERE tracked_pr_id=? ORDER BY id",
                (tracked_pr_id,),
            ).fetchall()
        return [self._row_to_change(r) for r in rows]

    def latest_change(self, tracked_pr_id: int) -> PRChange | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM pr_changes WHERE tracked_pr_id=? ORDER BY id DESC LIMIT 1",
                (tracked_pr_id,),
            ).fetchone()
        return self._row_to_change(row) if row else None

    def count_by_status(self) -> dict[str, int]:
        with self._lock:
            rows = self._conn.execute("SELECT status, COUNT(*) AS n FROM tracked_prs GROUP BY status").fetchall()
        return {r["status"]: r["n"] for r in rows}

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _row_to_pr(row: sqlite3.Row) -> TrackedPR:
        return TrackedPR(
            id=row["id"],
            pr_number=row["pr_number"],
            title=row["title"] or "",
            author=row["author"] or "",
            url=row["url"] or "",
            branch=row["branch"] or "",
            description=row["description"] or "",
            reviewers=json.loads(row["reviewers_json"] or "[]"),
            status=row["status"],
            is_draft=bool(row["is_draft"]),
            match_reason=row["match_reason"] or "none",
            match_details=MatchDetails.from_dict(json.loads(row["match_details_json"] or "{}")),
            opened_at=_dt(row["opened_at"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
            merged_at=_dt(row["merged_at"]),
            version=row["version"],
        )

    @staticmethod
    def _row_to_change(row: sqlite3.Row) -> PRChange:
        return PRChange(
            id=row["id"],
            tracked_pr_id=row["tracked_pr_id"],
            commit_sha=row["commit_sha"],
            summary=row["summary"] or "",
            files_changed=json.loads(row["files_changed_json"] or "[]"),
            diff_stats=row["diff_stats"] or "",
            created_at=_dt(row["created_at"]),
            notified_at=_dt(row["notified_at"]),
        )
