"""SQLite-backed store for memory entries, corrections, usage and sync state.

One connection per repository, guarded by a re-entrant lock, so
check-then-insert sequences (fingerprint dedup) are atomic within a
process. Every write runs in a transaction; sqlite3 errors propagate.
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from memman.core.types import (
    BIDIRECTIONAL,
    Correction,
    MemoryEntry,
    MemoryScope,
    MemorySource,
    SyncState,
    SyncTarget,
    UsageStats,
)
from memman.datastore.memorydb.schema import init_schema
from memman.lib.database import open_connection, transaction
from memman.lib.git_files import glob_matches

logger = logging.getLogger(__name__)

RECENT_USAGE_DAYS = 30

# update_entry keyword -> column
_UPDATABLE = {
    "content": "content",
    "category": "category",
    "content_hash": "content_hash",
    "staleness_score": "staleness_score",
    "use_count": "use_count",
    "supersedes": "supersedes",
    "paths": "paths",
    "tags": "tags",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed JSON list column: %r", raw[:80])
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


class MemoryRepository:
    """Persistence collaborator over a single SQLite database."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._conn = open_connection(db_path)
        init_schema(self._conn)

    @classmethod
    def from_config(cls, config) -> "MemoryRepository":
        return cls(config.paths.db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "MemoryRepository":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ═══════════════════════════════════════════════════════════════════
    # Memory entries
    # ═══════════════════════════════════════════════════════════════════

    def create_entry(self, content: str, category: str, scope: MemoryScope, source: MemorySource,
                     content_hash: str, paths: Optional[List[str]] = None,
                     targets: Optional[List[SyncTarget]] = None, tags: Optional[List[str]] = None,
                     supersedes: Optional[str] = None) -> MemoryEntry:
        entry_id = str(uuid.uuid4())
        now = _now()
        with self._lock, transaction(self._conn) as conn:
            conn.execute(
                """
                INSERT INTO memory_entries
                (id, content, category, scope_level, scope_project, scope_directory, paths,
                 source_type, source_file_path, created_at, updated_at, supersedes, tags, content_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry_id, content, category,
                    scope.level, scope.project, scope.directory,
                    json.dumps(paths) if paths else None,
                    source.type, source.file_path or "",
                    now, now, supersedes,
                    json.dumps(tags or []),
                    content_hash,
                ),
            )
            for target in targets or []:
                conn.execute(
                    "INSERT INTO sync_targets (entry_id, target_type, target_file_path, hash_at_sync) "
                    "VALUES (?, ?, ?, ?)",
                    (entry_id, target.type, target.file_path, target.hash_at_sync),
                )
        return self.get_entry(entry_id)

    def _targets(self, entry_id: str) -> List[SyncTarget]:
        rows = self._conn.execute(
            "SELECT target_type, target_file_path, hash_at_sync FROM sync_targets WHERE entry_id = ? ORDER BY id",
            (entry_id,),
        ).fetchall()
        return [SyncTarget(type=r["target_type"], file_path=r["target_file_path"],
                           hash_at_sync=r["hash_at_sync"]) for r in rows]

    def _row_to_entry(self, row) -> MemoryEntry:
        return MemoryEntry(
            id=row["id"],
            content=row["content"],
            category=row["category"],
            scope=MemoryScope(level=row["scope_level"], project=row["scope_project"],
                              directory=row["scope_directory"]),
            source=MemorySource(type=row["source_type"], file_path=row["source_file_path"]),
            content_hash=row["content_hash"],
            paths=_json_list(row["paths"]),
            targets=self._targets(row["id"]),
            tags=_json_list(row["tags"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            use_count=row["use_count"],
            staleness_score=row["staleness_score"],
            supersedes=row["supersedes"],
        )

    def get_entry(self, entry_id: str) -> Optional[MemoryEntry]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM memory_entries WHERE id = ?", (entry_id,)).fetchone()
            return self._row_to_entry(row) if row else None

    def get_entry_by_hash(self, content_hash: str) -> Optional[MemoryEntry]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM memory_entries WHERE content_hash = ? ORDER BY created_at LIMIT 1",
                (content_hash,),
            ).fetchone()
            return self._row_to_entry(row) if row else None

    def get_all_entries(self, category: Optional[str] = None, scope_level: Optional[str] = None,
                        project: Optional[str] = None, min_staleness: Optional[float] = None,
                        max_staleness: Optional[float] = None) -> List[MemoryEntry]:
        clauses, params = [], []
        if category:
            clauses.append("category = ?")
            params.append(category)
        if scope_level:
            clauses.append("scope_level = ?")
            params.append(scope_level)
        if project:
            clauses.append("scope_project = ?")
            params.append(project)
        if min_staleness is not None:
            clauses.append("staleness_score >= ?")
            params.append(min_staleness)
        if max_staleness is not None:
            clauses.append("staleness_score <= ?")
            params.append(max_staleness)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM memory_entries {where} ORDER BY created_at, rowid", params
            ).fetchall()
            return [self._row_to_entry(r) for r in rows]

    def update_entry(self, entry_id: str, **updates: Any) -> None:
        """Update the given fields and bump updated_at (except for rescoring)."""
        unknown = set(updates) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Unknown entry fields: {sorted(unknown)}")
        if not updates:
            return
        sets, params = [], []
        for key, value in updates.items():
            if key in ("paths", "tags"):
                value = json.dumps(list(value)) if value is not None else None
            sets.append(f"{_UPDATABLE[key]} = ?")
            params.append(value)
        if set(updates) - {"staleness_score", "use_count"}:
            sets.append("updated_at = ?")
            params.append(_now())
        params.append(entry_id)
        with self._lock, transaction(self._conn) as conn:
            conn.execute(f"UPDATE memory_entries SET {', '.join(sets)} WHERE id = ?", params)

    def delete_entry(self, entry_id: str) -> None:
        with self._lock, transaction(self._conn) as conn:
            conn.execute("DELETE FROM memory_entries WHERE id = ?", (entry_id,))

    def search_entries(self, query: str, limit: int = 20) -> List[MemoryEntry]:
        """Substring match on content, most used first."""
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM memory_entries
                WHERE content LIKE ? ESCAPE '\\'
                ORDER BY use_count DESC, updated_at DESC
                LIMIT ?
                """,
                (f"%{escaped}%", limit),
            ).fetchall()
            return [self._row_to_entry(r) for r in rows]

    def get_entries_by_paths(self, file_paths: Iterable[str]) -> List[MemoryEntry]:
        """Entries whose declared globs match at least one of the file paths."""
        file_paths = list(file_paths)
        return [
            entry for entry in self.get_all_entries()
            if any(glob_matches(p, f) for p in entry.paths for f in file_paths)
        ]

    # ═══════════════════════════════════════════════════════════════════
    # Usage
    # ═══════════════════════════════════════════════════════════════════

    def increment_use_count(self, entry_id: str, context: Optional[str] = None) -> None:
        with self._lock, transaction(self._conn) as conn:
            conn.execute("UPDATE memory_entries SET use_count = use_count + 1 WHERE id = ?", (entry_id,))
            conn.execute(
                "INSERT INTO usage_log (entry_id, accessed_at, context) VALUES (?, ?, ?)",
                (entry_id, _now(), context),
            )

    def get_usage_stats(self, entry_id: str) -> UsageStats:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=RECENT_USAGE_DAYS)).isoformat()
        with self._lock:
            row = self._conn.execute(
                """
                SELECT COUNT(*) AS total,
                       SUM(CASE WHEN accessed_at >= ? THEN 1 ELSE 0 END) AS recent,
                       MAX(accessed_at) AS last_access
                FROM usage_log WHERE entry_id = ?
                """,
                (cutoff, entry_id),
            ).fetchone()
        return UsageStats(total=row["total"] or 0, last_30_days=row["recent"] or 0,
                          last_access=row["last_access"])

    # ═══════════════════════════════════════════════════════════════════
    # Corrections
    # ═══════════════════════════════════════════════════════════════════

    def create_correction(self, incorrect: str, correct: str, category: str, confidence: float,
                          source: str, content_hash: str, paths: Optional[List[str]] = None,
                          session_id: Optional[str] = None,
                          memory_entry_id: Optional[str] = None) -> Correction:
        correction_id = str(uuid.uuid4())
        with self._lock, transaction(self._conn) as conn:
            conn.execute(
                """
                INSERT INTO corrections
                (id, incorrect, correct, category, paths, confidence, source, session_id,
                 created_at, memory_entry_id, content_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    correction_id, incorrect, correct, category,
                    json.dumps(paths) if paths else None,
                    confidence, source, session_id, _now(), memory_entry_id, content_hash,
                ),
            )
        return self.get_correction(correction_id)

    def _row_to_correction(self, row) -> Correction:
        return Correction(
            id=row["id"],
            incorrect=row["incorrect"],
            correct=row["correct"],
            category=row["category"],
            confidence=row["confidence"],
            source=row["source"],
            content_hash=row["content_hash"],
            paths=_json_list(row["paths"]),
            session_id=row["session_id"],
            created_at=row["created_at"],
            memory_entry_id=row["memory_entry_id"],
        )

    def get_correction(self, correction_id: str) -> Optional[Correction]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM corrections WHERE id = ?", (correction_id,)).fetchone()
            return self._row_to_correction(row) if row else None

    def get_correction_by_hash(self, content_hash: str) -> Optional[Correction]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM corrections WHERE content_hash = ? ORDER BY created_at LIMIT 1",
                (content_hash,),
            ).fetchone()
            return self._row_to_correction(row) if row else None

    def get_corrections(self, source: Optional[str] = None, min_confidence: Optional[float] = None,
                        limit: Optional[int] = None) -> List[Correction]:
        """Corrections, newest first."""
        clauses, params = [], []
        if source:
            clauses.append("source = ?")
            params.append(source)
        if min_confidence is not None:
            clauses.append("confidence >= ?")
            params.append(min_confidence)
        sql = "SELECT * FROM corrections"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._lock:
            return [self._row_to_correction(r) for r in self._conn.execute(sql, params).fetchall()]

    def link_correction_to_entry(self, correction_id: str, entry_id: str) -> None:
        with self._lock, transaction(self._conn) as conn:
            conn.execute("UPDATE corrections SET memory_entry_id = ? WHERE id = ?", (entry_id, correction_id))

    # ═══════════════════════════════════════════════════════════════════
    # Sync state
    # ═══════════════════════════════════════════════════════════════════

    def _row_to_sync_state(self, row) -> SyncState:
        return SyncState(
            id=row["id"],
            source_file=row["source_file"],
            target_file=row["target_file"],
            source_hash=row["source_hash"],
            target_hash=row["target_hash"],
            last_synced_at=row["last_synced_at"],
            direction=row["direction"],
        )

    def get_sync_state(self, source_file: str, target_file: str) -> Optional[SyncState]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM sync_state WHERE source_file = ? AND target_file = ?",
                (source_file, target_file),
            ).fetchone()
            return self._row_to_sync_state(row) if row else None

    def get_all_sync_states(self) -> List[SyncState]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM sync_state ORDER BY last_synced_at").fetchall()
            return [self._row_to_sync_state(r) for r in rows]

    def upsert_sync_state(self, source_file: str, target_file: str, source_hash: str,
                          target_hash: str, direction: str = BIDIRECTIONAL) -> SyncState:
        """Insert the pair's state, or update it keeping the record id."""
        with self._lock:
            existing = self.get_sync_state(source_file, target_file)
            with transaction(self._conn) as conn:
                if existing:
                    conn.execute(
                        "UPDATE sync_state SET source_hash = ?, target_hash = ?, last_synced_at = ?, "
                        "direction = ? WHERE id = ?",
                        (source_hash, target_hash, _now(), direction, existing.id),
                    )
                else:
                    conn.execute(
                        "INSERT INTO sync_state (id, source_file, target_file, source_hash, target_hash, "
                        "last_synced_at, direction) VALUES (?, ?, ?, ?, ?, ?, ?)",
                        (str(uuid.uuid4()), source_file, target_file, source_hash, target_hash,
                         _now(), direction),
                    )
            return self.get_sync_state(source_file, target_file)

    def update_sync_state_hashes(self, source_file: str, target_file: str,
                                 source_hash: str, target_hash: str) -> None:
        with self._lock, transaction(self._conn) as conn:
            conn.execute(
                "UPDATE sync_state SET source_hash = ?, target_hash = ?, last_synced_at = ? "
                "WHERE source_file = ? AND target_file = ?",
                (source_hash, target_hash, _now(), source_file, target_file),
            )

    def update_target_hash(self, entry_id: str, target_file_path: str, hash_at_sync: str) -> None:
        with self._lock, transaction(self._conn) as conn:
            conn.execute(
                "UPDATE sync_targets SET hash_at_sync = ? WHERE entry_id = ? AND target_file_path = ?",
                (hash_at_sync, entry_id, target_file_path),
            )

    # ═══════════════════════════════════════════════════════════════════
    # Analytics
    # ═══════════════════════════════════════════════════════════════════

    def get_category_distribution(self) -> Dict[str, int]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT category, COUNT(*) AS n FROM memory_entries GROUP BY category ORDER BY n DESC, category"
            ).fetchall()
            return {r["category"]: r["n"] for r in rows}

    def get_entry_count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM memory_entries").fetchone()[0]
