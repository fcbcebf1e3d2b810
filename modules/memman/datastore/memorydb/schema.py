"""SQLite schema for the memman store."""

import sqlite3

SCHEMA_VERSION = 2

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS memory_entries (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    category TEXT NOT NULL,
    scope_level TEXT NOT NULL DEFAULT 'project',
    scope_project TEXT,
    scope_directory TEXT,
    paths TEXT,                          -- JSON array of globs
    source_type TEXT NOT NULL,
    source_file_path TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    use_count INTEGER NOT NULL DEFAULT 0,
    staleness_score REAL NOT NULL DEFAULT 0.0,
    supersedes TEXT,
    tags TEXT NOT NULL DEFAULT '[]',     -- JSON array
    content_hash TEXT NOT NULL,
    FOREIGN KEY (supersedes) REFERENCES memory_entries(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS sync_targets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id TEXT NOT NULL,
    target_type TEXT NOT NULL,
    target_file_path TEXT NOT NULL,
    hash_at_sync TEXT NOT NULL,
    FOREIGN KEY (entry_id) REFERENCES memory_entries(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS sync_state (
    id TEXT PRIMARY KEY,
    source_file TEXT NOT NULL,
    target_file TEXT NOT NULL,
    source_hash TEXT NOT NULL,
    target_hash TEXT NOT NULL,
    last_synced_at TEXT NOT NULL,
    direction TEXT NOT NULL DEFAULT 'bidirectional',
    UNIQUE (source_file, target_file)
);

CREATE TABLE IF NOT EXISTS corrections (
    id TEXT PRIMARY KEY,
    incorrect TEXT NOT NULL,
    correct TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'correction',
    paths TEXT,
    confidence REAL NOT NULL DEFAULT 0.5,
    source TEXT NOT NULL,
    session_id TEXT,
    created_at TEXT NOT NULL,
    memory_entry_id TEXT,
    content_hash TEXT NOT NULL DEFAULT '',
    FOREIGN KEY (memory_entry_id) REFERENCES memory_entries(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS usage_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id TEXT NOT NULL,
    accessed_at TEXT NOT NULL,
    context TEXT,
    FOREIGN KEY (entry_id) REFERENCES memory_entries(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_entries_category ON memory_entries(category);
CREATE INDEX IF NOT EXISTS idx_entries_content_hash ON memory_entries(content_hash);
CREATE INDEX IF NOT EXISTS idx_entries_scope ON memory_entries(scope_level, scope_project);
CREATE INDEX IF NOT EXISTS idx_entries_staleness ON memory_entries(staleness_score);
CREATE INDEX IF NOT EXISTS idx_sync_targets_entry ON sync_targets(entry_id);
CREATE INDEX IF NOT EXISTS idx_corrections_source ON corrections(source);
CREATE INDEX IF NOT EXISTS idx_usage_entry ON usage_log(entry_id);
CREATE INDEX IF NOT EXISTS idx_usage_accessed ON usage_log(accessed_at);
"""


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables and indexes, migrating version-1 stores in place."""
    conn.executescript(SCHEMA)

    # Migrate: corrections gained a content_hash column in version 2
    try:
        conn.execute("ALTER TABLE corrections ADD COLUMN content_hash TEXT NOT NULL DEFAULT ''")
    except sqlite3.OperationalError:
        pass  # Column already exists
    conn.execute("CREATE INDEX IF NOT EXISTS idx_corrections_hash ON corrections(content_hash)")

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row else None
    if current is None or current < SCHEMA_VERSION:
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    conn.commit()
