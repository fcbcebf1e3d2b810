"""Tests for the SQLite repository, schema and connection helpers."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from memman.core.types import MIRROR, PRIMARY, MemoryScope, MemorySource, SyncTarget
from memman.datastore.memorydb.repository import MemoryRepository
from memman.datastore.memorydb.schema import SCHEMA_VERSION
from memman.lib.database import MEMORY_DB, open_connection, transaction
from memman.lib.hashing import content_hash


def _add(repo, content, category="convention", **kwargs):
    return repo.create_entry(
        content=content,
        category=category,
        scope=kwargs.pop("scope", MemoryScope(level="project", project="/p")),
        source=kwargs.pop("source", MemorySource(type=PRIMARY, file_path="/p/CLAUDE.md")),
        content_hash=content_hash(content),
        **kwargs,
    )


class TestEntries:

    def test_create_and_get(self, repo):
        entry = _add(repo, "- Use pnpm", paths=["package.json"], tags=["rule"],
                     targets=[SyncTarget(type=MIRROR, file_path="/p/AGENTS.md", hash_at_sync="abc")])

        loaded = repo.get_entry(entry.id)

        assert loaded.content == "- Use pnpm"
        assert loaded.scope == MemoryScope(level="project", project="/p")
        assert loaded.source.file_path == "/p/CLAUDE.md"
        assert loaded.paths == ["package.json"]
        assert loaded.tags == ["rule"]
        assert loaded.targets == [SyncTarget(type=MIRROR, file_path="/p/AGENTS.md", hash_at_sync="abc")]
        assert loaded.use_count == 0
        assert loaded.staleness_score == 0.0
        assert loaded.created_at == loaded.updated_at

    def test_missing(self, repo):
        assert repo.get_entry("nope") is None
        assert repo.get_entry_by_hash("nope") is None

    def test_by_hash(self, repo):
        entry = _add(repo, "- Use pnpm")
        assert repo.get_entry_by_hash(content_hash("  - Use pnpm ")).id == entry.id

    def test_filters(self, repo):
        _add(repo, "- a", category="testing")
        _add(repo, "- b", scope=MemoryScope(level="global"))
        _add(repo, "- c", scope=MemoryScope(level="project", project="/other"))

        assert [e.content for e in repo.get_all_entries(category="testing")] == ["- a"]
        assert [e.content for e in repo.get_all_entries(scope_level="global")] == ["- b"]
        assert [e.content for e in repo.get_all_entries(project="/other")] == ["- c"]
        assert len(repo.get_all_entries()) == 3

    def test_staleness_range(self, repo):
        a, b = _add(repo, "- a"), _add(repo, "- b")
        repo.update_entry(a.id, staleness_score=0.2)
        repo.update_entry(b.id, staleness_score=0.9)
        assert [e.id for e in repo.get_all_entries(min_staleness=0.5)] == [b.id]
        assert [e.id for e in repo.get_all_entries(max_staleness=0.5)] == [a.id]

    def test_update_content_bumps_updated_at(self, repo):
        entry = _add(repo, "- old")
        repo.update_entry(entry.id, content="- new", content_hash=content_hash("- new"), paths=["src/**"])
        loaded = repo.get_entry(entry.id)
        assert loaded.content == "- new"
        assert loaded.paths == ["src/**"]
        assert loaded.updated_at >= entry.updated_at
        assert repo.get_entry_by_hash(content_hash("- old")) is None

    def test_update_unknown_field(self, repo):
        entry = _add(repo, "- a")
        with pytest.raises(ValueError):
            repo.update_entry(entry.id, id="other")

    def test_delete_cascades(self, repo):
        entry = _add(repo, "- a", targets=[SyncTarget(type=MIRROR, file_path="f", hash_at_sync="h")])
        repo.increment_use_count(entry.id)
        repo.delete_entry(entry.id)
        assert repo.get_entry(entry.id) is None
        assert repo.get_usage_stats(entry.id).total == 0
        assert repo.get_entry_count() == 0

    def test_update_target_hash(self, repo):
        entry = _add(repo, "- a", targets=[SyncTarget(type=MIRROR, file_path="f", hash_at_sync="h1")])
        repo.update_target_hash(entry.id, "f", "h2")
        assert repo.get_entry(entry.id).targets[0].hash_at_sync == "h2"


class TestSearch:

    def test_search_orders_by_use(self, repo):
        a = _add(repo, "- Use pnpm for packages")
        b = _add(repo, "- pnpm workspaces live in packages/")
        _add(repo, "- Prefer ruff")
        repo.increment_use_count(b.id)

        assert [e.id for e in repo.search_entries("PNPM")] == [b.id, a.id]
        assert len(repo.search_entries("pnpm", limit=1)) == 1

    def test_search_escapes_wildcards(self, repo):
        _add(repo, "- Keep coverage at 90%")
        _add(repo, "- Keep coverage high")
        assert [e.content for e in repo.search_entries("90%")] == ["- Keep coverage at 90%"]
        assert repo.search_entries("_") == []

    def test_entries_by_paths(self, repo):
        api = _add(repo, "- Validate input", paths=["src/api/**"])
        _add(repo, "- Vue rule", paths=["**/*.vue"])
        _add(repo, "- Global rule")
        assert [e.id for e in repo.get_entries_by_paths(["src/api/users.py"])] == [api.id]
        assert len(repo.get_entries_by_paths(["src/api/a.py", "src/App.vue"])) == 2
        assert repo.get_entries_by_paths([]) == []


class TestUsage:

    def test_stats(self, repo):
        entry = _add(repo, "- a")
        repo.increment_use_count(entry.id, "context:a")
        repo.increment_use_count(entry.id)

        stats = repo.get_usage_stats(entry.id)

        assert stats.total == 2
        assert stats.last_30_days == 2
        assert stats.last_access is not None
        assert repo.get_entry(entry.id).use_count == 2

    def test_old_accesses_not_recent(self, repo):
        entry = _add(repo, "- a")
        old = (datetime.now(timezone.utc) - timedelta(days=45)).isoformat()
        with transaction(repo._conn) as conn:
            conn.execute("INSERT INTO usage_log (entry_id, accessed_at) VALUES (?, ?)", (entry.id, old))
        repo.increment_use_count(entry.id)

        stats = repo.get_usage_stats(entry.id)

        assert (stats.total, stats.last_30_days) == (2, 1)

    def test_no_usage(self, repo):
        stats = repo.get_usage_stats("nope")
        assert (stats.total, stats.last_30_days, stats.last_access) == (0, 0, None)


class TestCorrections:

    def _add(self, repo, incorrect, correct, confidence=0.8, source="hook_pattern"):
        return repo.create_correction(incorrect=incorrect, correct=correct, category="correction",
                                      confidence=confidence, source=source,
                                      content_hash=content_hash(f"{incorrect}|{correct}"))

    def test_create_and_lookup(self, repo):
        c = repo.create_correction(incorrect="npm", correct="pnpm", category="dependency", confidence=0.9,
                                   source="hook_llm", content_hash="h1", paths=["package.json"],
                                   session_id="s1")
        assert repo.get_correction(c.id) == c
        assert repo.get_correction_by_hash("h1").id == c.id
        assert c.paths == ["package.json"]
        assert c.memory_entry_id is None

    def test_filters_and_order(self, repo):
        first = self._add(repo, "a", "b", 0.9)
        second = self._add(repo, "c", "d", 0.4, source="manual")
        third = self._add(repo, "e", "f", 0.75)

        assert [c.id for c in repo.get_corrections()] == [third.id, second.id, first.id]
        assert [c.id for c in repo.get_corrections(min_confidence=0.7)] == [third.id, first.id]
        assert [c.id for c in repo.get_corrections(source="manual")] == [second.id]
        assert [c.id for c in repo.get_corrections(limit=1)] == [third.id]

    def test_link_to_entry(self, repo):
        entry = _add(repo, "- Use pnpm")
        c = self._add(repo, "npm", "pnpm")
        repo.link_correction_to_entry(c.id, entry.id)
        assert repo.get_correction(c.id).memory_entry_id == entry.id

        repo.delete_entry(entry.id)
        assert repo.get_correction(c.id).memory_entry_id is None


class TestSyncState:

    def test_upsert_keeps_id(self, repo):
        first = repo.upsert_sync_state("a.md", "b.md", "h1", "h2", "bidirectional")
        second = repo.upsert_sync_state("a.md", "b.md", "h3", "h4", "claude-to-agents")
        assert first.id == second.id
        assert (second.source_hash, second.target_hash, second.direction) == ("h3", "h4", "claude-to-agents")
        assert len(repo.get_all_sync_states()) == 1

    def test_update_hashes(self, repo):
        repo.upsert_sync_state("a.md", "b.md", "h1", "h2")
        repo.update_sync_state_hashes("a.md", "b.md", "x", "y")
        state = repo.get_sync_state("a.md", "b.md")
        assert (state.source_hash, state.target_hash) == ("x", "y")

    def test_pairs_are_directional(self, repo):
        repo.upsert_sync_state("a.md", "b.md", "h1", "h2")
        assert repo.get_sync_state("b.md", "a.md") is None


class TestAnalytics:

    def test_distribution_and_count(self, repo):
        _add(repo, "- a", category="testing")
        _add(repo, "- b", category="testing")
        _add(repo, "- c", category="security")
        assert repo.get_category_distribution() == {"testing": 2, "security": 1}
        assert repo.get_entry_count() == 3


class TestStorage:

    def test_reopen_keeps_data(self, tmp_path):
        path = tmp_path / "memory.db"
        with MemoryRepository(path) as first:
            _add(first, "- persisted")
        with MemoryRepository(path) as second:
            assert second.get_all_entries()[0].content == "- persisted"

    def test_in_memory(self):
        with MemoryRepository(MEMORY_DB) as repo:
            _add(repo, "- a")
            assert repo.get_entry_count() == 1

    def test_from_config(self, config):
        with MemoryRepository.from_config(config) as repo:
            assert repo.db_path == str(config.paths.db_path)
        assert config.paths.db_path.exists()

    def test_migrates_corrections_without_hash(self, tmp_path):
        path = tmp_path / "old.db"
        conn = sqlite3.connect(str(path))
        conn.execute(
            "CREATE TABLE corrections (id TEXT PRIMARY KEY, incorrect TEXT NOT NULL, correct TEXT NOT NULL, "
            "category TEXT NOT NULL DEFAULT 'correction', paths TEXT, confidence REAL NOT NULL DEFAULT 0.5, "
            "source TEXT NOT NULL, session_id TEXT, created_at TEXT NOT NULL, memory_entry_id TEXT)"
        )
        conn.execute("INSERT INTO corrections (id, incorrect, correct, source, created_at) "
                     "VALUES ('old', 'a', 'b', 'manual', '2025-01-01T00:00:00+00:00')")
        conn.commit()
        conn.close()

        with MemoryRepository(path) as repo:
            assert repo.get_correction("old").content_hash == ""
            repo.create_correction("c", "d", "correction", 0.5, "manual", "h")
            assert repo.get_correction_by_hash("h") is not None
            version = repo._conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
            assert version == SCHEMA_VERSION


class TestTransaction:

    def test_commit(self):
        conn = open_connection(MEMORY_DB)
        conn.execute("CREATE TABLE t (x INTEGER)")
        with transaction(conn):
            conn.execute("INSERT INTO t VALUES (1)")
        assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 1

    def test_rollback_and_reraise(self):
        conn = open_connection(MEMORY_DB)
        conn.execute("CREATE TABLE t (x INTEGER)")
        conn.commit()
        with pytest.raises(RuntimeError):
            with transaction(conn):
                conn.execute("INSERT INTO t VALUES (1)")
                raise RuntimeError("boom")
        assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0

    def test_constraint_errors_propagate(self, repo):
        repo.upsert_sync_state("a.md", "b.md", "h1", "h2")
        with pytest.raises(sqlite3.IntegrityError):
            with transaction(repo._conn) as conn:
                conn.execute(
                    "INSERT INTO sync_state (id, source_file, target_file, source_hash, target_hash, "
                    "last_synced_at) VALUES ('x', 'a.md', 'b.md', '', '', '')"
                )
