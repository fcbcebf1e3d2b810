"""Tests for staleness scoring."""

from datetime import datetime, timedelta, timezone

import pytest

from memman.core.staleness.scorer import (
    DELETE,
    DEMOTE,
    FRESH,
    REVIEW,
    age_factor,
    contradiction_factor,
    get_stale_entries,
    parse_timestamp,
    recommendation,
    rescore_entries,
    rescore_project,
    score_all_entries,
    score_entry,
    usage_factor,
)
from memman.core.types import MANUAL, MemoryEntry, MemoryScope, MemorySource, UsageStats
from memman.lib.hashing import content_hash

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _ago(days):
    return (NOW - timedelta(days=days)).isoformat()


def _entry(content="- Use pnpm", paths=None, updated_at=None):
    return MemoryEntry(
        id="e1",
        content=content,
        category="convention",
        scope=MemoryScope(),
        source=MemorySource(type=MANUAL),
        content_hash=content_hash(content),
        paths=paths or [],
        created_at=updated_at or _ago(0),
        updated_at=updated_at or _ago(0),
    )


def _checker(existing):
    return lambda patterns: {p: existing.get(p, False) for p in patterns}


class TestAgeFactor:

    def test_fresh(self):
        assert age_factor(_ago(0), NOW) == 0.0

    def test_half_year(self):
        assert abs(age_factor(_ago(182.5), NOW) - 0.5) < 1e-9

    def test_capped(self):
        assert age_factor(_ago(5000), NOW) == 1.0

    def test_future_timestamp_is_zero(self):
        assert age_factor(_ago(-10), NOW) == 0.0

    def test_unparseable_is_new(self):
        assert age_factor("not a date", NOW) == 0.0

    def test_zulu_and_naive_timestamps(self):
        assert parse_timestamp("2026-01-01T00:00:00Z") == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp("2026-01-01T00:00:00").tzinfo is not None


class TestUsageFactor:

    def test_never_used(self):
        assert usage_factor(UsageStats()) == 0.0

    def test_heavy_recent_use_caps_at_one(self):
        assert usage_factor(UsageStats(total=100, last_30_days=100)) == pytest.approx(1.0)

    def test_mixed(self):
        assert usage_factor(UsageStats(total=10, last_30_days=5)) == pytest.approx(0.41)

    def test_recent_share_clamped(self):
        assert usage_factor(UsageStats(total=1, last_30_days=9)) == pytest.approx(0.7 + 0.3 / 50)


class TestContradictionFactor:

    def test_no_checker(self):
        assert contradiction_factor(_entry(paths=["gone/**"])) == 1.0

    def test_all_paths_missing(self):
        assert contradiction_factor(_entry(paths=["gone/**"]), _checker({})) == 2.0

    def test_some_paths_present(self):
        entry = _entry(paths=["gone/**", "src/**"])
        assert contradiction_factor(entry, _checker({"src/**": True})) == 1.0

    def test_unreported_paths_count_as_existing(self):
        assert contradiction_factor(_entry(paths=["gone/**"]), lambda patterns: {}) == 1.0

    def test_keyword_multipliers(self):
        entry = _entry(content="- deprecated: TODO remove", paths=["gone/**"])
        assert contradiction_factor(entry, _checker({})) == pytest.approx(2.0 * 1.5 * 1.3)


class TestScoreEntry:

    def test_old_unused_entry_is_deleted(self):
        result = score_entry(_entry(updated_at=_ago(400)), UsageStats(), now=NOW)
        assert result.score == 1.0
        assert result.recommendation == DELETE
        assert result.factors.age == 1.0

    def test_score_is_clamped(self):
        entry = _entry(content="- deprecated fixme", paths=["gone/**"], updated_at=_ago(10_000))
        result = score_entry(entry, UsageStats(), _checker({}), now=NOW)
        assert result.score == 1.0

    def test_heavy_use_zeroes_score(self):
        result = score_entry(_entry(updated_at=_ago(10_000)), UsageStats(total=10_000, last_30_days=10_000), now=NOW)
        assert 0.0 <= result.score < 1e-9
        assert result.recommendation == FRESH

    @pytest.mark.parametrize("score,expected", [
        (0.0, FRESH), (0.29, FRESH), (0.3, REVIEW), (0.59, REVIEW),
        (0.6, DEMOTE), (0.79, DEMOTE), (0.8, DELETE), (1.0, DELETE),
    ])
    def test_recommendation_bands(self, score, expected):
        assert recommendation(score) == expected


class TestBatchScoring:

    def _seed(self, repo):
        for content in ("- Use pnpm", "- Prefer ruff"):
            repo.create_entry(content=content, category="convention", scope=MemoryScope(),
                              source=MemorySource(type=MANUAL), content_hash=content_hash(content))

    def test_score_all(self, repo):
        self._seed(repo)
        results = score_all_entries(repo)
        assert len(results) == 2
        assert all(r.score < 0.01 for r in results)

    def test_stale_entries_sorted(self, repo):
        self._seed(repo)
        used = repo.get_all_entries()[0]
        repo.increment_use_count(used.id)
        later = datetime.now(timezone.utc) + timedelta(days=400)

        stale = get_stale_entries(repo, threshold=0.0, now=later)

        assert [r.entry.content for r in stale] == ["- Prefer ruff", "- Use pnpm"]
        assert stale[0].score >= stale[1].score

    def test_rescore_persists_without_touching_age(self, repo):
        self._seed(repo)
        before = {e.id: e.updated_at for e in repo.get_all_entries()}
        later = datetime.now(timezone.utc) + timedelta(days=400)

        rescore_entries(repo, now=later)

        for entry in repo.get_all_entries():
            assert entry.staleness_score == 1.0
            assert entry.updated_at == before[entry.id]
        assert len(repo.get_all_entries(min_staleness=0.9)) == 2

    def test_max_age_days_changes_scores(self, repo):
        self._seed(repo)
        later = datetime.now(timezone.utc) + timedelta(days=100)

        default = get_stale_entries(repo, threshold=0.5, now=later)
        short = get_stale_entries(repo, threshold=0.5, now=later, max_age_days=30)

        assert default == []
        assert [r.score for r in short] == [1.0, 1.0]

    def test_usage_cap_changes_scores(self, repo):
        self._seed(repo)
        for entry in repo.get_all_entries():
            repo.increment_use_count(entry.id)
        later = datetime.now(timezone.utc) + timedelta(days=400)

        default = rescore_entries(repo, now=later)
        capped = rescore_entries(repo, now=later, usage_cap=1)

        assert all(r.score > 0.2 for r in default)
        assert all(r.score < 1e-9 for r in capped)

    def test_rescore_project_uses_config(self, config, repo):
        self._seed(repo)
        later = datetime.now(timezone.utc) + timedelta(days=100)

        rescore_project(config, repo, now=later)
        assert all(e.staleness_score < 0.3 for e in repo.get_all_entries())

        config.staleness.max_age_days = 50
        rescore_project(config, repo, now=later)
        assert all(e.staleness_score == 1.0 for e in repo.get_all_entries())
