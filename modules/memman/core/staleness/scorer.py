"""Staleness scoring for persisted memory entries.

    staleness = age * (1 - usage) * contradiction, clamped to [0, 1]

- age: days since last update over 365, capped at 1
- usage: 0 when never used, else 0.7 * recent share + 0.3 * min(1, uses / 50)
- contradiction: 2.0 when every declared path is gone, then x1.5 for
  "deprecated" and x1.3 for "temporary"/"todo"/"fixme" (multiplicative)

Bands: [0, 0.3) fresh, [0.3, 0.6) review, [0.6, 0.8) demote, [0.8, 1] delete.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from memman.core.contracts.store import FileExistenceOracle, MemoryStorePort
from memman.core.types import MemoryEntry, StalenessFactors, StalenessResult, UsageStats

logger = logging.getLogger(__name__)

MAX_AGE_DAYS = 365
USAGE_CAP = 50
RECENT_WEIGHT = 0.7
VOLUME_WEIGHT = 0.3
MISSING_PATHS_FACTOR = 2.0
DEPRECATED_FACTOR = 1.5
TEMPORARY_FACTOR = 1.3
STALE_THRESHOLD = 0.5

FRESH, REVIEW, DEMOTE, DELETE = "fresh", "review", "demote", "delete"


def parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def age_factor(updated_at: str, now: Optional[datetime] = None, max_age_days: int = MAX_AGE_DAYS) -> float:
    updated = parse_timestamp(updated_at)
    if updated is None:
        logger.debug("Unparseable timestamp %r scored as new", updated_at)
        return 0.0
    now = now or datetime.now(timezone.utc)
    days = (now - updated).total_seconds() / 86400
    return max(0.0, min(1.0, days / max_age_days))


def usage_factor(stats: UsageStats, usage_cap: int = USAGE_CAP) -> float:
    if stats.total <= 0:
        return 0.0
    recent = min(1.0, max(0, stats.last_30_days) / stats.total)
    volume = min(1.0, stats.total / usage_cap)
    return RECENT_WEIGHT * recent + VOLUME_WEIGHT * volume


def contradiction_factor(entry: MemoryEntry, checker: Optional[FileExistenceOracle] = None) -> float:
    factor = 1.0
    if entry.paths and checker is not None:
        existing = checker(entry.paths)
        if not any(existing.get(p, True) for p in entry.paths):
            factor = MISSING_PATHS_FACTOR

    content = entry.content.lower()
    if "deprecated" in content:
        factor *= DEPRECATED_FACTOR
    if "temporary" in content or "todo" in content or "fixme" in content:
        factor *= TEMPORARY_FACTOR
    return factor


def recommendation(score: float) -> str:
    if score < 0.3:
        return FRESH
    if score < 0.6:
        return REVIEW
    if score < 0.8:
        return DEMOTE
    return DELETE


def score_entry(entry: MemoryEntry, stats: UsageStats, checker: Optional[FileExistenceOracle] = None,
                now: Optional[datetime] = None, max_age_days: int = MAX_AGE_DAYS,
                usage_cap: int = USAGE_CAP) -> StalenessResult:
    factors = StalenessFactors(
        age=age_factor(entry.updated_at or entry.created_at, now, max_age_days),
        usage=usage_factor(stats, usage_cap),
        contradiction=contradiction_factor(entry, checker),
    )
    raw = factors.age * (1 - factors.usage) * factors.contradiction
    score = max(0.0, min(1.0, raw))
    return StalenessResult(entry=entry, score=score, factors=factors, recommendation=recommendation(score))


def score_all_entries(store: MemoryStorePort, checker: Optional[FileExistenceOracle] = None,
                      now: Optional[datetime] = None, max_age_days: int = MAX_AGE_DAYS,
                      usage_cap: int = USAGE_CAP) -> List[StalenessResult]:
    return [
        score_entry(entry, store.get_usage_stats(entry.id), checker, now, max_age_days, usage_cap)
        for entry in store.get_all_entries()
    ]


def get_stale_entries(store: MemoryStorePort, threshold: float = STALE_THRESHOLD,
                      checker: Optional[FileExistenceOracle] = None,
                      now: Optional[datetime] = None, max_age_days: int = MAX_AGE_DAYS,
                      usage_cap: int = USAGE_CAP) -> List[StalenessResult]:
    """Entries scoring at or above threshold, stalest first."""
    results = [
        r for r in score_all_entries(store, checker, now, max_age_days, usage_cap)
        if r.score >= threshold
    ]
    return sorted(results, key=lambda r: r.score, reverse=True)


def rescore_entries(store: MemoryStorePort, checker: Optional[FileExistenceOracle] = None,
                    now: Optional[datetime] = None, max_age_days: int = MAX_AGE_DAYS,
                    usage_cap: int = USAGE_CAP) -> List[StalenessResult]:
    """Score every entry and persist the new scores."""
    results = score_all_entries(store, checker, now, max_age_days, usage_cap)
    for result in results:
        store.update_entry(result.entry.id, staleness_score=result.score)
    logger.info("Rescored %s entries", len(results))
    return results


def rescore_project(config, store: MemoryStorePort, checker: Optional[FileExistenceOracle] = None,
                    now: Optional[datetime] = None) -> List[StalenessResult]:
    """``rescore_entries`` with the age and usage limits of a MemmanConfig."""
    return rescore_entries(store, checker, now, config.staleness.max_age_days, config.staleness.usage_cap)
