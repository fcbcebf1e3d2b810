"""Health check over the memory store and the instruction documents.

Collects entry counts, staleness bands, sync drift, token budget use and
correction confidence into one ``AuditResult``. Nothing is modified.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from memman.core.contracts.store import FileExistenceOracle, MemoryStorePort
from memman.core.staleness.scorer import DELETE, DEMOTE, FRESH, REVIEW, score_all_entries
from memman.core.sync.engine import get_sync_drift
from memman.core.types import AuditIssue, AuditResult, StalenessResult
from memman.lib.tokens import estimate_tokens

logger = logging.getLogger(__name__)

BANDS = (FRESH, REVIEW, DEMOTE, DELETE)
BUDGET_WARN_PCT = 80
HIGH_CONFIDENCE = 0.7
LOW_CONFIDENCE = 0.5


def staleness_bands(results: List[StalenessResult]) -> Dict[str, int]:
    """Count results per recommendation band."""
    bands = {band: 0 for band in BANDS}
    for r in results:
        bands[r.recommendation] += 1
    return bands


def _read_tokens(path: Optional[Path]) -> int:
    if path is None or not path.exists():
        return 0
    return estimate_tokens(path.read_text(encoding="utf-8"))


def run_audit(config, store: MemoryStorePort, checker: Optional[FileExistenceOracle] = None,
              now: Optional[datetime] = None) -> AuditResult:
    issues: List[AuditIssue] = []

    # Entries and staleness
    categories = store.get_category_distribution()
    results = score_all_entries(store, checker, now, config.staleness.max_age_days,
                                config.staleness.usage_cap)
    stale = sorted(
        (r for r in results if r.score >= config.staleness.stale_threshold),
        key=lambda r: r.score,
        reverse=True,
    )
    bands = staleness_bands(results)
    if bands[DELETE]:
        issues.append(AuditIssue(
            severity="warning",
            message=f"{bands[DELETE]} entries are very stale and should be deleted",
        ))

    # Sync drift
    primary, mirror = config.paths.primary_path, config.paths.mirror_path
    drift: List[Dict[str, object]] = []
    primary_exists = primary is not None and primary.exists()
    mirror_exists = mirror is not None and mirror.exists()
    if primary_exists and mirror_exists:
        report = get_sync_drift(primary, mirror, store)
        drift.append({"primary": str(primary), "mirror": str(mirror), **report})
        if report["drifted"]:
            issues.append(AuditIssue(
                severity="warning",
                message=f"{primary.name} and {mirror.name} are out of sync",
                file=str(mirror),
            ))
    elif not primary_exists and not mirror_exists:
        issues.append(AuditIssue(severity="info", message="Neither primary nor mirror document exists"))
    elif not mirror_exists:
        issues.append(AuditIssue(
            severity="info",
            message="No mirror document found; run sync to create it",
            file=str(mirror) if mirror else None,
        ))
    else:
        issues.append(AuditIssue(
            severity="info",
            message="No primary document found",
            file=str(primary) if primary else None,
        ))

    # Token budget counts the always-loaded primary document only
    used = _read_tokens(primary)
    limit = config.optimize.token_budget
    pct = round(used / limit * 100) if limit else 0
    if pct > BUDGET_WARN_PCT:
        issues.append(AuditIssue(
            severity="warning",
            message=f"Token budget at {pct}%; consider running optimize",
            file=str(primary),
        ))

    corrections = store.get_corrections()
    correction_counts = {
        "total": len(corrections),
        "high_confidence": sum(1 for c in corrections if c.confidence >= HIGH_CONFIDENCE),
        "low_confidence": sum(1 for c in corrections if c.confidence < LOW_CONFIDENCE),
    }

    result = AuditResult(
        total_entries=len(results),
        stale_entries=stale,
        staleness_bands=bands,
        sync_drift=drift,
        categories=categories,
        token_budget={
            "used": used,
            "limit": limit,
            "percent": pct,
            "mirror": _read_tokens(mirror),
        },
        corrections=correction_counts,
        issues=issues,
    )
    logger.debug("Audit: %s entries, %s stale, %s issues", result.total_entries, len(stale), len(issues))
    return result
