"""Primary <-> mirror document sync.

One run:

1. Parse both documents and diff their user-authored entries.
2. Bidirectional runs with prior state report a conflict for every
   modified pair when both files changed since the last sync.
3. Dry runs stop here and report bucket sizes.
4. Per enabled direction, eligible entries (``added`` outbound,
   ``removed`` inbound) are translated and written into the destination's
   managed region, and recorded as memory entries unless their fingerprint
   is already stored.
5. Whole-file hashes of both documents are recorded as the new sync state.

Running sync twice without intervening edits writes nothing the second time.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Union

from memman.core.contracts.store import MemoryStorePort
from memman.core.parser.markdown_doc import extract_entries
from memman.core.parser.mirror import parse_mirror_file
from memman.core.parser.primary import parse_primary_file
from memman.core.sync.differ import DiffResult, diff_sections
from memman.core.sync.translator import (
    MIRROR_ONLY,
    PRIMARY_ONLY,
    categorize_for_sync,
    should_sync,
    translate_to_mirror,
    translate_to_primary,
)
from memman.core.sync.writer import remove_managed_section_from_file, render_entry, write_managed_section
from memman.core.types import (
    BIDIRECTIONAL,
    MIRROR,
    MIRROR_TO_PRIMARY,
    PRIMARY,
    PRIMARY_TO_MIRROR,
    Document,
    Entry,
    MemoryScope,
    MemorySource,
    SyncConflict,
    SyncResult,
    SyncTarget,
)
from memman.lib.hashing import content_hash, hash_file

logger = logging.getLogger(__name__)

MANAGED_ID = "synced"
PRIMARY_HEADING = "Synced from CLAUDE.md"
MIRROR_HEADING = "Synced from AGENTS.md"


def infer_category(entry: Entry) -> str:
    """Memory category for a synced entry, from its tags then its wording."""
    lower = entry.content.lower()
    tags = entry.tags
    if "testing" in tags:
        return "testing"
    if "security" in tags:
        return "security"
    if "database" in tags or "api" in tags:
        return "architecture"
    if "devops" in tags:
        return "workflow"
    if "never" in lower or "always" in lower or "must" in lower:
        return "coding_standard"
    if "prefer" in lower or "use " in lower:
        return "convention"
    if "run " in lower or "command" in lower:
        return "command"
    if "install" in lower or "package" in lower:
        return "dependency"
    return "convention"


def _eligible(entries: Sequence[Entry], source_only: str, translate: Callable[[Entry], Entry],
              min_length: int) -> List[Entry]:
    # Entries tied to the source tool's own features stay where they are
    return [
        translate(e) for e in entries
        if should_sync(e, min_length) and categorize_for_sync(e) != source_only
    ]


def _rendered_fingerprints(entry: Entry) -> Set[str]:
    """Fingerprints the entry has once written to a region and parsed back."""
    return {content_hash(e.content) for e in extract_entries(render_entry(entry.content), 0)}


def _push(entries: List[Entry], dest_doc: Document, dest_path: str, managed_id: str,
          heading: str, result: SyncResult) -> None:
    """Write entries into the destination region, counting the ones new there."""
    existing = {
        content_hash(e.content)
        for s in dest_doc.managed_sections(managed_id)
        for e in s.entries
    }
    # compared in written form: non-bullet entries gain a "- " prefix on disk
    new_entries = [e for e in entries if not _rendered_fingerprints(e) <= existing]

    if entries:
        changed = write_managed_section(dest_path, managed_id, heading, entries)
    else:
        changed = remove_managed_section_from_file(dest_path, managed_id)
    if changed:
        result.files_written.append(dest_path)
    result.entries_added += len(new_entries)


def _persist(entries: Sequence[Entry], store: MemoryStorePort, source_type: str, source_path: str,
             target_type: str, target_path: str, project: Optional[str]) -> int:
    created = 0
    for entry in entries:
        fingerprint = content_hash(entry.content)
        if store.get_entry_by_hash(fingerprint) is not None:
            continue
        store.create_entry(
            content=entry.content,
            category=infer_category(entry),
            scope=MemoryScope(level="project", project=project),
            source=MemorySource(type=source_type, file_path=source_path),
            content_hash=fingerprint,
            paths=list(entry.paths),
            targets=[SyncTarget(type=target_type, file_path=target_path, hash_at_sync=fingerprint)],
            tags=list(entry.tags),
        )
        created += 1
    return created


def detect_conflicts(diff: DiffResult, store: MemoryStorePort, primary_path: str,
                     mirror_path: str) -> List[SyncConflict]:
    state = store.get_sync_state(primary_path, mirror_path)
    if state is None:
        return []
    primary_changed = hash_file(primary_path) != state.source_hash
    mirror_changed = hash_file(mirror_path) != state.target_hash
    if not (primary_changed and mirror_changed):
        return []
    return [
        SyncConflict(
            entry_id=content_hash(mod.source.content),
            source_content=mod.source.content,
            target_content=mod.target.content,
        )
        for mod in diff.modified
    ]


def sync(primary_path: Union[str, Path], mirror_path: Union[str, Path], store: MemoryStorePort,
         direction: str = BIDIRECTIONAL, dry_run: bool = False, project_root: Optional[str] = None,
         managed_id: str = MANAGED_ID, min_entry_length: int = 10) -> SyncResult:
    """Reconcile the two documents. Persistence errors propagate."""
    primary_path, mirror_path = str(primary_path), str(mirror_path)
    primary_doc = parse_primary_file(primary_path)
    mirror_doc = parse_mirror_file(mirror_path)
    diff = diff_sections(primary_doc.user_sections(), mirror_doc.user_sections())

    result = SyncResult(dry_run=dry_run)
    if direction == BIDIRECTIONAL:
        result.conflicts = detect_conflicts(diff, store, primary_path, mirror_path)
        for conflict in result.conflicts:
            logger.warning(
                "Sync conflict on %s: both %s and %s changed since last sync",
                conflict.entry_id, primary_path, mirror_path,
            )

    if dry_run:
        result.entries_added = len(diff.added)
        result.entries_removed = len(diff.removed)
        result.entries_updated = len(diff.modified)
        return result

    created = 0
    if direction in (PRIMARY_TO_MIRROR, BIDIRECTIONAL):
        outbound = _eligible(diff.added, PRIMARY_ONLY, translate_to_mirror, min_entry_length)
        _push(outbound, mirror_doc, mirror_path, managed_id, PRIMARY_HEADING, result)
        created += _persist(outbound, store, PRIMARY, primary_path, MIRROR, mirror_path, project_root)

    if direction in (MIRROR_TO_PRIMARY, BIDIRECTIONAL):
        inbound = _eligible(diff.removed, MIRROR_ONLY, translate_to_primary, min_entry_length)
        _push(inbound, primary_doc, primary_path, managed_id, MIRROR_HEADING, result)
        created += _persist(inbound, store, MIRROR, mirror_path, PRIMARY, primary_path, project_root)

    conflicted = {c.entry_id for c in result.conflicts}
    result.entries_updated = sum(
        1 for mod in diff.modified if content_hash(mod.source.content) not in conflicted
    )

    primary_hash = hash_file(primary_path)
    mirror_hash = hash_file(mirror_path)
    if store.get_sync_state(primary_path, mirror_path) is not None:
        store.update_sync_state_hashes(primary_path, mirror_path, primary_hash, mirror_hash)
    else:
        store.upsert_sync_state(primary_path, mirror_path, primary_hash, mirror_hash, direction)

    logger.info(
        "Synced %s <-> %s (%s): %s added, %s updated, %s conflicts, %s new memory entries",
        primary_path, mirror_path, direction, result.entries_added,
        result.entries_updated, len(result.conflicts), created,
    )
    return result


def sync_project(config, store: MemoryStorePort, dry_run: bool = False,
                 direction: Optional[str] = None) -> SyncResult:
    """Run ``sync`` with paths and options taken from a MemmanConfig."""
    return sync(
        config.paths.primary_path,
        config.paths.mirror_path,
        store,
        direction=direction or config.sync.direction,
        dry_run=dry_run,
        project_root=str(config.paths.project_root),
        managed_id=config.sync.managed_id,
        min_entry_length=config.sync.min_entry_length,
    )


def get_sync_drift(primary_path: Union[str, Path], mirror_path: Union[str, Path],
                   store: MemoryStorePort) -> Dict[str, bool]:
    """Whether either document changed since the recorded sync."""
    primary_path, mirror_path = str(primary_path), str(mirror_path)
    state = store.get_sync_state(primary_path, mirror_path)
    if state is None:
        return {"drifted": True, "primary_changed": True, "mirror_changed": True}
    primary_changed = hash_file(primary_path) != state.source_hash
    mirror_changed = hash_file(mirror_path) != state.target_hash
    return {
        "drifted": primary_changed or mirror_changed,
        "primary_changed": primary_changed,
        "mirror_changed": mirror_changed,
    }
