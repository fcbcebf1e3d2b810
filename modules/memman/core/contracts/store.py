"""Collaborator contracts consumed by the sync, correction and staleness cores."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol

from memman.core.types import (
    Correction,
    MemoryEntry,
    MemoryScope,
    MemorySource,
    SyncState,
    SyncTarget,
    UsageStats,
)


class MemoryStorePort(Protocol):
    # ---- memory entries ----
    def create_entry(
        self,
        content: str,
        category: str,
        scope: MemoryScope,
        source: MemorySource,
        content_hash: str,
        paths: Optional[List[str]] = None,
        targets: Optional[List[SyncTarget]] = None,
        tags: Optional[List[str]] = None,
        supersedes: Optional[str] = None,
    ) -> MemoryEntry: ...

    def get_entry(self, entry_id: str) -> Optional[MemoryEntry]: ...

    def get_entry_by_hash(self, content_hash: str) -> Optional[MemoryEntry]: ...

    def get_all_entries(
        self,
        category: Optional[str] = None,
        scope_level: Optional[str] = None,
        project: Optional[str] = None,
        min_staleness: Optional[float] = None,
        max_staleness: Optional[float] = None,
    ) -> List[MemoryEntry]: ...

    def update_entry(self, entry_id: str, **updates) -> None: ...

    def delete_entry(self, entry_id: str) -> None: ...

    def increment_use_count(self, entry_id: str, context: Optional[str] = None) -> None: ...

    def get_usage_stats(self, entry_id: str) -> UsageStats: ...

    def search_entries(self, query: str, limit: int = 20) -> List[MemoryEntry]: ...

    def get_entries_by_paths(self, file_paths: Iterable[str]) -> List[MemoryEntry]: ...

    # ---- corrections ----
    def create_correction(
        self,
        incorrect: str,
        correct: str,
        category: str,
        confidence: float,
        source: str,
        content_hash: str,
        paths: Optional[List[str]] = None,
        session_id: Optional[str] = None,
        memory_entry_id: Optional[str] = None,
    ) -> Correction: ...

    def get_correction_by_hash(self, content_hash: str) -> Optional[Correction]: ...

    def get_corrections(
        self,
        source: Optional[str] = None,
        min_confidence: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[Correction]: ...

    def link_correction_to_entry(self, correction_id: str, entry_id: str) -> None: ...

    # ---- sync state ----
    def get_sync_state(self, source_file: str, target_file: str) -> Optional[SyncState]: ...

    def upsert_sync_state(
        self,
        source_file: str,
        target_file: str,
        source_hash: str,
        target_hash: str,
        direction: str,
    ) -> SyncState: ...

    def update_sync_state_hashes(
        self, source_file: str, target_file: str, source_hash: str, target_hash: str
    ) -> None: ...

    # ---- analytics ----
    def get_category_distribution(self) -> Dict[str, int]: ...

    def get_entry_count(self) -> int: ...


class FileExistenceOracle(Protocol):
    """Reports, per path or glob, whether any tracked file matches."""

    def __call__(self, patterns: Iterable[str]) -> Dict[str, bool]: ...


class ExtractionOracle(Protocol):
    """Turns a transcript into raw correction dicts.

    Implementations may raise; callers treat any failure as "no results".
    """

    def __call__(self, transcript: str, model: str) -> List[dict]: ...
