"""Core data model shared by parsers, optimizer, sync and corrections."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

# ═══════════════════════════════════════════════════════════════════════
# Enumerations (closed string sets)
# ═══════════════════════════════════════════════════════════════════════

MEMORY_CATEGORIES = (
    "coding_standard",
    "architecture",
    "command",
    "convention",
    "debugging",
    "preference",
    "workflow",
    "dependency",
    "security",
    "testing",
    "correction",
)

SCOPE_LEVELS = ("global", "project", "directory")

# Document / provenance types
PRIMARY = "claude_md"
MIRROR = "agents_md"
RULE = "claude_rule"
AUTO_MEMORY = "auto_memory"
MANUAL = "manual"
CORRECTION_CAPTURE = "correction_capture"
SOURCE_TYPES = (PRIMARY, MIRROR, RULE, AUTO_MEMORY, MANUAL, CORRECTION_CAPTURE)

# Correction source channels
CORRECTION_SOURCES = ("hook_pattern", "hook_llm", "manual", "mcp")

# Sync directions
BIDIRECTIONAL = "bidirectional"
PRIMARY_TO_MIRROR = "claude-to-agents"
MIRROR_TO_PRIMARY = "agents-to-claude"
SYNC_DIRECTIONS = (BIDIRECTIONAL, PRIMARY_TO_MIRROR, MIRROR_TO_PRIMARY)


def validate_category(value: object) -> str:
    """Return value if it is a known category, else 'correction'."""
    return value if value in MEMORY_CATEGORIES else "correction"


# ═══════════════════════════════════════════════════════════════════════
# Parsed documents
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Entry:
    """One addressable unit of instruction text (a bullet or a section)."""
    content: str
    heading: Optional[str] = None
    level: int = 0
    tags: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)


@dataclass
class Section:
    heading: Optional[str]
    level: int
    content: str
    entries: List[Entry] = field(default_factory=list)
    managed: bool = False
    managed_id: Optional[str] = None


@dataclass
class Document:
    sections: List[Section]
    raw: str
    file_path: str
    type: str

    def user_sections(self) -> List[Section]:
        """Sections authored by the user (managed regions excluded)."""
        return [s for s in self.sections if not s.managed]

    def managed_sections(self, managed_id: Optional[str] = None) -> List[Section]:
        return [
            s for s in self.sections
            if s.managed and (managed_id is None or s.managed_id == managed_id)
        ]


# ═══════════════════════════════════════════════════════════════════════
# Persisted records
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class MemoryScope:
    level: str = "project"
    project: Optional[str] = None
    directory: Optional[str] = None


@dataclass
class MemorySource:
    type: str
    file_path: str = ""


@dataclass
class SyncTarget:
    type: str
    file_path: str
    hash_at_sync: str


@dataclass
class MemoryEntry:
    id: str
    content: str
    category: str
    scope: MemoryScope
    source: MemorySource
    content_hash: str
    paths: List[str] = field(default_factory=list)
    targets: List[SyncTarget] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    use_count: int = 0
    staleness_score: float = 0.0
    supersedes: Optional[str] = None


@dataclass
class Correction:
    id: str
    incorrect: str
    correct: str
    category: str
    confidence: float
    source: str
    content_hash: str = ""
    paths: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    created_at: str = ""
    memory_entry_id: Optional[str] = None


@dataclass
class SyncState:
    id: str
    source_file: str
    target_file: str
    source_hash: str
    target_hash: str
    last_synced_at: str
    direction: str = BIDIRECTIONAL


@dataclass
class UsageStats:
    total: int = 0
    last_30_days: int = 0
    last_access: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════
# Operation results
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SyncConflict:
    entry_id: str
    source_content: str
    target_content: str
    resolution: Optional[str] = None  # "source" | "target" | "manual"


@dataclass
class SyncResult:
    entries_added: int = 0
    entries_updated: int = 0
    entries_removed: int = 0
    conflicts: List[SyncConflict] = field(default_factory=list)
    dry_run: bool = False
    files_written: List[str] = field(default_factory=list)


@dataclass
class OptimizedFile:
    path: str
    token_count: int


@dataclass
class OptimizeResult:
    original_tokens: int
    optimized_tokens: int
    rules_created: int
    always_loaded_entries: int
    path_scoped_entries: int
    files: List[OptimizedFile] = field(default_factory=list)


@dataclass
class StalenessFactors:
    age: float
    usage: float
    contradiction: float


@dataclass
class StalenessResult:
    entry: MemoryEntry
    score: float
    factors: StalenessFactors
    recommendation: str  # fresh | review | demote | delete


@dataclass
class AuditIssue:
    severity: str  # info | warning | error
    message: str
    file: Optional[str] = None
    entry_id: Optional[str] = None


@dataclass
class AuditResult:
    total_entries: int
    stale_entries: List[StalenessResult]
    staleness_bands: Dict[str, int]
    sync_drift: List[Dict[str, object]]
    categories: Dict[str, int]
    token_budget: Dict[str, int]
    corrections: Dict[str, int]
    issues: List[AuditIssue] = field(default_factory=list)
