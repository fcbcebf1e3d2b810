"""Entry classification for selective loading.

Each user-authored entry is classified, first match wins:

1. critical rule            -> always_load
2. explicit/inferred paths  -> path_scoped
3. domain vocabulary        -> domain_specific
4. longer than 200 chars    -> rare
5. otherwise                -> always_load

Managed sections are skipped; they are sync output, not source material.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from memman.core.types import Entry, Section
from memman.lib.tokens import estimate_tokens

ALWAYS_LOAD = "always_load"
PATH_SCOPED = "path_scoped"
DOMAIN_SPECIFIC = "domain_specific"
RARE = "rare"

RARE_LENGTH = 200

DOMAIN_VOCABULARY = (
    "testing", "frontend", "backend", "database", "deployment", "ci/cd", "api", "auth",
)

PATH_MAPPINGS: Tuple[Tuple["re.Pattern[str]", Tuple[str, ...]], ...] = (
    (re.compile(r"\btest(?:s|ing)?\b"), ("tests/**", "**/*.test.*", "**/*.spec.*")),
    (re.compile(r"\bvue\b"), ("**/*.vue",)),
    (re.compile(r"\breact\b|\.tsx\b|\.jsx\b"), ("**/*.tsx", "**/*.jsx")),
    (re.compile(r"\bcss\b|\btailwind\b|\bstyle"), ("**/*.css", "**/*.scss", "tailwind.config.*")),
    (re.compile(r"\bmigration"), ("database/migrations/**",)),
    (re.compile(r"\bmodel\b"), ("app/Models/**", "src/models/**")),
    (re.compile(r"\bcontroller\b"), ("app/Http/Controllers/**", "src/controllers/**")),
    (re.compile(r"\bmiddleware\b"), ("app/Http/Middleware/**", "src/middleware/**")),
    (re.compile(r"\broute\b|\brouting\b"), ("routes/**", "src/routes/**")),
    (re.compile(r"\bconfig(?:uration)?\b"), ("config/**", "*.config.*")),
    (re.compile(r"\bdocker\b"), ("Dockerfile", "docker-compose.*")),
    (re.compile(r"\bci\b|\bgithub.actions?\b"), (".github/**",)),
    (re.compile(r"\bpackage\.json\b|\bdependenc"), ("package.json", "composer.json")),
)

DOMAIN_RULES: Tuple[Tuple["re.Pattern[str]", str], ...] = (
    (re.compile(r"\btest"), "testing"),
    (re.compile(r"\bfrontend|\bvue|\breact|\bcss"), "frontend"),
    (re.compile(r"\bbackend|\bapi|\bserver"), "backend"),
    (re.compile(r"\bdatabase|\bsql|\bmigration"), "database"),
    (re.compile(r"\bdeploy|\bci|\bdocker"), "devops"),
    (re.compile(r"\bsecurity|\bauth"), "security"),
)


@dataclass
class AnalyzedEntry:
    entry: Entry
    classification: str
    suggested_paths: List[str] = field(default_factory=list)
    domain: Optional[str] = None
    token_estimate: int = 0


def is_critical_rule(content: str) -> bool:
    """Security and core-convention language that must always load."""
    c = content.lower()
    if "never" in c and ("commit" in c or "push" in c or "expose" in c):
        return True
    if "security" in c and "must" in c:
        return True
    if "always" in c and "must" in c:
        return True
    if "critical" in c or "important" in c:
        return True
    return ".env" in c or "secret" in c or "credential" in c


def is_domain_specific(content: str, heading: str = "") -> bool:
    c, h = content.lower(), heading.lower()
    return any(d in c or d in h for d in DOMAIN_VOCABULARY)


def infer_paths(content: str, heading: str = "") -> List[str]:
    """Heuristic keyword -> glob mapping over content and heading."""
    c, h = content.lower(), heading.lower()
    paths: List[str] = []
    for pattern, globs in PATH_MAPPINGS:
        if pattern.search(c) or pattern.search(h):
            paths.extend(g for g in globs if g not in paths)
    return paths


def infer_domain(content: str, heading: str = "") -> Optional[str]:
    combined = f"{content.lower()} {heading.lower()}"
    for pattern, domain in DOMAIN_RULES:
        if pattern.search(combined):
            return domain
    return None


def classify_entry(entry: Entry, heading: str = "", suggested_paths: Sequence[str] = (),
                   rare_length: int = RARE_LENGTH) -> str:
    if is_critical_rule(entry.content):
        return ALWAYS_LOAD
    if entry.paths or suggested_paths:
        return PATH_SCOPED
    if is_domain_specific(entry.content, heading):
        return DOMAIN_SPECIFIC
    if len(entry.content) > rare_length:
        return RARE
    return ALWAYS_LOAD


def analyze_entry(entry: Entry, heading: str = "", rare_length: int = RARE_LENGTH) -> AnalyzedEntry:
    suggested = list(entry.paths)
    suggested.extend(p for p in infer_paths(entry.content, heading) if p not in suggested)
    return AnalyzedEntry(
        entry=entry,
        classification=classify_entry(entry, heading, suggested, rare_length),
        suggested_paths=suggested,
        domain=infer_domain(entry.content, heading),
        token_estimate=estimate_tokens(entry.content),
    )


def analyze_entries(sections: Iterable[Section], rare_length: int = RARE_LENGTH) -> List[AnalyzedEntry]:
    """Classify every entry of every unmanaged section, in document order."""
    analyzed = []
    for section in sections:
        if section.managed:
            continue
        for entry in section.entries:
            analyzed.append(analyze_entry(entry, section.heading or "", rare_length))
    return analyzed
