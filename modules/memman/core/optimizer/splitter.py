"""Split planning and execution for the primary document.

``plan_split`` groups analyzed entries into an always-loaded section, named
rule buckets (path-scoped or unconditional) and low-priority topic notes.
``execute_split`` writes the plan out; it overwrites the primary document
with the always-loaded content, so it is only run on explicit request.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from memman.core.optimizer.analyzer import (
    ALWAYS_LOAD,
    DOMAIN_SPECIFIC,
    PATH_SCOPED,
    RARE,
    RARE_LENGTH,
    AnalyzedEntry,
    analyze_entries,
)
from memman.core.parser.primary import parse_primary_file
from memman.core.parser.rules import generate_rule_file
from memman.core.sync.writer import write_text_atomic
from memman.core.types import Entry, OptimizedFile, OptimizeResult, Section
from memman.lib.tokens import estimate_tokens

logger = logging.getLogger(__name__)

HISTORICAL_TOPIC = "historical"

# Path-set keyword -> rule name, first match wins
RULE_NAME_TABLE: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("test",), "testing"),
    ((".vue",), "vue"),
    ((".tsx", ".jsx"), "react"),
    ((".css", "tailwind"), "styling"),
    (("migration",), "database"),
    (("Controller",), "controllers"),
    (("Model",), "models"),
    (("route",), "routing"),
    ((".github",), "ci"),
    (("docker", "Docker"), "docker"),
    (("config",), "config"),
)


@dataclass
class RulePlan:
    name: str
    paths: List[str]
    entries: List[Entry]
    token_estimate: int


@dataclass
class TopicPlan:
    name: str
    domain: str
    entries: List[Entry]
    token_estimate: int


@dataclass
class SplitPlan:
    always_loaded: List[Section]
    rules: List[RulePlan] = field(default_factory=list)
    topic_files: List[TopicPlan] = field(default_factory=list)
    original_tokens: int = 0
    optimized_always_loaded_tokens: int = 0


def infer_rule_name(paths: Sequence[str], items: Sequence[AnalyzedEntry]) -> str:
    for keywords, name in RULE_NAME_TABLE:
        if any(k in p for p in paths for k in keywords):
            return name
    if items and items[0].domain:
        return items[0].domain
    return "misc"


def _unique_name(name: str, taken: Dict[str, int]) -> str:
    count = taken.get(name, 0) + 1
    taken[name] = count
    return name if count == 1 else f"{name}-{count}"


def _rule(name: str, paths: List[str], items: List[AnalyzedEntry]) -> RulePlan:
    return RulePlan(
        name=name,
        paths=paths,
        entries=[i.entry for i in items],
        token_estimate=sum(i.token_estimate for i in items),
    )


def plan_split(sections: Sequence[Section], rare_length: int = RARE_LENGTH) -> SplitPlan:
    """Group a document's user entries into the loading buckets."""
    analyzed = analyze_entries(sections, rare_length)

    always_loaded: List[Entry] = []
    path_scoped: Dict[str, List[AnalyzedEntry]] = {}
    domain_grouped: Dict[str, List[AnalyzedEntry]] = {}
    rare: List[AnalyzedEntry] = []

    for item in analyzed:
        if item.classification == ALWAYS_LOAD:
            always_loaded.append(item.entry)
        elif item.classification == PATH_SCOPED:
            key = ",".join(sorted(set(item.suggested_paths)))
            path_scoped.setdefault(key, []).append(item)
        elif item.classification == DOMAIN_SPECIFIC:
            domain_grouped.setdefault(item.domain or "general", []).append(item)
        elif item.classification == RARE:
            rare.append(item)

    taken: Dict[str, int] = {}
    rules: List[RulePlan] = []
    for key, items in path_scoped.items():
        paths = key.split(",")
        rules.append(_rule(_unique_name(infer_rule_name(paths, items), taken), paths, items))

    for domain, items in domain_grouped.items():
        paths: List[str] = []
        for item in items:
            paths.extend(p for p in item.suggested_paths if p not in paths)
        # No paths => unconditional rule
        rules.append(_rule(_unique_name(domain, taken), paths, items))

    topic_files: List[TopicPlan] = []
    if rare:
        topic_files.append(TopicPlan(
            name=HISTORICAL_TOPIC,
            domain=HISTORICAL_TOPIC,
            entries=[i.entry for i in rare],
            token_estimate=sum(i.token_estimate for i in rare),
        ))

    always_section = Section(
        heading=None,
        level=0,
        content="\n\n".join(e.content for e in always_loaded),
        entries=always_loaded,
    )
    return SplitPlan(
        always_loaded=[always_section],
        rules=rules,
        topic_files=topic_files,
        original_tokens=sum(i.token_estimate for i in analyzed),
        optimized_always_loaded_tokens=sum(estimate_tokens(e.content) for e in always_loaded),
    )


def _primary_content(plan: SplitPlan) -> str:
    return "\n\n".join(s.content for s in plan.always_loaded).strip()


def _topic_content(topic: TopicPlan) -> str:
    return f"# {topic.name}\n\n" + "\n\n".join(e.content for e in topic.entries) + "\n"


def summarize_plan(plan: SplitPlan, primary_path: Union[str, Path], rules_dir: Union[str, Path],
                   auto_memory_dir: Union[str, Path]) -> OptimizeResult:
    """The OptimizeResult a plan produces, without touching disk."""
    files = [OptimizedFile(path=str(primary_path), token_count=estimate_tokens(_primary_content(plan)))]
    files.extend(
        OptimizedFile(path=str(Path(rules_dir) / f"{r.name}.md"), token_count=r.token_estimate)
        for r in plan.rules
    )
    files.extend(
        OptimizedFile(path=str(Path(auto_memory_dir) / f"{t.name}.md"), token_count=t.token_estimate)
        for t in plan.topic_files
    )
    return OptimizeResult(
        original_tokens=plan.original_tokens,
        optimized_tokens=plan.optimized_always_loaded_tokens,
        rules_created=len(plan.rules),
        always_loaded_entries=sum(len(s.entries) for s in plan.always_loaded),
        path_scoped_entries=sum(len(r.entries) for r in plan.rules),
        files=files,
    )


def execute_split(plan: SplitPlan, primary_path: Union[str, Path], rules_dir: Union[str, Path],
                  auto_memory_dir: Union[str, Path]) -> OptimizeResult:
    """Write the primary document, one rule file per bucket and the topic notes."""
    write_text_atomic(primary_path, _primary_content(plan) + "\n")

    for rule in plan.rules:
        body = "\n\n".join(e.content for e in rule.entries)
        write_text_atomic(Path(rules_dir) / f"{rule.name}.md", generate_rule_file(rule.name, rule.paths, body))

    for topic in plan.topic_files:
        write_text_atomic(Path(auto_memory_dir) / f"{topic.name}.md", _topic_content(topic))

    result = summarize_plan(plan, primary_path, rules_dir, auto_memory_dir)
    logger.info(
        "Optimized %s: %s -> %s always-loaded tokens, %s rules, %s topic files",
        primary_path, result.original_tokens, result.optimized_tokens,
        result.rules_created, len(plan.topic_files),
    )
    return result


def optimize(config, dry_run: bool = False) -> Tuple[SplitPlan, Optional[OptimizeResult]]:
    """Plan (and unless dry-run, execute) the split of the configured primary document.

    Returns (plan, result); result is None when the primary document has no
    user entries to split.
    """
    paths = config.paths
    doc = parse_primary_file(paths.primary_path)
    plan = plan_split(doc.sections, config.optimize.rare_length)
    if not any(s.entries for s in doc.user_sections()):
        logger.info("Nothing to optimize in %s", paths.primary_path)
        return plan, None
    if dry_run:
        return plan, summarize_plan(plan, paths.primary_path, paths.rules_dir, paths.auto_memory_dir)
    return plan, execute_split(plan, paths.primary_path, paths.rules_dir, paths.auto_memory_dir)
