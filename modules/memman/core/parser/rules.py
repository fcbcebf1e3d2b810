"""Per-path rule files (.claude/rules/*.md).

A rule file is an optional YAML frontmatter block with a ``paths:`` list of
globs, followed by a markdown body::

    ---
    paths:
      - "**/*.vue"
      - src/components/**
    ---

    - Use the composition API

A rule without paths is unconditional (always loaded by the consumer).
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import yaml

from memman.core.parser.markdown_doc import parse_markdown
from memman.core.parser.primary import PRIMARY_TAG_RULES
from memman.core.types import RULE, Document

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"^---\n(.*?)\n---\n?", re.DOTALL)
_LIST_ITEM_RE = re.compile(r"^\s+-\s+(.+)$")
# Leading characters that YAML would read as syntax rather than a plain scalar
_YAML_INDICATORS = set("*&!|>'\"%@`#,[]{}?:-")


@dataclass
class RuleFile:
    name: str
    paths: List[str]
    raw: str
    body: str
    frontmatter: Dict[str, Any] = field(default_factory=dict)
    file_path: str = ""

    @property
    def is_conditional(self) -> bool:
        return bool(self.paths)


def _scan_paths(block: str) -> List[str]:
    """Line-based ``paths:`` reader for frontmatter YAML cannot load."""
    paths: List[str] = []
    in_paths = False
    for line in block.split("\n"):
        if line.startswith("paths:"):
            in_paths = True
            continue
        if in_paths:
            m = _LIST_ITEM_RE.match(line)
            if m:
                paths.append(m.group(1).strip().strip("'\""))
            elif line.strip():
                in_paths = False
    return paths


def parse_frontmatter(text: str):
    """Split text into (frontmatter dict, paths, body)."""
    m = FRONTMATTER_RE.match(text)
    if not m:
        return {}, [], text
    block = m.group(1)
    body = text[m.end():]
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        logger.debug("Invalid rule frontmatter, scanning paths by line: %s", e)
        return {}, _scan_paths(block), body

    if not isinstance(data, dict):
        return {}, [], body
    raw_paths = data.get("paths") or []
    if isinstance(raw_paths, str):
        raw_paths = [raw_paths]
    if not isinstance(raw_paths, list):
        raw_paths = []
    return data, [str(p) for p in raw_paths if p is not None and str(p).strip()], body


def parse_rule_file(file_path: Union[str, Path]) -> RuleFile:
    p = Path(file_path)
    raw = p.read_text(encoding="utf-8")
    frontmatter, paths, body = parse_frontmatter(raw)
    return RuleFile(
        name=p.stem,
        paths=paths,
        raw=raw,
        body=body,
        frontmatter=frontmatter,
        file_path=str(p),
    )


def parse_rules_dir(rules_dir: Union[str, Path]) -> List[RuleFile]:
    """Every *.md rule in the directory, in name order. Missing dir => []."""
    d = Path(rules_dir)
    if not d.is_dir():
        return []
    return [parse_rule_file(p) for p in sorted(d.glob("*.md"))]


def _yaml_item(value: str) -> str:
    if value and (value[0] in _YAML_INDICATORS or ": " in value or " #" in value):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return value


def generate_rule_file(name: str, paths: Sequence[str], body: str) -> str:
    """Render a rule file; ``name`` is the file stem and is not embedded."""
    content = body.strip() + "\n"
    if not paths:
        return content
    lines = ["---", "paths:"]
    lines.extend(f"  - {_yaml_item(p)}" for p in paths)
    lines.append("---")
    return "\n".join(lines) + "\n\n" + content


def rule_file_to_document(rule: RuleFile) -> Document:
    return parse_markdown(rule.body, rule.file_path or f"{rule.name}.md", RULE,
                          PRIMARY_TAG_RULES, infer_paths=True)
