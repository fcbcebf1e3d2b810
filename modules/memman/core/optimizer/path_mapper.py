"""Project-structure scan used to suggest rule globs for a codebase."""

import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Union

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({
    "node_modules", ".git", "vendor", "dist", "build", ".next", ".nuxt",
    "__pycache__", ".cache", "coverage", ".idea", ".vscode",
})
TEST_DIRS = frozenset({"tests", "test", "__tests__", "spec"})
FRONTEND_DIRS = frozenset({"components", "views", "pages", "layouts", "assets", "public"})
BACKEND_DIRS = frozenset({"controllers", "services", "middleware", "routes", "api"})
FRONTEND_EXTS = (".vue", ".tsx", ".jsx", ".css", ".scss")


@dataclass
class ProjectStructure:
    directories: List[str] = field(default_factory=list)
    file_extensions: Counter = field(default_factory=Counter)
    has_tests: bool = False
    test_patterns: List[str] = field(default_factory=list)
    has_frontend: bool = False
    frontend_patterns: List[str] = field(default_factory=list)
    has_backend: bool = False
    backend_patterns: List[str] = field(default_factory=list)
    has_config: bool = False
    has_docker: bool = False
    has_ci: bool = False


def _walk(directory: Path, root: Path, structure: ProjectStructure, depth: int, max_depth: int) -> None:
    if depth > max_depth:
        return
    try:
        names = sorted(os.listdir(directory))
    except OSError as e:
        logger.debug("Skipping unreadable directory %s: %s", directory, e)
        return

    for name in names:
        if name in SKIP_DIRS:
            continue
        full = directory / name
        rel = full.relative_to(root).as_posix()
        lower = name.lower()

        if full.is_dir():
            structure.directories.append(rel)
            if lower in TEST_DIRS:
                structure.has_tests = True
                structure.test_patterns.append(f"{rel}/**")
            if lower in FRONTEND_DIRS:
                structure.has_frontend = True
                structure.frontend_patterns.append(f"{rel}/**")
            if lower in BACKEND_DIRS:
                structure.has_backend = True
                structure.backend_patterns.append(f"{rel}/**")
            if lower in ("config", "configuration"):
                structure.has_config = True
            if lower == ".github":
                structure.has_ci = True
            _walk(full, root, structure, depth + 1, max_depth)
            continue

        ext = full.suffix
        if ext:
            structure.file_extensions[ext] += 1
        if ".test." in name or ".spec." in name:
            structure.has_tests = True
        if name == "Dockerfile" or name.startswith("docker-compose"):
            structure.has_docker = True
        if name.endswith((".vue", ".tsx", ".jsx")):
            structure.has_frontend = True


def analyze_project_structure(project_root: Union[str, Path], max_depth: int = 4) -> ProjectStructure:
    """Walk the project (skipping vendor, build and cache dirs) and record markers."""
    root = Path(project_root)
    structure = ProjectStructure()
    _walk(root, root, structure, 0, max_depth)
    return structure


def suggest_rule_paths(structure: ProjectStructure) -> Dict[str, List[str]]:
    """Map detected project features to rule name -> glob list."""
    suggestions: Dict[str, List[str]] = {}

    if structure.has_tests and structure.test_patterns:
        suggestions["testing"] = [*structure.test_patterns, "**/*.test.*", "**/*.spec.*"]

    if structure.has_frontend and structure.frontend_patterns:
        exts = [f"**/*{ext}" for ext in FRONTEND_EXTS if structure.file_extensions.get(ext)]
        suggestions["frontend"] = [*structure.frontend_patterns, *exts]

    if structure.has_backend and structure.backend_patterns:
        suggestions["backend"] = list(structure.backend_patterns)

    if structure.has_docker:
        suggestions["docker"] = ["Dockerfile", "docker-compose.*", ".dockerignore"]

    if structure.has_ci:
        suggestions["ci"] = [".github/**"]

    return suggestions
