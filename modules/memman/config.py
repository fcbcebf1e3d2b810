"""
Configuration loader for memman

Loads settings from <MEMMAN_HOME or ~/.claude/memory-manager>/config.json
and the environment. Falls back to sensible defaults if config is missing
or invalid. ``load_config`` is the only function here that reads ambient
state; everything else in the package receives the resulting object.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from memman.core.types import SYNC_DIRECTIONS, BIDIRECTIONAL

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
DB_FILENAME = "memory.db"
DEFAULT_MODEL = "claude-haiku-4-5-20251001"
PRIMARY_CANDIDATES = ("CLAUDE.md", ".claude/CLAUDE.md")


def _coerce_positive_int(raw: Any, default: int) -> int:
    """Return a positive int; fallback to default for invalid values."""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _coerce_positive_float(raw: Any, default: float) -> float:
    """Return a positive float; fallback to default for invalid values."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _coerce_unit_float(raw: Any, default: float) -> float:
    """Return a float in [0, 1]; fallback to default for invalid values."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if 0.0 <= value <= 1.0 else default


def _coerce_bool(raw: Any, default: bool) -> bool:
    return raw if isinstance(raw, bool) else default


@dataclass
class PathsConfig:
    project_root: Path = field(default_factory=Path.cwd)
    primary_path: Optional[Path] = None
    mirror_path: Optional[Path] = None
    rules_dir: Optional[Path] = None
    auto_memory_dir: Optional[Path] = None
    db_path: Optional[Path] = None


@dataclass
class SyncConfig:
    direction: str = BIDIRECTIONAL
    managed_id: str = "synced"
    min_entry_length: int = 10


@dataclass
class LLMConfig:
    enabled: bool = False
    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = ""
    max_tokens: int = 2048
    timeout: float = 60.0
    head_chars: int = 25000
    tail_chars: int = 25000


@dataclass
class OptimizeConfig:
    token_budget: int = 32768
    rare_length: int = 200


@dataclass
class StalenessConfig:
    max_age_days: int = 365
    usage_cap: int = 50
    stale_threshold: float = 0.5


@dataclass
class CorrectionConfig:
    memory_threshold: float = 0.7
    edit_threshold: float = 0.4


@dataclass
class LoggingConfig:
    level: str = "info"


@dataclass
class MemmanConfig:
    home: Path = field(default_factory=lambda: Path.home() / ".claude" / "memory-manager")
    paths: PathsConfig = field(default_factory=PathsConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    optimize: OptimizeConfig = field(default_factory=OptimizeConfig)
    staleness: StalenessConfig = field(default_factory=StalenessConfig)
    correction: CorrectionConfig = field(default_factory=CorrectionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_file(self) -> Path:
        return self.home / CONFIG_FILENAME


# ═══════════════════════════════════════════════════════════════════════
# Key conversion
# ═══════════════════════════════════════════════════════════════════════

def _camel_to_snake(camel_str: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(camel_str):
        if char.isupper() and i > 0:
            result.append('_')
        result.append(char.lower())
    return ''.join(result)


def _snake_to_camel(snake_str: str) -> str:
    head, *rest = snake_str.split("_")
    return head + "".join(part.title() for part in rest)


def _load_nested(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert camelCase keys to snake_case recursively."""
    result = {}
    for key, value in data.items():
        snake_key = _camel_to_snake(key)
        result[snake_key] = _load_nested(value) if isinstance(value, dict) else value
    return result


def _known_section(name: str, data: Any, cls) -> Dict[str, Any]:
    """Filter a raw section to the dataclass's fields, logging the rest."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("[config] Section %r is not an object; using defaults", name)
        return {}
    known = {f.name for f in fields(cls)}
    for key in data:
        if key not in known:
            logger.warning("[config] Unknown config key ignored: %s.%s", name, key)
    return {k: v for k, v in data.items() if k in known}


# ═══════════════════════════════════════════════════════════════════════
# Path resolution
# ═══════════════════════════════════════════════════════════════════════

def project_slug(project_root: Path) -> str:
    """Per-project directory name: the absolute root with '/' replaced by '-'."""
    return str(project_root).replace("/", "-")


def default_auto_memory_dir(project_root: Path) -> Path:
    return Path.home() / ".claude" / "projects" / project_slug(project_root) / "memory"


def resolve_primary_path(project_root: Path) -> Path:
    for candidate in PRIMARY_CANDIDATES:
        path = project_root / candidate
        if path.exists():
            return path
    return project_root / PRIMARY_CANDIDATES[0]


def _resolve_path(raw: Any, base: Path) -> Optional[Path]:
    if not raw or not isinstance(raw, str):
        return None
    path = Path(raw).expanduser()
    return path if path.is_absolute() else base / path


def _build_paths(data: Dict[str, Any], home: Path, project_root: Optional[Path]) -> PathsConfig:
    root = Path(project_root or data.get("project_root") or Path.cwd()).expanduser().resolve()
    return PathsConfig(
        project_root=root,
        primary_path=_resolve_path(data.get("primary_path"), root) or resolve_primary_path(root),
        mirror_path=_resolve_path(data.get("mirror_path"), root) or root / "AGENTS.md",
        rules_dir=_resolve_path(data.get("rules_dir"), root) or root / ".claude" / "rules",
        auto_memory_dir=_resolve_path(data.get("auto_memory_dir"), root) or default_auto_memory_dir(root),
        db_path=_resolve_path(data.get("db_path"), home) or home / DB_FILENAME,
    )


# ═══════════════════════════════════════════════════════════════════════
# Load / save
# ═══════════════════════════════════════════════════════════════════════

def _read_raw_config(config_file: Path) -> Dict[str, Any]:
    if not config_file.exists():
        return {}
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("[config] Failed to parse %s: %s", config_file, e)
        return {}
    except OSError as e:
        logger.warning("[config] Failed to read %s: %s", config_file, e)
        return {}
    if not isinstance(raw, dict):
        logger.warning("[config] %s does not hold a JSON object; using defaults", config_file)
        return {}
    logger.debug("[config] Loaded from %s", config_file)
    return raw


def load_config(project_root: Optional[Path] = None,
                environ: Optional[Mapping[str, str]] = None) -> MemmanConfig:
    """Build the configuration for one invocation.

    Args:
        project_root: Project directory. Defaults to the configured root, then cwd.
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        A fully resolved MemmanConfig; invalid values are replaced by defaults.
    """
    env = os.environ if environ is None else environ
    home = Path(env.get("MEMMAN_HOME") or Path.home() / ".claude" / "memory-manager").expanduser()
    data = _load_nested(_read_raw_config(home / CONFIG_FILENAME))

    for key in data:
        if key not in {f.name for f in fields(MemmanConfig)} or key == "home":
            logger.warning("[config] Unknown config key ignored: %s", key)

    paths_raw = _known_section("paths", data.get("paths"), PathsConfig)
    sync_raw = _known_section("sync", data.get("sync"), SyncConfig)
    llm_raw = _known_section("llm", data.get("llm"), LLMConfig)
    opt_raw = _known_section("optimize", data.get("optimize"), OptimizeConfig)
    stale_raw = _known_section("staleness", data.get("staleness"), StalenessConfig)
    corr_raw = _known_section("correction", data.get("correction"), CorrectionConfig)
    log_raw = _known_section("logging", data.get("logging"), LoggingConfig)

    direction = sync_raw.get("direction", BIDIRECTIONAL)
    if direction not in SYNC_DIRECTIONS:
        logger.warning("[config] Invalid sync.direction %r; using %s", direction, BIDIRECTIONAL)
        direction = BIDIRECTIONAL
    managed_id = sync_raw.get("managed_id")
    if not isinstance(managed_id, str) or not managed_id or any(c.isspace() for c in managed_id):
        managed_id = SyncConfig.managed_id

    api_key = env.get("ANTHROPIC_API_KEY", "")
    llm = LLMConfig(
        enabled=_coerce_bool(llm_raw.get("enabled"), bool(api_key)),
        api_key=api_key,
        model=llm_raw.get("model") or DEFAULT_MODEL,
        base_url=llm_raw.get("base_url") or "",
        max_tokens=_coerce_positive_int(llm_raw.get("max_tokens"), LLMConfig.max_tokens),
        timeout=_coerce_positive_float(llm_raw.get("timeout"), LLMConfig.timeout),
        head_chars=_coerce_positive_int(llm_raw.get("head_chars"), LLMConfig.head_chars),
        tail_chars=_coerce_positive_int(llm_raw.get("tail_chars"), LLMConfig.tail_chars),
    )

    level = str(log_raw.get("level", LoggingConfig.level)).lower()
    if not isinstance(logging.getLevelName(level.upper()), int):
        logger.warning("[config] Invalid logging.level %r; using info", level)
        level = LoggingConfig.level

    return MemmanConfig(
        home=home,
        paths=_build_paths(paths_raw, home, project_root),
        sync=SyncConfig(
            direction=direction,
            managed_id=managed_id,
            min_entry_length=_coerce_positive_int(sync_raw.get("min_entry_length"), SyncConfig.min_entry_length),
        ),
        llm=llm,
        optimize=OptimizeConfig(
            token_budget=_coerce_positive_int(opt_raw.get("token_budget"), OptimizeConfig.token_budget),
            rare_length=_coerce_positive_int(opt_raw.get("rare_length"), OptimizeConfig.rare_length),
        ),
        staleness=StalenessConfig(
            max_age_days=_coerce_positive_int(stale_raw.get("max_age_days"), StalenessConfig.max_age_days),
            usage_cap=_coerce_positive_int(stale_raw.get("usage_cap"), StalenessConfig.usage_cap),
            stale_threshold=_coerce_unit_float(stale_raw.get("stale_threshold"), StalenessConfig.stale_threshold),
        ),
        correction=CorrectionConfig(
            memory_threshold=_coerce_unit_float(corr_raw.get("memory_threshold"), CorrectionConfig.memory_threshold),
            edit_threshold=_coerce_unit_float(corr_raw.get("edit_threshold"), CorrectionConfig.edit_threshold),
        ),
        logging=LoggingConfig(level=level),
    )


def _to_camel_dict(section) -> Dict[str, Any]:
    return {_snake_to_camel(k): v for k, v in asdict(section).items()}


def save_config(config: MemmanConfig) -> Path:
    """Persist the non-secret, project-independent settings.

    The API key and per-project paths are never written.
    """
    llm = _to_camel_dict(config.llm)
    llm.pop("apiKey", None)
    payload = {
        "paths": {"dbPath": str(config.paths.db_path)} if config.paths.db_path else {},
        "sync": _to_camel_dict(config.sync),
        "llm": llm,
        "optimize": _to_camel_dict(config.optimize),
        "staleness": _to_camel_dict(config.staleness),
        "correction": _to_camel_dict(config.correction),
        "logging": _to_camel_dict(config.logging),
    }
    target = config.config_file
    target.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", encoding="utf-8", dir=str(target.parent),
                                     delete=False, suffix=".tmp") as tmp:
        json.dump(payload, tmp, indent=2)
        tmp.write("\n")
        tmp_path = Path(tmp.name)
    tmp_path.replace(target)
    return target


def configure_logging(config: MemmanConfig) -> None:
    """Install a root handler at the configured level (entry points only)."""
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
