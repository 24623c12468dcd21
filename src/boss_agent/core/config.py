"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .task import ComplexityTier, DelegateTarget

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/boss-agent.yaml")


class ExecutorConfig(BaseModel):
    """Which executor adapter runs subtasks, and how."""
    kind: Literal["claude_cli", "dry_run"] = "claude_cli"

    # Claude CLI settings
    executable: str = "claude"
    model: Optional[str] = None
    max_turns: int = 50
    allowed_tools: List[str] = Field(default_factory=list)
    logs_dir: Optional[Path] = None

    # How often remote executors are polled (seconds)
    poll_interval: float = 30.0

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"poll_interval must be positive, got {v}")
        return v


class DecisionConfig(BaseModel):
    """Policy knobs for the decision engine."""
    delegation_threshold: int = 6
    split_files_threshold: int = 5
    split_lines_threshold: int = 500
    ambiguity_threshold: int = 2
    branch_prefix: str = "boss"
    base_labels: List[str] = Field(default_factory=lambda: ["boss-agent"])
    default_target: DelegateTarget = DelegateTarget.CLAUDE

    # Timeout budget per complexity tier (seconds)
    timeouts: Dict[ComplexityTier, int] = Field(
        default_factory=lambda: {
            ComplexityTier.SIMPLE: 30 * 60,
            ComplexityTier.MEDIUM: 2 * 60 * 60,
            ComplexityTier.COMPLEX: 4 * 60 * 60,
        }
    )

    @field_validator("delegation_threshold")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError(f"delegation_threshold must be between 1 and 10, got {v}")
        return v

    @field_validator("default_target")
    @classmethod
    def validate_default_target(cls, v: DelegateTarget) -> DelegateTarget:
        if v == DelegateTarget.MANUAL:
            raise ValueError("default_target must be an automatic executor, not 'manual'")
        return v

    @model_validator(mode="after")
    def validate_timeouts(self) -> "DecisionConfig":
        missing = [tier.value for tier in ComplexityTier if tier not in self.timeouts]
        if missing:
            raise ValueError(f"timeouts missing tiers: {', '.join(missing)}")
        ordered = [self.timeouts[tier] for tier in ComplexityTier]
        if ordered != sorted(ordered):
            raise ValueError("timeouts must not shrink as complexity grows")
        return self


class DecompositionConfig(BaseModel):
    minutes_per_complexity_point: int = 5
    max_subtasks: int = 8
    sequential_density: float = 0.6
    parallel_density: float = 0.3

    @model_validator(mode="after")
    def validate_density(self) -> "DecompositionConfig":
        if not 0 <= self.parallel_density <= self.sequential_density:
            raise ValueError(
                "parallel_density must be between 0 and sequential_density"
            )
        return self


class DelegationConfig(BaseModel):
    max_concurrency: int = 3
    isolated_branches: bool = True
    # Git checkout that subtask worktrees are created from; None runs agents in the current directory
    repository: Optional[Path] = None

    @field_validator("max_concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {v}")
        return v


class SessionConfig(BaseModel):
    store: Literal["memory", "file"] = "memory"
    directory: Path = Path(".boss-agent/sessions")
    cleanup_interval_hours: float = 24
    max_age_hours: float = 168


class JIRAConfig(BaseModel):
    """JIRA configuration."""
    server: str
    email: Optional[str] = None
    api_token: Optional[str] = None
    project: str
    trigger_jql: Optional[str] = None
    max_results: int = 20


class BossAgentConfig(BaseSettings):
    """Root configuration. Environment variables use the BOSS_AGENT_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="BOSS_AGENT_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="allow",
    )

    enabled: bool = True
    workspace: Path = Path(".boss-agent")
    agents_file: Optional[Path] = None
    log_level: str = "INFO"

    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    decision: DecisionConfig = Field(default_factory=DecisionConfig)
    decomposition: DecompositionConfig = Field(default_factory=DecompositionConfig)
    delegation: DelegationConfig = Field(default_factory=DelegationConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    jira: Optional[JIRAConfig] = None


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> BossAgentConfig:
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    data = _expand_env_vars(data)
    return BossAgentConfig(**data)


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> BossAgentConfig:
    """Load configuration from a YAML file.

    Uses mtime-based caching: returns the cached config if the file hasn't
    changed. A missing file yields the defaults.
    """
    if not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration."
        )
        return BossAgentConfig()

    resolved = config_path.resolve()
    result = _get_cached_or_load(resolved, _load_config_from_file)
    return result if result is not None else BossAgentConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${VAR}`` references in config data."""
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used."
            )
            return data
        return value
    return data
