import dataclasses
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, cast

import yaml
from dotenv import dotenv_values

from .exceptions import ConfigError

logger = logging.getLogger("hal_pm_agent.core.config")

CONFIG_FILENAME = "hal-pm-agent.yml"
OVERRIDE_FILENAME = "hal-pm-agent.override.yml"
DOTENV_FILENAME = ".env"

DEFAULT_HAL_BASE_URL = "https://portfolio-2026-hal.vercel.app"
DEFAULT_PROJECT_ID = "beardedphil/portfolio-2026-hal"
DEFAULT_READ_TIMEOUT_MS = 20_000
DEFAULT_WRITE_TIMEOUT_MS = 25_000

ENV_BASE_URL = "HAL_API_BASE_URL"
ENV_PROJECT_ID = "HAL_PROJECT_ID"
ENV_CREATED_BY = "HAL_PM_CREATED_BY"
ENV_LOG_LEVEL = "HAL_PM_LOG_LEVEL"
ENV_TURN_TIMEOUT = "HAL_PM_TURN_TIMEOUT_SECONDS"

ENV_OVERRIDES = (
    ENV_BASE_URL,
    ENV_PROJECT_ID,
    ENV_CREATED_BY,
    ENV_LOG_LEVEL,
    ENV_TURN_TIMEOUT,
)


def _default_config() -> Dict[str, Any]:
    return {
        "hal": {
            "base_url": DEFAULT_HAL_BASE_URL,
            "read_timeout_ms": DEFAULT_READ_TIMEOUT_MS,
            "write_timeout_ms": DEFAULT_WRITE_TIMEOUT_MS,
            "retry": {
                "max_attempts": 3,
                "base_wait_seconds": 0.5,
                "max_wait_seconds": 5.0,
            },
        },
        "project_id": DEFAULT_PROJECT_ID,
        "created_by": "pm-agent",
        "turn_timeout_seconds": None,
        "log": {
            "path": None,
            "level": "INFO",
            "max_bytes": 10 * 1024 * 1024,
            "backup_count": 3,
        },
    }


@dataclasses.dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_wait_seconds: float = 0.5
    max_wait_seconds: float = 5.0


@dataclasses.dataclass(frozen=True)
class HalApiConfig:
    base_url: str
    read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS
    write_timeout_ms: int = DEFAULT_WRITE_TIMEOUT_MS
    retry: RetryConfig = dataclasses.field(default_factory=RetryConfig)


@dataclasses.dataclass(frozen=True)
class LogConfig:
    path: Optional[Path]
    level: str = "INFO"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 3

    @property
    def level_number(self) -> int:
        value = logging.getLevelName(self.level.upper())
        return value if isinstance(value, int) else logging.INFO


@dataclasses.dataclass(frozen=True)
class AgentConfig:
    root: Path
    hal: HalApiConfig
    project_id: str
    created_by: str
    turn_timeout_seconds: Optional[float]
    log: LogConfig
    env_overrides: tuple[str, ...] = ()


def _merge_defaults(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = cast(Dict[str, Any], json.loads(json.dumps(base)))
    for key, value in overrides.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def resolve_env_for_root(
    root: Path, base_env: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """
    Return a merged env mapping for a root without mutating process env.

    Values from `<root>/.env` fill in keys the base environment leaves unset.
    """
    env = dict(base_env) if base_env is not None else dict(os.environ)
    candidate = root / DOTENV_FILENAME
    if not candidate.exists():
        return env
    for key, value in dotenv_values(candidate).items():
        if key and value is not None and not str(env.get(key, "")).strip():
            env[str(key)] = str(value)
    return env


def collect_env_overrides(env: Mapping[str, str]) -> list[str]:
    return [key for key in ENV_OVERRIDES if str(env.get(key) or "").strip()]


def _apply_env_overrides(data: Dict[str, Any], env: Mapping[str, str]) -> Dict[str, Any]:
    merged = _merge_defaults(data, {})
    if str(env.get(ENV_BASE_URL) or "").strip() and isinstance(merged.get("hal"), dict):
        merged["hal"]["base_url"] = env[ENV_BASE_URL].strip()
    if str(env.get(ENV_PROJECT_ID) or "").strip():
        merged["project_id"] = env[ENV_PROJECT_ID].strip()
    if str(env.get(ENV_CREATED_BY) or "").strip():
        merged["created_by"] = env[ENV_CREATED_BY].strip()
    if str(env.get(ENV_LOG_LEVEL) or "").strip() and isinstance(merged.get("log"), dict):
        merged["log"]["level"] = env[ENV_LOG_LEVEL].strip()
    if str(env.get(ENV_TURN_TIMEOUT) or "").strip():
        merged["turn_timeout_seconds"] = env[ENV_TURN_TIMEOUT].strip()
    return merged


def _parse_positive_int(raw: Any, key: str) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be > 0")
    return value


def _parse_positive_float(raw: Any, key: str) -> float:
    if isinstance(raw, bool):
        raise ConfigError(f"{key} must be a number")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number") from exc
    if value < 0:
        raise ConfigError(f"{key} must be >= 0")
    return value


def _parse_str(raw: Any, key: str, default: str) -> str:
    if raw is None:
        return default
    if not isinstance(raw, str):
        raise ConfigError(f"{key} must be a string")
    return raw.strip() or default


def _parse_hal_config(cfg: Dict[str, Any]) -> HalApiConfig:
    if not isinstance(cfg, dict):
        raise ConfigError("hal must be a mapping")
    retry_cfg = cfg.get("retry") or {}
    if not isinstance(retry_cfg, dict):
        raise ConfigError("hal.retry must be a mapping")
    retry = RetryConfig(
        max_attempts=_parse_positive_int(
            retry_cfg.get("max_attempts", 3), "hal.retry.max_attempts"
        ),
        base_wait_seconds=_parse_positive_float(
            retry_cfg.get("base_wait_seconds", 0.5), "hal.retry.base_wait_seconds"
        ),
        max_wait_seconds=_parse_positive_float(
            retry_cfg.get("max_wait_seconds", 5.0), "hal.retry.max_wait_seconds"
        ),
    )
    base_url = _parse_str(cfg.get("base_url"), "hal.base_url", DEFAULT_HAL_BASE_URL)
    return HalApiConfig(
        base_url=base_url.rstrip("/"),
        read_timeout_ms=_parse_positive_int(
            cfg.get("read_timeout_ms", DEFAULT_READ_TIMEOUT_MS), "hal.read_timeout_ms"
        ),
        write_timeout_ms=_parse_positive_int(
            cfg.get("write_timeout_ms", DEFAULT_WRITE_TIMEOUT_MS),
            "hal.write_timeout_ms",
        ),
        retry=retry,
    )


def _parse_log_config(cfg: Dict[str, Any], root: Path) -> LogConfig:
    if not isinstance(cfg, dict):
        raise ConfigError("log must be a mapping")
    raw_path = cfg.get("path")
    path: Optional[Path] = None
    if raw_path:
        if not isinstance(raw_path, str):
            raise ConfigError("log.path must be a string")
        path = Path(raw_path).expanduser()
        if not path.is_absolute():
            path = root / path
    return LogConfig(
        path=path,
        level=_parse_str(cfg.get("level"), "log.level", "INFO").upper(),
        max_bytes=_parse_positive_int(cfg.get("max_bytes", 10 * 1024 * 1024), "log.max_bytes"),
        backup_count=_parse_positive_int(cfg.get("backup_count", 3), "log.backup_count"),
    )


def load_config_data(root: Path) -> Dict[str, Any]:
    """Load and merge defaults, the root config and its override file."""
    merged = _default_config()
    base = _load_yaml_dict(root / CONFIG_FILENAME)
    if base:
        merged = _merge_defaults(merged, base)
    override_path = root / OVERRIDE_FILENAME
    try:
        override = _load_yaml_dict(override_path)
    except ConfigError as exc:
        raise ConfigError(
            f"Invalid override config {override_path}; fix or delete it: {exc}"
        ) from exc
    if override:
        merged = _merge_defaults(merged, override)
    return merged


def load_agent_config(
    root: Optional[Path] = None, *, env: Optional[Mapping[str, str]] = None
) -> AgentConfig:
    root = (root or Path.cwd()).resolve()
    data = load_config_data(root)
    resolved_env = resolve_env_for_root(root, env)
    overrides = collect_env_overrides(resolved_env)
    data = _apply_env_overrides(data, resolved_env)
    if overrides:
        logger.debug("Environment overrides active: %s", ", ".join(overrides))

    raw_turn_timeout = data.get("turn_timeout_seconds")
    turn_timeout = (
        None
        if raw_turn_timeout in (None, "")
        else _parse_positive_float(raw_turn_timeout, "turn_timeout_seconds")
    )
    return AgentConfig(
        root=root,
        hal=_parse_hal_config(data.get("hal") or {}),
        project_id=_parse_str(data.get("project_id"), "project_id", DEFAULT_PROJECT_ID),
        created_by=_parse_str(data.get("created_by"), "created_by", "pm-agent"),
        turn_timeout_seconds=turn_timeout,
        log=_parse_log_config(data.get("log") or {}, root),
        env_overrides=tuple(overrides),
    )


__all__ = [
    "AgentConfig",
    "CONFIG_FILENAME",
    "HalApiConfig",
    "LogConfig",
    "OVERRIDE_FILENAME",
    "RetryConfig",
    "collect_env_overrides",
    "load_agent_config",
    "load_config_data",
    "resolve_env_for_root",
]
