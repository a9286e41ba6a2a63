"""Central configuration and logging setup for the metric pipeline."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

import yaml

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "monitor.yaml"
LOG_DIR = BASE_DIR / "logs"
LOG_FILE = LOG_DIR / "monitor.log"

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z0-9_]+)\}")


class ConfigurationError(RuntimeError):
    """Raised when the configuration file is invalid."""


@dataclass(slots=True)
class PipelineConfig:
    window_size: int = 11
    alpha: float = 0.3
    live_capacity: int = 30
    force_peak_cut: bool = False
    derive_packet_loss: bool = True


@dataclass(slots=True)
class ClientConfig:
    base_url: str = "http://127.0.0.1:8008"
    timeout_s: float = 10.0
    api_token: Optional[str] = None
    verify_tls: bool = True


@dataclass(slots=True)
class Settings:
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    backlog_size: int = 30
    log_file: Path = LOG_FILE


def _expand_env_values(value: object, *, source: Optional[Path] = None) -> object:
    if isinstance(value, dict):
        return {key: _expand_env_values(val, source=source) for key, val in value.items()}
    if isinstance(value, list):
        return [_expand_env_values(item, source=source) for item in value]
    if isinstance(value, str):
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            if var_name not in os.environ:
                location = f" in config '{source}'" if source else ""
                raise ConfigurationError(f"Environment variable '{var_name}' referenced{location} is not set")
            return os.environ[var_name]

        return _ENV_VAR_PATTERN.sub(replacer, value)
    return value


def _load_file(path: Path) -> Dict[str, object]:
    text = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid configuration format in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return _expand_env_values(data, source=path)


def _validate(settings: Settings) -> None:
    pipeline = settings.pipeline
    if pipeline.window_size < 1:
        raise ConfigurationError("pipeline.window_size must be positive")
    if not 0 < pipeline.alpha <= 1:
        raise ConfigurationError("pipeline.alpha must be within (0, 1]")
    if pipeline.live_capacity < 2:
        raise ConfigurationError("pipeline.live_capacity must be at least 2")
    if settings.backlog_size < 1:
        raise ConfigurationError("backlog_size must be positive")
    if settings.client.timeout_s <= 0:
        raise ConfigurationError("client.timeout_s must be positive")


def load_settings(path: Optional[Path | str] = None) -> Settings:
    """Load settings from ``path``, ``$SERVERMON_CONFIG`` or the bundled default.

    An explicitly requested file must exist; when no candidate exists the
    built-in defaults are returned.
    """
    if path is not None and not Path(path).exists():
        raise FileNotFoundError(f"Configuration not found at {path}")

    candidates: List[Path] = []
    if path is not None:
        candidates.append(Path(path))
    env_path = os.getenv("SERVERMON_CONFIG")
    if env_path:
        candidates.append(Path(env_path))
    candidates.append(DEFAULT_CONFIG_PATH)

    raw: Dict[str, object] = {}
    for candidate in candidates:
        if candidate.exists():
            raw = _load_file(candidate)
            break

    try:
        settings = Settings(
            pipeline=PipelineConfig(**(raw.get("pipeline") or {})),
            client=ClientConfig(**(raw.get("client") or {})),
            backlog_size=int(raw.get("backlog_size", 30)),
            log_file=Path(raw["log_file"]) if raw.get("log_file") else LOG_FILE,
        )
    except TypeError as exc:
        raise ConfigurationError(f"Unknown configuration key: {exc}") from exc

    _validate(settings)
    return settings


def setup_logging(level: int = logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure a rotating file logger plus console echo."""
    target = Path(log_file) if log_file else LOG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        target,
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=[handler, console_handler],
        force=True,
    )
