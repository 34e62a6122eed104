"""Base configuration module for environment loading and value overlays."""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigPriority(Enum):
    """Overlay priorities; higher values win."""

    DEFAULTS = 0
    FILE = 1
    ENVIRONMENT = 2
    RUNTIME = 3


DEFAULT_ENV_PATHS = (Path(".env"), Path("../.env"), Path.home() / ".env")


class BaseConfig(ABC):
    """Abstract base class for configuration modules.

    Values resolve in this order: overlays (highest priority first), the
    process environment, then the caller's default. A ``.env`` file is loaded
    on construction without overriding variables that are already set.
    """

    _lock = Lock()
    _config_overlays: Dict[ConfigPriority, Dict[str, Any]] = {}

    def __init__(self, env_paths: Optional[Iterable[Path]] = None):
        self._load_environment(env_paths)

    def _load_environment(self, env_paths: Optional[Iterable[Path]] = None) -> None:
        """Load the first ``.env`` file found in ``env_paths``."""
        for env_path in env_paths if env_paths is not None else DEFAULT_ENV_PATHS:
            if env_path.exists():
                load_dotenv(env_path, override=False)
                logger.debug(f"Loaded environment from {env_path}")
                break

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""

    @classmethod
    def set_overlay(cls, priority: ConfigPriority, config: Dict[str, Any]) -> None:
        """Set configuration overlay at the given priority.

        Args:
            priority: Priority level for overlay
            config: Mapping of environment-style keys to values
        """
        with cls._lock:
            cls._config_overlays[priority] = dict(config)

    @classmethod
    def clear_overlays(cls) -> None:
        with cls._lock:
            cls._config_overlays.clear()

    @classmethod
    def get_value(cls, key: str, default: Any = None) -> Any:
        """Get a configuration value honouring overlay priority.

        Args:
            key: Configuration key (environment variable name)
            default: Returned when no overlay or variable defines ``key``

        Returns:
            Configuration value (strings when read from the environment)
        """
        for priority in sorted(ConfigPriority, key=lambda p: p.value, reverse=True):
            overlay = cls._config_overlays.get(priority)
            if overlay and key in overlay:
                return overlay[key]

        env_value = os.getenv(key.upper())
        if env_value is not None and env_value != "":
            return env_value

        return default
