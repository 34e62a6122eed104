"""Configuration for the processing core, loaded from SCRIBE_* environment variables."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from ..cache import CacheStore, DurableStore, SQLiteDurableStore
from ..orchestration import TaskScheduler
from ..pipeline import CachedStageOperations, ProcessingPipeline, StageOperations
from ..utils.retry import RetryConfig
from .base import BaseConfig, ConfigPriority
from .validation import ProcessingSettings

logger = logging.getLogger(__name__)

# Settings field -> environment variable
ENV_FIELDS = {
    "max_concurrent_processing": "SCRIBE_MAX_CONCURRENT_PROCESSING",
    "retry_max_retries": "SCRIBE_RETRY_MAX_RETRIES",
    "retry_base_delay": "SCRIBE_RETRY_BASE_DELAY",
    "retry_max_delay": "SCRIBE_RETRY_MAX_DELAY",
    "retry_attempt_timeout": "SCRIBE_RETRY_ATTEMPT_TIMEOUT",
    "cache_default_ttl": "SCRIBE_CACHE_DEFAULT_TTL",
    "cache_max_size": "SCRIBE_CACHE_MAX_SIZE",
    "cache_max_memory_mb": "SCRIBE_CACHE_MAX_MEMORY_MB",
    "cache_compression_threshold": "SCRIBE_CACHE_COMPRESSION_THRESHOLD",
    "cache_sweep_interval": "SCRIBE_CACHE_SWEEP_INTERVAL",
    "cache_db_path": "SCRIBE_CACHE_DB_PATH",
    "cache_result_ttl": "SCRIBE_CACHE_RESULT_TTL",
    "target_language": "SCRIBE_TARGET_LANGUAGE",
    "translation_enabled": "SCRIBE_TRANSLATION_ENABLED",
}


class ProcessingConfig(BaseConfig):
    """Processing settings resolved from overlays, the environment and defaults.

    Also acts as the composition root: it builds the retry configuration,
    cache store and scheduler from the validated settings.

    Raises:
        pydantic.ValidationError: If any value is out of range or malformed
    """

    def __init__(self, env_paths: Optional[Iterable[Path]] = None, **overrides: Any):
        super().__init__(env_paths)
        raw: Dict[str, Any] = {}
        for field_name, env_key in ENV_FIELDS.items():
            value = self.get_value(env_key)
            if value is not None:
                raw[field_name] = value
        raw.update(overrides)
        self.settings = ProcessingSettings(**raw)

    def to_dict(self) -> Dict[str, Any]:
        return self.settings.model_dump()

    def __repr__(self) -> str:
        return f"ProcessingConfig({self.settings!r})"

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.settings.retry_max_retries,
            base_delay=self.settings.retry_base_delay,
            max_delay=self.settings.retry_max_delay,
            attempt_timeout=self.settings.retry_attempt_timeout,
        )

    def build_durable_store(self) -> Optional[DurableStore]:
        """SQLite store at ``cache_db_path``, or None for a memory-only cache."""
        if not self.settings.cache_db_path:
            return None
        return SQLiteDurableStore(self.settings.cache_db_path)

    def build_cache_store(self, durable: Optional[DurableStore] = None) -> CacheStore:
        s = self.settings
        return CacheStore(
            durable=durable if durable is not None else self.build_durable_store(),
            default_ttl=s.cache_default_ttl,
            max_size=s.cache_max_size,
            max_memory_bytes=s.cache_max_memory_bytes,
            compression_threshold=s.cache_compression_threshold,
            sweep_interval=s.cache_sweep_interval,
        )

    def build_cached_operations(
        self, operations: StageOperations, cache: CacheStore
    ) -> CachedStageOperations:
        return CachedStageOperations(
            operations,
            cache,
            ttl=self.settings.cache_result_ttl,
            persist=cache.durable is not None,
        )

    def build_pipeline(self, operations: StageOperations) -> ProcessingPipeline:
        return ProcessingPipeline.default(
            operations,
            target_language=self.settings.target_language,
            translation_enabled=self.settings.translation_enabled,
        )

    def build_scheduler(self, pipeline: Optional[ProcessingPipeline] = None) -> TaskScheduler:
        return TaskScheduler(
            pipeline=pipeline,
            max_concurrent=self.settings.max_concurrent_processing,
            retry_config=self.retry_config,
        )


_config_instance: Optional[ProcessingConfig] = None
_config_lock = threading.Lock()


def get_processing_config() -> ProcessingConfig:
    """Get the shared config instance (thread-safe, created on first use)."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = ProcessingConfig()
                logger.debug(f"Loaded {_config_instance!r}")
    return _config_instance


def reset_processing_config() -> None:
    """Drop the shared instance so the next call re-reads the environment."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "BaseConfig",
    "ConfigPriority",
    "ENV_FIELDS",
    "ProcessingConfig",
    "ProcessingSettings",
    "get_processing_config",
    "reset_processing_config",
]
