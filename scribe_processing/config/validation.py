"""Validated settings model for the processing core."""
from __future__ import annotations

import logging
import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.types import NonNegativeFloat, NonNegativeInt, PositiveFloat, PositiveInt

logger = logging.getLogger(__name__)

_LANGUAGE_RE = re.compile(r"^[a-z]{2,3}(-[A-Za-z0-9]{2,8})?$")


class ProcessingSettings(BaseModel):
    """Processing configuration with range and cross-field checks.

    Raw environment strings are coerced by pydantic ("3" -> 3, "true" -> True).
    """

    max_concurrent_processing: PositiveInt = Field(2, description="Concurrent pipeline slots")

    retry_max_retries: NonNegativeInt = Field(3, description="Retries after the first attempt")
    retry_base_delay: NonNegativeFloat = Field(1.0, description="First backoff delay in seconds")
    retry_max_delay: NonNegativeFloat = Field(10.0, description="Backoff ceiling in seconds")
    retry_attempt_timeout: Optional[PositiveFloat] = Field(
        None, description="Per-attempt timeout in seconds"
    )

    cache_default_ttl: PositiveFloat = Field(300.0, description="Default cache TTL in seconds")
    cache_max_size: PositiveInt = Field(100, description="Maximum cached entries")
    cache_max_memory_mb: PositiveFloat = Field(50.0, description="Estimated memory ceiling in MB")
    cache_compression_threshold: PositiveInt = Field(
        10 * 1024, description="Serialized size above which empty fields are stripped"
    )
    cache_sweep_interval: PositiveFloat = Field(60.0, description="Seconds between expiry sweeps")
    cache_db_path: Optional[str] = Field(None, description="SQLite file for persisted entries")
    cache_result_ttl: PositiveFloat = Field(3600.0, description="TTL for cached collaborator results")

    target_language: str = Field("en", description="Language transcripts are translated into")
    translation_enabled: bool = Field(True, description="Enable the translate stage")

    @field_validator("target_language")
    @classmethod
    def validate_target_language(cls, v: str) -> str:
        """Accept ISO 639 style codes such as "en" or "pt-BR"."""
        v = v.strip()
        if not _LANGUAGE_RE.match(v):
            raise ValueError(f"Invalid language code: {v!r}")
        return v

    @field_validator("cache_db_path")
    @classmethod
    def validate_db_path(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @model_validator(mode="after")
    def validate_retry_delays(self) -> "ProcessingSettings":
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        return self

    @property
    def cache_max_memory_bytes(self) -> int:
        return int(self.cache_max_memory_mb * 1024 * 1024)
