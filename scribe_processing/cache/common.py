"""Cache entry, statistics and key helpers shared by the cache modules."""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

Payload = Union[str, bytes]


def serialize_data(data: Any) -> str:
    """JSON text used for size estimates and durable storage."""
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def make_cache_key(operation: str, payload: Payload, params: Optional[Mapping[str, Any]] = None) -> str:
    """Content-based key for a collaborator call.

    Same operation, payload and params give the same key. Any change gives a
    different key.

    Args:
        operation: Operation name, e.g. "transcribe"
        payload: Text or bytes the operation consumes
        params: Extra settings that change the result (languages, model)

    Returns:
        ``"<operation>:<payload hash>:<params hash>"``
    """
    raw = payload.encode("utf-8") if isinstance(payload, str) else payload
    payload_hash = hashlib.sha256(raw).hexdigest()[:32]
    params_str = json.dumps(dict(params or {}), sort_keys=True, default=str)
    params_hash = hashlib.sha256(params_str.encode("utf-8")).hexdigest()[:16]
    return f"{operation}:{payload_hash}:{params_hash}"


@dataclass
class CacheEntry:
    """Cached value plus the metadata used for expiry and eviction.

    Attributes:
        key: Logical cache key (without the durable prefix)
        data: Cached value, JSON-serializable
        created_at: Epoch seconds when the entry was written
        ttl: Lifetime in seconds
        access_count: Number of ``get`` hits
        last_accessed_at: Epoch seconds of the last ``get`` hit (or creation)
        size: Serialized length in characters
        persist: Whether the entry is mirrored to the durable store
    """

    key: str
    data: Any
    created_at: float
    ttl: float
    access_count: int = 0
    last_accessed_at: float = 0.0
    size: int = 0
    persist: bool = False

    def __post_init__(self) -> None:
        if not self.last_accessed_at:
            self.last_accessed_at = self.created_at

    def is_expired(self, now: float) -> bool:
        """Strictly older than its TTL."""
        return now - self.created_at > self.ttl

    def age(self, now: float) -> float:
        return now - self.created_at

    def touch(self, now: float) -> None:
        self.access_count += 1
        self.last_accessed_at = now

    @property
    def estimated_bytes(self) -> int:
        """Approximate in-memory footprint (two bytes per character)."""
        return self.size * 2

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "key": self.key,
            "data": self.data,
            "created_at": self.created_at,
            "ttl": self.ttl,
            "access_count": self.access_count,
            "last_accessed_at": self.last_accessed_at,
            "size": self.size,
            "persist": self.persist,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntry":
        """Create from dictionary."""
        return cls(
            key=data["key"],
            data=data.get("data"),
            created_at=float(data["created_at"]),
            ttl=float(data["ttl"]),
            access_count=int(data.get("access_count", 0)),
            last_accessed_at=float(data.get("last_accessed_at") or 0.0),
            size=int(data.get("size", 0)),
            persist=bool(data.get("persist", True)),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        return cls.from_dict(json.loads(raw))


@dataclass
class CacheStats:
    """Point-in-time cache statistics.

    Attributes:
        size: Number of entries in memory
        hit_rate: hits / (hits + misses), 0.0 when there were no lookups
        memory_usage: Estimated footprint in bytes
        oldest_item: Smallest ``created_at`` among entries, None when empty
        newest_item: Largest ``created_at`` among entries, None when empty
        average_access_count: Mean ``access_count`` over entries
        eviction_rate: evictions / sets, 0.0 when nothing was set
    """

    size: int = 0
    hit_rate: float = 0.0
    memory_usage: int = 0
    oldest_item: Optional[float] = None
    newest_item: Optional[float] = None
    average_access_count: float = 0.0
    eviction_rate: float = 0.0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    sets: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "size": self.size,
            "hit_rate": self.hit_rate,
            "memory_usage": self.memory_usage,
            "memory_usage_mb": self.memory_usage / (1024 * 1024),
            "oldest_item": self.oldest_item,
            "newest_item": self.newest_item,
            "average_access_count": self.average_access_count,
            "eviction_rate": self.eviction_rate,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "sets": self.sets,
            **self.extra,
        }
