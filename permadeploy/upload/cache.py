"""
Transaction cache: content hash -> transaction ID of the last upload of that content.

The cache is an optimization only. A missing or corrupted cache file never blocks a
deploy; it only costs a redundant upload. Updates are functional (set/touch/cleanup
return new dicts and leave the caller's dict untouched) so a run can hold on to the
state it started from.
"""

import json
import logging
import time
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from permadeploy.config import CACHE_DIR, CACHE_FILE

log = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """One uploaded content item. Timestamps are milliseconds since the epoch."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    transaction_id: str = Field(alias="transactionId")
    created_at_timestamp: int = Field(alias="createdAtTimestamp")
    last_used_timestamp: int = Field(alias="lastUsedTimestamp")


TransactionCache = Dict[str, CacheEntry]

_CACHE_ADAPTER = TypeAdapter(TransactionCache)


def _now_ms() -> int:
    return int(time.time() * 1000)


def get_cache_path(project_dir: Optional[Union[str, Path]] = None) -> Path:
    """Path to the cache file in project_dir (default: current working directory)."""
    base = Path(project_dir) if project_dir is not None else Path.cwd()
    return base / CACHE_DIR / CACHE_FILE


def load_cache(path: Optional[Union[str, Path]] = None) -> TransactionCache:
    """Load the cache from disk. Returns {} if the file is missing, unreadable or not a valid cache."""
    path = Path(path) if path is not None else get_cache_path()
    try:
        if not path.exists():
            log.debug("No transaction cache at %s", path)
            return {}
        cache = _CACHE_ADAPTER.validate_json(path.read_bytes())
    except (ValidationError, OSError) as e:
        log.warning("Ignoring unreadable transaction cache %s: %s", path, e)
        return {}
    log.debug("Loaded transaction cache %s (%d entries)", path, len(cache))
    return cache


def save_cache(cache: TransactionCache, path: Optional[Union[str, Path]] = None) -> None:
    """Write the cache as pretty-printed JSON, creating the directory if needed. Replaces the file atomically."""
    path = Path(path) if path is not None else get_cache_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _CACHE_ADAPTER.dump_python(cache, by_alias=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
    tmp.replace(path)
    log.debug("Saved transaction cache %s (%d entries)", path, len(cache))


def get_cached_transaction(cache: TransactionCache, content_hash: str) -> Optional[CacheEntry]:
    """Entry for content_hash, or None."""
    return cache.get(content_hash)


def set_cached_transaction(cache: TransactionCache, content_hash: str, transaction_id: str) -> TransactionCache:
    """
    Return a new cache with content_hash -> transaction_id. created_at_timestamp is kept
    if the hash was already cached; last_used_timestamp is always now.
    """
    now = _now_ms()
    existing = cache.get(content_hash)
    updated = dict(cache)
    updated[content_hash] = CacheEntry(
        transaction_id=transaction_id,
        created_at_timestamp=existing.created_at_timestamp if existing else now,
        last_used_timestamp=now,
    )
    return updated


def touch_cache_entry(cache: TransactionCache, content_hash: str) -> TransactionCache:
    """Refresh last_used_timestamp of an entry. Returns the same dict object when the hash is not cached."""
    existing = cache.get(content_hash)
    if existing is None:
        return cache
    updated = dict(cache)
    updated[content_hash] = existing.model_copy(update={"last_used_timestamp": _now_ms()})
    return updated


def cleanup_cache(cache: TransactionCache, max_entries: int) -> TransactionCache:
    """
    Keep only the max_entries most recently used entries. Returns the same dict object
    when nothing has to be dropped. Equal timestamps keep their original order.
    """
    if max_entries < 0:
        raise ValueError(f"max_entries must be >= 0, got {max_entries}")
    if len(cache) <= max_entries:
        return cache
    newest_first = sorted(cache.items(), key=lambda item: item[1].last_used_timestamp, reverse=True)
    kept = dict(newest_first[:max_entries])
    log.info("Transaction cache cleanup: kept %d of %d entries", len(kept), len(cache))
    return kept
