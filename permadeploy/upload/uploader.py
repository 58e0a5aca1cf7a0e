"""Upload logic: per-file cache lookup, concurrent upload of misses, manifest build and upload.

A folder upload runs in phases:
1. List files (empty folder = configuration error, before any network call).
2. Hash every file when a cache is given; split into cache hits and uploads.
3. Upload the misses on a bounded worker pool. One failed file never aborts the others.
4. Write successful uploads back into the cache sequentially (workers never touch it).
5. Build the path manifest from hits and uploads and upload it as the deployment root.

Cache updates are functional: the caller's cache dict is never modified; the new
state is returned as updated_cache (or attached to FolderUploadError on failure).
"""

import io
import logging
import mimetypes
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from permadeploy.api.client import Tag, UploadClient
from permadeploy.config import APP_NAME
from permadeploy.upload.cache import (
    TransactionCache,
    get_cached_transaction,
    set_cached_transaction,
    touch_cache_entry,
)
from permadeploy.upload.hashing import hash_file, list_files
from permadeploy.upload.manifest import MANIFEST_CONTENT_TYPE, PathManifest, build_manifest

log = logging.getLogger(__name__)

# Progress callback: (phase, current_index, total_count). Phase: "hash"|"upload".
ProgressCallback = Callable[[str, int, int], None]

DEFAULT_UPLOAD_CONCURRENCY = 10
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ConfigurationError(ValueError):
    """Input that can never be deployed (missing or empty folder, bad options)."""


class EmptyFolderError(ConfigurationError):
    """Deploy folder contains no files."""


class UploadError(RuntimeError):
    """An upload did not produce a transaction ID."""


class FolderUploadError(UploadError):
    """
    One or more files of a folder failed to upload. updated_cache already contains
    the files that did upload, so the caller can still persist that progress.
    """

    def __init__(self, failed_paths: Sequence[str], updated_cache: Optional[TransactionCache]) -> None:
        self.failed_paths = list(failed_paths)
        self.updated_cache = updated_cache
        super().__init__(
            f"Failed to upload {len(self.failed_paths)} file(s): {', '.join(self.failed_paths)}"
        )


@dataclass
class UploadResult:
    cache_hit: bool
    transaction_id: str
    updated_cache: Optional[TransactionCache] = None


@dataclass
class FolderUploadResult(UploadResult):
    """transaction_id is the manifest's. cache_hit is True when every file was a cache hit."""

    total_files: int = 0
    uploaded: int = 0
    cache_hits: int = 0
    failed_paths: List[str] = field(default_factory=list)
    manifest: Optional[PathManifest] = None


def get_content_type(path: Union[str, Path]) -> str:
    """MIME type from the file extension, application/octet-stream when unknown."""
    content_type, _ = mimetypes.guess_type(str(path))
    return content_type or DEFAULT_CONTENT_TYPE


def _anchor() -> str:
    """Per-upload anchor (ISO-8601 UTC) so identical payloads still get distinct uploads."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _tags(content_type: str) -> List[Tag]:
    return [
        {"name": "App-Name", "value": APP_NAME},
        {"name": "anchor", "value": _anchor()},
        {"name": "Content-Type", "value": content_type},
    ]


def _transaction_id(result: Any, what: str) -> str:
    """Transaction ID from a client result; UploadError when the client did not return one."""
    transaction_id = result.get("id") if result else None
    if not transaction_id:
        raise UploadError(f"Failed to upload {what}: upload result missing transaction ID")
    return transaction_id


def _send_file(
    client: UploadClient,
    full_path: Path,
    funding_mode: Optional[Any],
    timeout: Optional[float],
) -> str:
    """Upload one file from disk and return its transaction ID."""
    size = full_path.stat().st_size
    result = client.upload_file(
        stream_factory=lambda: open(full_path, "rb"),
        size_factory=lambda: size,
        tags=_tags(get_content_type(full_path)),
        funding_mode=funding_mode,
        timeout=timeout,
    )
    return _transaction_id(result, f"file {full_path}")


def upload_file(
    client: UploadClient,
    file_path: Union[str, Path],
    cache: Optional[TransactionCache] = None,
    funding_mode: Optional[Any] = None,
    timeout: Optional[float] = None,
) -> UploadResult:
    """
    Upload a single file. With a cache, a file whose content hash is cached is not
    uploaded at all (cache hit); otherwise the new transaction ID is written back.
    """
    file_path = Path(file_path)
    content_hash = hash_file(file_path) if cache is not None else None

    if cache is not None and content_hash is not None:
        cached = get_cached_transaction(cache, content_hash)
        if cached:
            log.info("Cache hit for %s: %s", file_path, cached.transaction_id)
            return UploadResult(
                cache_hit=True,
                transaction_id=cached.transaction_id,
                updated_cache=touch_cache_entry(cache, content_hash),
            )

    transaction_id = _send_file(client, file_path, funding_mode, timeout)
    log.info("Uploaded %s: %s", file_path, transaction_id)

    if cache is not None and content_hash is not None:
        return UploadResult(
            cache_hit=False,
            transaction_id=transaction_id,
            updated_cache=set_cached_transaction(cache, content_hash, transaction_id),
        )
    return UploadResult(cache_hit=False, transaction_id=transaction_id)


def upload_folder(
    client: UploadClient,
    folder_path: Union[str, Path],
    cache: Optional[TransactionCache] = None,
    concurrency: int = DEFAULT_UPLOAD_CONCURRENCY,
    funding_mode: Optional[Any] = None,
    throw_on_failure: bool = False,
    timeout: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> FolderUploadResult:
    """
    Upload a folder with per-file deduplication and publish it as a path manifest.

    Files that fail to upload are omitted from the manifest and listed in
    failed_paths, unless throw_on_failure is set, in which case FolderUploadError is
    raised after the successful uploads have been recorded in its updated_cache.
    The manifest upload itself failing always raises UploadError.
    """
    def progress(phase: str, current: int, total: int) -> None:
        if on_progress:
            on_progress(phase, current, total)

    folder = Path(folder_path)
    if not folder.is_dir():
        raise ConfigurationError(f"Folder {folder_path} does not exist or is not a directory")
    if concurrency < 1:
        raise ConfigurationError(f"Upload concurrency must be at least 1, got {concurrency}")

    relative_paths = sorted(list_files(folder))
    if not relative_paths:
        raise EmptyFolderError(f"Folder {folder_path} is empty, nothing to upload")
    total = len(relative_paths)
    use_cache = cache is not None
    log.info("Uploading folder %s (%d files, cache=%s, %d workers)", folder, total, use_cache, concurrency)

    # --- Phase 1: Hash files (only needed for cache lookups) ---
    hashes: Dict[str, str] = {}
    if use_cache:
        with ThreadPoolExecutor(max_workers=concurrency) as executor:
            hash_futures = {executor.submit(hash_file, folder / p): p for p in relative_paths}
            for fut in as_completed(hash_futures):
                hashes[hash_futures[fut]] = fut.result()
                progress("hash", len(hashes), total)

    # --- Phase 2: Split into cache hits and uploads ---
    working: TransactionCache = cache if cache is not None else {}
    resolved: Dict[str, str] = {}  # relative path -> transaction ID
    to_upload: List[str] = []
    for path in relative_paths:
        cached = get_cached_transaction(working, hashes[path]) if use_cache else None
        if cached:
            resolved[path] = cached.transaction_id
            working = touch_cache_entry(working, hashes[path])
        else:
            to_upload.append(path)
    cache_hits = len(resolved)
    log.info("%d cache hits, %d files to upload", cache_hits, len(to_upload))

    # --- Phase 3: Upload misses (concurrent, bounded) ---
    def _upload_one(path: str) -> Tuple[str, Optional[str]]:
        """Returns (path, transaction_id) on success, (path, None) on any failure."""
        try:
            return (path, _send_file(client, folder / path, funding_mode, timeout))
        except Exception as e:
            log.warning("Upload %s failed: %s", path, e)
            return (path, None)

    uploaded_ids: Dict[str, Optional[str]] = {}
    if to_upload:
        with ThreadPoolExecutor(max_workers=concurrency) as executor:
            upload_futures = [executor.submit(_upload_one, p) for p in to_upload]
            for fut in as_completed(upload_futures):
                path, transaction_id = fut.result()
                uploaded_ids[path] = transaction_id
                progress("upload", len(uploaded_ids), len(to_upload))
                if transaction_id:
                    log.debug("Uploaded %s: %s", path, transaction_id)

    # --- Phase 4: Record successes in the cache (sequential) ---
    failed = sorted(p for p, transaction_id in uploaded_ids.items() if transaction_id is None)
    for path in to_upload:
        transaction_id = uploaded_ids[path]
        if transaction_id is None:
            continue
        resolved[path] = transaction_id
        if use_cache:
            working = set_cached_transaction(working, hashes[path], transaction_id)
    updated_cache = working if use_cache else None

    if failed:
        if throw_on_failure:
            raise FolderUploadError(failed, updated_cache)
        log.warning(
            "Omitting %d file(s) that failed to upload from the manifest: sample=%s",
            len(failed), failed[:5],
        )

    # --- Phase 5: Build and upload the manifest ---
    manifest = build_manifest({p: resolved[p] for p in relative_paths if p in resolved})
    body = manifest.to_bytes()
    try:
        manifest_result = client.upload_file(
            stream_factory=lambda: io.BytesIO(body),
            size_factory=lambda: len(body),
            tags=_tags(MANIFEST_CONTENT_TYPE),
            funding_mode=funding_mode,
            timeout=timeout,
        )
    except Exception as e:
        raise UploadError(f"Failed to upload manifest: {e}") from e
    manifest_id = _transaction_id(manifest_result, "manifest")
    log.info(
        "Folder %s uploaded: manifest %s (%d files, %d uploaded, %d cache hits, %d failed)",
        folder, manifest_id, total, len(to_upload) - len(failed), cache_hits, len(failed),
    )

    return FolderUploadResult(
        cache_hit=cache_hits == total,
        transaction_id=manifest_id,
        updated_cache=updated_cache,
        total_files=total,
        uploaded=len(to_upload) - len(failed),
        cache_hits=cache_hits,
        failed_paths=failed,
        manifest=manifest,
    )
