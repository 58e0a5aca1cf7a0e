"""Content hashing: streaming SHA-256 per file and a deterministic hash per folder."""

import hashlib
import logging
from pathlib import Path
from typing import List, Union

log = logging.getLogger(__name__)

# Read size for streaming hashes; files are never loaded whole
HASH_CHUNK_SIZE = 1024 * 1024

PathLike = Union[str, Path]


def hash_file(path: PathLike) -> str:
    """SHA-256 hex digest of the file body. I/O errors propagate to the caller."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def list_files(root: PathLike) -> List[str]:
    """
    List every regular file under root, recursively, as a path relative to root
    with forward slashes (e.g. "assets/app.js"). Order is not guaranteed.
    """
    root = Path(root)
    out: List[str] = []
    for f in root.rglob("*"):
        if f.is_file():
            out.append(f.relative_to(root).as_posix())
    return out


def hash_folder(root: PathLike) -> str:
    """
    Combined SHA-256 of a folder. Relative paths are sorted, then
    "<path>:<file hash>\\n" is folded for each file in that order, so the
    result depends on names and contents but not on directory read order.
    """
    root = Path(root)
    combined = hashlib.sha256()
    paths = sorted(list_files(root))
    for relative_path in paths:
        file_hash = hash_file(root / relative_path)
        combined.update(f"{relative_path}:{file_hash}\n".encode("utf-8"))
    digest = combined.hexdigest()
    log.debug("hash_folder %s: %d files -> %s", root, len(paths), digest)
    return digest
