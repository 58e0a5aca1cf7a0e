"""Path manifest: relative path -> transaction ID, uploaded as the deployment root."""

from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field

MANIFEST_CONTENT_TYPE = "application/x.arweave-manifest+json"
INDEX_FILE = "index.html"
_DIR_INDEX_SUFFIX = "/" + INDEX_FILE


class ManifestPath(BaseModel):
    """Target of one manifest path."""

    id: str


class ManifestIndex(BaseModel):
    """Path served for the manifest root."""

    path: str


class PathManifest(BaseModel):
    """arweave/paths manifest, version 0.2.0."""

    manifest: str = "arweave/paths"
    version: str = "0.2.0"
    index: Optional[ManifestIndex] = None
    paths: Dict[str, ManifestPath] = Field(default_factory=dict)

    def to_bytes(self) -> bytes:
        """Compact JSON body for upload. index is left out when there is no root index.html."""
        return self.model_dump_json(exclude_none=True).encode("utf-8")


def build_manifest(path_ids: Mapping[str, str]) -> PathManifest:
    """
    Build a manifest from relative path -> transaction ID. Every "<dir>/index.html" is also
    published as "<dir>" so https://name/dir/ serves the same content as .../dir/index.html.
    """
    paths: Dict[str, ManifestPath] = {}
    for relative_path, transaction_id in path_ids.items():
        paths[relative_path] = ManifestPath(id=transaction_id)
        if relative_path.endswith(_DIR_INDEX_SUFFIX):
            paths[relative_path[: -len(_DIR_INDEX_SUFFIX)]] = ManifestPath(id=transaction_id)
    index = ManifestIndex(path=INDEX_FILE) if INDEX_FILE in path_ids else None
    return PathManifest(index=index, paths=paths)
