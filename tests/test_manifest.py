"""Tests for the path manifest."""

import json

from permadeploy.upload.manifest import MANIFEST_CONTENT_TYPE, build_manifest


def test_manifest_with_root_index() -> None:
    """Root index.html sets the index path; every file is listed."""
    manifest = build_manifest({"index.html": "tx-index", "style.css": "tx-css"})
    data = json.loads(manifest.to_bytes())
    assert data == {
        "manifest": "arweave/paths",
        "version": "0.2.0",
        "index": {"path": "index.html"},
        "paths": {"index.html": {"id": "tx-index"}, "style.css": {"id": "tx-css"}},
    }


def test_manifest_without_root_index_omits_index() -> None:
    """Without a root index.html the index key is absent from the JSON."""
    data = json.loads(build_manifest({"app.js": "tx-js"}).to_bytes())
    assert "index" not in data
    assert data["paths"] == {"app.js": {"id": "tx-js"}}


def test_manifest_aliases_directory_index() -> None:
    """section/index.html is also published as section with the same ID."""
    manifest = build_manifest({"section/index.html": "tx-s", "a/b/index.html": "tx-ab"})
    assert manifest.paths["section/index.html"].id == "tx-s"
    assert manifest.paths["section"].id == "tx-s"
    assert manifest.paths["a/b"].id == "tx-ab"
    assert manifest.index is None


def test_manifest_nested_index_not_root_index() -> None:
    """Only a root index.html counts as the manifest index."""
    manifest = build_manifest({"docs/index.html": "tx-d"})
    assert "index" not in json.loads(manifest.to_bytes())


def test_manifest_content_type() -> None:
    """Manifest uploads use the arweave manifest content type."""
    assert MANIFEST_CONTENT_TYPE == "application/x.arweave-manifest+json"
