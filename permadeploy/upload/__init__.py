"""Content-addressed upload pipeline: hashing, transaction cache, manifest, uploader."""
