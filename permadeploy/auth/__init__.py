"""Signer construction and deploy-key storage."""
