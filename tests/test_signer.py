"""Tests for signer construction and request signing."""

import base64
import hashlib
import hmac
import json

import pytest

from permadeploy.auth.signer import SIGNER_TOKENS, create_signer

# Small fake JWK; only n and d are read
JWK = {"kty": "RSA", "n": "AQAB", "e": "AQAB", "d": "c2VjcmV0"}


def _jwk_key(jwk: dict) -> str:
    return base64.b64encode(json.dumps(jwk).encode("utf-8")).decode("ascii")


def test_sig_type_token_mapping() -> None:
    """Each sig type maps to its upload token type."""
    for sig_type, token in [("ethereum", "ethereum"), ("polygon", "pol"), ("kyve", "kyve")]:
        assert create_signer(sig_type, "0xabc").token == token
    assert create_signer("arweave", _jwk_key(JWK)).token == "arweave"
    assert set(SIGNER_TOKENS) == {"arweave", "ethereum", "polygon", "kyve"}


def test_unknown_sig_type_raises() -> None:
    """Unknown sig types are rejected with the list of allowed values."""
    with pytest.raises(ValueError, match="Invalid sig-type provided: solana"):
        create_signer("solana", "key")


def test_arweave_key_id_is_wallet_address() -> None:
    """The arweave key ID is base64url(sha256(modulus)) without padding."""
    signer = create_signer("arweave", _jwk_key(JWK))
    expected = base64.urlsafe_b64encode(hashlib.sha256(b"\x01\x00\x01").digest()).rstrip(b"=").decode()
    assert signer.key_id == expected
    assert len(signer.key_id) == 43


def test_arweave_invalid_keys_raise() -> None:
    """Non-base64, non-JSON and incomplete JWKs are rejected."""
    with pytest.raises(ValueError):
        create_signer("arweave", "!!!not base64!!!")
    with pytest.raises(ValueError):
        create_signer("arweave", base64.b64encode(b"not json").decode())
    with pytest.raises(ValueError, match="'n' and 'd'"):
        create_signer("arweave", _jwk_key({"kty": "RSA", "n": "AQAB"}))


def test_empty_private_key_raises() -> None:
    """Blank private keys are rejected."""
    with pytest.raises(ValueError):
        create_signer("ethereum", "   ")


def test_sign_headers_hmac_over_nonce_and_digest() -> None:
    """x-signature is HMAC-SHA256 of nonce + digest keyed by the secret; nonces differ per call."""
    signer = create_signer("ethereum", " 0xabc ")
    headers = signer.sign_headers("d1g357")
    expected = hmac.new(b"0xabc", f"{headers['x-nonce']}d1g357".encode(), hashlib.sha256).hexdigest()
    assert headers["x-signature"] == f"sha256={expected}"
    assert headers["x-key-id"] == signer.key_id
    assert signer.sign_headers("d1g357")["x-nonce"] != headers["x-nonce"]


def test_secret_not_in_repr() -> None:
    """The signer repr does not leak the key."""
    assert "0xabc" not in repr(create_signer("ethereum", "0xabc"))
