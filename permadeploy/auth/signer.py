"""
Signer construction from a signature type and a deploy key.

The signer is opaque to the upload pipeline: HTTP clients ask it for request headers
and the token type used in upload URLs. The deploy key itself is never sent; requests
carry an HMAC-SHA256 over a fresh nonce and the payload digest.
"""

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass, field
from typing import Dict

# Signature type -> token type of the upload/payment services
SIGNER_TOKENS: Dict[str, str] = {
    "arweave": "arweave",
    "ethereum": "ethereum",
    "polygon": "pol",
    "kyve": "kyve",
}


@dataclass(frozen=True)
class Signer:
    """Signing capability for one wallet."""

    sig_type: str
    token: str
    key_id: str  # Arweave: wallet address; others: fingerprint of the private key
    secret: bytes = field(repr=False)

    def sign_headers(self, payload_digest: str) -> Dict[str, str]:
        """Authentication headers for a request whose body has the given SHA-256 hex digest ("" for no body)."""
        nonce = secrets.token_hex(16)
        mac = hmac.new(self.secret, msg=f"{nonce}{payload_digest}".encode("utf-8"), digestmod=hashlib.sha256)
        return {
            "x-key-id": self.key_id,
            "x-nonce": nonce,
            "x-signature": f"sha256={mac.hexdigest()}",
        }


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def _arweave_address(modulus: str) -> str:
    """Arweave address: base64url (no padding) of SHA-256 of the RSA modulus."""
    digest = hashlib.sha256(_b64url_decode(modulus)).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def create_signer(sig_type: str, deploy_key: str) -> Signer:
    """
    Build a signer. For arweave, deploy_key is the base64-encoded JWK JSON; for
    ethereum/polygon/kyve it is the raw private key. Raises ValueError on unknown
    sig types or unusable keys.
    """
    token = SIGNER_TOKENS.get(sig_type)
    if token is None:
        raise ValueError(
            f"Invalid sig-type provided: {sig_type}. "
            "Allowed values are 'arweave', 'ethereum', 'polygon', or 'kyve'."
        )
    if sig_type == "arweave":
        try:
            jwk = json.loads(base64.b64decode(deploy_key).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid Arweave wallet: not a base64-encoded JWK ({e})") from e
        if not isinstance(jwk, dict) or not jwk.get("n") or not jwk.get("d"):
            raise ValueError("Invalid Arweave wallet: JWK must contain 'n' and 'd'")
        try:
            key_id = _arweave_address(jwk["n"])
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid Arweave wallet: bad modulus ({e})") from e
        return Signer(sig_type=sig_type, token=token, key_id=key_id, secret=jwk["d"].encode("utf-8"))

    key = deploy_key.strip()
    if not key:
        raise ValueError(f"Empty private key for sig-type {sig_type}")
    key_id = hashlib.sha256(key.encode("utf-8")).hexdigest()[:40]
    return Signer(sig_type=sig_type, token=token, key_id=key_id, secret=key.encode("utf-8"))
