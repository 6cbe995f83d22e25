"""
Ed25519 request authentication.

Accounts are lowercase hex Ed25519 public keys. A ``SignedCall`` carries the
call name, its arguments, a caller-chosen nonce and a signature over

    JCS({account, call, args, nonce})

``Ed25519Authenticator`` verifies the signature with ``cryptography`` and
rejects nonces it has already accepted.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from coursepass.core import canonical_json_bytes
from coursepass.observability import Layer, get_logger

logger = get_logger("authenticator", Layer.AUTH)


class Rejected(Exception):
    """The request could not be attributed to an account."""
    pass


@dataclass
class SignedCall:
    """A call request plus the caller's signature."""
    account: str
    call: str
    args: Dict[str, Any] = field(default_factory=dict)
    nonce: str = ""
    signature: str = ""

    def signing_input(self) -> bytes:
        return canonical_json_bytes({
            "account": self.account,
            "call": self.call,
            "args": self.args,
            "nonce": self.nonce,
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "call": self.call,
            "args": dict(self.args),
            "nonce": self.nonce,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignedCall":
        return cls(
            account=str(data["account"]),
            call=str(data["call"]),
            args=dict(data.get("args") or {}),
            nonce=str(data.get("nonce", "")),
            signature=str(data.get("signature", "")),
        )


class NonceRegistry:
    """
    Registry for tracking used nonces to prevent replay attacks.

    Nonces are stored with expiration times to allow cleanup
    of old entries while maintaining security.
    """

    def __init__(self, max_age_hours: int = 168):
        self._nonces: Dict[str, datetime] = {}
        self._lock = threading.Lock()
        self._max_age = timedelta(hours=max_age_hours)

    def check_and_register(self, nonce: str) -> bool:
        """
        Check if nonce is fresh and register it.

        Returns False if nonce was already used (replay attempt).
        """
        with self._lock:
            self._cleanup()
            if nonce in self._nonces:
                return False
            self._nonces[nonce] = datetime.now(timezone.utc)
            return True

    def _cleanup(self) -> None:
        cutoff = datetime.now(timezone.utc) - self._max_age
        expired = [n for n, t in self._nonces.items() if t < cutoff]
        for nonce in expired:
            del self._nonces[nonce]

    def size(self) -> int:
        with self._lock:
            return len(self._nonces)


def public_key_hex(private_key: Ed25519PrivateKey) -> str:
    raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return raw.hex()


def generate_account() -> Tuple[Ed25519PrivateKey, str]:
    """Create a fresh keypair and return it with its account id."""
    private_key = Ed25519PrivateKey.generate()
    return private_key, public_key_hex(private_key)


def sign_call(
    private_key: Ed25519PrivateKey,
    call: str,
    args: Dict[str, Any],
    nonce: str,
) -> SignedCall:
    """Build and sign a request for the key's account."""
    request = SignedCall(
        account=public_key_hex(private_key),
        call=call,
        args=dict(args),
        nonce=nonce,
    )
    request.signature = private_key.sign(request.signing_input()).hex()
    return request


class Ed25519Authenticator:
    """Authenticator for ``SignedCall`` requests."""

    def __init__(self, nonces: Optional[NonceRegistry] = None):
        self._nonces = nonces if nonces is not None else NonceRegistry()

    def authenticate(self, request: Any) -> str:
        if isinstance(request, dict):
            try:
                request = SignedCall.from_dict(request)
            except KeyError as exc:
                raise Rejected(f"request missing field {exc}") from None
        if not isinstance(request, SignedCall):
            raise Rejected(f"unsupported request type {type(request).__name__}")
        if not request.nonce:
            raise Rejected("request has no nonce")

        try:
            public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(request.account))
            signature = bytes.fromhex(request.signature)
        except ValueError as exc:
            raise Rejected(f"malformed account or signature: {exc}") from None
        if len(signature) != 64:
            raise Rejected(f"Ed25519 signature must be 64 bytes, got {len(signature)}")

        try:
            public_key.verify(signature, request.signing_input())
        except InvalidSignature:
            logger.warning("signature check failed", account=request.account, call=request.call)
            raise Rejected("invalid signature") from None

        if not self._nonces.check_and_register(f"{request.account}:{request.nonce}"):
            logger.warning("replayed nonce", account=request.account, nonce=request.nonce)
            raise Rejected(f"nonce {request.nonce} already used")

        return request.account
