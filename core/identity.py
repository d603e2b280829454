"""
Identities and Keys
===================

[SECURITY] Uses PyNaCl:
- Ed25519 for signatures (SigningKey/VerifyKey)
- Identity = raw 32-byte Ed25519 public key

Program-derived authorities (vault custody) have no private key. They are
derived from a program id and seeds, and the asset bank accepts them only
when the calling program presents the same seeds.
"""

import base64
import hashlib
import logging
from typing import Optional, Sequence

from nacl.signing import SigningKey, VerifyKey
from nacl.encoding import Base64Encoder
from nacl.exceptions import BadSignatureError, CryptoError

logger = logging.getLogger(__name__)

# Raw Ed25519 public key bytes
Identity = bytes

IDENTITY_SIZE = 32
SIGNATURE_SIZE = 64


def is_identity(value: object) -> bool:
    return isinstance(value, (bytes, bytearray)) and len(value) == IDENTITY_SIZE


def require_identity(value: object, name: str = "identity") -> Identity:
    """Validate and normalize a 32-byte identity."""
    if not is_identity(value):
        raise ValueError(f"{name} must be {IDENTITY_SIZE} bytes")
    return bytes(value)


def short_id(identity: Optional[bytes]) -> str:
    """Short printable form for logs (first 8 chars of base64)."""
    if identity is None:
        return "none"
    return base64.b64encode(identity).decode("ascii")[:8]


class Keypair:
    """
    Ed25519 keypair for an account holder.

    [USAGE]
        alice = Keypair()
        sig = alice.sign(digest)
        assert verify_signature(alice.identity, digest, sig)
    """

    def __init__(self, signing_key: Optional[SigningKey] = None):
        self.signing_key: SigningKey = signing_key or SigningKey.generate()
        self.verify_key: VerifyKey = self.signing_key.verify_key

        # Identity = raw public key bytes
        self.identity: Identity = bytes(self.verify_key)

        # Printable id (base64 of the public key)
        self.address: str = self.verify_key.encode(encoder=Base64Encoder).decode("ascii")

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        """
        Deterministic keypair from a 32-byte seed.

        [SECURITY] Seed must be cryptographically random outside tests and
        reproducible scenario runs (main.py --seed).
        """
        if len(seed) != 32:
            raise ValueError("Seed must be exactly 32 bytes")
        return cls(SigningKey(seed))

    def sign(self, data: bytes) -> bytes:
        """Detached 64-byte Ed25519 signature over data."""
        return self.signing_key.sign(data).signature

    def __repr__(self) -> str:
        return f"Keypair({short_id(self.identity)})"


def verify_signature(identity: bytes, digest: bytes, signature: bytes) -> bool:
    """
    Verify a detached Ed25519 signature.

    Returns False for malformed keys or signatures instead of raising.
    """
    if not is_identity(identity):
        return False
    if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_SIZE:
        return False
    try:
        VerifyKey(bytes(identity)).verify(bytes(digest), bytes(signature))
        return True
    except BadSignatureError:
        return False
    except (CryptoError, ValueError, TypeError) as e:
        logger.debug(f"[AUTH] Malformed verification input: {e}")
        return False


def derive_address(program_id: str, seeds: Sequence[bytes]) -> Identity:
    """
    Derive a program authority identity from a program id and seeds.

    The result is a SHA-256 digest, not a curve point, so no private key
    exists for it.
    """
    h = hashlib.sha256()
    for seed in seeds:
        h.update(len(seed).to_bytes(1, "big"))
        h.update(seed)
    h.update(program_id.encode("utf-8"))
    h.update(b"ProgramDerivedAddress")
    return h.digest()
