"""
Signed Approvals (Permits)
==========================

[SECURITY] A permit lets an owner authorize an allowance off-channel: the
owner signs a canonical message and anyone may submit it.

Canonical message:
    tag(b"PERMIT") | owner(32) | spender(32) | amount(u64 BE) | nonce(u64 BE) [| domain]

Digest = SHA-256(message). The signature is Ed25519 over the digest,
verified against the owner's 32-byte public key.

[REPLAY] The nonce binds a signature to one value of nonces[owner]. Only a
ledger that advances the nonce in the same transition as the allowance
update makes each signature single-use.
"""

import hashlib
import logging
from typing import Callable, Optional

from config import config
from core.codec import pack_permit_message
from core.errors import BadSignature
from core.identity import Keypair, is_identity, require_identity, short_id, verify_signature

logger = logging.getLogger(__name__)


def build_permit_message(
    owner: bytes,
    spender: bytes,
    amount: int,
    nonce: int,
    domain: bytes = b"",
    tag: Optional[bytes] = None,
) -> bytes:
    return pack_permit_message(
        tag if tag is not None else config.ledger.permit_tag,
        owner,
        spender,
        amount,
        nonce,
        domain,
    )


def permit_digest(
    owner: bytes,
    spender: bytes,
    amount: int,
    nonce: int,
    domain: bytes = b"",
) -> bytes:
    return hashlib.sha256(build_permit_message(owner, spender, amount, nonce, domain)).digest()


def sign_permit(
    keypair: Keypair,
    spender: bytes,
    amount: int,
    nonce: int = 0,
    domain: bytes = b"",
) -> bytes:
    """Client helper: owner signs a permit for spender."""
    return keypair.sign(permit_digest(keypair.identity, spender, amount, nonce, domain))


class SignedApprovalVerifier:
    """
    Verifies permit signatures using host primitives.

    hash_fn and verify_fn default to SHA-256 and Ed25519 so the verifier can
    be used without a host.
    """

    def __init__(
        self,
        hash_fn: Optional[Callable[[bytes], bytes]] = None,
        verify_fn: Optional[Callable[[bytes, bytes, bytes], bool]] = None,
        tag: Optional[bytes] = None,
    ):
        self.hash_fn = hash_fn or (lambda data: hashlib.sha256(data).digest())
        self.verify_fn = verify_fn or verify_signature
        self.tag = tag if tag is not None else config.ledger.permit_tag

    def digest(self, owner: bytes, spender: bytes, amount: int, nonce: int, domain: bytes = b"") -> bytes:
        message = build_permit_message(owner, spender, amount, nonce, domain, tag=self.tag)
        return self.hash_fn(message)

    def verify(
        self,
        owner: bytes,
        spender: bytes,
        amount: int,
        nonce: int,
        signature: bytes,
        domain: bytes = b"",
    ) -> bytes:
        """
        Raise BadSignature unless signature is the owner's over the permit.

        Returns the verified digest.
        """
        if not is_identity(owner):
            raise BadSignature("permit owner is not a 32-byte public key")
        spender = require_identity(spender, "spender")
        digest = self.digest(owner, spender, amount, nonce, domain)

        if not self.verify_fn(owner, digest, bytes(signature)):
            logger.warning(f"[PERMIT] Bad signature for owner {short_id(owner)} nonce={nonce}")
            raise BadSignature(f"permit signature does not verify for {short_id(owner)}")

        return digest
