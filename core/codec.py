"""
Fixed Binary Layouts
====================

[WIRE] struct-based layouts for values persisted by the programs.

VaultState (73 bytes, little-endian):

| Field          | Type | Size |
|----------------|------|------|
| admin          | 32s  | 32   |
| mint           | 32s  | 32   |
| total_deposits | Q    | 8    |
| bump           | B    | 1    |

Permit message (big-endian):

    tag | owner(32) | spender(32) | amount(u64) | nonce(u64) [| domain]
"""

import struct
from typing import Optional

U64_MAX = 2 ** 64 - 1
U8_MAX = 2 ** 8 - 1

U64_FORMAT = ">Q"
VAULT_STATE_FORMAT = "<32s32sQB"
VAULT_STATE_SIZE = struct.calcsize(VAULT_STATE_FORMAT)  # 73


class CodecError(Exception):
    """Malformed persisted value."""
    pass


def is_u64(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= U64_MAX


def encode_u64(value: int) -> bytes:
    return struct.pack(U64_FORMAT, value)


def decode_u64(data: Optional[bytes]) -> int:
    """Missing values read as zero."""
    if data is None:
        return 0
    if len(data) != 8:
        raise CodecError(f"u64 must be 8 bytes, got {len(data)}")
    return struct.unpack(U64_FORMAT, data)[0]


def saturating_add(a: int, b: int) -> int:
    return min(a + b, U64_MAX)


def saturating_sub(a: int, b: int) -> int:
    return max(a - b, 0)


def checked_add(a: int, b: int) -> Optional[int]:
    """None when the sum leaves the u64 range."""
    total = a + b
    if total > U64_MAX:
        return None
    return total


def pack_vault_state(admin: bytes, mint: bytes, total_deposits: int, bump: int) -> bytes:
    return struct.pack(VAULT_STATE_FORMAT, admin, mint, total_deposits, bump)


def unpack_vault_state(data: bytes):
    """Returns (admin, mint, total_deposits, bump)."""
    if len(data) != VAULT_STATE_SIZE:
        raise CodecError(f"VaultState must be {VAULT_STATE_SIZE} bytes, got {len(data)}")
    return struct.unpack(VAULT_STATE_FORMAT, data)


def pack_permit_message(
    tag: bytes,
    owner: bytes,
    spender: bytes,
    amount: int,
    nonce: int,
    domain: bytes = b"",
) -> bytes:
    return (
        tag
        + struct.pack(">32s32sQQ", owner, spender, amount, nonce)
        + domain
    )
