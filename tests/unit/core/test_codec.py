"""
Codec Unit Tests
================

[UNIT] Fixed layouts and u64 arithmetic helpers.
"""

import struct

import pytest


class TestU64:
    def test_missing_reads_zero(self):
        from core.codec import decode_u64
        assert decode_u64(None) == 0

    def test_big_endian_encoding(self):
        from core.codec import encode_u64
        assert encode_u64(1) == b"\x00" * 7 + b"\x01"

    def test_decode_rejects_wrong_size(self):
        from core.codec import decode_u64, CodecError
        with pytest.raises(CodecError):
            decode_u64(b"\x00" * 7)

    @pytest.mark.parametrize("value,expected", [
        (0, True),
        (2 ** 64 - 1, True),
        (2 ** 64, False),
        (-1, False),
        (True, False),
        (1.0, False),
    ])
    def test_is_u64(self, value, expected):
        from core.codec import is_u64
        assert is_u64(value) is expected

    def test_saturating(self):
        from core.codec import saturating_add, saturating_sub, U64_MAX

        assert saturating_add(U64_MAX - 1, 5) == U64_MAX
        assert saturating_add(1, 2) == 3
        assert saturating_sub(3, 5) == 0
        assert saturating_sub(5, 3) == 2

    def test_checked_add(self):
        from core.codec import checked_add, U64_MAX

        assert checked_add(U64_MAX, 0) == U64_MAX
        assert checked_add(U64_MAX, 1) is None


class TestVaultStateLayout:
    def test_size_is_73_bytes(self):
        from core.codec import VAULT_STATE_SIZE
        assert VAULT_STATE_SIZE == 73

    def test_field_offsets(self):
        """admin | mint | total_deposits (LE) | bump."""
        from core.codec import pack_vault_state

        data = pack_vault_state(b"\xaa" * 32, b"\xbb" * 32, 0x0102, 7)

        assert data[:32] == b"\xaa" * 32
        assert data[32:64] == b"\xbb" * 32
        assert struct.unpack("<Q", data[64:72])[0] == 0x0102
        assert data[72] == 7

    def test_unpack_rejects_wrong_size(self):
        from core.codec import unpack_vault_state, CodecError
        with pytest.raises(CodecError):
            unpack_vault_state(b"\x00" * 72)


class TestPermitMessage:
    def test_layout(self):
        from core.codec import pack_permit_message

        msg = pack_permit_message(b"PERMIT", b"\x01" * 32, b"\x02" * 32, 500, 3)

        assert msg.startswith(b"PERMIT")
        assert len(msg) == 6 + 32 + 32 + 8 + 8
        assert msg[-8:] == (3).to_bytes(8, "big")
        assert msg[-16:-8] == (500).to_bytes(8, "big")

    def test_domain_appended(self):
        from core.codec import pack_permit_message

        plain = pack_permit_message(b"PERMIT", b"\x01" * 32, b"\x02" * 32, 1, 0)
        bound = pack_permit_message(b"PERMIT", b"\x01" * 32, b"\x02" * 32, 1, 0, b"ledger")
        assert bound == plain + b"ledger"
