"""
Permit Unit Tests
=================

[SECURITY] Signed approvals:
- Verifier accepts only the owner's signature over the exact message
- Replay of one signature as built, single use when hardened
- Program id binding of hardened permits
"""

import pytest


class TestSignedApprovalVerifier:
    def test_valid_signature(self, keypair_factory):
        from programs.permit import SignedApprovalVerifier, sign_permit, permit_digest

        owner, spender = keypair_factory(), keypair_factory()
        signature = sign_permit(owner, spender.identity, 100, nonce=3)

        digest = SignedApprovalVerifier().verify(owner.identity, spender.identity, 100, 3, signature)

        assert digest == permit_digest(owner.identity, spender.identity, 100, 3)

    @pytest.mark.parametrize("field", ["amount", "nonce", "spender", "domain"])
    def test_any_field_change_invalidates(self, field, keypair_factory):
        from core.errors import BadSignature
        from programs.permit import SignedApprovalVerifier, sign_permit

        owner, spender, other = keypair_factory(), keypair_factory(), keypair_factory()
        signature = sign_permit(owner, spender.identity, 100, nonce=0)
        args = {"spender": spender.identity, "amount": 100, "nonce": 0, "domain": b""}
        args[field] = {"amount": 101, "nonce": 1, "spender": other.identity, "domain": b"x"}[field]

        with pytest.raises(BadSignature):
            SignedApprovalVerifier().verify(
                owner.identity, args["spender"], args["amount"], args["nonce"], signature, domain=args["domain"]
            )

    def test_signature_by_someone_else(self, keypair_factory):
        from core.errors import BadSignature
        from programs.permit import SignedApprovalVerifier, sign_permit

        owner, spender, forger = keypair_factory(), keypair_factory(), keypair_factory()
        forged = sign_permit(forger, spender.identity, 100)

        with pytest.raises(BadSignature):
            SignedApprovalVerifier().verify(owner.identity, spender.identity, 100, 0, forged)

    def test_malformed_signature(self, keypair_factory):
        from core.errors import BadSignature
        from programs.permit import SignedApprovalVerifier

        owner, spender = keypair_factory(), keypair_factory()

        with pytest.raises(BadSignature):
            SignedApprovalVerifier().verify(owner.identity, spender.identity, 1, 0, b"\x00" * 10)

    def test_malformed_owner(self, keypair_factory):
        from core.errors import BadSignature
        from programs.permit import SignedApprovalVerifier

        with pytest.raises(BadSignature):
            SignedApprovalVerifier().verify(b"short", keypair_factory().identity, 1, 0, b"\x00" * 64)

    def test_injected_primitives(self, keypair_factory):
        """Verifier uses the hash/verify functions it was given."""
        from programs.permit import SignedApprovalVerifier

        calls = []

        def fake_verify(owner, digest, signature):
            calls.append((owner, digest, signature))
            return True

        verifier = SignedApprovalVerifier(hash_fn=lambda data: b"H" * 32, verify_fn=fake_verify)
        owner, spender = keypair_factory(), keypair_factory()

        assert verifier.verify(owner.identity, spender.identity, 1, 0, b"sig") == b"H" * 32
        assert calls == [(owner.identity, b"H" * 32, b"sig")]


class TestLedgerPermit:
    @pytest.mark.asyncio
    async def test_as_built_replay(self, as_built_ledger, ctx, keypair_factory):
        """The same signature is accepted again because the nonce never moves."""
        from programs.permit import sign_permit

        owner, admin, spender, relayer = (keypair_factory() for _ in range(4))
        await as_built_ledger.init(ctx(owner), owner.identity, admin.identity, 1000)
        signature = sign_permit(owner, spender.identity, 100, nonce=0, domain=as_built_ledger.permit_domain)

        assert await as_built_ledger.permit(ctx(relayer), owner.identity, spender.identity, 100, signature) == 0
        await as_built_ledger.approve(ctx(owner), owner.identity, spender.identity, 0)
        assert await as_built_ledger.permit(ctx(relayer), owner.identity, spender.identity, 100, signature) == 0

        assert await as_built_ledger.allowance(owner.identity, spender.identity) == 100
        assert await as_built_ledger.nonce(owner.identity) == 0

    @pytest.mark.asyncio
    async def test_hardened_single_use(self, hardened_ledger, ctx, keypair_factory):
        from core.errors import BadSignature
        from programs.permit import sign_permit

        owner, admin, spender, relayer = (keypair_factory() for _ in range(4))
        await hardened_ledger.init(ctx(owner), owner.identity, admin.identity, 1000)
        domain = hardened_ledger.permit_domain
        signature = sign_permit(owner, spender.identity, 100, nonce=0, domain=domain)

        assert await hardened_ledger.permit(ctx(relayer), owner.identity, spender.identity, 100, signature) == 0
        with pytest.raises(BadSignature):
            await hardened_ledger.permit(ctx(relayer), owner.identity, spender.identity, 100, signature)

        assert await hardened_ledger.nonce(owner.identity) == 1
        assert await hardened_ledger.allowance(owner.identity, spender.identity) == 100

        fresh = sign_permit(owner, spender.identity, 7, nonce=1, domain=domain)
        assert await hardened_ledger.permit(ctx(relayer), owner.identity, spender.identity, 7, fresh) == 1
        assert await hardened_ledger.allowance(owner.identity, spender.identity) == 7

    @pytest.mark.asyncio
    async def test_hardened_rejects_unbound_signature(self, hardened_ledger, ctx, keypair_factory):
        """A permit signed without the program id does not verify."""
        from core.errors import BadSignature
        from programs.permit import sign_permit

        owner, admin, spender = (keypair_factory() for _ in range(3))
        await hardened_ledger.init(ctx(owner), owner.identity, admin.identity, 1000)
        signature = sign_permit(owner, spender.identity, 100, nonce=0)

        with pytest.raises(BadSignature):
            await hardened_ledger.permit(ctx(spender), owner.identity, spender.identity, 100, signature)

        assert await hardened_ledger.nonce(owner.identity) == 0

    @pytest.mark.asyncio
    async def test_permit_domain_per_mode(self, as_built_ledger, hardened_ledger):
        assert as_built_ledger.permit_domain == b""
        assert hardened_ledger.permit_domain == b"ledger-hardened"
