"""
Fungible Ledger
===============

[LEDGER] Self-contained balance ledger with allowances, admin minting and
signature-authorized approvals (permits).

Storage keys (ledger namespace):
    owner, admin, total_supply, init
    bal:<who>                  u64
    allow:<owner><spender>     u64
    nonce:<who>                u64

Intended invariant: sum(balances) == total_supply.

[MODES]
as_built:
- init can be repeated and overwrites owner/admin/supply/owner balance
- approve accepts any owner argument from any caller
- transfer publishes the event before checking the balance
- mint/set_admin accept invoker OR tx source; a missing tx source passes
- permit reads the nonce and never advances it (replayable)
- credits saturate at 2**64 - 1

hardened:
- init once; approve/transfer/transfer_from need the matching caller
- transfer validates, mutates, then notifies
- mint/set_admin compare the effective caller with admin/owner
- permit advances the nonce with the allowance and binds the program id
- credits past 2**64 - 1 raise Overflow
"""

import logging
from typing import List, Optional, Tuple

from config import config, SecurityMode
from core.codec import U64_MAX, checked_add, decode_u64, is_u64, saturating_add
from core.errors import (
    AlreadyInitialized,
    BadAmount,
    InsufficientAllowance,
    InsufficientBalance,
    NotInitialized,
    Overflow,
)
from core.host import Host, Program, entrypoint
from core.identity import Identity, require_identity, short_id
from core.security import AuthorizationGuard, AuthStrategy
from programs.permit import SignedApprovalVerifier

logger = logging.getLogger(__name__)

OWNER_KEY = b"owner"
ADMIN_KEY = b"admin"
TOTAL_SUPPLY_KEY = b"total_supply"
INIT_KEY = b"init"
BALANCE_PREFIX = b"bal:"
ALLOWANCE_PREFIX = b"allow:"
NONCE_PREFIX = b"nonce:"


def balance_key(who: bytes) -> bytes:
    return BALANCE_PREFIX + who


def allowance_key(owner: bytes, spender: bytes) -> bytes:
    return ALLOWANCE_PREFIX + owner + spender


def nonce_key(who: bytes) -> bytes:
    return NONCE_PREFIX + who


class FungibleLedger(Program):
    """
    Balance/allowance ledger program.

    [USAGE]
        ledger = FungibleLedger(host, mode=SecurityMode.HARDENED)
        await ledger.init(CallContext(owner.identity), owner.identity, admin.identity, 1000)
        await ledger.transfer(CallContext(owner.identity), owner.identity, bob.identity, 10)
    """

    DEFAULT_PROGRAM_ID = config.ledger.program_id

    def __init__(
        self,
        host: Host,
        program_id: Optional[str] = None,
        mode: Optional[SecurityMode] = None,
    ):
        super().__init__(host, program_id=program_id, mode=mode)
        self.guard = AuthorizationGuard(host)
        self.verifier = SignedApprovalVerifier(
            hash_fn=host.hash,
            verify_fn=host.verify_signature,
        )
        self.transfer_topic = config.ledger.transfer_topic

    @property
    def permit_domain(self) -> bytes:
        """Domain bound into permit messages (empty as built)."""
        return self.program_id.encode("utf-8") if self.hardened else b""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_amount(amount: int) -> None:
        if not is_u64(amount):
            raise BadAmount(f"amount out of u64 range: {amount!r}")

    def _credit(self, current: int, amount: int) -> int:
        if not self.hardened:
            return saturating_add(current, amount)
        total = checked_add(current, amount)
        if total is None:
            raise Overflow(f"{current} + {amount} exceeds {U64_MAX}")
        return total

    async def _read_identity(self, key: bytes) -> Identity:
        value = await self._read(key)
        if value is None:
            raise NotInitialized(f"{self.program_id}: {key.decode()} is not set")
        return value

    async def _move(self, from_: bytes, to: bytes, amount: int) -> None:
        """Balance movement shared by transfer and transfer_from."""
        payload = {"from": from_, "to": to, "amount": amount}

        if not self.hardened:
            # as built: notification goes out before any check
            await self.host.publish_event(self.transfer_topic, payload)

        from_balance = await self._read_u64(balance_key(from_))
        if from_balance < amount:
            raise InsufficientBalance(
                f"{short_id(from_)} has {from_balance}, needs {amount}"
            )

        if self.hardened:
            to_balance = from_balance if from_ == to else await self._read_u64(balance_key(to))
            if from_ != to:
                new_to = self._credit(to_balance, amount)
                await self._write_u64(balance_key(from_), from_balance - amount)
                await self._write_u64(balance_key(to), new_to)
            await self.host.publish_event(self.transfer_topic, payload)
        else:
            await self._write_u64(balance_key(from_), from_balance - amount)
            to_balance = await self._read_u64(balance_key(to))
            await self._write_u64(balance_key(to), self._credit(to_balance, amount))

        logger.debug(f"[LEDGER] {amount} {short_id(from_)} -> {short_id(to)}")

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def owner(self) -> Identity:
        return await self._read_identity(OWNER_KEY)

    async def admin(self) -> Identity:
        return await self._read_identity(ADMIN_KEY)

    async def total_supply(self) -> int:
        return await self._read_u64(TOTAL_SUPPLY_KEY)

    async def balance_of(self, who: bytes) -> int:
        return await self._read_u64(balance_key(who))

    async def allowance(self, owner: bytes, spender: bytes) -> int:
        return await self._read_u64(allowance_key(owner, spender))

    async def nonce(self, who: bytes) -> int:
        return await self._read_u64(nonce_key(who))

    async def is_initialized(self) -> bool:
        return await self._read(INIT_KEY) is not None

    async def holders(self) -> List[Tuple[Identity, int]]:
        """(identity, balance) for every stored balance."""
        async with self.host.exclusive():
            rows = await self.host.store.scan(self.program_id, BALANCE_PREFIX)
        return [(key[len(BALANCE_PREFIX):], decode_u64(value)) for key, value in rows]

    async def sum_of_balances(self) -> int:
        return sum(balance for _, balance in await self.holders())

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @entrypoint
    async def init(self, owner: bytes, admin: bytes, supply: int) -> None:
        owner = require_identity(owner, "owner")
        admin = require_identity(admin, "admin")
        self._require_amount(supply)

        if await self.is_initialized():
            if self.hardened:
                raise AlreadyInitialized(f"{self.program_id} already initialized")
            logger.warning(f"[LEDGER] Re-initializing {self.program_id}")

        await self._write(INIT_KEY, b"\x01")
        await self._write(OWNER_KEY, owner)
        await self._write(ADMIN_KEY, admin)
        await self._write_u64(TOTAL_SUPPLY_KEY, supply)
        await self._write_u64(balance_key(owner), supply)

        logger.info(f"[LEDGER] Init owner={short_id(owner)} admin={short_id(admin)} supply={supply}")

    @entrypoint
    async def approve(self, owner: bytes, spender: bytes, amount: int) -> None:
        owner = require_identity(owner, "owner")
        spender = require_identity(spender, "spender")
        self._require_amount(amount)

        if self.hardened:
            self.guard.require(owner, AuthStrategy.EFFECTIVE_CALLER, "ledger.approve", role="owner")

        await self._write_u64(allowance_key(owner, spender), amount)
        logger.debug(f"[LEDGER] Approve {short_id(owner)} -> {short_id(spender)}: {amount}")

    @entrypoint
    async def transfer(self, from_: bytes, to: bytes, amount: int) -> None:
        from_ = require_identity(from_, "from")
        to = require_identity(to, "to")
        self._require_amount(amount)

        if self.hardened:
            self.guard.require(from_, AuthStrategy.EFFECTIVE_CALLER, "ledger.transfer", role="from")

        await self._move(from_, to, amount)

    @entrypoint
    async def transfer_from(self, spender: bytes, owner: bytes, to: bytes, amount: int) -> None:
        spender = require_identity(spender, "spender")
        owner = require_identity(owner, "owner")
        to = require_identity(to, "to")
        self._require_amount(amount)

        if self.hardened:
            self.guard.require(spender, AuthStrategy.EFFECTIVE_CALLER, "ledger.transfer_from", role="spender")

        allowed = await self.allowance(owner, spender)
        if spender != owner:
            if allowed < amount:
                raise InsufficientAllowance(
                    f"{short_id(spender)} may spend {allowed} of {short_id(owner)}, needs {amount}"
                )
            # no infinite-allowance sentinel
            await self._write_u64(allowance_key(owner, spender), allowed - amount)

        await self._move(owner, to, amount)

    @entrypoint
    async def mint(self, to: bytes, amount: int) -> None:
        to = require_identity(to, "to")
        self._require_amount(amount)

        admin = await self.admin()
        strategy = AuthStrategy.EFFECTIVE_CALLER if self.hardened else AuthStrategy.INVOKER_OR_SOURCE
        self.guard.require(admin, strategy, "ledger.mint", role="admin")

        supply = self._credit(await self.total_supply(), amount)
        balance = self._credit(await self.balance_of(to), amount)
        await self._write_u64(TOTAL_SUPPLY_KEY, supply)
        await self._write_u64(balance_key(to), balance)

        logger.info(f"[LEDGER] Minted {amount} to {short_id(to)} supply={supply}")

    @entrypoint
    async def set_admin(self, new_admin: bytes) -> None:
        new_admin = require_identity(new_admin, "new_admin")

        owner = await self.owner()
        strategy = AuthStrategy.EFFECTIVE_CALLER if self.hardened else AuthStrategy.INVOKER_OR_SOURCE
        self.guard.require(owner, strategy, "ledger.set_admin", role="owner")

        await self._write(ADMIN_KEY, new_admin)
        logger.info(f"[LEDGER] Admin set to {short_id(new_admin)}")

    @entrypoint
    async def permit(self, owner: bytes, spender: bytes, amount: int, signature: bytes) -> int:
        """
        Set allowance from an owner-signed permit.

        Returns the nonce value the signature was checked against.
        """
        owner = require_identity(owner, "owner")
        spender = require_identity(spender, "spender")
        self._require_amount(amount)

        nonce = await self.nonce(owner)
        self.verifier.verify(owner, spender, amount, nonce, signature, domain=self.permit_domain)

        if self.hardened:
            if nonce == U64_MAX:
                raise Overflow(f"nonce exhausted for {short_id(owner)}")
            await self._write_u64(nonce_key(owner), nonce + 1)

        await self._write_u64(allowance_key(owner, spender), amount)
        logger.info(f"[PERMIT] {short_id(owner)} -> {short_id(spender)}: {amount} (nonce {nonce})")
        return nonce
