"""
Asset Bank
==========

[HOST] Simulated external asset-transfer primitive: fungible asset accounts
keyed by (mint, holder). Stored in the host's state store under its own
namespace, so a failed program call rolls asset movements back too.

[SIGNERS] A transfer must be authorized by the source holder:
- a regular holder must be the call's invoker or fee payer
- a program-derived holder is accepted only when the calling program
  presents the seeds it was derived from (invoke-with-signer)

[HOOKS] Transfer hooks run after balances move and before transfer()
returns. A hook may call back into a program; that nested call sees the
caller's in-flight state.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from config import config
from core.codec import decode_u64, encode_u64, is_u64, U64_MAX
from core.errors import AssetTransferFailed, BadAmount
from core.host import Host
from core.identity import Identity, derive_address, require_identity, short_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferNotice:
    """Passed to transfer hooks."""
    mint: Identity
    source: Identity
    dest: Identity
    amount: int
    program: str


TransferHook = Callable[[TransferNotice], Awaitable[Any]]


class AssetBank:
    """Fungible asset accounts with signer-checked transfers."""

    def __init__(self, host: Host, namespace: Optional[str] = None):
        self.host = host
        self.namespace = namespace or config.host.asset_bank_namespace
        self._hooks: List[TransferHook] = []

    # --- Keys ---

    @staticmethod
    def _account_key(mint: bytes, holder: bytes) -> bytes:
        return b"acct:" + mint + holder

    @staticmethod
    def _balance_key(mint: bytes, holder: bytes) -> bytes:
        return b"bal:" + mint + holder

    # --- Hooks ---

    def add_transfer_hook(self, hook: TransferHook) -> None:
        self._hooks.append(hook)

    def remove_transfer_hook(self, hook: TransferHook) -> None:
        self._hooks = [h for h in self._hooks if h is not hook]

    # --- Accounts ---

    async def open_account(self, mint: bytes, holder: bytes) -> None:
        """Create an empty account; no-op if it exists."""
        mint = require_identity(mint, "mint")
        holder = require_identity(holder, "holder")
        key = self._account_key(mint, holder)
        async with self.host.atomic("open_account"):
            if await self.host.store.get(self.namespace, key) is None:
                await self.host.store.put(self.namespace, key, b"\x01")

    async def has_account(self, mint: bytes, holder: bytes) -> bool:
        async with self.host.exclusive():
            return await self.host.store.get(self.namespace, self._account_key(mint, holder)) is not None

    async def balance(self, mint: bytes, holder: bytes) -> int:
        async with self.host.exclusive():
            return decode_u64(await self.host.store.get(self.namespace, self._balance_key(mint, holder)))

    async def issue(self, mint: bytes, holder: bytes, amount: int) -> int:
        """
        Credit new units to a holder (test and bootstrap faucet).

        Returns the new balance.
        """
        if not is_u64(amount):
            raise BadAmount(f"issue amount out of range: {amount!r}")
        async with self.host.atomic("issue"):
            await self.open_account(mint, holder)
            current = await self.balance(mint, holder)
            if current + amount > U64_MAX:
                raise AssetTransferFailed("issue would overflow holder balance")
            new_balance = current + amount
            await self.host.store.put(self.namespace, self._balance_key(mint, holder), encode_u64(new_balance))
        logger.debug(f"[ASSETS] Issued {amount} to {short_id(holder)}")
        return new_balance

    # --- Transfer ---

    def _check_signer(self, authority: bytes, signer_seeds: Optional[Sequence[bytes]]) -> None:
        frame = self.host.current_frame()
        if signer_seeds is not None:
            if derive_address(frame.program, signer_seeds) != authority:
                raise AssetTransferFailed("signer seeds do not derive the authority")
            return
        if authority not in (frame.ctx.invoker, frame.ctx.payer):
            raise AssetTransferFailed(f"authority {short_id(authority)} did not sign")

    async def transfer(
        self,
        mint: bytes,
        source: bytes,
        dest: bytes,
        amount: int,
        authority: bytes,
        signer_seeds: Optional[Sequence[bytes]] = None,
    ) -> None:
        """
        Move amount of mint from source to dest.

        Must be called inside a program frame. Raises AssetTransferFailed on
        any rejection; no partial movement is kept because the caller's
        frame rolls back.
        """
        if not is_u64(amount):
            raise AssetTransferFailed(f"amount out of range: {amount!r}")
        if authority != source:
            raise AssetTransferFailed("authority does not own the source account")
        self._check_signer(authority, signer_seeds)

        if not await self.has_account(mint, source):
            raise AssetTransferFailed(f"no {short_id(mint)} account for source {short_id(source)}")
        if not await self.has_account(mint, dest):
            raise AssetTransferFailed(f"no {short_id(mint)} account for dest {short_id(dest)}")

        source_balance = await self.balance(mint, source)
        if source_balance < amount:
            raise AssetTransferFailed(
                f"insufficient funds: {short_id(source)} has {source_balance}, needs {amount}"
            )

        store = self.host.store
        if source != dest:
            dest_balance = await self.balance(mint, dest)
            if dest_balance + amount > U64_MAX:
                raise AssetTransferFailed("destination balance would overflow")
            await store.put(self.namespace, self._balance_key(mint, source), encode_u64(source_balance - amount))
            await store.put(self.namespace, self._balance_key(mint, dest), encode_u64(dest_balance + amount))

        logger.debug(f"[ASSETS] {amount} {short_id(source)} -> {short_id(dest)}")

        notice = TransferNotice(
            mint=mint,
            source=source,
            dest=dest,
            amount=amount,
            program=self.host.current_frame().program,
        )
        for hook in list(self._hooks):
            await hook(notice)
