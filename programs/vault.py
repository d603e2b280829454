"""
Vault - Custodial Deposit Program
=================================

[CUSTODY] Holds one fungible asset (mint) on behalf of users and tracks the
aggregate amount in custody (total_deposits, saturating u64).

State per mint (73 bytes, see core.codec):
    admin | mint | total_deposits | bump

Custody account: asset-bank account owned by the vault authority, an
address derived from seeds [b"state", mint, bump]. Withdrawals are signed
with those seeds.

[MODES]
as_built:
- initialize can be re-invoked and overwrites every field
- deposit/withdraw call the asset bank first, then update the counter
  (withdraw: a transfer hook sees total_deposits not yet decremented)
- set_admin checks the fee payer, not a dedicated admin signer
- exec measures the data length and does nothing else

hardened:
- lifecycle tag checked and set before any field is written
- counter updated before any asset movement
- set_admin requires the effective caller to be the admin
- exec requires the admin and an allow-listed selector, then does nothing
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from config import config, SecurityMode
from core.assets import AssetBank
from core.codec import (
    is_u64,
    pack_vault_state,
    saturating_add,
    saturating_sub,
    unpack_vault_state,
    U8_MAX,
    VAULT_STATE_SIZE,
)
from core.errors import (
    AlreadyInitialized,
    BadAmount,
    ExecNotPermitted,
    NotInitialized,
)
from core.host import Host, Program, entrypoint
from core.identity import Identity, require_identity, short_id
from core.security import AuthorizationGuard, AuthStrategy

logger = logging.getLogger(__name__)

STATE_SEED = b"state"
INITIALIZED = b"\x01"


@dataclass
class VaultState:
    """Persisted vault record for one mint."""

    admin: Identity
    mint: Identity
    total_deposits: int = 0
    bump: int = 0

    SIZE = VAULT_STATE_SIZE

    def pack(self) -> bytes:
        return pack_vault_state(self.admin, self.mint, self.total_deposits, self.bump)

    @classmethod
    def unpack(cls, data: bytes) -> "VaultState":
        admin, mint, total_deposits, bump = unpack_vault_state(data)
        return cls(admin=admin, mint=mint, total_deposits=total_deposits, bump=bump)


class Vault(Program):
    """
    Custodial vault program.

    [USAGE]
        bank = AssetBank(host)
        vault = Vault(host, bank)
        await vault.initialize(CallContext(admin.identity), mint, bump=255)
        await vault.deposit(CallContext(user.identity), mint, 100)
    """

    DEFAULT_PROGRAM_ID = config.vault.program_id

    def __init__(
        self,
        host: Host,
        bank: AssetBank,
        program_id: Optional[str] = None,
        mode: Optional[SecurityMode] = None,
        exec_allow_list: Optional[List[bytes]] = None,
    ):
        super().__init__(host, program_id=program_id, mode=mode)
        self.bank = bank
        self.guard = AuthorizationGuard(host)
        if exec_allow_list is None:
            exec_allow_list = config.vault.exec_allow_list
        self.exec_allow_list = [bytes(s) for s in exec_allow_list]
        self.exec_selector_size = config.vault.exec_selector_size

    # ------------------------------------------------------------------
    # Keys and derived addresses
    # ------------------------------------------------------------------

    @staticmethod
    def state_key(mint: bytes) -> bytes:
        return STATE_SEED + b":" + mint

    @staticmethod
    def lifecycle_key(mint: bytes) -> bytes:
        return b"lifecycle:" + mint

    def authority_seeds(self, mint: bytes, bump: int) -> List[bytes]:
        return [STATE_SEED, mint, bytes([bump])]

    def authority_for(self, mint: bytes, bump: int) -> Identity:
        return self.derive_address(*self.authority_seeds(mint, bump))

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def get_state(self, mint: bytes) -> Optional[VaultState]:
        data = await self._read(self.state_key(mint))
        return VaultState.unpack(data) if data is not None else None

    async def is_initialized(self, mint: bytes) -> bool:
        return await self._read(self.lifecycle_key(mint)) == INITIALIZED

    async def total_deposits(self, mint: bytes) -> int:
        state = await self.get_state(mint)
        return state.total_deposits if state else 0

    async def authority(self, mint: bytes) -> Identity:
        state = await self._load(mint)
        return self.authority_for(mint, state.bump)

    async def custody_balance(self, mint: bytes) -> int:
        return await self.bank.balance(mint, await self.authority(mint))

    async def _load(self, mint: bytes) -> VaultState:
        state = await self.get_state(mint)
        if state is None:
            raise NotInitialized(f"vault for mint {short_id(mint)} is not initialized")
        return state

    async def _save(self, state: VaultState) -> None:
        await self._write(self.state_key(state.mint), state.pack())

    @staticmethod
    def _require_amount(amount: int) -> None:
        if not is_u64(amount) or amount == 0:
            raise BadAmount(f"bad amount: {amount!r}")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @entrypoint
    async def initialize(self, mint: bytes, bump: int) -> VaultState:
        """Create the vault record for mint with the caller as admin."""
        mint = require_identity(mint, "mint")
        if not isinstance(bump, int) or not 0 <= bump <= U8_MAX:
            raise ValueError(f"bump must be a byte, got {bump!r}")

        if self.hardened:
            if await self.is_initialized(mint):
                raise AlreadyInitialized(f"vault for mint {short_id(mint)} already initialized")
        elif await self.get_state(mint) is not None:
            logger.warning(f"[VAULT] Re-initializing vault for mint {short_id(mint)}")

        await self._write(self.lifecycle_key(mint), INITIALIZED)

        state = VaultState(
            admin=self.host.current_invoker(),
            mint=mint,
            total_deposits=0,
            bump=bump,
        )
        await self._save(state)
        await self.bank.open_account(mint, self.authority_for(mint, bump))

        logger.info(f"[VAULT] Initialized mint={short_id(mint)} admin={short_id(state.admin)} bump={bump}")
        return state

    @entrypoint
    async def deposit(self, mint: bytes, amount: int) -> int:
        """
        Move amount from the caller into custody.

        Returns the new total_deposits. Amount is taken at face value.
        """
        self._require_amount(amount)
        state = await self._load(mint)
        user = self.host.current_invoker()
        custody = self.authority_for(mint, state.bump)

        if self.hardened:
            state.total_deposits = saturating_add(state.total_deposits, amount)
            await self._save(state)
            await self.bank.transfer(mint, user, custody, amount, authority=user)
        else:
            await self.bank.transfer(mint, user, custody, amount, authority=user)
            state.total_deposits = saturating_add(state.total_deposits, amount)
            await self._save(state)

        logger.info(f"[VAULT] Deposit {amount} from {short_id(user)} total={state.total_deposits}")
        return state.total_deposits

    @entrypoint
    async def withdraw(self, mint: bytes, amount: int) -> int:
        """
        Move amount out of custody to the caller, signed by the vault authority.

        Returns the new total_deposits.
        """
        self._require_amount(amount)
        state = await self._load(mint)
        user = self.host.current_invoker()
        seeds = self.authority_seeds(mint, state.bump)
        custody = self.authority_for(mint, state.bump)

        if self.hardened:
            state.total_deposits = saturating_sub(state.total_deposits, amount)
            await self._save(state)
            await self.bank.transfer(mint, custody, user, amount, authority=custody, signer_seeds=seeds)
        else:
            await self.bank.transfer(mint, custody, user, amount, authority=custody, signer_seeds=seeds)
            # effects after interaction, written from the record loaded before it
            state.total_deposits = saturating_sub(state.total_deposits, amount)
            await self._save(state)

        logger.info(f"[VAULT] Withdraw {amount} to {short_id(user)} total={state.total_deposits}")
        return state.total_deposits

    @entrypoint
    async def set_admin(self, mint: bytes, new_admin: bytes) -> None:
        new_admin = require_identity(new_admin, "new_admin")
        state = await self._load(mint)

        strategy = AuthStrategy.EFFECTIVE_CALLER if self.hardened else AuthStrategy.FEE_PAYER
        self.guard.require(state.admin, strategy, "vault.set_admin", role="admin")

        logger.info(f"[VAULT] Admin {short_id(state.admin)} -> {short_id(new_admin)}")
        state.admin = new_admin
        await self._save(state)

    @entrypoint
    async def exec(self, mint: bytes, data: bytes) -> int:
        """
        Generic call-forwarding hook. Forwards nothing.

        Returns the data length.
        """
        data = bytes(data)
        state = await self._load(mint)

        if self.hardened:
            self.guard.require(state.admin, AuthStrategy.EFFECTIVE_CALLER, "vault.exec", role="admin")
            selector = data[:self.exec_selector_size]
            if len(selector) < self.exec_selector_size or selector not in self.exec_allow_list:
                raise ExecNotPermitted(f"selector {selector.hex() or '<empty>'} is not allow-listed")

        logger.info(f"[VAULT] exec len {len(data)}")
        return len(data)
