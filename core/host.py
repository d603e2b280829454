"""
Host Runtime
============

[EXECUTION] Simulated hosting engine for the custodial programs:

- Top-level calls are globally serialized (one asyncio.Lock per host)
- Each call runs in a frame backed by a storage SAVEPOINT: all writes of a
  failed call are rolled back, the error is re-raised unchanged
- Nested calls (a transfer hook or event subscriber calling back into a
  program) run inside the outer call's transaction without re-taking the
  lock, which is exactly how a reentrant call observes in-flight state
- Reads and writes made outside any call take the same lock (exclusive,
  atomic), so they never join or observe another call's open savepoint

[COLLABORATORS] Programs consume only these primitives:
    current_invoker()       -> identity of the verified caller
    fee_payer()             -> identity paying for the call
    transaction_source()    -> identity | None
    hash(bytes)             -> 32-byte SHA-256 digest
    verify_signature(...)   -> bool (Ed25519)
    publish_event(...)      -> EventBus delivery

[USAGE]
    host = await Host.create(":memory:")
    vault = Vault(host)
    await vault.initialize(CallContext(invoker=alice.identity), mint, bump=254)
"""

import asyncio
import functools
import hashlib
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from config import config, SecurityMode
from core.codec import decode_u64, encode_u64
from core.errors import ProgramError, CallDepthExceeded
from core.events import EventBus, Event
from core.identity import Identity, derive_address, verify_signature, short_id
from core.storage import StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallContext:
    """
    Identities attached to one call by the platform.

    invoker is the platform-verified caller. fee_payer defaults to the
    invoker. tx_source may be absent (e.g. a call relayed by a contract).
    """
    invoker: Identity
    fee_payer: Optional[Identity] = None
    tx_source: Optional[Identity] = None

    @property
    def payer(self) -> Identity:
        return self.fee_payer if self.fee_payer is not None else self.invoker


@dataclass(frozen=True)
class Frame:
    """Active call on the frame stack."""
    ctx: CallContext
    program: str
    operation: str
    depth: int
    savepoint: str


# Frame stack of the task holding the host lock. Spawned tasks inherit a copy
# but start from an empty stack when they take the lock.
_frames: ContextVar[Tuple[Frame, ...]] = ContextVar("custodia_frames", default=())


class Host:
    """Serialized, all-or-nothing execution of program calls."""

    def __init__(
        self,
        store: StateStore,
        events: Optional[EventBus] = None,
        max_call_depth: Optional[int] = None,
    ):
        self.store = store
        self.events = events or EventBus()
        self.max_call_depth = max_call_depth or config.host.max_call_depth
        self._lock = asyncio.Lock()
        self._lock_owner: Optional[asyncio.Task] = None
        self._call_counter = 0

    @classmethod
    async def create(cls, db_path: Optional[str] = None, **kwargs) -> "Host":
        """Open the state store and return a ready host."""
        store = StateStore(
            db_path or config.persistence.database_path,
            wal_mode=config.persistence.wal_mode,
        )
        await store.initialize()
        return cls(store, **kwargs)

    async def close(self) -> None:
        await self.store.close()

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def _holds_lock(self) -> bool:
        return self._lock_owner is not None and self._lock_owner is asyncio.current_task()

    @asynccontextmanager
    async def exclusive(self):
        """
        Hold the host lock for the current task.

        Re-entrant for the task that already holds it (nested calls, hooks,
        subscribers). Any other task waits, including tasks spawned from
        inside a call: they inherit the frame stack but not the lock, so
        they start from an empty stack once they get it.
        """
        if self._holds_lock():
            yield
            return
        async with self._lock:
            self._lock_owner = asyncio.current_task()
            token = _frames.set(())
            try:
                yield
            finally:
                _frames.reset(token)
                self._lock_owner = None

    @asynccontextmanager
    async def atomic(self, label: str = "atomic"):
        """
        All-or-nothing unit of writes made outside a program call.

        Serialized with program calls; inside a call it nests as a savepoint.
        """
        async with self.exclusive():
            self._call_counter += 1
            savepoint = f"{label}_{self._call_counter}"
            await self.store.begin(savepoint)
            try:
                yield
            except BaseException:
                await self.store.rollback(savepoint)
                raise
            else:
                await self.store.release(savepoint)

    @asynccontextmanager
    async def frame(self, ctx: CallContext, program: str, operation: str):
        """
        Run one program call.

        Top-level calls wait for the host lock; nested calls do not.
        """
        async with self.exclusive():
            async with self._enter(_frames.get(), ctx, program, operation) as frame:
                yield frame

    @asynccontextmanager
    async def _enter(self, stack: Tuple[Frame, ...], ctx: CallContext, program: str, operation: str):
        if len(stack) >= self.max_call_depth:
            raise CallDepthExceeded(f"{program}.{operation}: depth {len(stack)}")

        self._call_counter += 1
        frame = Frame(
            ctx=ctx,
            program=program,
            operation=operation,
            depth=len(stack),
            savepoint=f"call_{self._call_counter}",
        )
        token = _frames.set(stack + (frame,))
        await self.store.begin(frame.savepoint)
        logger.debug(
            f"[HOST] -> {program}.{operation} depth={frame.depth} "
            f"invoker={short_id(ctx.invoker)}"
        )
        try:
            yield frame
        except ProgramError as e:
            await self.store.rollback(frame.savepoint)
            logger.warning(f"[HOST] {program}.{operation} aborted: {e.code} ({e.message})")
            raise
        except BaseException as e:
            await self.store.rollback(frame.savepoint)
            logger.error(f"[HOST] {program}.{operation} failed: {e!r}")
            raise
        else:
            await self.store.release(frame.savepoint)
        finally:
            _frames.reset(token)

    def current_frame(self) -> Frame:
        stack = _frames.get()
        if not stack:
            raise RuntimeError("No active call frame")
        return stack[-1]

    @property
    def call_depth(self) -> int:
        return len(_frames.get())

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def current_invoker(self) -> Identity:
        return self.current_frame().ctx.invoker

    def fee_payer(self) -> Identity:
        return self.current_frame().ctx.payer

    def transaction_source(self) -> Optional[Identity]:
        return self.current_frame().ctx.tx_source

    @staticmethod
    def hash(data: bytes) -> bytes:
        return hashlib.sha256(data).digest()

    @staticmethod
    def verify_signature(identity: bytes, digest: bytes, signature: bytes) -> bool:
        return verify_signature(identity, digest, signature)

    async def publish_event(self, topic: str, payload: Dict[str, Any]) -> Event:
        frame = self.current_frame()
        logger.debug(f"[EVENTS] {frame.program} publish {topic}")
        return await self.events.publish(topic, payload, program=frame.program)


def entrypoint(fn):
    """
    Mark a Program method as a call entry point.

    The wrapped method takes a CallContext first; the body runs inside a
    host frame and reads identities from the host, not from the context.
    """
    @functools.wraps(fn)
    async def wrapper(self: "Program", ctx: CallContext, *args, **kwargs):
        async with self.host.frame(ctx, self.program_id, fn.__name__):
            return await fn(self, *args, **kwargs)

    wrapper.is_entrypoint = True
    return wrapper


class Program:
    """
    Base for programs running on a Host.

    Storage access is scoped to the program's own namespace.
    """

    DEFAULT_PROGRAM_ID = "program"

    def __init__(
        self,
        host: Host,
        program_id: Optional[str] = None,
        mode: Optional[SecurityMode] = None,
    ):
        self.host = host
        self.program_id = program_id or self.DEFAULT_PROGRAM_ID
        self.mode = SecurityMode(mode) if mode is not None else config.security.mode

    @property
    def hardened(self) -> bool:
        return self.mode is SecurityMode.HARDENED

    def derive_address(self, *seeds: bytes) -> Identity:
        return derive_address(self.program_id, seeds)

    async def _read(self, key: bytes) -> Optional[bytes]:
        async with self.host.exclusive():
            return await self.host.store.get(self.program_id, key)

    async def _write(self, key: bytes, value: bytes) -> None:
        async with self.host.exclusive():
            await self.host.store.put(self.program_id, key, value)

    async def _read_u64(self, key: bytes) -> int:
        return decode_u64(await self._read(key))

    async def _write_u64(self, key: bytes, value: int) -> None:
        await self._write(key, encode_u64(value))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.program_id!r}, mode={self.mode.value})"
