"""
Core Host Module
================
Содержит host runtime, на котором исполняются программы:
- Host: сериализованные вызовы, атомарный commit/rollback, caller resolution
- StateStore: key-value хранилище поверх aiosqlite с savepoints
- EventBus: публикация событий (side channel)
- AssetBank: внешний примитив перевода активов
- Keypair / verify_signature: Ed25519 идентичности (PyNaCl)
- Security: AuthorizationGuard
"""

from .errors import (
    ProgramError,
    BadAmount,
    NotAuthorized,
    InsufficientBalance,
    InsufficientAllowance,
    BadSignature,
    AlreadyInitialized,
    NotInitialized,
    Overflow,
    ExecNotPermitted,
    AssetTransferFailed,
    CallDepthExceeded,
)
from .identity import Identity, Keypair, verify_signature, derive_address, short_id
from .storage import StateStore
from .events import EventBus, Event
from .host import Host, CallContext, Frame, Program, entrypoint
from .assets import AssetBank, TransferNotice
from .security import AuthorizationGuard, AuthStrategy

__all__ = [
    "ProgramError",
    "BadAmount",
    "NotAuthorized",
    "InsufficientBalance",
    "InsufficientAllowance",
    "BadSignature",
    "AlreadyInitialized",
    "NotInitialized",
    "Overflow",
    "ExecNotPermitted",
    "AssetTransferFailed",
    "CallDepthExceeded",
    "Identity",
    "Keypair",
    "verify_signature",
    "derive_address",
    "short_id",
    "StateStore",
    "EventBus",
    "Event",
    "Host",
    "CallContext",
    "Frame",
    "Program",
    "entrypoint",
    "AssetBank",
    "TransferNotice",
    "AuthorizationGuard",
    "AuthStrategy",
]
