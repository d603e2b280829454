"""
Custodia Configuration
======================
Централизованная конфигурация для хоста и программ (vault, ledger).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List

import os


class SecurityMode(str, Enum):
    """
    Режим безопасности программ.

    AS_BUILT воспроизводит исходное поведение, включая известные дефекты.
    HARDENED применяет исправленные проверки и порядок операций.
    """

    AS_BUILT = "as_built"
    HARDENED = "hardened"

    @classmethod
    def parse(cls, value: str) -> "SecurityMode":
        normalized = value.strip().lower().replace("-", "_")
        for mode in cls:
            if mode.value == normalized:
                return mode
        raise ValueError(f"Unknown security mode: {value!r}")


# ============================================================================
# Environment overrides
# ============================================================================

# Selected mode from environment (.env: CUSTODIA_MODE)
_MODE_ENV: str = os.getenv("CUSTODIA_MODE", "hardened")
try:
    CUSTODIA_MODE: SecurityMode = SecurityMode.parse(_MODE_ENV)
except ValueError:
    CUSTODIA_MODE = SecurityMode.HARDENED

CUSTODIA_DB: str = os.getenv("CUSTODIA_DB", ":memory:").strip() or ":memory:"
CUSTODIA_LOG_LEVEL: str = os.getenv("CUSTODIA_LOG_LEVEL", "INFO").upper()


@dataclass
class HostConfig:
    """Настройки хоста исполнения."""

    # Максимальная глубина вложенных вызовов (hook -> program -> hook ...)
    max_call_depth: int = 4

    # Пространство имён банка активов в хранилище
    asset_bank_namespace: str = "asset-bank"

    # Сколько последних событий хранит EventBus.history
    event_history_size: int = 1000


@dataclass
class SecurityConfig:
    """Настройки режима безопасности."""

    # Режим по умолчанию для новых экземпляров программ
    mode: SecurityMode = CUSTODIA_MODE


@dataclass
class VaultConfig:
    """Настройки vault программы."""

    program_id: str = "vault"

    # Разрешённые 8-байтовые селекторы для exec (hardened). Пусто = всё запрещено.
    exec_allow_list: List[bytes] = field(default_factory=list)

    # Длина селектора в начале exec data
    exec_selector_size: int = 8


@dataclass
class LedgerConfig:
    """Настройки fungible ledger программы."""

    program_id: str = "fragile-token"

    # Тег канонического permit сообщения
    permit_tag: bytes = b"PERMIT"

    # Топик события перевода
    transfer_topic: str = "xfer"


@dataclass
class PersistenceConfig:
    """Настройки хранилища состояния."""

    # Путь к базе SQLite (":memory:" для эфемерного состояния)
    database_path: str = CUSTODIA_DB

    # WAL режим для файловых баз
    wal_mode: bool = True


@dataclass
class Config:
    """Главный конфигурационный класс."""

    host: HostConfig = field(default_factory=HostConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    log_level: str = CUSTODIA_LOG_LEVEL


# Глобальный экземпляр конфигурации
config = Config()
