"""
State Store - Персистентное key-value хранилище программ
=========================================================

[PERSISTENCE] Каждая программа пишет только в своё пространство имён:

    program_state (program TEXT, key BLOB, value BLOB, PRIMARY KEY(program, key))

[ATOMICITY] Вызов = SAVEPOINT. Ошибка внутри вызова -> ROLLBACK TO,
состояние остаётся байт-в-байт прежним. Вложенные вызовы (reentrancy
через hooks) получают вложенные savepoints внутри внешнего вызова.

[USAGE]
    store = StateStore(":memory:")
    await store.initialize()

    await store.begin("call_1")
    await store.put("vault", b"key", b"value")
    await store.release("call_1")   # или rollback("call_1")
"""

import logging
from pathlib import Path
from typing import Optional, List, Tuple

import aiosqlite

logger = logging.getLogger(__name__)


class StateStore:
    """
    Хранилище состояния программ поверх aiosqlite.

    Соединение открывается с isolation_level=None, транзакции управляются
    явно через SAVEPOINT.
    """

    def __init__(self, db_path: str = ":memory:", wal_mode: bool = True):
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._db: Optional[aiosqlite.Connection] = None
        self._savepoints: List[str] = []

    async def initialize(self) -> None:
        """Открыть базу и создать таблицу если не существует."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path, isolation_level=None)

        if self.wal_mode and self.db_path != ":memory:":
            await self._db.execute("PRAGMA journal_mode=WAL")

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS program_state (
                program TEXT NOT NULL,
                key BLOB NOT NULL,
                value BLOB NOT NULL,
                PRIMARY KEY (program, key)
            )
        """)
        logger.info(f"[STORE] Initialized at {self.db_path}")

    async def close(self) -> None:
        """Закрыть соединение."""
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def in_transaction(self) -> bool:
        return bool(self._savepoints)

    @property
    def depth(self) -> int:
        return len(self._savepoints)

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("StateStore is not initialized")
        return self._db

    # --- Savepoints ---

    async def begin(self, name: str) -> None:
        await self._conn().execute(f"SAVEPOINT {name}")
        self._savepoints.append(name)

    async def release(self, name: str) -> None:
        """Зафиксировать savepoint (для внешнего - commit)."""
        self._pop(name)
        await self._conn().execute(f"RELEASE SAVEPOINT {name}")

    async def rollback(self, name: str) -> None:
        """Откатить все записи с момента begin(name)."""
        self._pop(name)
        db = self._conn()
        await db.execute(f"ROLLBACK TO SAVEPOINT {name}")
        await db.execute(f"RELEASE SAVEPOINT {name}")

    def _pop(self, name: str) -> None:
        if not self._savepoints or self._savepoints[-1] != name:
            raise RuntimeError(f"Savepoint {name} is not the innermost one")
        self._savepoints.pop()

    # --- Key-value ---

    async def get(self, program: str, key: bytes) -> Optional[bytes]:
        cursor = await self._conn().execute(
            "SELECT value FROM program_state WHERE program = ? AND key = ?",
            (program, key)
        )
        row = await cursor.fetchone()
        return bytes(row[0]) if row else None

    async def put(self, program: str, key: bytes, value: bytes) -> None:
        await self._conn().execute(
            """
            INSERT INTO program_state (program, key, value) VALUES (?, ?, ?)
            ON CONFLICT(program, key) DO UPDATE SET value = excluded.value
            """,
            (program, key, value)
        )

    async def delete(self, program: str, key: bytes) -> None:
        await self._conn().execute(
            "DELETE FROM program_state WHERE program = ? AND key = ?",
            (program, key)
        )

    async def scan(self, program: str, prefix: bytes = b"") -> List[Tuple[bytes, bytes]]:
        """Все пары (key, value) пространства имён с данным префиксом."""
        cursor = await self._conn().execute(
            "SELECT key, value FROM program_state WHERE program = ? ORDER BY key",
            (program,)
        )
        rows = await cursor.fetchall()
        return [
            (bytes(r[0]), bytes(r[1]))
            for r in rows
            if bytes(r[0]).startswith(prefix)
        ]

    async def snapshot(self, program: Optional[str] = None) -> List[Tuple[str, bytes, bytes]]:
        """Полный дамп (для проверки неизменности состояния)."""
        if program is None:
            cursor = await self._conn().execute(
                "SELECT program, key, value FROM program_state ORDER BY program, key"
            )
        else:
            cursor = await self._conn().execute(
                "SELECT program, key, value FROM program_state WHERE program = ? ORDER BY key",
                (program,)
            )
        rows = await cursor.fetchall()
        return [(r[0], bytes(r[1]), bytes(r[2])) for r in rows]
