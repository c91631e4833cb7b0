"""
SQLite Key-Value 저장소

WAL 모드 SQLite 위의 단순 key → 문자열 저장소.
IKeyValueStore Protocol 준수.

주의: 값은 불투명 문자열. JSON 직렬화는 호출자 책임.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


async def create_connection(db_path: Path | str) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)

    Args:
        db_path: DB 파일 경로 (":memory:" 허용)

    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)

    if db_path_str != MEMORY_PATH:
        # 디렉토리가 없으면 생성
        Path(db_path_str).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path_str)

    # WAL 모드 설정
    await conn.execute("PRAGMA journal_mode=WAL")

    # 동시 접근 설정
    await conn.execute("PRAGMA busy_timeout=30000")  # 30초 대기

    logger.info("SQLite KV 연결 생성", extra={"db_path": db_path_str})

    return conn


class SQLiteKeyValueStore:
    """SQLite 기반 Key-Value 저장소

    IKeyValueStore Protocol 구현.
    모든 쓰기는 즉시 커밋.

    Args:
        db_path: DB 파일 경로 (":memory:"면 휘발성)

    사용 예시:
    ```python
    async with SQLiteKeyValueStore(Paths.KV_DB) as store:
        await store.set("expenses_anon", "[]")
        raw = await store.get("expenses_anon")
    ```
    """

    TABLE = "kv_store"

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None
        # 단일 연결 공유, 트랜잭션 직렬화
        self._tx_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    async def connect(self) -> None:
        """연결 생성 및 스키마 초기화"""
        if self._conn is not None:
            return

        self._conn = await create_connection(self.db_path)
        await self._conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                kv_key      TEXT PRIMARY KEY,
                kv_value    TEXT NOT NULL,
                updated_at  TEXT NOT NULL
            )
            """
        )
        await self._conn.commit()

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite KV 연결 종료")

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Not connected to database")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 컨텍스트 매니저

        성공 시 자동 커밋, 예외 시 자동 롤백.
        트랜잭션은 하나씩 직렬 실행된다.
        """
        conn = self._require_conn()
        async with self._tx_lock:
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    # -------------------------------------------------------------------------
    # IKeyValueStore
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        conn = self._require_conn()
        cursor = await conn.execute(
            f"SELECT kv_value FROM {self.TABLE} WHERE kv_key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with self.transaction() as conn:
            await conn.execute(
                f"""
                INSERT INTO {self.TABLE} (kv_key, kv_value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(kv_key) DO UPDATE SET
                    kv_value = excluded.kv_value,
                    updated_at = excluded.updated_at
                """,
                (key, value, now),
            )

    async def remove(self, key: str) -> None:
        async with self.transaction() as conn:
            await conn.execute(f"DELETE FROM {self.TABLE} WHERE kv_key = ?", (key,))

    async def remove_many(self, keys: list[str]) -> None:
        if not keys:
            return
        async with self.transaction() as conn:
            await conn.executemany(
                f"DELETE FROM {self.TABLE} WHERE kv_key = ?",
                [(key,) for key in keys],
            )

    async def all_keys(self) -> list[str]:
        conn = self._require_conn()
        cursor = await conn.execute(f"SELECT kv_key FROM {self.TABLE} ORDER BY kv_key")
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteKeyValueStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
