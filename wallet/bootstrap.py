"""
Wallet Bootstrap

설정 로드, 의존성 주입, 세션(identity) 전환 관리.
UI 계층은 WalletApp 하나만 생성하여 ledger / rates 를 사용한다.
"""

import logging
from pathlib import Path
from typing import Any

from adapters.interfaces import IKeyValueStore, IRateProvider, IRecordBackend
from adapters.kv import MemoryKeyValueStore, SQLiteKeyValueStore
from adapters.rates import (
    ExchangeRateApiProvider,
    ExchangeRateHostProvider,
    OpenErApiProvider,
)
from adapters.supabase import SupabaseRecordBackend, identity_from_token
from core.config.loader import RatesConfig, Settings, get_settings
from core.logging import setup_logging
from core.types import SyncOutcome
from wallet.ledger.sync_engine import LedgerSyncEngine
from wallet.rates.resolver import RateResolver

logger = logging.getLogger(__name__)

MEMORY_STORE_PATH = ":memory:"


def build_rate_providers(config: RatesConfig) -> list[IRateProvider]:
    """프로바이더 체인 생성

    키가 설정된 경우에만 exchangerate-api를 맨 앞에 둔다.
    """
    providers: list[IRateProvider] = []
    if config.exchangerate_api_key:
        providers.append(
            ExchangeRateApiProvider(
                api_key=config.exchangerate_api_key,
                timeout=config.provider_timeout_sec,
            )
        )
    providers.append(
        ExchangeRateHostProvider(
            access_key=config.exchangerate_host_key,
            timeout=config.provider_timeout_sec,
        )
    )
    providers.append(OpenErApiProvider(timeout=config.provider_timeout_sec))
    return providers


class WalletApp:
    """Wallet 앱 조립

    Args:
        settings: 설정 객체
        store: KV 저장소 (None이면 설정의 kv_path로 생성)
        backend: 원격 백엔드 (None이면 Supabase)
        providers: 환율 프로바이더 체인 (None이면 설정으로 생성)

    사용 예시:
    ```python
    async with WalletApp(get_settings()) as app:
        await app.sign_in(access_token)
        await app.ledger.add(RecordDraft(amount="150", label="Lunch"))
        rate = await app.rates.get_rate("HNL", "USD")
    ```
    """

    def __init__(
        self,
        settings: Settings,
        store: IKeyValueStore | None = None,
        backend: IRecordBackend | None = None,
        providers: list[IRateProvider] | None = None,
    ):
        self.settings = settings
        self.store = store if store is not None else self._create_store()
        self.backend = backend if backend is not None else self._create_backend()
        self.providers = providers if providers is not None else build_rate_providers(settings.rates)

        self.ledger = LedgerSyncEngine(
            store=self.store,
            backend=self.backend,
            keep_pending_on_refresh=settings.ledger.keep_pending_on_refresh,
            pending_ttl_sec=settings.ledger.pending_ttl_sec,
        )
        self.rates = RateResolver(
            store=self.store,
            providers=self.providers,
            ttl_seconds=settings.rates.ttl_sec,
            max_retries=settings.rates.max_retries,
            retry_delay_seconds=settings.rates.retry_delay_sec,
            call_timeout=settings.rates.provider_timeout_sec,
        )

    def _create_store(self) -> IKeyValueStore:
        kv_path = self.settings.storage.kv_path
        if kv_path == MEMORY_STORE_PATH:
            return MemoryKeyValueStore()
        return SQLiteKeyValueStore(kv_path)

    def _create_backend(self) -> IRecordBackend:
        return SupabaseRecordBackend(
            base_url=self.settings.backend.url,
            anon_key=self.settings.backend.anon_key,
            timeout=self.settings.backend.timeout,
        )

    @property
    def identity(self) -> str | None:
        return self.ledger.identity

    async def start(self) -> SyncOutcome:
        """저장소 연결 후 익명 상태로 초기화"""
        if isinstance(self.store, SQLiteKeyValueStore) and not self.store.is_connected:
            await self.store.connect()

        logger.info(
            "Wallet 시작",
            extra={"kv_path": self.settings.storage.kv_path, "providers": [p.name for p in self.providers]},
        )
        return await self.ledger.initialize_for_identity(None)

    async def sign_in(self, access_token: str) -> SyncOutcome:
        """세션 토큰으로 로그인 후 해당 identity 로드

        Raises:
            ValueError: 토큰에서 identity를 얻을 수 없음
        """
        if isinstance(self.backend, SupabaseRecordBackend):
            identity = self.backend.set_access_token(access_token)
        else:
            identity = identity_from_token(access_token)

        if not identity:
            raise ValueError("액세스 토큰에 sub 클레임이 없습니다")

        logger.info("로그인", extra={"identity": identity})
        return await self.ledger.initialize_for_identity(identity)

    async def sign_out(self) -> SyncOutcome:
        """로그아웃 (메모리 상태 초기화, 로컬 저장 데이터는 유지)"""
        if isinstance(self.backend, SupabaseRecordBackend):
            self.backend.set_access_token(None)

        logger.info("로그아웃", extra={"identity": self.ledger.identity})
        return await self.ledger.initialize_for_identity(None)

    async def close(self) -> None:
        """HTTP 클라이언트 및 저장소 종료"""
        for provider in self.providers:
            close = getattr(provider, "close", None)
            if close is not None:
                await close()

        close_backend = getattr(self.backend, "close", None)
        if close_backend is not None:
            await close_backend()

        if isinstance(self.store, SQLiteKeyValueStore):
            await self.store.close()

        logger.info("Wallet 종료")

    async def __aenter__(self) -> "WalletApp":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def create_app(
    settings_path: Path | None = None,
    log_dir: Path | None = None,
    configure_logging: bool = True,
) -> WalletApp:
    """설정 파일로 WalletApp 생성 및 시작

    Args:
        settings_path: settings.yaml 경로 (None이면 기본 경로)
        log_dir: 로그 디렉토리 (None이면 기본 경로)
        configure_logging: False면 호출자의 로깅 설정 유지
    """
    if configure_logging:
        setup_logging("wallet", log_dir=log_dir)

    app = WalletApp(get_settings(settings_path))
    await app.start()
    return app
