"""
설정 로더

settings.yaml 로드 및 컴포넌트별 설정 생성
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from core.constants import PROJECT_ROOT, Defaults, Paths


@dataclass(frozen=True)
class BackendConfig:
    """원격 백엔드(Supabase/PostgREST) 연결 설정"""

    url: str
    anon_key: str
    timeout: float = Defaults.BACKEND_TIMEOUT_SEC


@dataclass(frozen=True)
class RatesConfig:
    """환율 해석기 설정

    exchangerate_api_key가 비어 있으면 유료 프로바이더는 체인에서 제외.
    """

    exchangerate_api_key: str | None = None
    exchangerate_host_key: str | None = None
    ttl_sec: int = Defaults.RATE_TTL_SEC
    provider_timeout_sec: float = Defaults.RATE_PROVIDER_TIMEOUT_SEC
    max_retries: int = Defaults.RATE_MAX_RETRIES
    retry_delay_sec: float = Defaults.RATE_RETRY_DELAY_SEC


@dataclass(frozen=True)
class LedgerConfig:
    """LedgerSyncEngine 설정"""

    keep_pending_on_refresh: bool = False
    pending_ttl_sec: int = Defaults.PENDING_TTL_SEC


@dataclass(frozen=True)
class StorageConfig:
    """로컬 KeyValueStore 설정 (":memory:"면 프로세스 메모리 사용)"""

    kv_path: str = str(Paths.KV_DB)


@dataclass(frozen=True)
class Settings:
    """애플리케이션 설정 (settings.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    backend: BackendConfig
    rates: RatesConfig
    ledger: LedgerConfig
    storage: StorageConfig


class SettingsLoadError(Exception):
    """Settings 로드 실패 예외"""

    pass


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise SettingsLoadError(f"settings.yaml의 '{name}' 섹션 형식이 잘못되었습니다")
    return section


def _parse_backend(data: dict[str, Any]) -> BackendConfig:
    section = _section(data, "backend")

    url = section.get("url")
    anon_key = section.get("anon_key")

    if not url:
        raise SettingsLoadError("settings.yaml의 backend 섹션에 'url'이 없습니다")
    if not anon_key:
        raise SettingsLoadError("settings.yaml의 backend 섹션에 'anon_key'가 없습니다")

    return BackendConfig(
        url=str(url).rstrip("/"),
        anon_key=str(anon_key),
        timeout=float(section.get("timeout", Defaults.BACKEND_TIMEOUT_SEC)),
    )


def _parse_rates(data: dict[str, Any]) -> RatesConfig:
    section = _section(data, "rates")

    max_retries = int(section.get("max_retries", Defaults.RATE_MAX_RETRIES))
    if max_retries < 0:
        raise ValueError(f"rates.max_retries는 0 이상이어야 합니다: {max_retries}")

    ttl_sec = int(section.get("ttl_sec", Defaults.RATE_TTL_SEC))
    if ttl_sec <= 0:
        raise ValueError(f"rates.ttl_sec는 양수여야 합니다: {ttl_sec}")

    return RatesConfig(
        exchangerate_api_key=section.get("exchangerate_api_key") or None,
        exchangerate_host_key=section.get("exchangerate_host_key") or None,
        ttl_sec=ttl_sec,
        provider_timeout_sec=float(
            section.get("provider_timeout_sec", Defaults.RATE_PROVIDER_TIMEOUT_SEC)
        ),
        max_retries=max_retries,
        retry_delay_sec=float(section.get("retry_delay_sec", Defaults.RATE_RETRY_DELAY_SEC)),
    )


def _parse_ledger(data: dict[str, Any]) -> LedgerConfig:
    section = _section(data, "ledger")
    return LedgerConfig(
        keep_pending_on_refresh=bool(section.get("keep_pending_on_refresh", False)),
        pending_ttl_sec=int(section.get("pending_ttl_sec", Defaults.PENDING_TTL_SEC)),
    )


def _parse_storage(data: dict[str, Any]) -> StorageConfig:
    section = _section(data, "storage")
    kv_path = section.get("kv_path")
    if not kv_path:
        return StorageConfig()

    # 상대 경로는 프로젝트 루트 기준
    if kv_path != ":memory:" and not Path(kv_path).is_absolute():
        kv_path = str(PROJECT_ROOT / kv_path)
    return StorageConfig(kv_path=str(kv_path))


def load_settings(path: Path | None = None) -> Settings:
    """settings.yaml 파일 로드

    Args:
        path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 인스턴스

    Raises:
        SettingsLoadError: 파일이 없거나 형식이 잘못된 경우
        ValueError: 숫자 설정값이 허용 범위를 벗어난 경우
    """
    if path is None:
        path = Paths.SETTINGS_FILE

    if not path.exists():
        raise SettingsLoadError(f"settings.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SettingsLoadError(f"settings.yaml 파싱 실패: {e}") from e

    if data is None:
        raise SettingsLoadError("settings.yaml이 비어 있습니다")
    if not isinstance(data, dict):
        raise SettingsLoadError("settings.yaml 최상위는 매핑이어야 합니다")

    return Settings(
        backend=_parse_backend(data),
        rates=_parse_rates(data),
        ledger=_parse_ledger(data),
        storage=_parse_storage(data),
    )


_settings: Settings | None = None


def get_settings(settings_path: Path | None = None) -> Settings:
    """Settings 인스턴스 반환 (최초 1회 로드 후 재사용)

    Args:
        settings_path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 인스턴스
    """
    global _settings
    if _settings is None:
        _settings = load_settings(settings_path)
    return _settings


def reset_settings() -> None:
    """캐시된 Settings 초기화 (테스트용)"""
    global _settings
    _settings = None
