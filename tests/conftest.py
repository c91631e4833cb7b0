"""
pytest 공통 fixture 정의
"""

import tempfile
from pathlib import Path

import pytest

from adapters.kv import MemoryKeyValueStore
from adapters.mock import MockRecordBackend
from core.config.loader import reset_settings

USER_A = "11111111-1111-4111-8111-111111111111"
USER_B = "22222222-2222-4222-8222-222222222222"


@pytest.fixture
def temp_dir() -> Path:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_settings_file(temp_dir: Path) -> Path:
    """테스트용 settings.yaml 파일 생성"""
    settings_content = """# 테스트용 settings.yaml
backend:
  url: "https://test-project.supabase.co/"
  anon_key: "test-anon-key"
  timeout: 5

rates:
  exchangerate_api_key: "test-rate-key"
  ttl_sec: 1800
  max_retries: 1
  retry_delay_sec: 0

ledger:
  keep_pending_on_refresh: true
  pending_ttl_sec: 120

storage:
  kv_path: ":memory:"
"""
    settings_path = temp_dir / "settings.yaml"
    settings_path.write_text(settings_content, encoding="utf-8")
    return settings_path


@pytest.fixture
def temp_settings_file_minimal(temp_dir: Path) -> Path:
    """필수 항목만 있는 settings.yaml"""
    settings_content = """backend:
  url: "https://minimal.supabase.co"
  anon_key: "anon"
"""
    settings_path = temp_dir / "settings_minimal.yaml"
    settings_path.write_text(settings_content, encoding="utf-8")
    return settings_path


@pytest.fixture(autouse=True)
def _reset_cached_settings():
    """테스트 간 Settings 캐시 격리"""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    """메모리 KV 저장소"""
    return MemoryKeyValueStore()


@pytest.fixture
def backend() -> MockRecordBackend:
    """USER_A 소유 Mock 백엔드"""
    return MockRecordBackend(owner=USER_A)
