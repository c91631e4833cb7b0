"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → safewallet/)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class StorageNamespaces:
    """KeyValueStore 키 네임스페이스

    네임스페이스에는 구분자(_)를 넣지 않는다.
    키의 첫 구분자 앞부분이 항상 네임스페이스가 되도록 보장.
    """

    SEPARATOR: str = "_"
    ANONYMOUS: str = "anon"

    LEDGER: str = "expenses"
    BUDGET: str = "budget"
    RATE: str = "fxrate"

    ALL: tuple[str, ...] = (LEDGER, BUDGET, RATE)


class Defaults:
    """기본값 상수"""

    CATEGORY: str = "General"
    CURRENCY: str = "HNL"

    # 환율 캐시
    RATE_TTL_SEC: int = 60 * 60  # 1시간
    RATE_PROVIDER_TIMEOUT_SEC: float = 8.0
    RATE_MAX_RETRIES: int = 2  # 프로바이더당 추가 시도 횟수
    RATE_RETRY_DELAY_SEC: float = 0.5

    # 원격 백엔드
    BACKEND_TIMEOUT_SEC: float = 15.0

    # 미확정 로컬 항목 보존 (refresh 시)
    PENDING_TTL_SEC: int = 300


class RateEndpoints:
    """환율 프로바이더 엔드포인트 (고정값)"""

    EXCHANGERATE_API_URL: str = "https://v6.exchangerate-api.com/v6"
    EXCHANGERATE_HOST_URL: str = "https://api.exchangerate.host"
    OPEN_ER_API_URL: str = "https://open.er-api.com/v6"


class BackendTables:
    """원격 백엔드(PostgREST) 테이블/RPC 이름"""

    EXPENSES: str = "expenses"
    USERS: str = "users"
    INSERT_RPC: str = "rpc_insert_expense"


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    # 설정 파일
    SETTINGS_FILE: Path = CONFIG_DIR / "settings.yaml"

    # 로컬 저장소 파일
    KV_DB: Path = DATA_DIR / "safewallet_kv.db"
