"""
어댑터 레이어

외부 서비스(원격 백엔드, 환율 API, 로컬 저장소)와의 연동을 담당.
Protocol 기반 인터페이스로 Mock 교체 가능.
"""

from adapters.interfaces import (
    IKeyValueStore,
    IRecordBackend,
    IRateProvider,
)

__all__ = [
    "IKeyValueStore",
    "IRecordBackend",
    "IRateProvider",
]
