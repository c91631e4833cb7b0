"""
Rates 모듈

TTL 캐시와 프로바이더 fallback 체인을 갖는 환율 조회
"""

from wallet.rates.resolver import RateResolver

__all__ = ["RateResolver"]
