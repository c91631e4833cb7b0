"""
환율 프로바이더 어댑터 패키지
"""

from adapters.rates.base import BaseRateProvider
from adapters.rates.providers import (
    ExchangeRateApiProvider,
    ExchangeRateHostProvider,
    OpenErApiProvider,
)

__all__ = [
    "BaseRateProvider",
    "ExchangeRateApiProvider",
    "ExchangeRateHostProvider",
    "OpenErApiProvider",
]
