"""
환율 프로바이더 공통 베이스

HTTP 클라이언트 관리와 에러 정규화를 담당.
프로바이더별 요청 URL/응답 파싱만 하위 클래스에서 구현.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

import httpx

from core.constants import Defaults
from core.errors import RateProviderError
from core.utils.money import to_decimal

logger = logging.getLogger(__name__)


class BaseRateProvider(ABC):
    """환율 프로바이더 베이스

    IRateProvider Protocol 구현.

    Args:
        timeout: HTTP 요청 타임아웃 (초)
    """

    def __init__(self, timeout: float = Defaults.RATE_PROVIDER_TIMEOUT_SEC):
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """프로바이더 이름"""
        ...

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 가져오기 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """GET 요청 후 JSON 반환

        Raises:
            RateProviderError: 타임아웃, 네트워크 에러, HTTP 4xx/5xx, JSON 파싱 실패
        """
        client = await self._get_client()

        try:
            response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise RateProviderError(self.name, f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise RateProviderError(self.name, f"Request error: {e}") from e

        if response.status_code >= 400:
            raise RateProviderError(self.name, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise RateProviderError(self.name, "Invalid JSON response") from e

    def _require_rate(self, value: Any, base: str, target: str) -> Decimal:
        """응답에서 꺼낸 값이 유한한 양수 환율인지 검증"""
        rate = to_decimal(value)
        if rate is None or rate <= 0:
            raise RateProviderError(
                self.name,
                f"No valid rate for {base}->{target} in response: {value!r}",
            )
        return rate

    async def convert(self, base: str, target: str) -> Decimal:
        """base 1단위당 target 환율

        Raises:
            RateProviderError: 호출 또는 응답 검증 실패
        """
        base = base.upper()
        target = target.upper()

        data = await self._fetch(base, target)
        rate = self._parse_rate(data, base, target)

        logger.debug(f"[{self.name}] {base}->{target} = {rate}")
        return rate

    @abstractmethod
    async def _fetch(self, base: str, target: str) -> Any:
        """프로바이더 고유 요청 실행"""
        ...

    @abstractmethod
    def _parse_rate(self, data: Any, base: str, target: str) -> Decimal:
        """프로바이더 고유 응답에서 환율 추출

        Raises:
            RateProviderError: 응답에 유효한 환율이 없을 때
        """
        ...
