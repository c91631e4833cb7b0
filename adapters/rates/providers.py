"""
환율 프로바이더 구현

- ExchangeRateApiProvider: exchangerate-api.com (API 키 필요, 1순위)
- ExchangeRateHostProvider: exchangerate.host (무료)
- OpenErApiProvider: open.er-api.com (무료, 최후 수단)

응답 형식이 모두 다르므로 각 어댑터가 단일 Decimal 환율로 정규화.
"""

from decimal import Decimal
from typing import Any

from adapters.rates.base import BaseRateProvider
from core.constants import Defaults, RateEndpoints
from core.errors import RateProviderError


class ExchangeRateApiProvider(BaseRateProvider):
    """exchangerate-api.com 프로바이더 (키 필요)

    GET /v6/{key}/pair/{BASE}/{TARGET}
    응답: {"result": "success", "conversion_rate": 0.0405, ...}
          {"result": "error", "error-type": "invalid-key"}
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = RateEndpoints.EXCHANGERATE_API_URL,
        timeout: float = Defaults.RATE_PROVIDER_TIMEOUT_SEC,
    ):
        if not api_key:
            raise ValueError("api_key는 필수입니다")

        super().__init__(timeout=timeout)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "exchangerate-api"

    async def _fetch(self, base: str, target: str) -> Any:
        url = f"{self.base_url}/{self.api_key}/pair/{base}/{target}"
        return await self._get_json(url)

    def _parse_rate(self, data: Any, base: str, target: str) -> Decimal:
        if not isinstance(data, dict):
            raise RateProviderError(self.name, "Unexpected response shape")

        if data.get("result") != "success":
            error_type = data.get("error-type", "unknown")
            raise RateProviderError(self.name, f"API error: {error_type}")

        return self._require_rate(data.get("conversion_rate"), base, target)


class ExchangeRateHostProvider(BaseRateProvider):
    """exchangerate.host 프로바이더

    GET /latest?base={BASE}&symbols={TARGET}
    응답: {"base": "HNL", "rates": {"USD": 0.0405}}
    access_key가 있으면 함께 전달 (요금제에 따라 필수).
    """

    def __init__(
        self,
        access_key: str | None = None,
        base_url: str = RateEndpoints.EXCHANGERATE_HOST_URL,
        timeout: float = Defaults.RATE_PROVIDER_TIMEOUT_SEC,
    ):
        super().__init__(timeout=timeout)
        self.access_key = access_key
        self.base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "exchangerate-host"

    async def _fetch(self, base: str, target: str) -> Any:
        params: dict[str, Any] = {"base": base, "symbols": target}
        if self.access_key:
            params["access_key"] = self.access_key
        return await self._get_json(f"{self.base_url}/latest", params=params)

    def _parse_rate(self, data: Any, base: str, target: str) -> Decimal:
        if not isinstance(data, dict):
            raise RateProviderError(self.name, "Unexpected response shape")

        if data.get("success") is False:
            error = data.get("error") or {}
            info = error.get("info") if isinstance(error, dict) else error
            raise RateProviderError(self.name, f"API error: {info}")

        rates = data.get("rates")
        if not isinstance(rates, dict):
            raise RateProviderError(self.name, "Response has no 'rates' object")

        return self._require_rate(rates.get(target), base, target)


class OpenErApiProvider(BaseRateProvider):
    """open.er-api.com 프로바이더

    GET /v6/latest/{BASE}
    응답: {"result": "success", "base_code": "HNL", "rates": {"USD": 0.0405, ...}}
    """

    def __init__(
        self,
        base_url: str = RateEndpoints.OPEN_ER_API_URL,
        timeout: float = Defaults.RATE_PROVIDER_TIMEOUT_SEC,
    ):
        super().__init__(timeout=timeout)
        self.base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "open-er-api"

    async def _fetch(self, base: str, target: str) -> Any:
        return await self._get_json(f"{self.base_url}/latest/{base}")

    def _parse_rate(self, data: Any, base: str, target: str) -> Decimal:
        if not isinstance(data, dict):
            raise RateProviderError(self.name, "Unexpected response shape")

        if data.get("result") != "success":
            raise RateProviderError(self.name, f"API error: {data.get('error-type', 'unknown')}")

        rates = data.get("rates")
        if not isinstance(rates, dict):
            raise RateProviderError(self.name, "Response has no 'rates' object")

        return self._require_rate(rates.get(target), base, target)
