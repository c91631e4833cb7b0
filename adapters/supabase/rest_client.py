"""
Supabase(PostgREST) REST 클라이언트

expenses / users 테이블에 대한 CRUD 및 예산 한도 조회/저장.
IRecordBackend Protocol 준수.

주의: 레코드 소유자는 세션 액세스 토큰(JWT)의 sub 클레임으로 결정된다.
RLS 정책이 서버에서 최종 검증하므로 클라이언트는 서명을 검증하지 않는다.
"""

import logging
from decimal import Decimal
from typing import Any

import httpx
import jwt

from core.constants import BackendTables, Defaults
from core.errors import BackendError, InvalidRecordIdError
from core.utils.identifiers import is_remote_id
from core.utils.money import to_decimal
from core.utils.timezone import now_utc

logger = logging.getLogger(__name__)


def identity_from_token(access_token: str) -> str | None:
    """액세스 토큰(JWT)에서 사용자 identity(sub) 추출

    Args:
        access_token: Supabase 세션 액세스 토큰

    Returns:
        sub 클레임 또는 None (디코딩 실패)
    """
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning(f"액세스 토큰 디코딩 실패: {e}")
        return None

    sub = claims.get("sub")
    return str(sub) if sub else None


class SupabaseRecordBackend:
    """Supabase REST 클라이언트

    IRecordBackend Protocol 구현.
    모든 요청은 anon 키(apikey)와 세션 토큰(Bearer)을 함께 전송.

    Args:
        base_url: Supabase 프로젝트 URL
        anon_key: anon 공개 키
        timeout: HTTP 요청 타임아웃 (초)
        use_insert_rpc: 생성 시 RPC를 먼저 시도할지 여부

    사용 예시:
    ```python
    backend = SupabaseRecordBackend(base_url="https://xxx.supabase.co", anon_key="...")
    backend.set_access_token(session_token)
    rows = await backend.list_records(backend.identity)
    ```
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        timeout: float = Defaults.BACKEND_TIMEOUT_SEC,
        use_insert_rpc: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.use_insert_rpc = use_insert_rpc

        self._access_token: str | None = None
        self._identity: str | None = None
        self._client: httpx.AsyncClient | None = None

    # -------------------------------------------------------------------------
    # 세션 / HTTP
    # -------------------------------------------------------------------------

    @property
    def identity(self) -> str | None:
        """현재 세션 사용자 identity"""
        return self._identity

    def set_access_token(self, access_token: str | None) -> str | None:
        """세션 토큰 설정 (None이면 로그아웃)

        Returns:
            토큰에서 추출한 identity
        """
        self._access_token = access_token
        self._identity = identity_from_token(access_token) if access_token else None
        return self._identity

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

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        token = self._access_token or self.anon_key
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """API 요청 실행

        Args:
            method: HTTP 메서드
            path: REST 경로 (예: /expenses)
            params: PostgREST 필터 파라미터
            body: 요청 본문
            prefer: Prefer 헤더 값

        Returns:
            응답 JSON (본문 없으면 None)

        Raises:
            BackendError: 네트워크 에러, HTTP 4xx/5xx, JSON 파싱 실패
        """
        client = await self._get_client()
        url = f"{self.base_url}/rest/v1{path}"

        try:
            response = await client.request(
                method,
                url,
                params=params,
                json=body,
                headers=self._headers(prefer),
            )
        except httpx.TimeoutException as e:
            logger.error(f"Backend request timeout: {method} {path}")
            raise BackendError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"Backend request error: {method} {path} - {e}")
            raise BackendError(f"Request error: {e}") from e

        if response.status_code >= 400:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {}
            if not isinstance(error_data, dict):
                error_data = {}
            error_msg = error_data.get("message") or response.text
            error_code = error_data.get("code")
            logger.error(
                f"Backend API error: {response.status_code} - {error_msg}",
                extra={"path": path, "error_code": error_code},
            )
            raise BackendError(error_msg, status_code=response.status_code, code=error_code)

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise BackendError("Invalid JSON response", status_code=response.status_code) from e

    @staticmethod
    def _first_row(data: Any) -> dict[str, Any] | None:
        """representation 응답에서 첫 행 추출"""
        if isinstance(data, list):
            return data[0] if data else None
        if isinstance(data, dict):
            return data or None
        return None

    # =========================================================================
    # 레코드
    # =========================================================================

    async def list_records(self, owner_identity: str) -> list[dict[str, Any]]:
        """소유자의 전체 레코드 조회 (created_at 내림차순)"""
        data = await self._request(
            "GET",
            f"/{BackendTables.EXPENSES}",
            params={
                "select": "*",
                "owner_id": f"eq.{owner_identity}",
                "order": "created_at.desc",
            },
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise BackendError("Unexpected list response shape")
        return data

    async def create_record(
        self,
        label: str,
        category: str,
        amount: Decimal,
    ) -> dict[str, Any] | None:
        """레코드 생성

        RPC(rpc_insert_expense)를 먼저 시도하고, 실패하면 직접 insert로 대체.

        Returns:
            생성된 행 또는 None (성공했으나 본문 없음)
        """
        if self.use_insert_rpc:
            try:
                data = await self._request(
                    "POST",
                    f"/rpc/{BackendTables.INSERT_RPC}",
                    body={
                        "p_title": label,
                        "p_category": category or None,
                        "p_amount": str(amount),
                    },
                )
                row = self._first_row(data)
                if row:
                    return row
            except BackendError as e:
                logger.warning(f"RPC insert 실패, 직접 insert로 대체: {e}")

        payload: dict[str, Any] = {
            "title": label.strip(),
            "amount": str(amount),
            "date": now_utc().isoformat(),
        }
        if self._identity:
            payload["owner_id"] = self._identity
        if category and category.strip():
            payload["category"] = category.strip()

        data = await self._request(
            "POST",
            f"/{BackendTables.EXPENSES}",
            body=payload,
            prefer="return=representation",
        )
        return self._first_row(data)

    async def update_record(
        self,
        record_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any] | None:
        """레코드 수정 (원격 식별자만 허용)"""
        if not is_remote_id(record_id):
            raise InvalidRecordIdError(record_id)

        params = {"id": f"eq.{record_id}"}
        if self._identity:
            params["owner_id"] = f"eq.{self._identity}"

        data = await self._request(
            "PATCH",
            f"/{BackendTables.EXPENSES}",
            params=params,
            body=patch,
            prefer="return=representation",
        )
        return self._first_row(data)

    async def delete_record(self, record_id: str) -> None:
        """레코드 삭제 (원격 식별자만 허용)"""
        if not is_remote_id(record_id):
            raise InvalidRecordIdError(record_id)

        params = {"id": f"eq.{record_id}"}
        if self._identity:
            params["owner_id"] = f"eq.{self._identity}"

        await self._request("DELETE", f"/{BackendTables.EXPENSES}", params=params)

    async def delete_all_for_owner(self, owner_identity: str) -> None:
        """소유자의 전체 레코드 삭제"""
        await self._request(
            "DELETE",
            f"/{BackendTables.EXPENSES}",
            params={"owner_id": f"eq.{owner_identity}"},
        )

    # =========================================================================
    # 예산 한도 (users.budget)
    # =========================================================================

    async def get_ceiling(self, owner_identity: str) -> Decimal:
        """프로필의 budget 조회 (없으면 0)"""
        data = await self._request(
            "GET",
            f"/{BackendTables.USERS}",
            params={"select": "budget", "id": f"eq.{owner_identity}"},
        )
        row = self._first_row(data)
        if row is None:
            return Decimal("0")
        return to_decimal(row.get("budget")) or Decimal("0")

    async def set_ceiling(self, owner_identity: str, value: Decimal) -> None:
        """프로필의 budget 저장

        update 대상 행이 없으면 upsert로 최소 프로필 행 생성.
        """
        data = await self._request(
            "PATCH",
            f"/{BackendTables.USERS}",
            params={"id": f"eq.{owner_identity}"},
            body={"budget": str(value)},
            prefer="return=representation",
        )
        if self._first_row(data) is not None:
            return

        logger.info("프로필 행 없음, upsert 수행", extra={"owner": owner_identity})
        await self._request(
            "POST",
            f"/{BackendTables.USERS}",
            params={"on_conflict": "id"},
            body={"id": owner_identity, "budget": str(value)},
            prefer="resolution=merge-duplicates,return=representation",
        )
