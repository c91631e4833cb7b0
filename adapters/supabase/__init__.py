"""
Supabase 어댑터 패키지

가계부 레코드와 예산 한도를 위한 원격 백엔드 클라이언트 제공.
"""

from adapters.supabase.rest_client import SupabaseRecordBackend, identity_from_token

__all__ = [
    "SupabaseRecordBackend",
    "identity_from_token",
]
