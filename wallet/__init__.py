"""
Wallet 패키지

가계부 동기화 엔진, 예산 검증, 환율 조회 및 조립(bootstrap)
"""
