"""
사기 탐지 룰 관리 대시보드

룰 CRUD, 목록 필터링/검색, 상태 보드를 제공하는 FastAPI 서비스입니다.
"""

__version__ = "1.0.0"
