"""
pg-replicator - PostgreSQL 폴링 기반 변경 감지 (insert / update / delete)
"""
__version__ = "1.0.0"
