"""
houndmaster/db: database engine, SQLModel tables and repositories.

Usage:
    from houndmaster.db import get_engine, init_db
    from houndmaster.db.repository import ContractRepository, WebsiteAnalysisRepository
"""

from houndmaster.db.engine import get_engine, init_db

__all__ = ["get_engine", "init_db"]
