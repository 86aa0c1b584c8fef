"""
Narrow query interface over the contract cache and website analyses.

All methods are synchronous; async callers run them via asyncio.to_thread.
Cache inserts use dialect-level INSERT ... ON CONFLICT DO NOTHING so two
callers racing on the same uncached (address, chain) both succeed and the
first write wins.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, Type

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel

from houndmaster.db.engine import get_engine
from houndmaster.db.models import (
    Contract,
    ContractAbi,
    ContractSourceCode,
    WebsiteAnalysis,
    _now_iso,
)

_KEY = ["address", "chain"]


def _insert(engine: Engine, model: Type[SQLModel]):
    dialect = engine.dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise RuntimeError(f"unsupported database dialect for upsert: {dialect}")
    return insert(model)


class _Repository:
    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine or get_engine()

    def _insert_ignore(self, row: SQLModel) -> None:
        stmt = _insert(self.engine, type(row)).values(**row.model_dump())
        stmt = stmt.on_conflict_do_nothing(index_elements=_KEY)
        with Session(self.engine) as session:
            session.execute(stmt)
            session.commit()

    def _get(self, model: Type[SQLModel], address: str, chain: str):
        with Session(self.engine) as session:
            return session.get(model, (address, chain))


class ContractRepository(_Repository):
    """Contract / ContractSourceCode / ContractAbi rows, owned by VerificationStore."""

    def ensure_contract(self, address: str, chain: str) -> None:
        self._insert_ignore(Contract(address=address, chain=chain))

    def get_contract(self, address: str, chain: str) -> Optional[Contract]:
        return self._get(Contract, address, chain)

    def get_source(self, address: str, chain: str) -> Optional[ContractSourceCode]:
        return self._get(ContractSourceCode, address, chain)

    def get_abi(self, address: str, chain: str) -> Optional[ContractAbi]:
        return self._get(ContractAbi, address, chain)

    def save_source(self, address: str, chain: str, metadata: Dict[str, Any], source: Dict[str, Any]) -> None:
        """Update contract metadata in place and store the source blob once."""
        now = _now_iso()
        with Session(self.engine) as session:
            contract = session.get(Contract, (address, chain))
            if contract is None:
                contract = Contract(address=address, chain=chain)
            for key, value in metadata.items():
                if hasattr(contract, key):
                    setattr(contract, key, value)
            contract.verified_at = now
            contract.updated_at = now
            session.add(contract)
            session.commit()
        self._insert_ignore(ContractSourceCode(address=address, chain=chain, **source))

    def save_abi(self, address: str, chain: str, abi: str) -> None:
        self._insert_ignore(ContractAbi(address=address, chain=chain, abi=abi))


class WebsiteAnalysisRepository(_Repository):
    """WebsiteAnalysis rows, owned by WebsiteAnalyzer. Updated in place, never appended."""

    def get(self, address: str, chain: str) -> Optional[WebsiteAnalysis]:
        return self._get(WebsiteAnalysis, address, chain)

    def upsert(self, row: WebsiteAnalysis) -> None:
        values = row.model_dump()
        if not isinstance(values.get("source_urls"), str):
            values["source_urls"] = json.dumps(values.get("source_urls") or [])
        stmt = _insert(self.engine, WebsiteAnalysis).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=_KEY,
            set_={k: v for k, v in values.items() if k not in _KEY},
        )
        with Session(self.engine) as session:
            session.execute(stmt)
            session.commit()
