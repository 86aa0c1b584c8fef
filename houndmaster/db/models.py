"""
SQLModel table definitions.

Design rules:
  - Every table is keyed by the composite (address, chain); addresses are
    stored lower-cased so one contract never yields two rows.
  - primary_key=True must be set in Field() only, never combined with
    sa_column (SQLModel raises RuntimeError otherwise).
  - JSON payloads (ABI, source URL lists) stay TEXT with Python-side
    serialization so SQLite and PostgreSQL behave the same.
  - Timestamps are ISO-8601 strings in UTC.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Column, Integer, Text
from sqlmodel import Field, SQLModel


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are read as UTC."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class Contract(SQLModel, table=True):
    __tablename__ = "contracts"

    address: str = Field(primary_key=True)
    chain: str = Field(primary_key=True)
    name: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    compiler_version: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    optimization_used: Optional[bool] = Field(default=None, sa_column=Column(Boolean, nullable=True))
    runs: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    license_type: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    is_proxy: Optional[bool] = Field(default=None, sa_column=Column(Boolean, nullable=True))
    implementation_address: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    verified_at: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: str = Field(default_factory=_now_iso, sa_column=Column(Text, nullable=False))
    updated_at: str = Field(default_factory=_now_iso, sa_column=Column(Text, nullable=False))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "chain": self.chain,
            "name": self.name,
            "compilerVersion": self.compiler_version,
            "optimizationUsed": self.optimization_used,
            "runs": self.runs,
            "licenseType": self.license_type,
            "isProxy": self.is_proxy,
            "implementationAddress": self.implementation_address,
            "verifiedAt": self.verified_at,
        }


class ContractSourceCode(SQLModel, table=True):
    __tablename__ = "contract_source_code"

    address: str = Field(primary_key=True)
    chain: str = Field(primary_key=True)
    source_code: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    constructor_arguments: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    evm_version: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    library: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    swarm_source: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: str = Field(default_factory=_now_iso, sa_column=Column(Text, nullable=False))


class ContractAbi(SQLModel, table=True):
    __tablename__ = "contract_abis"

    address: str = Field(primary_key=True)
    chain: str = Field(primary_key=True)
    abi: str = Field(default="[]", sa_column=Column(Text, nullable=False, server_default="[]"))
    created_at: str = Field(default_factory=_now_iso, sa_column=Column(Text, nullable=False))

    def get_abi(self) -> List[Dict[str, Any]]:
        try:
            data = json.loads(self.abi or "[]")
        except json.JSONDecodeError:
            return []
        return data if isinstance(data, list) else []


class WebsiteAnalysis(SQLModel, table=True):
    __tablename__ = "website_analyses"

    address: str = Field(primary_key=True)
    chain: str = Field(primary_key=True)
    website_url: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    description: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    roadmap: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    services_analysis: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    confidence: str = Field(default="low", sa_column=Column(Text, nullable=False, server_default="low"))
    source_urls: str = Field(default="[]", sa_column=Column(Text, nullable=False, server_default="[]"))
    raw_content: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    analyzed_at: str = Field(default_factory=_now_iso, sa_column=Column(Text, nullable=False))

    def get_source_urls(self) -> List[str]:
        try:
            return json.loads(self.source_urls or "[]")
        except json.JSONDecodeError:
            return []
