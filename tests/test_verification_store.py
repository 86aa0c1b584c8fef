"""
VerificationStore: 读穿缓存命中、单项失败隔离、批量并发、余额不缓存。
"""

import asyncio
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from houndmaster.chains import Chain
from houndmaster.db.repository import ContractRepository
from houndmaster.services.verification_store import VerificationStore

from conftest import ADDR_A, ADDR_B, SAMPLE_ABI


def _store(engine, explorer):
    return VerificationStore(explorer, ContractRepository(engine))


class TestReadThrough:
    def test_second_call_is_cache_hit(self, engine, fake_explorer):
        store = _store(engine, fake_explorer)

        first = asyncio.run(store.get_or_fetch(ADDR_A, Chain.ETHEREUM))
        assert first.source_code == "contract Sample {}"
        assert first.abi == SAMPLE_ABI
        assert first.last_verified is not None
        calls_after_first = (fake_explorer.count("source"), fake_explorer.count("abi"))
        assert calls_after_first == (1, 1)

        second = asyncio.run(store.get_or_fetch(ADDR_A, Chain.ETHEREUM))
        assert second.source_code == first.source_code
        assert (fake_explorer.count("source"), fake_explorer.count("abi")) == calls_after_first
        # 余额每次实时拉取
        assert fake_explorer.count("balance") == 2

    def test_mixed_case_address_shares_cache_row(self, engine, fake_explorer):
        store = _store(engine, fake_explorer)
        asyncio.run(store.get_or_fetch(ADDR_A, Chain.ETHEREUM))
        asyncio.run(store.get_or_fetch(ADDR_A.upper().replace("0X", "0x"), Chain.ETHEREUM))
        assert fake_explorer.count("source") == 1

    def test_chain_is_part_of_key(self, engine, fake_explorer):
        store = _store(engine, fake_explorer)
        asyncio.run(store.get_or_fetch(ADDR_A, Chain.ETHEREUM))
        asyncio.run(store.get_or_fetch(ADDR_A, Chain.BASE))
        assert fake_explorer.count("source") == 2

    def test_unverified_contract_is_not_persisted(self, engine, fake_explorer):
        store = _store(engine, fake_explorer)
        data = asyncio.run(store.ensure_verified(ADDR_B, Chain.ETHEREUM))
        assert data.source_code is None
        assert data.abi is None
        assert data.balance is None
        asyncio.run(store.ensure_verified(ADDR_B, Chain.ETHEREUM))
        assert fake_explorer.count("source") == 2
        assert fake_explorer.count("balance") == 0


class TestFaultIsolation:
    def test_source_failure_keeps_abi_and_balance(self, engine, fake_explorer):
        fake_explorer.failing.add(("source", ADDR_A))
        fake_explorer.balances[ADDR_A] = "42"
        data = asyncio.run(_store(engine, fake_explorer).get_or_fetch(ADDR_A, Chain.ETHEREUM))
        assert data.source_code is None
        assert data.abi == SAMPLE_ABI
        assert data.balance == "42"
        assert "sourceCode" not in data.to_dict()

    def test_balance_failure_omits_field(self, engine, fake_explorer):
        fake_explorer.failing.add(("balance", ADDR_A))
        data = asyncio.run(_store(engine, fake_explorer).get_or_fetch(ADDR_A, Chain.ETHEREUM))
        assert data.balance is None
        assert data.source_code is not None

    def test_batch_tolerates_per_address_failure(self, engine, fake_explorer):
        fake_explorer.failing.update({("source", ADDR_B), ("balance", ADDR_B)})
        results = asyncio.run(
            _store(engine, fake_explorer).get_or_fetch_contract_data([ADDR_A, ADDR_B, ADDR_A], Chain.ETHEREUM)
        )
        assert set(results) == {ADDR_A, ADDR_B}
        assert results[ADDR_A].source_code is not None
        assert results[ADDR_B].source_code is None
        assert results[ADDR_B].to_dict()["explorerUrl"] == f"https://etherscan.io/address/{ADDR_B}"

    def test_source_write_failure_keeps_abi_and_balance(self, engine, fake_explorer):
        repo = ContractRepository(engine)
        repo.save_source = MagicMock(side_effect=OperationalError("INSERT", {}, Exception("database is locked")))
        fake_explorer.balances[ADDR_A] = "123"
        data = asyncio.run(VerificationStore(fake_explorer, repo).get_or_fetch(ADDR_A, Chain.ETHEREUM))
        assert data.balance == "123"
        assert data.abi == SAMPLE_ABI
        assert data.source_code is None

    def test_abi_write_failure_keeps_source(self, engine, fake_explorer):
        repo = ContractRepository(engine)
        repo.save_abi = MagicMock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")))
        data = asyncio.run(VerificationStore(fake_explorer, repo).ensure_verified(ADDR_A, Chain.ETHEREUM))
        assert data.abi is None
        assert data.source_code == "contract Sample {}"

    def test_get_cached_makes_no_upstream_calls(self, engine, fake_explorer):
        data = asyncio.run(_store(engine, fake_explorer).get_cached(ADDR_A, Chain.ETHEREUM))
        assert data.source_code is None
        assert fake_explorer.calls == []


class TestCreationInfo:
    def test_creator_lookup(self, engine, fake_explorer):
        info = asyncio.run(_store(engine, fake_explorer).get_creation_info(ADDR_A.upper().replace("0X", "0x"), Chain.ETHEREUM))
        assert info.contract_creator == "0x" + "d" * 40
        assert fake_explorer.calls == [("creation", ADDR_A)]

    def test_failure_returns_none(self, engine, fake_explorer):
        fake_explorer.failing.add(("creation", ADDR_A))
        assert asyncio.run(_store(engine, fake_explorer).get_creation_info(ADDR_A, Chain.ETHEREUM)) is None
