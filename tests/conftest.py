"""
共享 Fixtures: Mock LLM / 临时 SQLite / 假时钟 / 假区块浏览器。
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from houndmaster.db.engine import build_engine, init_db
from houndmaster.errors import BlockExplorerError, LLMCallError
from houndmaster.sources.schemas import ContractCreation, SourceCodeResult

ADDR_A = "0x" + "a" * 40
ADDR_B = "0x" + "b" * 40
ADDR_C = "0x" + "c" * 40

SAMPLE_ABI = (
    '[{"type":"function","name":"totalSupply","stateMutability":"view","inputs":[],'
    '"outputs":[{"name":"","type":"uint256"}]}]'
)


class FakeClock:
    """单调假时钟：sleep 只推进时间，不真正等待"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)


class SequentialCompleter:
    """按顺序返回预置文本的 LLMCompleter 替身；元素为异常实例时抛出"""

    def __init__(self, responses):
        self._responses = list(responses)
        self.prompts: List[str] = []

    async def complete(self, prompt: str, system: Optional[str] = None, **_kwargs: Any) -> str:
        self.prompts.append(prompt)
        if not self._responses:
            raise LLMCallError("No more mocked LLM responses available")
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeExplorer:
    """记录调用次数的区块浏览器替身"""

    def __init__(self, sources: Optional[Dict[str, str]] = None, abis: Optional[Dict[str, str]] = None):
        self.sources = sources or {}
        self.abis = abis or {}
        self.balances: Dict[str, str] = {}
        self.failing: set = set()
        self.calls: List[tuple] = []

    async def get_source_code(self, address, chain):
        self.calls.append(("source", address))
        if ("source", address) in self.failing:
            raise BlockExplorerError("Block Explorer API Error (NOTOK)", "Max rate limit reached")
        return SourceCodeResult.model_validate({
            "SourceCode": self.sources.get(address, ""),
            "ABI": self.abis.get(address, "Contract source code not verified"),
            "ContractName": "Sample" if address in self.sources else "",
            "CompilerVersion": "v0.8.20+commit.a1b79de6",
            "OptimizationUsed": "1",
            "Runs": "200",
            "LicenseType": "MIT",
            "Proxy": "0",
        })

    async def get_abi(self, address, chain):
        self.calls.append(("abi", address))
        if ("abi", address) in self.failing or address not in self.abis:
            raise BlockExplorerError("Block Explorer API Error (NOTOK)", "Contract source code not verified")
        return self.abis[address]

    async def get_balance(self, address, chain):
        self.calls.append(("balance", address))
        if ("balance", address) in self.failing:
            raise BlockExplorerError("Block Explorer API Error (NOTOK)", "Error! Invalid address format")
        return self.balances.get(address, "0")

    async def get_contract_creation(self, address, chain):
        self.calls.append(("creation", address))
        if ("creation", address) in self.failing:
            raise BlockExplorerError("Block Explorer API Error (NOTOK)", "No data found")
        if address not in self.sources:
            return None
        return ContractCreation.model_validate(
            {"contractAddress": address, "contractCreator": "0x" + "d" * 40, "txHash": "0x" + "e" * 64}
        )

    def count(self, kind: str) -> int:
        return sum(1 for k, _ in self.calls if k == kind)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'houndmaster_test.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def fake_explorer():
    return FakeExplorer(sources={ADDR_A: "contract Sample {}"}, abis={ADDR_A: SAMPLE_ABI})


@pytest.fixture
def mock_llm_client():
    """模拟 LLM 客户端（ChatClient 接口）"""
    client = MagicMock()

    def _chat(messages=None, model=None, **kwargs):
        return {"final_text": '{"confidence": "high"}'}

    client.chat.side_effect = _chat
    return client
