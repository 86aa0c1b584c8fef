"""
链枚举与边界校验。
"""

import pytest

from houndmaster.chains import (
    Chain,
    address_url,
    is_valid_address,
    is_valid_external_url,
    native_token,
    normalize_address,
    parse_chain,
)
from houndmaster.errors import InvalidChainError, ValidationError


class TestParseChain:
    @pytest.mark.parametrize("raw,expected", [
        ("ethereum", Chain.ETHEREUM),
        (" Base ", Chain.BASE),
        ("APECHAIN", Chain.APECHAIN),
        (Chain.POLYGON, Chain.POLYGON),
    ])
    def test_accepts_known(self, raw, expected):
        assert parse_chain(raw) is expected

    @pytest.mark.parametrize("raw", ["solana", "", None, 1])
    def test_rejects_unknown(self, raw):
        with pytest.raises(InvalidChainError) as exc:
            parse_chain(raw)
        assert isinstance(exc.value, ValidationError)
        assert exc.value.message == "Invalid chain specified"
        assert exc.value.status_code == 400


class TestAddresses:
    def test_valid(self):
        assert is_valid_address("0x" + "aB" * 20)

    @pytest.mark.parametrize("raw", ["0x123", "aa" * 21, "0x" + "g" * 40, None, 42])
    def test_invalid(self, raw):
        assert not is_valid_address(raw)

    def test_normalize(self):
        assert normalize_address(" 0xABCDEF" + "0" * 34 + " ") == "0xabcdef" + "0" * 34

    def test_explorer_url(self):
        addr = "0x" + "1" * 40
        assert address_url(Chain.BASE, addr) == f"https://basescan.org/address/{addr}"


def test_native_tokens():
    assert native_token(Chain.ETHEREUM) == "ETH"
    assert native_token(Chain.APECHAIN) == "APE"
    assert native_token(Chain.POLYGON) == "MATIC"


@pytest.mark.parametrize("url,ok", [
    ("https://project.xyz", True),
    ("http://project.xyz/path?q=1", True),
    ("ftp://project.xyz", False),
    ("project.xyz", False),
    ("", False),
    (None, False),
])
def test_external_url(url, ok):
    assert is_valid_external_url(url) is ok
