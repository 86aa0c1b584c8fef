"""
边界输入校验：按固定顺序检查，第一个不满足的前置条件以 400 + 固定文案拒绝。
"""

from typing import Any, Dict, List, Optional

from houndmaster.chains import Chain, is_valid_address, is_valid_external_url, parse_chain
from houndmaster.errors import ERRORS, ValidationError


def _present(value: Any) -> bool:
    return value is not None and value != ""


def require_chain_present(chain: Any) -> None:
    if not _present(chain):
        raise ValidationError(ERRORS["MISSING_CHAIN"])


def validate_chain(chain: Any) -> Chain:
    require_chain_present(chain)
    return parse_chain(chain)


def validate_contract_list(addresses: Any, chain: Any) -> Chain:
    if not isinstance(addresses, list) or not addresses:
        raise ValidationError(ERRORS["MISSING_CONTRACTS"])
    require_chain_present(chain)
    if not all(is_valid_address(a) for a in addresses):
        raise ValidationError(ERRORS["INVALID_CONTRACTS"])
    return parse_chain(chain)


def validate_single_contract(address: Any, chain: Any, website_url: Any = None) -> Chain:
    if not _present(address):
        raise ValidationError(ERRORS["MISSING_ADDRESS"])
    require_chain_present(chain)
    if not is_valid_address(address):
        raise ValidationError(ERRORS["INVALID_ADDRESS"])
    parsed = parse_chain(chain)
    validate_website_url(website_url)
    return parsed


def validate_website_url(url: Any) -> Optional[str]:
    if not _present(url):
        return None
    if not is_valid_external_url(url):
        raise ValidationError(ERRORS["INVALID_WEBSITE_URL"])
    return url.strip()


def validate_website_urls(urls: Optional[Dict[str, Any]], addresses: List[str]) -> Dict[str, str]:
    """批量分析的网址映射：键必须是本批地址之一，值必须是合法网址"""
    out: Dict[str, str] = {}
    wanted = {a.lower() for a in addresses}
    for address, url in (urls or {}).items():
        if not is_valid_address(address) or address.lower() not in wanted:
            raise ValidationError(ERRORS["INVALID_CONTRACTS"])
        checked = validate_website_url(url)
        if checked:
            out[address.lower()] = checked
    return out
