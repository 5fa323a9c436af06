"""Centralized type definitions and symbol helpers for the market data module."""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .exceptions import InvalidRequestError

# Six-digit exchange code; validated before it reaches the caching core
Symbol = str

_A_SHARE_SYMBOL = re.compile(r"^\d{6}$")
_TAG_CODE = re.compile(r"^BK\d{4}$", re.IGNORECASE)

# Field label shared by every inline error record
ERROR_FIELD = "错误"


@dataclass(frozen=True)
class StockIdentity:
    """Exchange, board and Eastmoney market id of a symbol."""

    market: str
    board: str
    eastmoney_id: int

    def secid(self, symbol: Symbol) -> str:
        """Eastmoney security id, e.g. ``1.600519``."""
        return f"{self.eastmoney_id}.{symbol}"

    def index_secid(self, symbol: Symbol) -> str:
        """Index codes live on the opposite market id of the same-prefixed stock."""
        index_id = 0 if self.eastmoney_id == 1 else 1
        return f"{index_id}.{symbol}"


_PREFIX_TABLE = (
    (("600", "601", "603"), StockIdentity("sh", "沪市主板", 1)),
    (("688",), StockIdentity("sh", "科创板", 1)),
    (("900",), StockIdentity("sh", "沪市B股", 1)),
    (("000", "001"), StockIdentity("sz", "深市主板", 0)),
    (("002", "003"), StockIdentity("sz", "中小板", 0)),
    (("300",), StockIdentity("sz", "创业板", 0)),
    (("200",), StockIdentity("sz", "深市B股", 0)),
    (("920",), StockIdentity("bj", "北交所", 0)),
)

UNKNOWN_IDENTITY = StockIdentity("unknown", "未知板块", 1)


def get_stock_identity(symbol: Symbol) -> StockIdentity:
    """
    Resolve market and board from the symbol prefix.

    Args:
        symbol: Six-digit stock code

    Returns:
        The matching identity, or ``UNKNOWN_IDENTITY`` (market id 1)
    """
    for prefixes, identity in _PREFIX_TABLE:
        if symbol.startswith(prefixes):
            return identity
    return UNKNOWN_IDENTITY


def is_valid_a_share_symbol(symbol: str) -> bool:
    """Check the six-digit A-share code format."""
    return bool(_A_SHARE_SYMBOL.match(symbol))


def is_valid_tag_code(tag_code: str) -> bool:
    """Check the board code format (BK + 4 digits)."""
    return bool(_TAG_CODE.match(tag_code))


def normalize_symbols(raw: Iterable[str], max_symbols: Optional[int] = None) -> List[Symbol]:
    """
    Trim, drop blanks and de-duplicate symbols preserving first occurrence.

    Args:
        raw: Symbols as received (a comma separated string is also accepted)
        max_symbols: Upper bound on the number of distinct symbols

    Returns:
        Ordered list of distinct, validated symbols

    Raises:
        InvalidRequestError: If the list is empty, too long or has bad codes
    """
    if isinstance(raw, str):
        raw = raw.split(",")

    symbols = list(dict.fromkeys(s.strip() for s in raw if s and s.strip()))

    if not symbols:
        raise InvalidRequestError("Missing symbols, e.g. 000001,600519")

    if max_symbols is not None and len(symbols) > max_symbols:
        raise InvalidRequestError(f"At most {max_symbols} symbols per request")

    invalid = [s for s in symbols if not is_valid_a_share_symbol(s)]
    if invalid:
        raise InvalidRequestError(
            f"Invalid symbol(s) - codes must be 6 digits: {', '.join(invalid)}"
        )

    return symbols


def parse_count(raw: Optional[object], default: int, maximum: int) -> int:
    """Parse an optional positive count bounded by ``maximum``."""
    if raw is None or raw == "":
        return default
    try:
        parsed = int(str(raw))
    except ValueError:
        raise InvalidRequestError(f"Invalid count - must be an integer 1-{maximum}")
    if parsed <= 0 or parsed > maximum:
        raise InvalidRequestError(f"Invalid count - must be an integer 1-{maximum}")
    return parsed
