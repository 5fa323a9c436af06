"""Tests for symbol helpers, error mapping and batch outcomes."""

import pytest

from datahub.market_data.exceptions import (
    InvalidRequestError,
    RateLimitError,
    ServiceUnavailableError,
    UpstreamHTTPError,
    create_http_error,
)
from datahub.market_data.results import Err, Ok, is_cacheable
from datahub.market_data.types import (
    UNKNOWN_IDENTITY,
    get_stock_identity,
    is_valid_tag_code,
    normalize_symbols,
    parse_count,
)


@pytest.mark.parametrize(
    "symbol,market,board,secid",
    [
        ("600519", "sh", "沪市主板", "1.600519"),
        ("688981", "sh", "科创板", "1.688981"),
        ("900901", "sh", "沪市B股", "1.900901"),
        ("000001", "sz", "深市主板", "0.000001"),
        ("002594", "sz", "中小板", "0.002594"),
        ("300750", "sz", "创业板", "0.300750"),
        ("200002", "sz", "深市B股", "0.200002"),
        ("920001", "bj", "北交所", "0.920001"),
    ],
)
def test_identity_table(symbol, market, board, secid):
    identity = get_stock_identity(symbol)

    assert (identity.market, identity.board) == (market, board)
    assert identity.secid(symbol) == secid


def test_unknown_prefix():
    assert get_stock_identity("830799") is UNKNOWN_IDENTITY
    assert UNKNOWN_IDENTITY.secid("830799") == "1.830799"


def test_index_secid_flips_market():
    assert get_stock_identity("000001").index_secid("000001") == "1.000001"
    assert get_stock_identity("600000").index_secid("600000") == "0.600000"


class TestNormalizeSymbols:
    def test_list_input(self):
        assert normalize_symbols([" 600519", "", "000001", "600519"]) == ["600519", "000001"]

    def test_comma_separated_input(self):
        assert normalize_symbols("600519,,000001 ") == ["600519", "000001"]

    @pytest.mark.parametrize("raw", [[], ["  "], "", ["60051"], ["600519", "ABCDEF"]])
    def test_rejected(self, raw):
        with pytest.raises(InvalidRequestError):
            normalize_symbols(raw)

    def test_limit_counts_distinct_symbols(self):
        assert normalize_symbols(["600519", "600519", "000001"], max_symbols=2) == [
            "600519",
            "000001",
        ]
        with pytest.raises(InvalidRequestError):
            normalize_symbols(["600519", "000001", "300750"], max_symbols=2)


class TestParseCount:
    @pytest.mark.parametrize("raw,expected", [(None, 8), ("", 8), ("5", 5), (100, 100)])
    def test_valid(self, raw, expected):
        assert parse_count(raw, 8, 100) == expected

    @pytest.mark.parametrize("raw", ["x", "1.5", 0, -1, 101])
    def test_invalid(self, raw):
        with pytest.raises(InvalidRequestError):
            parse_count(raw, 8, 100)


def test_tag_code_format():
    assert is_valid_tag_code("BK1033")
    assert is_valid_tag_code("bk0001")
    assert not is_valid_tag_code("BK103")
    assert not is_valid_tag_code("XX1033")


def test_invalid_request_is_a_value_error():
    assert issubclass(InvalidRequestError, ValueError)


@pytest.mark.parametrize(
    "status,cls",
    [(429, RateLimitError), (503, ServiceUnavailableError), (522, ServiceUnavailableError), (404, UpstreamHTTPError)],
)
def test_create_http_error(status, cls):
    error = create_http_error(status, "body", provider="eastmoney", url="https://x")

    assert type(error) is cls
    assert error.status == status
    assert error.provider == "eastmoney"
    assert error.url == "https://x"


class TestCacheability:
    @pytest.mark.parametrize(
        "outcome,expected",
        [
            (Ok("600519", {"股票代码": "600519"}), True),
            (Ok("600519", [{"时间": "2024-03-15"}]), True),
            (Ok("600519", {}), False),
            (Ok("600519", []), False),
            (Ok("600519", {"股票代码": "600519", "错误": "数据不存在"}), False),
            (Ok("600519", "text"), False),
            (Err("600519", "timeout"), False),
        ],
    )
    def test_is_cacheable(self, outcome, expected):
        assert is_cacheable(outcome) is expected

    def test_err_to_record(self):
        assert Err("000001", "timeout").to_record("指数代码") == {"指数代码": "000001", "错误": "timeout"}
        assert Ok("a", 1).ok and not Err("a", "x").ok
