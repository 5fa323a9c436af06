"""Tests for the Eastmoney source adapters."""

import pytest
from conftest import ScriptedTransport, json_response, no_sleep

from datahub.market_data.exceptions import DataValidationError, InvalidRequestError
from datahub.market_data.fetcher import RetryConfig, RetryingFetcher
from datahub.market_data.results import Err, Ok
from datahub.market_data.sources import (
    EastmoneySymbolSource,
    EastmoneyIndexSource,
    EastmoneyInfoSource,
    EastmoneyKlineSource,
    EastmoneyQuoteSource,
    EastmoneyRankSource,
    EastmoneyTagLeaderSource,
    KlineQuery,
)
from datahub.market_data.sources.eastmoney_kline import KLINE_URL
from datahub.market_data.sources.eastmoney_rank import RANK_SOURCE, RANK_URL
from datahub.market_data.throttle import ThrottlerRegistry


def make_fetcher(transport):
    return RetryingFetcher(
        transport,
        throttlers=ThrottlerRegistry(default_interval=0, sleep=no_sleep),
        retry_config=RetryConfig(max_attempts=1, backoff_base=0),
        sleep=no_sleep,
    )


def source_with(cls, *payloads, **kwargs):
    transport = ScriptedTransport([json_response(p) for p in payloads])
    return cls(make_fetcher(transport), **kwargs), transport


class TestQuoteSource:
    @pytest.mark.asyncio
    async def test_request_and_normalization(self):
        payload = {
            "data": {
                "f57": "600519",
                "f58": "贵州茅台",
                "f43": 1688.0,
                "f169": -12.5,
                "f170": -0.74,
            }
        }
        source, transport = source_with(EastmoneyQuoteSource, payload)

        record = await source.fetch_one("600519")

        assert record == {
            "股票代码": "600519",
            "股票简称": "贵州茅台",
            "最新价": 1688.0,
            "涨跌额": -12.5,
            "涨跌幅": -0.74,
        }
        request = transport.requests[0]
        assert request.source == "eastmoney"
        assert request.params["secid"] == "1.600519"
        assert request.params["fltt"] == "2"
        assert "Referer" in request.headers

    @pytest.mark.asyncio
    async def test_missing_fields_are_not_invented(self):
        source, _ = source_with(EastmoneyQuoteSource, {"data": {"f57": "000001"}})

        assert await source.fetch_one("000001") == {"股票代码": "000001"}

    @pytest.mark.asyncio
    async def test_missing_data_is_an_error(self):
        source, _ = source_with(EastmoneyQuoteSource, {"data": None})

        with pytest.raises(DataValidationError):
            await source.fetch_one("000001")

    @pytest.mark.asyncio
    async def test_fetch_many_isolates_failures(self):
        payloads = {
            "0.000001": {"data": {"f57": "000001"}},
            "1.600519": {"data": None},
        }
        transport = ScriptedTransport(
            handler=lambda req: json_response(payloads[req.params["secid"]])
        )
        source = EastmoneyQuoteSource(make_fetcher(transport))

        outcomes = await source.fetch_many(["000001", "600519"])

        assert outcomes[0] == Ok("000001", {"股票代码": "000001"})
        assert isinstance(outcomes[1], Err)
        assert outcomes[1].message == "东方财富行情接口返回数据格式异常"


class TestIndexSource:
    @pytest.mark.asyncio
    async def test_scaling_and_flipped_market(self):
        payload = {
            "data": {
                "f57": "000001",
                "f58": "上证指数",
                "f43": 305012,
                "f47": 3456789,
                "f48": 401234567890.0,
                "f170": -35,
                "f86": 1710486000,
            }
        }
        source, transport = source_with(EastmoneyIndexSource, payload)

        record = await source.fetch_one("000001")

        assert transport.requests[0].params["secid"] == "1.000001"
        assert transport.requests[0].params["fltt"] == "1"
        assert "Accept-Language" not in transport.requests[0].headers
        assert record["指数代码"] == "000001"
        assert record["最新价"] == pytest.approx(3050.12)
        assert record["涨跌幅"] == pytest.approx(-0.35)
        assert record["成交量"] == 345678900
        assert record["成交额"] == 401234567890.0
        assert record["更新时间"] == "2024-03-15 15:00:00"

    @pytest.mark.asyncio
    async def test_shenzhen_index_uses_sse_id(self):
        source, transport = source_with(EastmoneyIndexSource, {"data": {"f57": "399001"}})

        await source.fetch_one("399001")

        # 399 is not a stock prefix, so the unknown identity (id 1) is flipped
        assert transport.requests[0].params["secid"] == "0.399001"

    @pytest.mark.asyncio
    async def test_missing_index(self):
        source, _ = source_with(EastmoneyIndexSource, {"data": {}})

        with pytest.raises(DataValidationError, match="指数 000300 数据不存在"):
            await source.fetch_one("000300")


class TestInfoSource:
    @pytest.mark.asyncio
    async def test_market_and_board_come_first(self):
        payload = {
            "data": {
                "f57": "300750",
                "f58": "宁德时代",
                "f127": "电池",
                "f116": 800000000000.0,
                "f189": 20180611,
            }
        }
        source, transport = source_with(EastmoneyInfoSource, payload)

        record = await source.fetch_one("300750")

        assert list(record)[:2] == ["市场", "板块"]
        assert record["市场"] == "sz"
        assert record["板块"] == "创业板"
        assert record["所属行业"] == "电池"
        assert record["上市时间"] == 20180611
        assert transport.requests[0].params["secid"] == "0.300750"


class TestKlineSource:
    @pytest.mark.asyncio
    async def test_rows_and_params(self):
        payload = {
            "data": {
                "klines": [
                    "2024-03-14,1700.0,1710.5,1715.0,1695.0,25000,4.2e9,1.17,0.5,8.5,0.2",
                    "2024-03-15,1710.5,1688.0,1712.0,1680.0,30000,5.1e9,1.87,-1.32,-22.5,0.24",
                    "2024-03-16,broken",
                ]
            }
        }
        transport = ScriptedTransport([json_response(payload)])
        source = EastmoneyKlineSource(make_fetcher(transport), clock=lambda: 1710468000000)

        rows = await source.fetch_kline(
            KlineQuery("600519", period=101, adjust=1, limit=2, start_date="20240301")
        )

        assert len(rows) == 2
        assert rows[0]["时间"] == "2024-03-14"
        assert rows[1]["收盘价"] == 1688.0
        assert rows[1]["成交量"] == 30000
        assert rows[1]["涨跌额"] == -22.5

        request = transport.requests[0]
        assert request.url == KLINE_URL
        assert request.params["secid"] == "1.600519"
        assert request.params["klt"] == "101"
        assert request.params["fqt"] == "1"
        assert request.params["lmt"] == "2"
        assert request.params["beg"] == "20240301"
        assert request.params["end"] == "20500101"
        assert request.params["_"] == "1710468000000"

    @pytest.mark.asyncio
    async def test_non_numeric_cells_become_none(self):
        payload = {"data": {"klines": ["2024-03-15,-,1688.0,nan,inf,1,2,3,4,5,6"]}}
        source, _ = source_with(EastmoneyKlineSource, payload)

        rows = await source.fetch_kline(KlineQuery("600519"))

        assert rows[0]["开盘价"] is None
        assert rows[0]["最高价"] is None
        assert rows[0]["最低价"] is None
        assert rows[0]["收盘价"] == 1688.0

    @pytest.mark.asyncio
    async def test_missing_series_is_empty(self):
        source, transport = source_with(EastmoneyKlineSource, {"data": None})

        assert await source.fetch_kline(KlineQuery("000001", end_date="20240315")) == []
        assert "beg" not in transport.requests[0].params
        assert transport.requests[0].params["end"] == "20240315"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"symbol": "60051"},
            {"symbol": "600519", "period": 7},
            {"symbol": "600519", "adjust": 3},
            {"symbol": "600519", "limit": 0},
            {"symbol": "600519", "start_date": "2024-03-01"},
        ],
    )
    def test_query_validation(self, kwargs):
        with pytest.raises(InvalidRequestError):
            KlineQuery(**kwargs)

    def test_cache_key_covers_every_parameter(self):
        query = KlineQuery("600519", period=102, adjust=0, limit=50, end_date="20240315")

        assert query.cache_key == "kline:600519:102:0:50:-:20240315"


class TestRankSource:
    @pytest.mark.asyncio
    async def test_post_and_prefix_strip(self):
        payload = {
            "data": [
                {"sc": "SZ000001", "rk": 1},
                {"sc": "SH600519", "rk": "2"},
                {"sc": None, "rk": 3},
                {"sc": "BJ920001", "rk": 4},
            ]
        }
        source, transport = source_with(EastmoneyRankSource, payload)

        ranking = await source.fetch_hot_rank()

        assert ranking == [
            {"当前排名": 1, "股票代码": "000001"},
            {"当前排名": 2, "股票代码": "600519"},
            {"当前排名": 4, "股票代码": "920001"},
        ]
        request = transport.requests[0]
        assert request.method == "POST"
        assert request.url == RANK_URL
        assert request.source == RANK_SOURCE
        assert request.json_body["pageSize"] == 100
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_empty_ranking_is_an_error(self):
        source, _ = source_with(EastmoneyRankSource, {"data": []})

        with pytest.raises(DataValidationError, match="人气榜接口返回数据为空"):
            await source.fetch_hot_rank()

    @pytest.mark.asyncio
    async def test_health_check_reports_failure(self):
        source, _ = source_with(EastmoneyRankSource, {"data": None})

        assert await source.health_check() is False


class TestTagLeaderSource:
    @pytest.mark.asyncio
    async def test_request_and_rows(self):
        payload = {
            "data": {
                "diff": [
                    {"f12": "300750", "f14": "宁德时代", "f2": 180.5, "f3": 2.1, "f62": 3.2e8},
                    {"f12": "", "f14": "占位", "f2": 1, "f3": 1, "f62": 1},
                    {"f12": "002594", "f14": "比亚迪", "f2": "-", "f3": None, "f62": 1.5e8},
                ]
            }
        }
        source, transport = source_with(EastmoneyTagLeaderSource, payload)

        leaders = await source.fetch_tag_leaders("bk1033", 5)

        assert [row["股票代码"] for row in leaders] == ["300750", "002594"]
        assert leaders[1] == {
            "股票代码": "002594",
            "股票名称": "比亚迪",
            "最新价": None,
            "涨跌幅": None,
            "主力净流入": 1.5e8,
        }
        params = transport.requests[0].params
        assert params["fs"] == "b:BK1033"
        assert params["pz"] == "5"
        assert params["fid"] == "f62"

    @pytest.mark.asyncio
    async def test_invalid_tag_code(self):
        source, transport = source_with(EastmoneyTagLeaderSource)

        with pytest.raises(InvalidRequestError):
            await source.fetch_tag_leaders("1033", 10)
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_missing_diff_is_empty(self):
        source, _ = source_with(EastmoneyTagLeaderSource, {"data": None})

        assert await source.fetch_tag_leaders("BK1033", 10) == []


class TestSourceBases:
    def test_symbol_source_requires_fetch_one(self):
        with pytest.raises(TypeError):
            EastmoneySymbolSource(make_fetcher(ScriptedTransport([])))

    @pytest.mark.parametrize("cls", [EastmoneyRankSource, EastmoneyTagLeaderSource])
    def test_list_sources_have_no_per_symbol_fan_out(self, cls):
        assert not issubclass(cls, EastmoneySymbolSource)
        assert not hasattr(cls, "fetch_many")
