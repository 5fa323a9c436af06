"""Data normalization for converting Eastmoney field-coded payloads to named records."""

import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo

from .exceptions import DataValidationError
from .types import StockIdentity

logger = logging.getLogger(__name__)

CHINA_TZ = ZoneInfo("Asia/Shanghai")

# Exchange volumes are quoted in lots of 100 shares
LOT_SIZE = 100

# fltt=1 returns prices as fixed-point integers scaled by 100
PRICE_SCALE = 100

STOCK_QUOTE_FIELDS: Dict[str, str] = {
    "f57": "股票代码",
    "f58": "股票简称",
    "f43": "最新价",
    "f169": "涨跌额",
    "f170": "涨跌幅",
}

INDEX_QUOTE_FIELDS: Dict[str, str] = {
    "f57": "指数代码",
    "f58": "指数简称",
    "f43": "最新价",
    "f44": "最高价",
    "f45": "最低价",
    "f46": "今开价",
    "f47": "成交量",
    "f48": "成交额",
    "f60": "昨收价",
    "f170": "涨跌幅",
    "f169": "涨跌额",
    "f168": "换手率",
    "f296": "成交笔数",
    "f86": "更新时间",
}

INDEX_PRICE_FIELDS = frozenset({"f43", "f44", "f45", "f46", "f60", "f170", "f169", "f168"})
INDEX_VOLUME_FIELD = "f47"
UPDATE_TIME_FIELD = "f86"

STOCK_INFO_FIELDS: Dict[str, str] = {
    "f57": "股票代码",
    "f58": "股票简称",
    "f84": "总股本",
    "f85": "流通股",
    "f127": "所属行业",
    "f116": "总市值",
    "f117": "流通市值",
    "f189": "上市时间",
    "f128": "所属板块",
}

KLINE_COLUMNS = (
    "时间",
    "开盘价",
    "收盘价",
    "最高价",
    "最低价",
    "成交量",
    "成交额",
    "振幅",
    "涨跌幅",
    "涨跌额",
    "换手率",
)

_EXCHANGE_PREFIX = re.compile(r"^(SZ|SH|BJ)", re.IGNORECASE)

Number = Union[int, float]


def format_china_time(timestamp_ms: Number) -> str:
    """Format an epoch-milliseconds instant as ``YYYY-MM-DD HH:MM:SS`` China time."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=CHINA_TZ)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def is_number(value: Any) -> bool:
    """True for int/float values, excluding booleans."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def number_or_none(value: Any) -> Optional[Number]:
    """Keep finite numbers, map everything else to None."""
    if not is_number(value):
        return None
    return value if math.isfinite(value) else None


def parse_number(text: str) -> Optional[Number]:
    """Parse a numeric string; non-numeric or non-finite text yields None."""
    text = text.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class DataNormalizer:
    """Normalizes Eastmoney responses into records keyed by display labels."""

    @staticmethod
    def _pick(data: Dict[str, Any], fields: Dict[str, str]) -> Dict[str, Any]:
        return {label: data[code] for code, label in fields.items() if code in data}

    @staticmethod
    def _require_data(payload: Any, message: str) -> Dict[str, Any]:
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict) or not data:
            raise DataValidationError(message, validation_type="payload")
        return data

    def normalize_stock_quote(self, payload: Any) -> Dict[str, Any]:
        """
        Normalize a ``/api/qt/stock/get`` quote (fltt=2, prices already decimal).

        Only fields present in the payload are copied.
        """
        data = self._require_data(payload, "东方财富行情接口返回数据格式异常")
        return self._pick(data, STOCK_QUOTE_FIELDS)

    def normalize_index_quote(self, symbol: str, payload: Any) -> Dict[str, Any]:
        """
        Normalize an index quote requested with fltt=1.

        Price fields are divided by 100, volume converted from lots to shares
        and the update time rendered as China civil time.
        """
        data = self._require_data(payload, f"指数 {symbol} 数据不存在")

        result: Dict[str, Any] = {}
        for code, label in INDEX_QUOTE_FIELDS.items():
            if code not in data:
                continue
            value = data[code]

            if is_number(value):
                if code in INDEX_PRICE_FIELDS:
                    value = value / PRICE_SCALE
                elif code == INDEX_VOLUME_FIELD:
                    value = value * LOT_SIZE
                elif code == UPDATE_TIME_FIELD:
                    value = format_china_time(value * 1000)

            result[label] = value

        return result

    def normalize_stock_info(self, identity: StockIdentity, payload: Any) -> Dict[str, Any]:
        """Normalize basic company info, prefixed with market and board."""
        data = self._require_data(payload, "东方财富接口返回数据格式异常")

        result: Dict[str, Any] = {"市场": identity.market, "板块": identity.board}
        result.update(self._pick(data, STOCK_INFO_FIELDS))
        return result

    @staticmethod
    def parse_kline_row(line: str) -> Optional[Dict[str, Any]]:
        """Parse one comma separated kline row; short rows yield None."""
        parts = line.split(",")
        if len(parts) < len(KLINE_COLUMNS):
            return None

        row: Dict[str, Any] = {KLINE_COLUMNS[0]: parts[0]}
        for label, text in zip(KLINE_COLUMNS[1:], parts[1:]):
            row[label] = parse_number(text)
        return row

    def normalize_kline(self, payload: Any) -> List[Dict[str, Any]]:
        """Normalize ``data.klines``; a missing series is an empty list."""
        data = payload.get("data") if isinstance(payload, dict) else None
        lines = data.get("klines") if isinstance(data, dict) else None
        if not isinstance(lines, list):
            return []

        rows = []
        for line in lines:
            if not isinstance(line, str):
                continue
            row = self.parse_kline_row(line)
            if row is not None:
                rows.append(row)

        dropped = len(lines) - len(rows)
        if dropped:
            logger.debug(f"Dropped {dropped} malformed kline row(s)")
        return rows

    def normalize_hot_rank(self, payload: Any) -> List[Dict[str, Any]]:
        """Normalize the popularity ranking; an empty ranking is an error."""
        items = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(items, list) or not items:
            raise DataValidationError("人气榜接口返回数据为空", validation_type="payload")

        ranking = []
        for item in items:
            code = item.get("sc") if isinstance(item, dict) else None
            rank = parse_number(str(item.get("rk"))) if isinstance(item, dict) else None
            if not isinstance(code, str) or rank is None:
                logger.warning(f"Skipping malformed rank item: {item!r}")
                continue
            ranking.append({"当前排名": rank, "股票代码": _EXCHANGE_PREFIX.sub("", code)})

        if not ranking:
            raise DataValidationError("人气榜接口返回数据为空", validation_type="payload")
        return ranking

    def normalize_tag_leaders(self, payload: Any) -> List[Dict[str, Any]]:
        """Normalize the board constituent list; rows without a code are dropped."""
        data = payload.get("data") if isinstance(payload, dict) else None
        rows = data.get("diff") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            return []

        return [
            leader
            for leader in (self._tag_leader_row(item) for item in rows)
            if leader["股票代码"] != ""
        ]

    @staticmethod
    def _tag_leader_row(item: Any) -> Dict[str, Any]:
        item = item if isinstance(item, dict) else {}
        code = item.get("f12")
        name = item.get("f14")
        return {
            "股票代码": code if isinstance(code, str) else ("" if code is None else str(code)),
            "股票名称": name if isinstance(name, str) else "",
            "最新价": number_or_none(item.get("f2")),
            "涨跌幅": number_or_none(item.get("f3")),
            "主力净流入": number_or_none(item.get("f62")),
        }

