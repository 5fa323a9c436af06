"""Per-item outcome types for batch operations."""

from dataclasses import dataclass
from typing import Any, Dict, Union

from .types import ERROR_FIELD


@dataclass(frozen=True)
class Ok:
    """A successfully resolved item."""

    key: str
    record: Any

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """A failed item; carries the key and a human readable message."""

    key: str
    message: str

    @property
    def ok(self) -> bool:
        return False

    def to_record(self, key_field: str) -> Dict[str, Any]:
        """Render as an inline error record, e.g. ``{'股票代码': ..., '错误': ...}``."""
        return {key_field: self.key, ERROR_FIELD: self.message}


FetchOutcome = Union[Ok, Err]


def is_cacheable(outcome: FetchOutcome) -> bool:
    """Only well-formed, non-empty records without an error marker are cached."""
    if not isinstance(outcome, Ok):
        return False
    record = outcome.record
    if isinstance(record, dict):
        return bool(record) and ERROR_FIELD not in record
    if isinstance(record, list):
        return bool(record)
    return False
