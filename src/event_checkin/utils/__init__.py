from .background import run_detached
from .time import (
    InvalidTimestamp,
    format_relative_time,
    is_expired,
    parse_optional_timestamp,
    parse_timestamp,
    to_iso,
    utc_now,
)

__all__ = [
    "InvalidTimestamp",
    "format_relative_time",
    "is_expired",
    "parse_optional_timestamp",
    "parse_timestamp",
    "run_detached",
    "to_iso",
    "utc_now",
]
