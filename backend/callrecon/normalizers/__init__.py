from callrecon.normalizers.phone import normalize_phone
from callrecon.normalizers.timestamps import (
    CANONICAL_FORMAT,
    day_difference,
    is_daylight_time,
    minutes_between,
    normalize_timestamp,
    parse_timestamp,
    utc_to_local,
)

__all__ = [
    "CANONICAL_FORMAT",
    "day_difference",
    "is_daylight_time",
    "minutes_between",
    "normalize_phone",
    "normalize_timestamp",
    "parse_timestamp",
    "utc_to_local",
]
