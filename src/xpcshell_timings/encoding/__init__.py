"""Columnar encoding of collected test runs."""

from xpcshell_timings.encoding.encoder import (
    TABLE_NAMES,
    DatasetEncoder,
    DatasetStats,
    encode_dataset,
    split_test_path,
)
from xpcshell_timings.encoding.tables import (
    StatusGroup,
    StringTable,
    PathNameIndex,
    decode_timestamps,
)

__all__ = [
    "TABLE_NAMES",
    "DatasetEncoder",
    "DatasetStats",
    "StatusGroup",
    "StringTable",
    "PathNameIndex",
    "decode_timestamps",
    "encode_dataset",
    "split_test_path",
]
