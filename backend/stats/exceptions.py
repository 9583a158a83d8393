"""Exceptions raised at the boundary of the statistics engine.

Aggregation itself never raises on bad ledger data; it skips what it cannot
use. These are only raised for invalid arguments supplied by the caller.
"""

SUPPORTED_TABLE_SIZES = (3, 4)


class StatsError(Exception):
    pass


class InvalidTableSizeError(StatsError, ValueError):
    def __init__(self, table_size: int) -> None:
        super().__init__(f"Table size must be one of {SUPPORTED_TABLE_SIZES}, got {table_size}")
        self.table_size = table_size


class InvalidRoundError(StatsError, ValueError):
    pass


def require_table_size(table_size: int) -> int:
    if table_size not in SUPPORTED_TABLE_SIZES:
        raise InvalidTableSizeError(table_size)
    return table_size
