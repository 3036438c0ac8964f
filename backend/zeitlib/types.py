"""Common type aliases for the zeitlib storage layer."""
from typing import Any

# A single stored row (field_name -> value)
Row = dict[str, Any]
RowList = list[Row]

# Domain record aliases
ClosingRecord = dict[str, Any]
BonusLedgerRecord = dict[str, Any]
