from .crisis_log import SQLiteCrisisEventLog
from .database import SQLiteLedgerDB
from .usage_ledger import SQLiteUsageLedger

__all__ = [
    "SQLiteCrisisEventLog",
    "SQLiteLedgerDB",
    "SQLiteUsageLedger",
]
