from .ledger import LedgerLine, LedgerCategory

__all__ = [
    "LedgerLine",
    "LedgerCategory",
]
