"""
Services package for shared business logic.

This package contains the finance engines and the service class that wires
them to the ledger store for the API endpoints.
"""

from .finance_service import FinanceService
from .ledger_store import LedgerStore, SqlAlchemyLedgerStore
from .reconciliation_engine import ReconciliationEngine

__all__ = [
    "FinanceService",
    "LedgerStore",
    "SqlAlchemyLedgerStore",
    "ReconciliationEngine",
]
