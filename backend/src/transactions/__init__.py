"""Stock transactions module

Executes withdrawal, transfer, picking and correction transactions against
the ERP's eventually-consistent write API, gated by operator permissions.
"""

from .models import TransactionKind, LineItem, TransactionBatch
from .orchestrator import TransactionOrchestrator

__all__ = [
    "TransactionKind",
    "LineItem",
    "TransactionBatch",
    "TransactionOrchestrator",
]
