"""Domain types for stock transactions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from erp.errors import InvalidPayload
from erp.wire import DatasetRecord, format_quantity


class TransactionKind(str, Enum):
    """Transaction kinds, valued by their wire names."""
    WITHDRAWAL = "baixa"
    TRANSFER = "transferencia"
    PICKING = "picking"
    CORRECTION = "correcao"

    @classmethod
    def parse(cls, value: str) -> "TransactionKind":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise InvalidPayload(f"Unknown transaction type: {value!r}")


# UserPermissions attribute gating each kind
REQUIRED_PERMISSION = {
    TransactionKind.WITHDRAWAL: "can_withdraw",
    TransactionKind.TRANSFER: "can_transfer",
    TransactionKind.PICKING: "can_pick",
    TransactionKind.CORRECTION: "can_correct",
}


@dataclass(frozen=True)
class LineItem:
    """One movement line of a batch.

    A line without destination is a withdrawal of `quantity` from the source.
    """
    source_warehouse: int
    source_address: str
    quantity: float
    destination_warehouse: Optional[int] = None
    destination_address: Optional[str] = None
    applied: bool = True

    @property
    def is_withdrawal(self) -> bool:
        return self.destination_warehouse is None

    def to_record(self, batch_id: str) -> DatasetRecord:
        return DatasetRecord(values={
            "0": batch_id,
            "1": str(self.source_warehouse),
            "2": self.source_address,
            "3": "" if self.destination_warehouse is None else str(self.destination_warehouse),
            "4": self.destination_address or "",
            "5": format_quantity(self.quantity),
            "6": "S" if self.applied else "N",
        })


@dataclass
class TransactionBatch:
    """Header plus the lines submitted under it.

    Finalized once, only after every line is visible in the ERP.
    """
    batch_id: str
    kind: TransactionKind
    operator_id: int
    lines: List[LineItem] = field(default_factory=list)

    @property
    def line_count(self) -> int:
        return len(self.lines)
