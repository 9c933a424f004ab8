"""Picking saga: a transfer whose destination always becomes a pick location."""

from ..models import TransactionKind
from ..schemas import MovementPayload
from .movement import TransferSaga


class PickingSaga(TransferSaga):
    kind = TransactionKind.PICKING
    payload_schema = MovementPayload
    default_message = "Picking completed successfully"

    def should_mark_pick(self, payload: MovementPayload) -> bool:
        return True
