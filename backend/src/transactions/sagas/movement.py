"""Withdrawal and transfer sagas."""

import logging
from typing import List

from ..models import LineItem, TransactionKind
from ..schemas import MovementPayload, WithdrawalPayload
from .base import BatchSaga

logger = logging.getLogger(__name__)


class WithdrawalSaga(BatchSaga):
    """Remove a quantity from a location: one line, origin -> nowhere."""

    kind = TransactionKind.WITHDRAWAL
    payload_schema = WithdrawalPayload

    def run(self, payload: WithdrawalPayload) -> str:
        origin = payload.origin
        logger.info(
            "Starting withdrawal",
            extra={"operator_id": self.ctx.operator_id,
                   "origin": f"{origin.warehouse}/{origin.address}", "quantity": payload.quantity},
        )
        self.load_origin(origin.warehouse, origin.address)

        line = LineItem(
            source_warehouse=origin.warehouse,
            source_address=str(origin.address),
            quantity=payload.quantity,
        )
        return self.execute_batch([line])


class TransferSaga(BatchSaga):
    """Move a quantity between locations, merging into a same-product destination.

    Flags the destination as a pick location when requested and the operator
    holds CRIAPICK.
    """

    kind = TransactionKind.TRANSFER
    payload_schema = MovementPayload

    def build_lines(self, payload: MovementPayload) -> List[LineItem]:
        origin, destination = payload.origin, payload.destination
        origin_location = self.load_origin(origin.warehouse, origin.address)

        lines = []
        clear_line = self.destination_clear_line(origin_location, destination.warehouse, destination.address)
        if clear_line is not None:
            lines.append(clear_line)
        lines.append(LineItem(
            source_warehouse=origin.warehouse,
            source_address=str(origin.address),
            quantity=destination.quantity,
            destination_warehouse=destination.warehouse,
            destination_address=destination.address,
        ))
        return lines

    def should_mark_pick(self, payload: MovementPayload) -> bool:
        if not payload.destination.create_pick:
            return False
        if not self.ctx.permissions.can_create_pick_location:
            logger.info(
                "Pick location requested without CRIAPICK permission, ignoring",
                extra={"operator_id": self.ctx.operator_id},
            )
            return False
        return True

    def run(self, payload: MovementPayload) -> str:
        destination = payload.destination
        logger.info(
            f"Starting {self.kind.value}",
            extra={"operator_id": self.ctx.operator_id,
                   "origin": f"{payload.origin.warehouse}/{payload.origin.address}",
                   "destination": f"{destination.warehouse}/{destination.address}",
                   "quantity": destination.quantity},
        )
        lines = self.build_lines(payload)
        pick_location = None
        if self.should_mark_pick(payload):
            pick_location = (destination.warehouse, destination.address)
        return self.execute_batch(lines, pick_location=pick_location)
