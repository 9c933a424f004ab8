"""Shared steps of the batch transaction sagas.

Every batch saga (withdrawal, transfer, picking) runs the same pipeline:

    validate origin -> [check destination] -> create header -> submit lines
        -> [mark pick location] -> wait for visibility -> finalize

Origin validation precedes any write, destination checks precede the
primary movement line, and finalization only follows confirmed visibility.
Writes already issued are never rolled back; a failure after the header is
created is logged with the orphaned batch id.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from erp.consistency import ConsistencyWaiter
from erp.deadline import Deadline
from erp.errors import (
    ConflictingDestination,
    ERPError,
    ExternalHardError,
    InvalidPayload,
    OrchestrationTimeout,
    OriginNotFound,
    PermissionDenied,
)
from erp.ports import ERPGatewayPort
from erp.queries import (
    ERP_DATE_FORMAT,
    OriginLocation,
    UserPermissions,
    count_visible_lines,
    fetch_occupancy,
    fetch_origin,
)
from erp.wire import DatasetRecord, RowReader, SERVICE_DATASET_SAVE, build_execute_stp_body

from ..models import LineItem, TransactionBatch, TransactionKind

logger = logging.getLogger(__name__)

HEADER_ENTITY = "AD_BXAEND"
HEADER_FIELDS = ["SEQBAI", "DATGER", "USUGER"]

LINE_ENTITY = "AD_IBXEND"
LINE_FIELDS = ["SEQBAI", "CODARM", "SEQEND", "ARMDES", "ENDDES", "QTDPRO", "APP"]

LOCATION_ENTITY = "CADEND"
LOCATION_FIELDS = ["CODARM", "SEQEND", "ENDPIC"]

FINALIZE_ACTION_ID = "20"
FINALIZE_PROCEDURE = "NIC_STP_BAIXA_END"


@dataclass
class SagaContext:
    """Everything a saga needs for one execution.

    Attributes:
        gateway: ERP gateway
        waiter: Visibility poller
        operator_id: ERP user id of the operator (CODUSU)
        session_handle: Operator JSESSIONID for user-attributed writes
        permissions: Permission profile read for this transaction
        deadline: Deadline for the whole transaction
        today: Date source for header/history dates
    """
    gateway: ERPGatewayPort
    waiter: ConsistencyWaiter
    operator_id: int
    session_handle: str
    permissions: UserPermissions
    deadline: Deadline
    today: Callable[[], date] = field(default=date.today)


class Saga(ABC):
    """A transaction kind's workflow.

    Subclasses declare the pydantic schema their payload is parsed with;
    run() receives the parsed model.
    """

    kind: TransactionKind
    payload_schema: Type[BaseModel]
    default_message = "Operation completed successfully"

    def __init__(self, ctx: SagaContext):
        self.ctx = ctx

    @classmethod
    def parse_payload(cls, payload: Dict[str, Any]) -> BaseModel:
        try:
            return cls.payload_schema.model_validate(payload)
        except ValidationError as e:
            raise InvalidPayload(
                f"Invalid {cls.kind.value} payload",
                external_message="; ".join(
                    f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                    for error in e.errors()
                ),
            ) from e

    @abstractmethod
    def run(self, payload: BaseModel) -> str:
        """Execute the saga and return the operator-facing message."""
        pass


class BatchSaga(Saga):
    """Base for sagas that move stock through a header/lines/finalize batch."""

    # Origin

    def load_origin(self, warehouse: int, address: int) -> OriginLocation:
        origin = fetch_origin(self.ctx.gateway, warehouse, address, self.ctx.deadline)
        if origin is None:
            raise OriginNotFound(f"Origin location {warehouse}/{address} not found in stock")
        if origin.is_pick_location and not self.ctx.permissions.can_withdraw_from_pick_location:
            raise PermissionDenied("Origin is a pick location and operator lacks BXAPICK permission")
        return origin

    # Destination

    def destination_clear_line(
        self,
        origin: OriginLocation,
        warehouse: int,
        address: str,
    ) -> Optional[LineItem]:
        """Check the destination before any write.

        Returns:
            A line emptying the destination when it already holds the origin's
            product (the incoming quantity then merges into a clean location),
            or None when the destination is empty or unregistered.

        Raises:
            ConflictingDestination: Destination holds a different product
        """
        occupancy = fetch_occupancy(self.ctx.gateway, warehouse, address, self.ctx.deadline)
        if occupancy is None or occupancy.is_empty:
            return None
        if occupancy.product_code != origin.product_code:
            logger.warning(
                "Destination holds a different product",
                extra={"destination": f"{warehouse}/{address}",
                       "destination_product": occupancy.product_code,
                       "origin_product": origin.product_code},
            )
            raise ConflictingDestination(occupancy.product_code)

        logger.info(
            "Destination holds the same product, clearing it first",
            extra={"destination": f"{warehouse}/{address}", "quantity": occupancy.quantity},
        )
        return LineItem(
            source_warehouse=warehouse,
            source_address=address,
            quantity=occupancy.quantity,
        )

    # Batch steps

    def create_header(self) -> str:
        record = DatasetRecord(values={
            "1": self.ctx.today().strftime(ERP_DATE_FORMAT),
            "2": str(self.ctx.operator_id),
        })
        response = self.ctx.gateway.save_records(
            HEADER_ENTITY, HEADER_FIELDS, [record], self.ctx.deadline,
            session_handle=self.ctx.session_handle,
        )
        result = response.result
        if not result or not result[0]:
            raise ExternalHardError(SERVICE_DATASET_SAVE, "ERP did not return the batch id (SEQBAI)")
        batch_id = RowReader(result[0]).get_str(0)
        if not batch_id:
            raise ExternalHardError(SERVICE_DATASET_SAVE, "ERP returned an empty batch id (SEQBAI)")
        logger.debug("Batch header created", extra={"batch_id": batch_id})
        return batch_id

    def submit_lines(self, batch: TransactionBatch) -> None:
        records = [line.to_record(batch.batch_id) for line in batch.lines]
        logger.debug(f"Submitting {len(records)} line(s)", extra={"batch_id": batch.batch_id})
        self.ctx.gateway.save_records(
            LINE_ENTITY, LINE_FIELDS, records, self.ctx.deadline,
            session_handle=self.ctx.session_handle,
        )

    def mark_pick_location(self, warehouse: int, address: str) -> bool:
        """Flag the location as a pick location. Best effort: never raises ERP errors."""
        record = DatasetRecord(
            pk={"CODARM": str(warehouse), "SEQEND": address},
            values={"2": "S"},
        )
        try:
            self.ctx.gateway.save_records(
                LOCATION_ENTITY, LOCATION_FIELDS, [record], self.ctx.deadline,
                session_handle=self.ctx.session_handle,
            )
        except OrchestrationTimeout:
            raise
        except ERPError as e:
            logger.warning(
                f"Could not mark {warehouse}/{address} as pick location: {e}",
                extra={"destination": f"{warehouse}/{address}"},
            )
            return False
        return True

    def await_visibility(self, batch: TransactionBatch) -> None:
        expected = batch.line_count

        def lines_visible() -> bool:
            return count_visible_lines(self.ctx.gateway, batch.batch_id, self.ctx.deadline) >= expected

        if not self.ctx.waiter.wait_until_visible(lines_visible, self.ctx.deadline):
            raise OrchestrationTimeout(
                "ERP did not process the batch lines in time",
                batch_id=batch.batch_id,
            )

    def finalize(self, batch: TransactionBatch) -> str:
        body = build_execute_stp_body(
            FINALIZE_ACTION_ID,
            FINALIZE_PROCEDURE,
            HEADER_ENTITY,
            [{"SEQBAI": batch.batch_id}],
        )
        response = self.ctx.gateway.execute_procedure(body, self.ctx.session_handle, self.ctx.deadline)
        return response.status_message or self.default_message

    def execute_batch(
        self,
        lines: List[LineItem],
        pick_location: Optional[Tuple[int, str]] = None,
    ) -> str:
        """Create, fill, confirm and finalize one batch.

        Args:
            lines: Lines in submission order
            pick_location: (warehouse, address) to flag as pick location
                after the lines are submitted
        """
        batch_id = self.create_header()
        batch = TransactionBatch(
            batch_id=batch_id,
            kind=self.kind,
            operator_id=self.ctx.operator_id,
            lines=list(lines),
        )

        try:
            self.submit_lines(batch)
            if pick_location is not None:
                self.mark_pick_location(*pick_location)
            self.await_visibility(batch)
            message = self.finalize(batch)
        except ERPError as e:
            logger.error(
                f"Batch {batch_id} left unfinalized: {e}",
                extra={"batch_id": batch_id, "kind": self.kind.value, "operator_id": self.ctx.operator_id},
            )
            if isinstance(e, OrchestrationTimeout) and e.batch_id is None:
                e.batch_id = batch_id
            raise

        logger.info(
            "Batch finalized",
            extra={"batch_id": batch_id, "kind": self.kind.value, "lines": batch.line_count},
        )
        return message
