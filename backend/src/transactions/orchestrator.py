"""Transaction orchestration.

TransactionOrchestrator is the single entry point for stock transactions:

1. Parse the transaction kind and its payload
2. Read the operator's permissions fresh from the ERP and gate the kind
3. Dispatch to the kind's saga and return its message

Sagas abort on their first error; the orchestrator only adds metrics and
logging around them.
"""

import logging
import time
from datetime import date
from typing import Any, Callable, Dict, Optional, Type

from erp.consistency import ConsistencyWaiter
from erp.deadline import Deadline
from erp.errors import PermissionDenied
from erp.ports import ERPGatewayPort
from erp.queries import UserPermissions, fetch_user_permissions
from observability.metrics import transaction_duration_seconds, transactions_total

from .models import REQUIRED_PERMISSION, TransactionKind
from .sagas import CorrectionSaga, PickingSaga, Saga, SagaContext, TransferSaga, WithdrawalSaga

logger = logging.getLogger(__name__)

DEFAULT_TRANSACTION_TIMEOUT_SECONDS = 60.0

SAGAS: Dict[TransactionKind, Type[Saga]] = {
    TransactionKind.WITHDRAWAL: WithdrawalSaga,
    TransactionKind.TRANSFER: TransferSaga,
    TransactionKind.PICKING: PickingSaga,
    TransactionKind.CORRECTION: CorrectionSaga,
}


class TransactionOrchestrator:
    """Validates and executes stock transactions against the ERP.

    Args:
        gateway: ERP gateway
        waiter: Visibility poller shared by the batch sagas
        timeout_seconds: Default deadline when the caller supplies none
        today: Date source for ERP date fields

    Example:
        orchestrator = TransactionOrchestrator(client, ConsistencyWaiter())
        message = orchestrator.execute("baixa", payload, operator_id=42, session_handle=handle)
    """

    def __init__(
        self,
        gateway: ERPGatewayPort,
        waiter: Optional[ConsistencyWaiter] = None,
        timeout_seconds: float = DEFAULT_TRANSACTION_TIMEOUT_SECONDS,
        today: Callable[[], date] = date.today,
    ):
        self.gateway = gateway
        self.waiter = waiter or ConsistencyWaiter()
        self.timeout_seconds = timeout_seconds
        self.today = today

    def check_permission(
        self,
        kind: TransactionKind,
        operator_id: int,
        deadline: Deadline,
    ) -> UserPermissions:
        permissions = fetch_user_permissions(self.gateway, operator_id, deadline)
        if permissions is None:
            raise PermissionDenied("Operator has no permission profile")
        if not getattr(permissions, REQUIRED_PERMISSION[kind]):
            logger.warning(
                "Permission denied",
                extra={"operator_id": operator_id, "kind": kind.value},
            )
            raise PermissionDenied(f"Operator is not allowed to execute {kind.value}")
        return permissions

    def execute(
        self,
        kind: str,
        payload: Dict[str, Any],
        operator_id: int,
        session_handle: str,
        deadline: Optional[Deadline] = None,
    ) -> str:
        """Execute one transaction.

        Args:
            kind: Wire name of the transaction kind
            payload: Kind-specific payload (app JSON)
            operator_id: ERP user id of the operator
            session_handle: Operator JSESSIONID
            deadline: Deadline for the whole transaction

        Returns:
            Operator-facing success message

        Raises:
            InvalidPayload: Unknown kind or malformed payload
            PermissionDenied: Operator lacks the kind's permission
            ERPError: Any saga failure
        """
        transaction_kind = TransactionKind.parse(kind)
        saga_cls = SAGAS[transaction_kind]
        parsed = saga_cls.parse_payload(payload)
        deadline = deadline or Deadline.after(self.timeout_seconds)

        started = time.monotonic()
        outcome = "success"
        try:
            permissions = self.check_permission(transaction_kind, operator_id, deadline)
            ctx = SagaContext(
                gateway=self.gateway,
                waiter=self.waiter,
                operator_id=operator_id,
                session_handle=session_handle,
                permissions=permissions,
                deadline=deadline,
                today=self.today,
            )
            message = saga_cls(ctx).run(parsed)
        except Exception as e:
            outcome = type(e).__name__
            raise
        finally:
            transactions_total.labels(kind=transaction_kind.value, outcome=outcome).inc()
            transaction_duration_seconds.labels(kind=transaction_kind.value).observe(time.monotonic() - started)

        logger.info(
            "Transaction completed",
            extra={"operator_id": operator_id, "kind": transaction_kind.value},
        )
        return message
