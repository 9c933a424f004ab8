"""Stock transaction endpoint."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from auth.dependencies import CurrentOperator
from dependencies import get_orchestrator
from .orchestrator import TransactionOrchestrator
from .schemas import TransactionRequest, TransactionResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Transactions"])


@router.post("/execute-transaction", response_model=TransactionResponse)
def execute_transaction(
    request: TransactionRequest,
    operator: CurrentOperator,
    orchestrator: Annotated[TransactionOrchestrator, Depends(get_orchestrator)],
):
    """Execute a withdrawal, transfer, picking or correction.

    Runs synchronously within the configured transaction deadline. Errors
    map to HTTP statuses in main.py; a 401 with reauthRequired means the
    operator must log in again.
    """
    message = orchestrator.execute(
        request.type,
        request.payload,
        operator_id=operator.operator_id,
        session_handle=operator.session_handle,
    )
    return TransactionResponse(message=message)
