"""Transaction sagas, one per transaction kind."""

from .base import Saga, BatchSaga, SagaContext
from .movement import WithdrawalSaga, TransferSaga
from .picking import PickingSaga
from .correction import CorrectionSaga

__all__ = [
    "Saga",
    "BatchSaga",
    "SagaContext",
    "WithdrawalSaga",
    "TransferSaga",
    "PickingSaga",
    "CorrectionSaga",
]
