"""Stock correction saga.

Sets a location's quantity through the ERP's correction action script, then
records the before/after quantities in the correction history. The history
write is reported, not raised: the correction itself has already happened.
"""

import logging

from erp.errors import ERPError, OriginNotFound
from erp.queries import fetch_correction_source
from erp.wire import DatasetRecord, ScriptParam, build_execute_script_body, json_number

from ..models import TransactionKind
from ..schemas import CorrectionPayload
from .base import Saga

logger = logging.getLogger(__name__)

CORRECTION_ACTION_ID = "97"
CLIENT_CONFIRM_EVENT = "br.com.sankhya.actionbutton.clientconfirm"

HISTORY_ENTITY = "AD_HISTENDAPP"
HISTORY_FIELDS = ["CODARM", "SEQEND", "CODPROD", "CODVOL", "MARCA", "DERIV", "QUANT", "QATUAL", "CODUSU"]


class CorrectionSaga(Saga):
    kind = TransactionKind.CORRECTION
    payload_schema = CorrectionPayload
    default_message = "Correction executed successfully"

    def run(self, payload: CorrectionPayload) -> str:
        warehouse, address = payload.warehouse, payload.address
        logger.info(
            "Starting stock correction",
            extra={"operator_id": self.ctx.operator_id,
                   "location": f"{warehouse}/{address}", "quantity": payload.new_quantity},
        )

        source = fetch_correction_source(self.ctx.gateway, warehouse, address, self.ctx.deadline)
        if source is None:
            raise OriginNotFound(f"No item at {warehouse}/{address} to correct")

        script = build_execute_script_body(
            CORRECTION_ACTION_ID,
            params=[
                ScriptParam("S", "CODPROD", source.product_code),
                ScriptParam("S", "CODVOL", source.volume),
                ScriptParam("F", "QTDPRO", json_number(payload.new_quantity)),
                ScriptParam("D", "DATENT", source.entry_date),
                ScriptParam("D", "DATVAL", source.expiry_date),
            ],
            rows=[{"CODARM": str(warehouse), "SEQEND": str(address)}],
            client_events=[CLIENT_CONFIRM_EVENT],
        )
        self.ctx.gateway.execute_script(script, self.ctx.session_handle, self.ctx.deadline)

        history = DatasetRecord(values={
            "0": str(warehouse),
            "1": str(address),
            "2": source.product_code,
            "3": source.volume,
            "4": source.brand,
            "5": source.derivation,
            "6": f"{source.quantity:.0f}",
            "7": f"{payload.new_quantity:.0f}",
            "8": str(self.ctx.operator_id),
        })
        try:
            self.ctx.gateway.save_records(HISTORY_ENTITY, HISTORY_FIELDS, [history], self.ctx.deadline)
        except ERPError as e:
            logger.error(
                f"Correction applied but history write failed: {e}",
                extra={"location": f"{warehouse}/{address}", "operator_id": self.ctx.operator_id},
            )
            return f"Correction executed, but history write failed: {e}"

        return self.default_message
