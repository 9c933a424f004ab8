"""Wire shapes of the ERP service gateway.

The ERP vendor owns these formats; field names, nesting and value
formatting here must match what the gateway expects exactly. Responses are
decoded once into ServiceResponse and rows are read through RowReader, so
the rest of the code never indexes loosely-typed JSON directly.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx


# Service names
SERVICE_EXECUTE_QUERY = "DbExplorerSP.executeQuery"
SERVICE_DATASET_SAVE = "DatasetSP.save"
SERVICE_EXECUTE_SCRIPT = "ActionButtonsSP.executeScript"
SERVICE_EXECUTE_STP = "ActionButtonsSP.executeSTP"
SERVICE_MOBILE_LOGIN = "MobileLoginSP.login"

STATUS_OK = "1"
STATUS_OK_WITH_MESSAGE = "2"
STATUS_SESSION_EXPIRED = "3"

_SESSION_MESSAGE_PATTERN = re.compile(r"token|sess[aã]o|session", re.IGNORECASE)


class CallOutcome(str, Enum):
    """Tri-state classification of an ERP response."""
    SUCCESS = "success"
    TRANSIENT = "transient"
    HARD_ERROR = "hard_error"


@dataclass
class ServiceResponse:
    """Decoded gateway response.

    Attributes:
        service_name: Service that produced the response
        status: ERP status code ("1" ok, "2" ok with message, "3" session expired)
        status_message: Message returned by the ERP (often empty on success)
        response_body: Raw responseBody object
        http_status: HTTP status code of the response
    """
    service_name: str
    status: str
    status_message: str = ""
    response_body: Dict[str, Any] = field(default_factory=dict)
    http_status: int = 200

    @classmethod
    def from_http(cls, service_name: str, response: httpx.Response) -> "ServiceResponse":
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        body = payload.get("responseBody")
        return cls(
            service_name=service_name,
            status=str(payload.get("status", "")),
            status_message=str(payload.get("statusMessage") or ""),
            response_body=body if isinstance(body, dict) else {},
            http_status=response.status_code,
        )

    @property
    def outcome(self) -> CallOutcome:
        if self.http_status in (401, 403) or self.http_status >= 500:
            return CallOutcome.TRANSIENT
        if self.http_status >= 400:
            return CallOutcome.HARD_ERROR
        if self.status in (STATUS_OK, STATUS_OK_WITH_MESSAGE):
            return CallOutcome.SUCCESS
        if self.status == STATUS_SESSION_EXPIRED:
            return CallOutcome.TRANSIENT
        # Some services report an expired session as status 0 with a message
        if self.status == "0" and _SESSION_MESSAGE_PATTERN.search(self.status_message):
            return CallOutcome.TRANSIENT
        return CallOutcome.HARD_ERROR

    @property
    def error_message(self) -> str:
        if self.status_message:
            return self.status_message
        if self.http_status >= 400:
            return f"HTTP {self.http_status}"
        return f"Unknown ERP error (status {self.status or 'missing'})"

    @property
    def rows(self) -> List[List[Any]]:
        rows = self.response_body.get("rows") or []
        return [row for row in rows if isinstance(row, list)]

    @property
    def result(self) -> List[List[Any]]:
        result = self.response_body.get("result") or []
        return [row for row in result if isinstance(row, list)]


class RowReader:
    """Safe positional access to a query row.

    Missing columns and nulls decode to the type's zero value.
    """

    def __init__(self, row: List[Any]):
        self._row = row

    def _value(self, index: int) -> Any:
        if index >= len(self._row):
            return None
        return self._row[index]

    def get_float(self, index: int) -> float:
        value = self._value(index)
        if value is None or isinstance(value, bool):
            return 0.0
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return float(str(value).strip())
        except ValueError:
            return 0.0

    def get_int(self, index: int) -> int:
        return int(self.get_float(index))

    def get_str(self, index: int) -> str:
        value = self._value(index)
        if value is None:
            return ""
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    def get_code(self, index: int) -> str:
        """Numeric code rendered without decimals ("0" when missing)."""
        return f"{self.get_float(index):.0f}"

    def get_flag(self, index: int) -> bool:
        """ERP S/N flag."""
        return self.get_str(index).strip().upper() == "S"


# Request bodies

def format_quantity(value: float) -> str:
    return f"{value:.3f}"


def json_number(value: float) -> Any:
    """Render integral floats as JSON integers, as the gateway's encoder does."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


@dataclass
class DatasetRecord:
    """One record of a DatasetSP.save call.

    values maps the field's position in `fields` (as a string) to its value.
    pk, when set, turns the record into an update of that primary key.
    """
    values: Dict[str, str]
    pk: Optional[Dict[str, str]] = None

    def to_wire(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {}
        if self.pk:
            record["pk"] = dict(self.pk)
        record["values"] = dict(self.values)
        return record


def build_query_body(sql: str) -> Dict[str, Any]:
    return {"sql": sql, "params": {}}


def build_dataset_save_body(
    entity_name: str,
    fields: List[str],
    records: List[DatasetRecord],
) -> Dict[str, Any]:
    return {
        "entityName": entity_name,
        "fields": list(fields),
        "records": [record.to_wire() for record in records],
    }


def build_script_field_rows(rows: List[Dict[str, str]]) -> Dict[str, Any]:
    return {
        "row": [
            {"field": [{"fieldName": name, "$": value} for name, value in row.items()]}
            for row in rows
        ]
    }


@dataclass
class ScriptParam:
    type: str
    name: str
    value: Any

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, "paramName": self.name, "$": self.value}


def build_execute_script_body(
    action_id: str,
    params: List[ScriptParam],
    rows: List[Dict[str, str]],
    refresh_type: str = "SEL",
    client_events: Optional[List[str]] = None,
) -> Dict[str, Any]:
    return {
        "runScript": {
            "actionID": action_id,
            "refreshType": refresh_type,
            "params": {"param": [param.to_wire() for param in params]},
            "rows": build_script_field_rows(rows),
        },
        "clientEventList": {
            "clientEvent": [{"$": event} for event in (client_events or [])],
        },
    }


def build_execute_stp_body(
    action_id: str,
    proc_name: str,
    root_entity: str,
    rows: List[Dict[str, str]],
) -> Dict[str, Any]:
    return {
        "stpCall": {
            "actionID": action_id,
            "procName": proc_name,
            "rootEntity": root_entity,
            "rows": build_script_field_rows(rows),
        }
    }


def build_mobile_login_body(username: str, password: str) -> Dict[str, Any]:
    return {
        "NOMUSU": {"$": username},
        "INTERNO": {"$": password},
        "KEEPCONNECTED": {"$": "S"},
    }


def sanitize_sql_string(value: str) -> str:
    """Strip single quotes from a value interpolated into a SQL literal."""
    return value.replace("'", "")
