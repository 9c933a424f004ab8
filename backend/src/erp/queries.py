"""Typed ERP reads used by the transaction sagas and the login flow.

Each query decodes its rows once, here, into a small dataclass. Numeric
identifiers are interpolated with integer formatting and the only string
literal (destination address / username / device token) is stripped of
quotes before interpolation.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from .deadline import Deadline
from .errors import UserNotAuthorized, UserNotFound
from .ports import ERPGatewayPort
from .wire import DatasetRecord, RowReader, sanitize_sql_string

logger = logging.getLogger(__name__)

ERP_DATE_FORMAT = "%d/%m/%Y"

PERMISSIONS_SQL = """
    SELECT
        LISTAGG(d.CODARM, ', ') WITHIN GROUP (ORDER BY d.CODARM) AS LISTA_CODIGOS,
        LISTAGG(d.CODARM || ' - ' || a.DESARM, ', ') WITHIN GROUP (ORDER BY d.CODARM) AS LISTA_NOMES,
        p.CODUSU, p.TRANSF, p.BAIXA, p.PICK, p.CORRE, p.BXAPICK, p.CRIAPICK
    FROM AD_APPPERM p
    JOIN AD_PERMEND d ON d.NUMREG = p.NUMREG
    JOIN AD_CADARM a ON a.CODARM = d.CODARM
    WHERE p.CODUSU = %d
    GROUP BY p.CODUSU, p.TRANSF, p.BAIXA, p.PICK, p.CORRE, p.BXAPICK, p.CRIAPICK"""

ORIGIN_SQL = "SELECT CODPROD, ENDPIC FROM AD_CADEND WHERE CODARM = %d AND SEQEND = %d"

OCCUPANCY_SQL = "SELECT CODPROD, QTDPRO FROM AD_CADEND WHERE CODARM = %d AND SEQEND = '%s'"

CORRECTION_SOURCE_SQL = """
    SELECT
        DEND.CODPROD,
        DEND.CODVOL,
        TO_CHAR(DEND.DATENT, 'DD/MM/YYYY') AS DATENT,
        TO_CHAR(DEND.DATVAL, 'DD/MM/YYYY') AS DATVAL,
        DEND.QTDPRO,
        PRO.MARCA,
        (SELECT MAX(V.DESCRDANFE) FROM TGFVOA V
          WHERE V.CODPROD = DEND.CODPROD AND V.CODVOL = DEND.CODVOL) AS DERIVACAO
    FROM AD_CADEND DEND
    JOIN TGFPRO PRO ON DEND.CODPROD = PRO.CODPROD
    WHERE DEND.CODARM = %d AND DEND.SEQEND = %d"""

VISIBLE_LINES_SQL = "SELECT COUNT(*) FROM AD_IBXEND WHERE SEQBAI = %s AND CODPROD IS NOT NULL"

USER_ACCESS_SQL = """
    SELECT
        U.CODUSU,
        CASE
            WHEN EXISTS (SELECT 1 FROM AD_APPPERM P WHERE P.CODUSU = U.CODUSU) THEN 'TRUE'
            ELSE 'FALSE'
        END AS PERMITIDO
    FROM TSIUSU U
    WHERE U.NOMEUSU = '%s'"""

DEVICE_SQL = """
    SELECT DEVICETOKEN, CODUSU, ATIVO
    FROM AD_DISPAUT
    WHERE CODUSU = %d AND DEVICETOKEN = '%s'"""

DEVICE_ENTITY = "AD_DISPAUT"
DEVICE_FIELDS = ["CODUSU", "DEVICETOKEN", "DESCRDISP", "ATIVO", "DHGER"]
NEW_DEVICE_DESCRIPTION = "Novo Dispositivo"

# Product code the ERP reports for an empty location
EMPTY_PRODUCT_CODE = "0"


@dataclass(frozen=True)
class UserPermissions:
    """Operator capability flags plus the warehouses the operator may use.

    Read fresh for every transaction; never cached.
    """
    operator_id: int
    warehouse_codes: str = ""
    warehouse_names: str = ""
    can_transfer: bool = False
    can_withdraw: bool = False
    can_pick: bool = False
    can_correct: bool = False
    can_withdraw_from_pick_location: bool = False
    can_create_pick_location: bool = False

    @classmethod
    def from_row(cls, row: List) -> "UserPermissions":
        reader = RowReader(row)
        return cls(
            warehouse_codes=reader.get_str(0),
            warehouse_names=reader.get_str(1),
            operator_id=reader.get_int(2),
            can_transfer=reader.get_flag(3),
            can_withdraw=reader.get_flag(4),
            can_pick=reader.get_flag(5),
            can_correct=reader.get_flag(6),
            can_withdraw_from_pick_location=reader.get_flag(7),
            can_create_pick_location=reader.get_flag(8),
        )


@dataclass(frozen=True)
class OriginLocation:
    product_code: str
    is_pick_location: bool


@dataclass(frozen=True)
class LocationOccupancy:
    product_code: str
    quantity: float

    @property
    def is_empty(self) -> bool:
        return self.product_code == EMPTY_PRODUCT_CODE


@dataclass(frozen=True)
class CorrectionSource:
    """Current state of a location, as needed by the correction script."""
    product_code: str
    volume: str
    entry_date: str
    expiry_date: str
    quantity: float
    brand: str = ""
    derivation: str = ""


@dataclass
class DeviceStatus:
    device_token: str
    active: bool


def fetch_user_permissions(
    gateway: ERPGatewayPort,
    operator_id: int,
    deadline: Deadline,
) -> Optional[UserPermissions]:
    """Return the operator's permission profile, or None if they have none."""
    rows = gateway.execute_query(PERMISSIONS_SQL % operator_id, deadline)
    if not rows:
        return None
    return UserPermissions.from_row(rows[0])


def fetch_origin(
    gateway: ERPGatewayPort,
    warehouse: int,
    address: int,
    deadline: Deadline,
) -> Optional[OriginLocation]:
    rows = gateway.execute_query(ORIGIN_SQL % (warehouse, address), deadline)
    if not rows:
        return None
    reader = RowReader(rows[0])
    return OriginLocation(product_code=reader.get_code(0), is_pick_location=reader.get_flag(1))


def fetch_occupancy(
    gateway: ERPGatewayPort,
    warehouse: int,
    address: str,
    deadline: Deadline,
) -> Optional[LocationOccupancy]:
    """Return what the location currently holds, or None if it is not registered."""
    rows = gateway.execute_query(OCCUPANCY_SQL % (warehouse, sanitize_sql_string(address)), deadline)
    if not rows:
        return None
    reader = RowReader(rows[0])
    return LocationOccupancy(product_code=reader.get_code(0), quantity=reader.get_float(1))


def fetch_correction_source(
    gateway: ERPGatewayPort,
    warehouse: int,
    address: int,
    deadline: Deadline,
) -> Optional[CorrectionSource]:
    rows = gateway.execute_query(CORRECTION_SOURCE_SQL % (warehouse, address), deadline)
    if not rows:
        return None
    reader = RowReader(rows[0])
    return CorrectionSource(
        product_code=reader.get_str(0),
        volume=reader.get_str(1),
        entry_date=reader.get_str(2),
        expiry_date=reader.get_str(3),
        quantity=reader.get_float(4),
        brand=reader.get_str(5),
        derivation=reader.get_str(6),
    )


def count_visible_lines(gateway: ERPGatewayPort, batch_id: str, deadline: Deadline) -> int:
    """Number of batch lines the ERP has finished processing."""
    rows = gateway.execute_query(VISIBLE_LINES_SQL % batch_id, deadline)
    if not rows:
        return 0
    return RowReader(rows[0]).get_int(0)


# Login checks

def verify_user_access(gateway: ERPGatewayPort, username: str, deadline: Deadline) -> int:
    """Resolve a username to its operator id.

    Raises:
        UserNotFound: No such ERP user
        UserNotAuthorized: User exists but has no app permission profile
    """
    safe_username = sanitize_sql_string(username.upper())
    rows = gateway.execute_query(USER_ACCESS_SQL % safe_username, deadline)
    if not rows:
        raise UserNotFound("User does not exist or name is incorrect")

    reader = RowReader(rows[0])
    if reader.get_str(1) != "TRUE":
        raise UserNotAuthorized("User has no app access permission profile")
    return reader.get_int(0)


def fetch_device(
    gateway: ERPGatewayPort,
    operator_id: int,
    device_token: str,
    deadline: Deadline,
) -> Optional[DeviceStatus]:
    rows = gateway.execute_query(DEVICE_SQL % (operator_id, sanitize_sql_string(device_token)), deadline)
    if not rows:
        return None
    return DeviceStatus(device_token=device_token, active=RowReader(rows[0]).get_flag(2))


def register_device(
    gateway: ERPGatewayPort,
    operator_id: int,
    device_token: str,
    deadline: Deadline,
    today: Optional[date] = None,
) -> None:
    """Register an unknown device as inactive, pending administrator approval."""
    today = today or date.today()
    record = DatasetRecord(values={
        "0": str(operator_id),
        "1": device_token,
        "2": NEW_DEVICE_DESCRIPTION,
        "3": "N",
        "4": today.strftime(ERP_DATE_FORMAT),
    })
    gateway.save_records(DEVICE_ENTITY, DEVICE_FIELDS, [record], deadline)
    logger.info("Registered new device pending approval", extra={"operator_id": operator_id})
