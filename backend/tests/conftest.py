"""Pytest fixtures shared by the unit and integration suites.

Provides reusable test fixtures for:
- An in-memory ERP gateway (FakeGateway) scripted per test
- A fakeredis-backed session registry
- A transaction orchestrator wired to the fake gateway with zero poll interval

Usage:
    def test_withdrawal(orchestrator, fake_gateway):
        message = orchestrator.execute("baixa", payload, operator_id=42, session_handle="JS1")
        assert fake_gateway.finalize_calls == 1
"""

import sys
import os
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-256-bits-minimum-length-required-for-security")
os.environ.setdefault("KEEPALIVE_MODE", "off")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("SANKHYA_API_URL", "http://erp.test")
os.environ.setdefault("SANKHYA_TRANSACTION_URL", "http://erp.test/mge")
os.environ.setdefault("SANKHYA_RENEW_URL", "http://erp.test/mge/keepalive")

import fakeredis
import pytest
from typing import Any, Dict, List, Optional

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from erp.consistency import ConsistencyWaiter
from erp.deadline import Deadline
from erp.errors import InvalidCredentials
from erp.ports import ERPGatewayPort
from erp.wire import (
    SERVICE_DATASET_SAVE,
    SERVICE_EXECUTE_SCRIPT,
    SERVICE_EXECUTE_STP,
    DatasetRecord,
    ServiceResponse,
)
from sessions.registry import SessionRegistry
from transactions.orchestrator import TransactionOrchestrator
from transactions.sagas.base import HEADER_ENTITY, LINE_ENTITY


OPERATOR_ID = 42
SESSION_HANDLE = "JSESSION-OPERATOR-42"

# LISTA_CODIGOS, LISTA_NOMES, CODUSU, TRANSF, BAIXA, PICK, CORRE, BXAPICK, CRIAPICK
FULL_PERMISSIONS_ROW = ["1, 2", "1 - CENTRAL, 2 - PICKING", OPERATOR_ID, "S", "S", "S", "S", "S", "S"]


class FakeGateway(ERPGatewayPort):
    """In-memory ERP double scripted through its attributes.

    Queries are answered from one configured row per query type; every
    write is recorded so tests can assert on what reached the ERP.
    """

    def __init__(self):
        self.permissions_row: Optional[List[Any]] = list(FULL_PERMISSIONS_ROW)
        self.origin_row: Optional[List[Any]] = [1001, "N"]
        self.occupancy_row: Optional[List[Any]] = None
        self.correction_row: Optional[List[Any]] = [
            "1001", "UN", "01/02/2024", "01/02/2025", 12, "ACME", "CX 12"
        ]
        self.user_row: Optional[List[Any]] = [OPERATOR_ID, "TRUE"]
        self.device_row: Optional[List[Any]] = ["device-1", OPERATOR_ID, "S"]

        self.batch_id = "5001"
        # Polls answering 0 visible lines before the batch shows up; None = never
        self.visible_after_polls: Optional[int] = 0
        self.finalize_message = ""
        self.save_errors: Dict[str, Exception] = {}
        self.script_error: Optional[Exception] = None
        self.login_handle = SESSION_HANDLE
        self.valid_password = "secret"
        self.keepalive_results: Dict[str, bool] = {}

        self.queries: List[str] = []
        self.saves: List[Dict[str, Any]] = []
        self.scripts: List[Dict[str, Any]] = []
        self.procedures: List[Dict[str, Any]] = []
        self.keepalive_calls: List[str] = []
        self.visibility_polls = 0

    def set_permissions(self, **flags: str) -> None:
        """Grant every flag except the ones overridden, e.g. set_permissions(TRANSF="N")."""
        columns = ["TRANSF", "BAIXA", "PICK", "CORRE", "BXAPICK", "CRIAPICK"]
        row = list(FULL_PERMISSIONS_ROW)
        for name, value in flags.items():
            row[3 + columns.index(name)] = value
        self.permissions_row = row

    # Introspection helpers

    def saves_to(self, entity_name: str) -> List[Dict[str, Any]]:
        return [save for save in self.saves if save["entity"] == entity_name]

    @property
    def submitted_lines(self) -> List[Dict[str, str]]:
        return [record.values for save in self.saves_to(LINE_ENTITY) for record in save["records"]]

    @property
    def write_count(self) -> int:
        return len(self.saves) + len(self.scripts) + len(self.procedures)

    @property
    def finalize_calls(self) -> int:
        return len(self.procedures)

    # ERPGatewayPort

    def execute_query(self, sql: str, deadline: Deadline) -> List[List[Any]]:
        deadline.check()
        self.queries.append(sql)
        if "FROM AD_APPPERM p" in sql:
            return [self.permissions_row] if self.permissions_row else []
        if "ENDPIC FROM AD_CADEND" in sql:
            return [self.origin_row] if self.origin_row else []
        if "QTDPRO FROM AD_CADEND" in sql:
            return [self.occupancy_row] if self.occupancy_row else []
        if "DERIVACAO" in sql:
            return [self.correction_row] if self.correction_row else []
        if "FROM AD_IBXEND" in sql:
            self.visibility_polls += 1
            visible = (
                self.visible_after_polls is not None
                and self.visibility_polls > self.visible_after_polls
            )
            return [[len(self.submitted_lines) if visible else 0]]
        if "FROM TSIUSU" in sql:
            return [self.user_row] if self.user_row else []
        if "FROM AD_DISPAUT" in sql:
            return [self.device_row] if self.device_row else []
        raise AssertionError(f"Unexpected query: {sql}")

    def save_records(
        self,
        entity_name: str,
        fields: List[str],
        records: List[DatasetRecord],
        deadline: Deadline,
        session_handle: Optional[str] = None,
    ) -> ServiceResponse:
        deadline.check()
        if entity_name in self.save_errors:
            raise self.save_errors[entity_name]
        self.saves.append({
            "entity": entity_name,
            "fields": list(fields),
            "records": list(records),
            "session_handle": session_handle,
        })
        body: Dict[str, Any] = {}
        if entity_name == HEADER_ENTITY:
            body = {"result": [[self.batch_id]]}
        return ServiceResponse(SERVICE_DATASET_SAVE, "1", response_body=body)

    def execute_script(self, body, session_handle, deadline) -> ServiceResponse:
        deadline.check()
        if self.script_error is not None:
            raise self.script_error
        self.scripts.append({"body": body, "session_handle": session_handle})
        return ServiceResponse(SERVICE_EXECUTE_SCRIPT, "1")

    def execute_procedure(self, body, session_handle, deadline) -> ServiceResponse:
        deadline.check()
        self.procedures.append({"body": body, "session_handle": session_handle})
        return ServiceResponse(SERVICE_EXECUTE_STP, "1", status_message=self.finalize_message)

    def login_user(self, username: str, password: str, deadline: Deadline) -> str:
        if password != self.valid_password:
            raise InvalidCredentials("Invalid ERP credentials", external_message="Usuário/Senha inválido")
        return self.login_handle

    def keep_alive(self, session_handle: str, timeout_seconds: float) -> bool:
        self.keepalive_calls.append(session_handle)
        return self.keepalive_results.get(session_handle, True)


class ManualClock:
    """Clock advanced explicitly by tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def redis_client():
    """fakeredis client configured like production (decode_responses=True)."""
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def session_registry(redis_client, clock) -> SessionRegistry:
    return SessionRegistry(redis_client, ttl_seconds=3000, keepalive_interval_seconds=15, clock=clock)


@pytest.fixture
def waiter() -> ConsistencyWaiter:
    return ConsistencyWaiter(max_attempts=3, interval_seconds=0)


@pytest.fixture
def orchestrator(fake_gateway, waiter) -> TransactionOrchestrator:
    return TransactionOrchestrator(fake_gateway, waiter, timeout_seconds=5)
