"""
ERPGatewayPort - Port interface for the ERP service gateway

Transaction sagas and the login flow depend only on this port, never on the
HTTP client directly. SankhyaClient is the production adapter; tests use an
in-memory double.

Attribution: calls that take a `session_handle` run as the operator (the
ERP records them against the operator's JSESSIONID); calls without one run
with the system credential.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .deadline import Deadline
from .wire import DatasetRecord, ServiceResponse


class ERPGatewayPort(ABC):
    """Abstract interface for the ERP service gateway.

    Every method is subject to the retry/classification policy of
    ResilientInvoker and raises the ERPError hierarchy on failure.
    """

    @abstractmethod
    def execute_query(self, sql: str, deadline: Deadline) -> List[List[Any]]:
        """Run a read-only SQL query with the system credential.

        Returns:
            Result rows (possibly empty)
        """
        pass

    @abstractmethod
    def save_records(
        self,
        entity_name: str,
        fields: List[str],
        records: List[DatasetRecord],
        deadline: Deadline,
        session_handle: Optional[str] = None,
    ) -> ServiceResponse:
        """Insert or update records of an ERP entity (DatasetSP.save).

        Args:
            session_handle: Operator JSESSIONID; None writes as the system
        """
        pass

    @abstractmethod
    def execute_script(
        self,
        body: Dict[str, Any],
        session_handle: str,
        deadline: Deadline,
    ) -> ServiceResponse:
        """Run an action-button script as the operator."""
        pass

    @abstractmethod
    def execute_procedure(
        self,
        body: Dict[str, Any],
        session_handle: str,
        deadline: Deadline,
    ) -> ServiceResponse:
        """Run a stored procedure action as the operator."""
        pass

    @abstractmethod
    def login_user(self, username: str, password: str, deadline: Deadline) -> str:
        """Open an ERP session for an operator.

        Returns:
            The operator's session handle (JSESSIONID)

        Raises:
            InvalidCredentials: ERP refused the username/password
        """
        pass

    @abstractmethod
    def keep_alive(self, session_handle: str, timeout_seconds: float) -> bool:
        """Ping the ERP so an idle operator session is not reclaimed.

        Returns:
            True if the ERP confirmed the session is alive. Never raises for
            ERP-side or transport failures.
        """
        pass
