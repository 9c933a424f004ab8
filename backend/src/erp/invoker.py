"""Resilient execution of single ERP calls.

Each attempt obtains a credential (the operator's session handle or the
cached system token), sends the request, and classifies the response:

    Attempt -> SUCCESS            return the response
            -> HARD_ERROR         raise ExternalHardError, no retry
            -> TRANSIENT          invalidate the system token (if used),
                                  back off, retry until the budget is spent,
                                  then raise SessionInstability

Transport failures (connection errors, timeouts) count as TRANSIENT, including
those hit while renewing the system token mid-call. If the budget runs out on
such a renewal, the last CredentialUnavailable is raised instead.
"""

import logging
from typing import Callable, Optional

import httpx

from .credentials import CredentialCache
from .deadline import Deadline
from .errors import CredentialUnavailable, ExternalHardError, SessionInstability
from .wire import CallOutcome, ServiceResponse

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_BACKOFF_SECONDS = 0.3

# Builds and sends the request with the credential it is given
ERPCall = Callable[[str], ServiceResponse]


class ResilientInvoker:
    """Bounded retry loop around one ERP call.

    Args:
        credentials: System credential cache (invalidated on session errors)
        max_attempts: Default attempt budget per call
        backoff_seconds: Fixed wait between attempts
        on_attempt: Optional hook called with (service_name, outcome) after
            each attempt, used for metrics
    """

    def __init__(
        self,
        credentials: CredentialCache,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        on_attempt: Optional[Callable[[str, CallOutcome], None]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.credentials = credentials
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._on_attempt = on_attempt

    def invoke(
        self,
        call: ERPCall,
        deadline: Deadline,
        *,
        service_name: str,
        session_handle: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ) -> ServiceResponse:
        """Execute `call` with retries.

        Args:
            call: Sends the request using the credential passed to it
            deadline: Caller deadline, checked before each attempt and wait
            service_name: ERP service name (for errors and logs)
            session_handle: Operator JSESSIONID for user-attributed calls;
                None means the call is system-attributed
            max_attempts: Override of the default attempt budget

        Returns:
            ServiceResponse classified as SUCCESS

        Raises:
            ExternalHardError: ERP rejected the call for a non-transient reason
            SessionInstability: Transient failures exhausted the budget
            CredentialUnavailable: System login was refused, or kept failing
                on transport errors until the budget was spent
            DeadlineExceeded: Caller deadline elapsed
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        system_attributed = session_handle is None
        last_message: Optional[str] = None
        login_failure: Optional[CredentialUnavailable] = None

        for attempt in range(1, attempts + 1):
            deadline.check()
            credential: Optional[str] = session_handle
            login_failure = None

            try:
                if system_attributed:
                    credential = self.credentials.get_credential(deadline)
                response = call(credential)
            except CredentialUnavailable as e:
                if not isinstance(e.__cause__, httpx.TransportError):
                    raise
                outcome = CallOutcome.TRANSIENT
                login_failure = e
                last_message = f"system login transport error: {e.__cause__}"
            except httpx.TransportError as e:
                outcome = CallOutcome.TRANSIENT
                last_message = f"transport error: {e}"
            else:
                outcome = response.outcome
                if outcome == CallOutcome.SUCCESS:
                    self._record(service_name, outcome)
                    return response
                last_message = response.error_message
                if outcome == CallOutcome.HARD_ERROR:
                    self._record(service_name, outcome)
                    logger.error(
                        f"ERP rejected {service_name}: {last_message}",
                        extra={"service": service_name, "status": response.status},
                    )
                    raise ExternalHardError(service_name, last_message)

            self._record(service_name, outcome)
            logger.warning(
                f"Transient ERP failure on {service_name} (attempt {attempt}/{attempts}): {last_message}",
                extra={"service": service_name, "attempt": attempt, "system": system_attributed},
            )

            if system_attributed and credential is not None:
                self.credentials.invalidate(stale_token=credential)

            if attempt < attempts:
                deadline.wait(self.backoff_seconds)

        if login_failure is not None:
            raise login_failure
        raise SessionInstability(service_name, external_message=last_message, attempts=attempts)

    def _record(self, service_name: str, outcome: CallOutcome) -> None:
        if self._on_attempt is not None:
            self._on_attempt(service_name, outcome)
