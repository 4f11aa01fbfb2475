"""
Result types returned by the exchange adapter and the PhaseController.

Exchange results (adapter boundary):
- ExchangeSuccess / ExchangeFailure: tagged union for every service call

Controller results (PhaseController.handle()):
- TurnResult: StartInterview, PatientMessage, RetryRound2
- FinalReportResult: RequestFinalReport and the scheduled report task
- IllegalCommand: command rejected (invalid lifecycle transition)
"""

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from interview_backend.contracts import Message
from interview_backend.core.session_state import InterviewSession


# Failure kinds
FAILURE_TRANSPORT = "transport"
FAILURE_SERVICE = "service"


@dataclass(frozen=True)
class ExchangeSuccess:
    """
    Normalized successful service response.

    Only the fields relevant to the called endpoint are populated.

    Attributes:
        message: Doctor message (interview endpoints)
        conversation_id: Conversation reference echoed by the service
        updated_report: Replacement report text
        updated_differential: Refreshed differential payload (second interview)
        differential_diagnoses: Structured candidates (diagnosis endpoint)
        raw_response: Unparsed model text (diagnosis endpoint)
        report_body: Final report body, synonyms already resolved
        payload: Full decoded response body, passthrough
    """
    message: Optional[str] = None
    conversation_id: Optional[str] = None
    updated_report: Optional[str] = None
    updated_differential: Optional[Dict[str, Any]] = None
    differential_diagnoses: Optional[List[Dict[str, Any]]] = None
    raw_response: Optional[str] = None
    report_body: Any = None
    payload: Dict[str, Any] = field(default_factory=dict)

    ok = True


@dataclass(frozen=True)
class ExchangeFailure:
    """
    Failed service call.

    Attributes:
        reason: Human-readable explanation
        kind: 'transport' (service unreachable, timeout, undecodable body)
              or 'service' (success=false, HTTP error, missing body)
        service_error: Error text sent by the service itself, if any
    """
    reason: str
    kind: str = FAILURE_SERVICE
    service_error: Optional[str] = None

    ok = False

    @property
    def is_transport(self) -> bool:
        return self.kind == FAILURE_TRANSPORT


ExchangeResult = Union[ExchangeSuccess, ExchangeFailure]


@dataclass(frozen=True)
class TurnResult:
    """
    Outcome of one user action.

    Attributes:
        session: The (mutated) session, owned by the caller
        new_messages: Messages appended during this action, in order
        error: Failure reason if the exchange failed, else None
        final_report_task: Future for a scheduled final report, if this
            turn triggered one
        restored: True if the session was restored from storage
    """
    session: InterviewSession
    new_messages: List[Message]
    error: Optional[str] = None
    final_report_task: Optional["Future[FinalReportResult]"] = None
    restored: bool = False


@dataclass(frozen=True)
class FinalReportResult:
    """
    Outcome of final report generation.

    Attributes:
        success: Whether a report is available
        report: Report body (text or structured payload)
        error: Failure reason when success is False
        generated: True if this call produced the report, False if an
            existing report was returned
    """
    success: bool
    report: Any = None
    error: Optional[str] = None
    generated: bool = False


@dataclass(frozen=True)
class IllegalCommand:
    """
    Command rejected by the controller (invalid lifecycle transition).

    Examples:
    - PatientMessage with blank text
    - Any command while an exchange for the session is in flight
    - RetryRound2 when the transition already succeeded

    Attributes:
        reason: Human-readable explanation
        command_type: Name of rejected command type
    """
    reason: str
    command_type: str
