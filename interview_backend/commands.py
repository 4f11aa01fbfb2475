"""
Command types for PhaseController control flow.

Commands are the public interface to PhaseController.handle().
Each command names the interview it targets; the controller owns
acquiring, mutating and persisting the session.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class StartInterview:
    """
    Open (or restore) an interview.

    Restored sessions are returned unchanged.
    Fresh sessions issue the opening exchange.
    Returns: TurnResult
    """
    interview_id: str


@dataclass(frozen=True)
class PatientMessage:
    """
    Submit one patient message.

    Blank text is rejected.
    Returns: TurnResult (may carry a scheduled final report future)
    """
    interview_id: str
    text: str


@dataclass(frozen=True)
class RetryRound2:
    """
    Re-run the round-2 transition after a failed diagnosis call.

    Only valid while still in round 1 with the round-2 guard set
    and no diagnosis stored.
    Returns: TurnResult
    """
    interview_id: str


@dataclass(frozen=True)
class RequestFinalReport:
    """
    Return the stored final report, generating it if missing.

    Returns: FinalReportResult
    """
    interview_id: str


@dataclass(frozen=True)
class ClearInterview:
    """
    Forget an interview (cached and persisted state).

    Returns: None
    """
    interview_id: str


# Command union type for type hints
Command = StartInterview | PatientMessage | RetryRound2 | RequestFinalReport | ClearInterview
