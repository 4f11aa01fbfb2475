"""
Interview phase enum for the two-round consultation flow.

Invariants:
- Exactly one phase is active per session
- Phase changes are explicit and owned by the PhaseController
- Phases only move forward (INIT -> ROUND1 -> ROUND2 -> FINAL_REPORT)
- FINAL_REPORT_READY is not terminal: messages may continue

Design:
- InterviewPhase is a string-based enum for JSON serialization
- Session restore validates phase strings against VALID_PHASES
"""

from enum import Enum


class InterviewPhase(str, Enum):
    """
    Explicit phase tracking for the two-round interview.

    INIT:
        Session exists but no doctor message has been received yet.

        Entry: Fresh session
        Exit: Opening exchange (or first patient message) succeeds
              -> ROUND1_ACTIVE

    ROUND1_ACTIVE:
        Question/answer loop against the primary interview endpoint.

        Entry: First successful primary exchange
        Exit: 13th doctor question + differential generated -> ROUND2_ACTIVE

    ROUND2_ACTIVE:
        Targeted questioning against the second-interview endpoint,
        using the differential diagnosis as context.

        Entry: Round-2 transition succeeded
        Exit: Final report stored -> FINAL_REPORT_READY

    FINAL_REPORT_READY:
        Final report stored. Exchange continues on the second-interview
        endpoint.
    """
    INIT = "init"
    ROUND1_ACTIVE = "round1_active"
    ROUND2_ACTIVE = "round2_active"
    FINAL_REPORT_READY = "final_report_ready"

    @property
    def is_round2(self) -> bool:
        """True once the differential diagnosis has been generated"""
        return self in (InterviewPhase.ROUND2_ACTIVE, InterviewPhase.FINAL_REPORT_READY)


# Single source of truth for valid phase strings
# Used by session restore for validation (fail-fast on corruption)
VALID_PHASES = {phase.value for phase in InterviewPhase}
