"""
Interview Session - Per-interview state container

Responsibilities:
- Store the transcript (ordered messages)
- Store report text, conversation references, counters and phase
- Store the differential diagnosis and the final report payload
- Store single-shot guards for the automatic follow-up calls
- Serialize to/from a JSON-safe dict for persistence

Design principles:
- Explicit value owned by the caller (no module-level session)
- Dumb container: phase rules live in the PhaseController
- Counters only move forward (no setters, only record_* methods)
- restored_at is transient and never persisted

Canonical snapshot structure:
{
    'interview_id': str,
    'messages': [{'id', 'sender', 'text', 'annotation'?}, ...],
    'report': str,
    'conversation_id': str | None,
    'second_interview_conversation_id': str | None,
    'doctor_question_count': int,
    'round2_message_count': int,
    'phase': str,
    'diagnosis': dict | None,
    'final_report': dict | None,
    'round2_triggered': bool,
    'final_report_triggered': bool
}
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from interview_backend.contracts import (
    Message, DiagnosisResult,
    SENDER_DOCTOR, SENDER_PATIENT, SENDER_SYSTEM
)
from interview_backend.core.report_accumulator import DEFAULT_REPORT
from interview_backend.utils.interview_phases import InterviewPhase, VALID_PHASES

logger = logging.getLogger(__name__)


class InterviewSession:
    """State of a single interview"""

    # Restore notice stays visible this long after a restore
    RESTORE_NOTICE_SECONDS = 3.0

    def __init__(self, interview_id: str):
        """
        Initialize empty session in INIT phase

        Args:
            interview_id: Patient/interview identifier (or 'direct-chat')
        """
        self.interview_id = interview_id
        self.messages: List[Message] = []
        self.report: str = DEFAULT_REPORT
        self.conversation_id: Optional[str] = None
        self.second_interview_conversation_id: Optional[str] = None
        self.doctor_question_count: int = 0
        self.round2_message_count: int = 0
        self.phase: InterviewPhase = InterviewPhase.INIT
        self.diagnosis: Optional[DiagnosisResult] = None
        self.final_report: Optional[Dict[str, Any]] = None

        # Single-shot guards (persisted)
        self.round2_triggered: bool = False
        self.final_report_triggered: bool = False

        # Transient
        self.restored_at: Optional[float] = None

    # ========================
    # Transcript
    # ========================

    def add_message(self, sender: str, text: str, annotation: bool = False) -> Message:
        """
        Append message to transcript.

        Args:
            sender: 'doctor', 'patient' or 'system'
            text: Message text
            annotation: Doctor-role notice that must not reach the service

        Returns:
            Message: The appended message
        """
        message = Message(
            id=len(self.messages) + 1,
            sender=sender,
            text=text,
            annotation=annotation or sender == SENDER_SYSTEM
        )
        self.messages.append(message)
        logger.debug(f"[{self.interview_id}] message {message.id} ({sender})")
        return message

    def add_doctor_message(self, text: str) -> Message:
        return self.add_message(SENDER_DOCTOR, text)

    def add_patient_message(self, text: str) -> Message:
        return self.add_message(SENDER_PATIENT, text)

    def add_system_message(self, text: str) -> Message:
        return self.add_message(SENDER_SYSTEM, text)

    def add_doctor_notice(self, text: str) -> Message:
        """Doctor-role message shown to the user but kept out of history"""
        return self.add_message(SENDER_DOCTOR, text, annotation=True)

    def conversation_history(self) -> List[Dict[str, str]]:
        """
        History sent to the service.

        Returns:
            list: [{'role': 'assistant'|'user', 'content': str}, ...]
                  System messages and annotations excluded.
        """
        return [
            {'role': m.role, 'content': m.text}
            for m in self.messages
            if m.is_conversational
        ]

    # ========================
    # Counters
    # ========================

    def record_doctor_question(self) -> int:
        """Increment doctor question counter, return new value"""
        self.doctor_question_count += 1
        return self.doctor_question_count

    def record_round2_message(self) -> int:
        """
        Increment round-2 user message counter, return new value

        Raises:
            ValueError: If called before round 2
        """
        if not self.phase.is_round2:
            raise ValueError(f"round2_message_count is frozen in phase {self.phase.value}")
        self.round2_message_count += 1
        return self.round2_message_count

    # ========================
    # Status
    # ========================

    @property
    def candidates(self) -> List[Dict[str, Any]]:
        """Current differential candidates ([] before round 2)"""
        return list(self.diagnosis.candidates) if self.diagnosis else []

    def is_pristine(self) -> bool:
        """
        True for a session that was never touched.

        Pristine sessions are not written to storage.
        """
        return (
            not self.messages
            and not self.conversation_id
            and not self.phase.is_round2
        )

    def restore_notice_visible(self, now: float) -> bool:
        """Whether the 'restored from cache' notice should still show"""
        if self.restored_at is None:
            return False
        return now - self.restored_at < self.RESTORE_NOTICE_SECONDS

    def get_summary_stats(self) -> Dict[str, Any]:
        """Compact view for logging and the API"""
        return {
            'interview_id': self.interview_id,
            'phase': self.phase.value,
            'message_count': len(self.messages),
            'doctor_question_count': self.doctor_question_count,
            'round2_message_count': self.round2_message_count,
            'candidate_count': len(self.candidates),
            'has_final_report': self.final_report is not None,
        }

    # ========================
    # Serialization
    # ========================

    def snapshot_state(self) -> Dict[str, Any]:
        """
        Canonical JSON-safe snapshot (deep copy, lossless).

        restored_at is deliberately absent.
        """
        return {
            'interview_id': self.interview_id,
            'messages': [m.to_json() for m in self.messages],
            'report': self.report,
            'conversation_id': self.conversation_id,
            'second_interview_conversation_id': self.second_interview_conversation_id,
            'doctor_question_count': self.doctor_question_count,
            'round2_message_count': self.round2_message_count,
            'phase': self.phase.value,
            'diagnosis': self.diagnosis.to_json() if self.diagnosis else None,
            'final_report': copy.deepcopy(self.final_report),
            'round2_triggered': self.round2_triggered,
            'final_report_triggered': self.final_report_triggered,
        }

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "InterviewSession":
        """
        Rebuild session from canonical snapshot.

        Args:
            snapshot: Output of snapshot_state()

        Returns:
            InterviewSession

        Raises:
            ValueError: If phase is unknown, counters are negative, or
                round-2 messages are counted before round 2
        """
        phase = snapshot.get('phase', InterviewPhase.INIT.value)
        if phase not in VALID_PHASES:
            raise ValueError(f"Invalid phase in snapshot: {phase!r}")

        doctor_count = int(snapshot.get('doctor_question_count', 0))
        round2_count = int(snapshot.get('round2_message_count', 0))
        if doctor_count < 0 or round2_count < 0:
            raise ValueError("Snapshot counters must be non-negative")
        if round2_count > 0 and not InterviewPhase(phase).is_round2:
            raise ValueError(
                f"Snapshot counts {round2_count} round-2 message(s) in phase {phase!r}"
            )

        session = cls(snapshot['interview_id'])
        session.messages = [Message.from_json(m) for m in snapshot.get('messages', [])]
        session.report = snapshot.get('report') or DEFAULT_REPORT
        session.conversation_id = snapshot.get('conversation_id')
        session.second_interview_conversation_id = snapshot.get('second_interview_conversation_id')
        session.doctor_question_count = doctor_count
        session.round2_message_count = round2_count
        session.phase = InterviewPhase(phase)

        diagnosis = snapshot.get('diagnosis')
        session.diagnosis = DiagnosisResult.from_json(diagnosis) if diagnosis else None
        session.final_report = copy.deepcopy(snapshot.get('final_report'))

        # Older records predate the guards - derive them from progress
        session.round2_triggered = bool(
            snapshot.get('round2_triggered', session.phase.is_round2)
        )
        session.final_report_triggered = bool(
            snapshot.get('final_report_triggered', session.final_report is not None)
        )
        return session

    def __repr__(self) -> str:
        return (
            f"InterviewSession("
            f"id={self.interview_id}, "
            f"phase={self.phase.value}, "
            f"messages={len(self.messages)}, "
            f"questions={self.doctor_question_count}, "
            f"round2={self.round2_message_count}"
            f")"
        )
