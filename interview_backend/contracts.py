"""
Semantic contracts for the interview orchestrator.

This module defines the value objects passed between the controller,
the extractor, the store and the exchange adapter. These are NOT
validators - they define shape and semantics without enforcing rules.

Design principles:
- Frozen dataclasses for values that never change after creation
- JSON round-trip helpers live next to the shape they serialize
- No dependencies on other modules

Contents:
- Message: One line of the interview transcript
- DiagnosisResult: Extracted differential plus the raw model text
- CacheEntry: TTL-checked cache record

Usage:
    from interview_backend.contracts import Message, DiagnosisResult
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# Message senders
SENDER_DOCTOR = "doctor"
SENDER_PATIENT = "patient"
SENDER_SYSTEM = "system"

VALID_SENDERS = {SENDER_DOCTOR, SENDER_PATIENT, SENDER_SYSTEM}


@dataclass(frozen=True)
class Message:
    """
    Single transcript entry.

    Attributes:
        id: Sequence number, unique within the session (1-indexed)
        sender: 'doctor', 'patient' or 'system'
        text: Display text
        annotation: True for user-visible notices that must never be sent
            back to the service (apologies and service error texts shown
            in the doctor role). System messages are always annotations.

    Examples:
        >>> m = Message(id=1, sender='doctor', text='How can I help?')
        >>> m.is_conversational
        True
        >>> Message(id=2, sender='system', text='Round 2 started').is_conversational
        False
    """
    id: int
    sender: str
    text: str
    annotation: bool = False

    @property
    def is_conversational(self) -> bool:
        """True if this message belongs in the history sent to the service"""
        return self.sender != SENDER_SYSTEM and not self.annotation

    @property
    def role(self) -> str:
        """Chat role used by the service ('assistant' or 'user')"""
        return "assistant" if self.sender == SENDER_DOCTOR else "user"

    def to_json(self) -> dict:
        data = {'id': self.id, 'sender': self.sender, 'text': self.text}
        if self.annotation:
            data['annotation'] = True
        return data

    @staticmethod
    def from_json(data: dict) -> "Message":
        sender = data.get('sender')
        if sender not in VALID_SENDERS:
            raise ValueError(f"Invalid message sender: {sender!r}")
        return Message(
            id=int(data['id']),
            sender=sender,
            text=data.get('text', ''),
            annotation=bool(data.get('annotation', False))
        )


@dataclass(frozen=True)
class DiagnosisResult:
    """
    Differential diagnosis as stored on the session.

    Attributes:
        candidates: Ordered candidate mappings. Each has at least a
            'disease' label; every other key is passthrough.
        raw_text: Unparsed model output, kept even when parsing succeeded
            so it can still be displayed and forwarded.
        payload: Remaining response fields (patient_id etc.), passthrough.

    Note:
        Candidates are plain dicts rather than a typed class because the
        service adds fields freely (probability, reasoning, tests...).
    """
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    raw_text: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def best_available(self) -> Any:
        """
        Diagnosis context forwarded to the final report endpoint.

        Raw text wins over candidates because it carries the model's
        reasoning; falls back to the candidate list, then to [].
        """
        if self.raw_text:
            return self.raw_text
        return copy.deepcopy(self.candidates)

    def to_json(self) -> dict:
        data = copy.deepcopy(self.payload)
        data['differential_diagnoses'] = copy.deepcopy(self.candidates)
        # Non-string raw output already sits in payload
        if self.raw_text is not None or 'raw_response' not in data:
            data['raw_response'] = self.raw_text
        return data

    @staticmethod
    def from_json(data: dict) -> "DiagnosisResult":
        raw_text = data.get('raw_response')
        keep_raw = raw_text is not None and not isinstance(raw_text, str)
        payload = {
            k: copy.deepcopy(v) for k, v in data.items()
            if k != 'differential_diagnoses' and (k != 'raw_response' or keep_raw)
        }
        return DiagnosisResult(
            candidates=copy.deepcopy(data.get('differential_diagnoses') or []),
            raw_text=None if keep_raw else raw_text,
            payload=payload
        )


@dataclass(frozen=True)
class CacheEntry:
    """
    Cached payload with its write time.

    Lifecycle:
    1. Created on write (stored_at = clock at write time)
    2. Checked on read against a fixed TTL
    3. Treated as absent once expired (lazy, never swept)

    Attributes:
        payload: Cached value (JSON-serializable)
        stored_at: Write time, seconds since epoch
    """
    payload: Any
    stored_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        """An entry is valid for exactly ttl_seconds after its write"""
        return now - self.stored_at > ttl_seconds

    def to_json(self) -> dict:
        return {'payload': self.payload, 'cachedAt': self.stored_at}

    @staticmethod
    def from_json(data: dict) -> "CacheEntry":
        return CacheEntry(payload=data.get('payload'), stored_at=float(data['cachedAt']))
