"""
Utility helpers for the interview orchestrator

Simple functions for identifiers, storage keys and transcript formatting.
"""

import uuid
from datetime import datetime


# Identifier used when an interview is opened without a patient
DIRECT_CHAT_ID = "direct-chat"

# Storage key prefixes
INTERVIEW_STATE_PREFIX = "interview_state_"
PATIENT_DETAIL_PREFIX = "patient_detail_"
PATIENTS_LIST_KEY = "patients_list"


def generate_interview_id(short=True):
    """
    Generate unique interview identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Interview ID

    Examples:
        >>> generate_interview_id()
        'a3f7e2b9'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def generate_report_filename(prefix="final_report", extension="md"):
    """
    Generate timestamped filename with unique ID

    Format: {prefix}_{YYYYMMDD_HHMMSS}_{short_uuid}.{extension}

    Examples:
        >>> generate_report_filename()
        'final_report_20251126_153045_a3f7e2b9.md'
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    short_id = generate_interview_id(short=True)
    return f"{prefix}_{timestamp}_{short_id}.{extension}"


def interview_state_key(interview_id):
    """Storage key for a persisted interview session"""
    return f"{INTERVIEW_STATE_PREFIX}{interview_id}"


def patient_detail_key(patient_id):
    """Storage key for a cached patient record"""
    return f"{PATIENT_DETAIL_PREFIX}{patient_id}"


def flatten_transcript(messages):
    """
    Render conversational messages as plain text for the final report.

    System messages and annotations are dropped. Each line is prefixed
    with 'Doctor:' or 'Patient:' and turns are separated by a blank line.

    Args:
        messages: Iterable of Message

    Returns:
        str: Flattened transcript

    Examples:
        >>> flatten_transcript([Message(1, 'doctor', 'Hi'), Message(2, 'patient', 'Hello')])
        'Doctor: Hi\\n\\nPatient: Hello'
    """
    lines = []
    for message in messages:
        if not message.is_conversational:
            continue
        speaker = "Doctor" if message.sender == "doctor" else "Patient"
        lines.append(f"{speaker}: {message.text}")
    return "\n\n".join(lines)
