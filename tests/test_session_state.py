"""
Unit tests for InterviewSession

Tests transcript handling, counters, history filtering and snapshot
round-trips.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from interview_backend.contracts import DiagnosisResult, Message
from interview_backend.core.report_accumulator import DEFAULT_REPORT
from interview_backend.core.session_state import InterviewSession
from interview_backend.utils.helpers import flatten_transcript
from interview_backend.utils.interview_phases import InterviewPhase


def test_new_session_defaults():
    """Fresh session is pristine and in INIT"""
    session = InterviewSession("P001")

    assert session.phase == InterviewPhase.INIT
    assert session.report == DEFAULT_REPORT
    assert session.messages == []
    assert session.doctor_question_count == 0
    assert session.round2_message_count == 0
    assert session.is_pristine()

    print("✓ Session defaults test passed")


def test_message_ids_are_sequential():
    """Message ids start at 1 and follow insertion order"""
    session = InterviewSession("P001")

    session.add_doctor_message("How are you?")
    session.add_patient_message("Headache")
    session.add_system_message("Round 2 Interview Started")

    assert [m.id for m in session.messages] == [1, 2, 3]
    assert not session.is_pristine()


def test_history_excludes_system_and_annotations():
    """Only real doctor/patient exchanges reach the service"""
    session = InterviewSession("P001")

    session.add_doctor_message("What brings you in?")
    session.add_patient_message("My head hurts")
    session.add_doctor_notice("I apologize, but I'm having trouble connecting")
    session.add_system_message("Round 2 Interview Started")

    history = session.conversation_history()

    assert history == [
        {'role': 'assistant', 'content': 'What brings you in?'},
        {'role': 'user', 'content': 'My head hurts'},
    ]


def test_flatten_transcript():
    """Doctor:/Patient: lines joined by blank lines"""
    session = InterviewSession("P001")
    session.add_doctor_message("Hi")
    session.add_system_message("notice")
    session.add_patient_message("Hello")

    assert flatten_transcript(session.messages) == "Doctor: Hi\n\nPatient: Hello"


def test_round2_counter_frozen_before_round2():
    """round2_message_count only moves in round 2"""
    session = InterviewSession("P001")
    session.phase = InterviewPhase.ROUND1_ACTIVE

    with pytest.raises(ValueError):
        session.record_round2_message()

    session.phase = InterviewPhase.ROUND2_ACTIVE
    assert session.record_round2_message() == 1


def test_restore_notice_window():
    """Notice visible for 3 seconds after restore"""
    session = InterviewSession("P001")
    assert not session.restore_notice_visible(now=100.0)

    session.restored_at = 100.0
    assert session.restore_notice_visible(now=102.9)
    assert not session.restore_notice_visible(now=103.0)


def test_snapshot_round_trip():
    """Snapshot restores every persisted field"""
    session = InterviewSession("P001")
    session.add_doctor_message("Question 1")
    session.add_patient_message("Answer 1")
    session.add_doctor_notice("Temporary problem")
    session.conversation_id = "conv-1"
    session.second_interview_conversation_id = "conv-2"
    session.record_doctor_question()
    session.phase = InterviewPhase.ROUND2_ACTIVE
    session.record_round2_message()
    session.report = "## Chief Complaint\nHeadache"
    session.diagnosis = DiagnosisResult(
        candidates=[{'disease': 'Migraine'}],
        raw_text="raw",
        payload={'patient_id': 'P001'}
    )
    session.round2_triggered = True
    session.restored_at = 42.0

    snapshot = session.snapshot_state()
    restored = InterviewSession.from_snapshot(snapshot)

    assert 'restored_at' not in snapshot
    assert restored.snapshot_state() == snapshot
    assert restored.restored_at is None
    assert restored.messages[2] == Message(3, 'doctor', 'Temporary problem', annotation=True)
    assert restored.candidates == [{'disease': 'Migraine'}]


def test_from_snapshot_rejects_invalid_phase():
    """Unknown phase strings fail fast"""
    snapshot = InterviewSession("P001").snapshot_state()
    snapshot['phase'] = 'round3'

    with pytest.raises(ValueError):
        InterviewSession.from_snapshot(snapshot)


def test_from_snapshot_rejects_negative_counters():
    snapshot = InterviewSession("P001").snapshot_state()
    snapshot['doctor_question_count'] = -1

    with pytest.raises(ValueError):
        InterviewSession.from_snapshot(snapshot)


def test_from_snapshot_rejects_round2_count_before_round2():
    """Round-2 messages cannot be counted in round 1"""
    snapshot = InterviewSession("P001").snapshot_state()
    snapshot['phase'] = InterviewPhase.ROUND1_ACTIVE.value
    snapshot['round2_message_count'] = 2

    with pytest.raises(ValueError):
        InterviewSession.from_snapshot(snapshot)

    snapshot['phase'] = InterviewPhase.ROUND2_ACTIVE.value
    assert InterviewSession.from_snapshot(snapshot).round2_message_count == 2


def test_from_snapshot_derives_missing_guards():
    """Records without guard fields derive them from progress"""
    snapshot = InterviewSession("P001").snapshot_state()
    snapshot['phase'] = InterviewPhase.FINAL_REPORT_READY.value
    snapshot['final_report'] = {'final_report': 'Report'}
    del snapshot['round2_triggered']
    del snapshot['final_report_triggered']

    restored = InterviewSession.from_snapshot(snapshot)

    assert restored.round2_triggered
    assert restored.final_report_triggered


def test_invalid_sender_rejected():
    with pytest.raises(ValueError):
        Message.from_json({'id': 1, 'sender': 'nurse', 'text': 'hi'})


if __name__ == '__main__':
    print("\n" + "=" * 60)
    print("TESTING INTERVIEW SESSION")
    print("=" * 60 + "\n")

    test_new_session_defaults()
    test_message_ids_are_sequential()
    test_history_excludes_system_and_annotations()
    test_flatten_transcript()
    test_restore_notice_window()
    test_snapshot_round_trip()

    print("\n" + "=" * 60)
    print("ALL INTERVIEW SESSION TESTS PASSED ✓")
    print("=" * 60 + "\n")
