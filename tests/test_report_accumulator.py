"""
Unit tests for report accumulation and differential merging
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from interview_backend.contracts import DiagnosisResult
from interview_backend.core.diagnosis_extractor import DiagnosisExtractor
from interview_backend.core.report_accumulator import (
    DEFAULT_REPORT, apply_report_update, merge_differential
)
from interview_backend.core.session_state import InterviewSession


def test_default_report_sections():
    """Template carries the five standard sections"""
    for section in ("Chief Complaint", "History of Present Illness (HPI)",
                    "Relevant Medical History", "Current Medications", "Allergies"):
        assert f"## {section}" in DEFAULT_REPORT


def test_report_update_replaces_text():
    """Last writer wins"""
    session = InterviewSession("P001")

    assert apply_report_update(session, "## Chief Complaint\nBlurred vision")
    assert session.report == "## Chief Complaint\nBlurred vision"


def test_empty_report_update_is_ignored():
    session = InterviewSession("P001")

    assert not apply_report_update(session, None)
    assert not apply_report_update(session, "")
    assert not apply_report_update(session, DEFAULT_REPORT)
    assert session.report == DEFAULT_REPORT


def test_merge_differential_overlays_fields():
    """Updated fields win, untouched fields survive"""
    current = DiagnosisResult(
        candidates=[{'disease': 'Migraine'}],
        raw_text="old raw",
        payload={'patient_id': 'P001', 'confidence': 'low'}
    )
    update = {
        'differential_diagnoses': [{'disease': 'Cluster headache'}],
        'confidence': 'high'
    }

    merged = merge_differential(current, update, DiagnosisExtractor())

    assert merged.candidates == [{'disease': 'Cluster headache'}]
    assert merged.payload == {'patient_id': 'P001', 'confidence': 'high'}
    assert merged.raw_text == "old raw"


def test_merge_differential_parses_raw_update():
    """Candidates recovered from a fenced raw update"""
    current = DiagnosisResult(candidates=[{'disease': 'Migraine'}])
    update = {
        'raw_response': '```json\n{"differential_diagnoses": [{"disease": "Sinusitis"}]}\n```'
    }

    merged = merge_differential(current, update, DiagnosisExtractor())

    assert merged.candidates == [{'disease': 'Sinusitis'}]
    assert merged.raw_text == update['raw_response']


def test_merge_differential_keeps_candidates_without_new_ones():
    """Update with neither list nor raw text keeps previous candidates"""
    current = DiagnosisResult(candidates=[{'disease': 'Migraine'}])

    merged = merge_differential(current, {'note': 'refined'}, DiagnosisExtractor())

    assert merged.candidates == [{'disease': 'Migraine'}]
    assert merged.payload == {'note': 'refined'}
