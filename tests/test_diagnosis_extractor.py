"""
Unit tests for DiagnosisExtractor

Covers the strategy chain: structured list, fenced block variants,
direct parse, and the empty-list fallback.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json

from interview_backend.contracts import DiagnosisResult
from interview_backend.core.diagnosis_extractor import DiagnosisExtractor


CANDIDATES = [
    {'disease': 'Migraine', 'probability': 'high'},
    {'disease': 'Tension headache', 'probability': 'medium'},
    {'disease': 'Cluster headache', 'probability': 'low'},
]


def make_body(candidates=None):
    return json.dumps({'differential_diagnoses': candidates if candidates is not None else CANDIDATES})


# ========================
# Structured list
# ========================

def test_structured_list_returned_verbatim():
    """Non-empty structured list wins over raw text"""
    extractor = DiagnosisExtractor()
    response = {
        'differential_diagnoses': [{'disease': 'Influenza'}],
        'raw_response': f"```json\n{make_body()}\n```"
    }

    assert extractor.extract(response) == [{'disease': 'Influenza'}]


def test_empty_structured_list_falls_back_to_raw():
    """Empty top-level list plus fenced block with 3 candidates"""
    extractor = DiagnosisExtractor()
    response = {
        'differential_diagnoses': [],
        'raw_response': f"Here is my analysis:\n```json\n{make_body()}\n```\nDone."
    }

    result = extractor.extract(response)

    assert len(result) == 3
    assert result[0]['disease'] == 'Migraine'

    print("✓ Fenced block fallback test passed")


# ========================
# Fence variants
# ========================

def test_plain_fence():
    """Fence without language tag"""
    extractor = DiagnosisExtractor()
    response = {'raw_response': f"```\n{make_body()}\n```"}

    assert extractor.extract(response) == CANDIDATES


def test_inline_json_fence():
    """Fence with json tag but no newlines around the body"""
    extractor = DiagnosisExtractor()
    response = {'raw_response': f"```json{make_body()}```"}

    assert extractor.extract(response) == CANDIDATES


def test_first_fence_variant_wins():
    """json fence is preferred over a later plain fence"""
    extractor = DiagnosisExtractor()
    first = make_body([{'disease': 'A'}])
    second = make_body([{'disease': 'B'}])
    response = {'raw_response': f"```\n{second}\n```\n\n```json\n{first}\n```"}

    assert extractor.extract(response) == [{'disease': 'A'}]


# ========================
# Direct parse and degradation
# ========================

def test_direct_parse_without_fence():
    """Whole raw text is JSON"""
    extractor = DiagnosisExtractor()
    response = {'raw_response': make_body()}

    assert extractor.extract(response) == CANDIDATES


def test_bad_fenced_block_falls_through_to_direct_parse():
    """Fence matched but its content is invalid; whole text still fails"""
    extractor = DiagnosisExtractor()
    response = {'raw_response': "```json\n{not valid json\n```"}

    assert extractor.extract(response) == []


def test_unparseable_raw_text_gives_empty_list():
    """Garbage degrades to [] and raw text is kept"""
    extractor = DiagnosisExtractor()
    raw = "The patient most likely has a migraine."
    response = {'success': True, 'raw_response': raw}

    assert extractor.extract(response) == []

    result = extractor.build_result(response)
    assert result.candidates == []
    assert result.raw_text == raw
    assert result.best_available == raw

    print("✓ Unparseable raw text test passed")


def test_non_list_candidates_field_is_ignored():
    """differential_diagnoses that is not a list gives []"""
    extractor = DiagnosisExtractor()
    response = {'raw_response': json.dumps({'differential_diagnoses': 'Migraine'})}

    assert extractor.extract(response) == []


def test_missing_fields_and_non_dict_input():
    """Never raises on odd input"""
    extractor = DiagnosisExtractor()

    assert extractor.extract({}) == []
    assert extractor.extract(None) == []
    assert extractor.extract({'raw_response': '   '}) == []
    assert extractor.extract({'raw_response': '[1, 2, 3]'}) == []


# ========================
# build_result
# ========================

def test_build_result_keeps_passthrough_fields():
    """Extra response fields survive in the payload"""
    extractor = DiagnosisExtractor()
    response = {
        'success': True,
        'patient_id': 'P001',
        'differential_diagnoses': CANDIDATES,
    }

    result = extractor.build_result(response)

    assert result.candidates == CANDIDATES
    assert result.raw_text is None
    assert result.payload == {'patient_id': 'P001'}
    assert result.to_json()['patient_id'] == 'P001'
    assert result.best_available == CANDIDATES


def test_build_result_keeps_structured_raw_response():
    """Non-string raw output stays in the payload"""
    extractor = DiagnosisExtractor()
    raw = {'summary': 'Likely migraine', 'confidence': 0.8}
    response = {'success': True, 'raw_response': raw, 'differential_diagnoses': CANDIDATES}

    result = extractor.build_result(response)

    assert result.raw_text is None
    assert result.payload == {'raw_response': raw}
    assert result.to_json()['raw_response'] == raw
    assert result.best_available == CANDIDATES

    restored = DiagnosisResult.from_json(result.to_json())
    assert restored == result
