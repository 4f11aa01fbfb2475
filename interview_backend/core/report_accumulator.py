"""
Report Accumulator - Canonical report text and differential merging

Responsibilities:
- Provide the default report template for new interviews
- Replace the report when the service returns an updated one
- Overlay refreshed differential payloads on the stored diagnosis

Design principles:
- Last writer wins (no diffing or section merging)
- Empty updates never erase an existing report
"""

import logging
from typing import Any, Dict, Optional

from interview_backend.contracts import DiagnosisResult
from interview_backend.core.diagnosis_extractor import DiagnosisExtractor

logger = logging.getLogger(__name__)


DEFAULT_REPORT = """## Chief Complaint
To be determined from patient interview.

## History of Present Illness (HPI)
To be filled based on patient interview.

## Relevant Medical History
To be extracted from EHR and interview.

## Current Medications
To be extracted from EHR.

## Allergies
To be extracted from EHR."""


def apply_report_update(session, updated_report: Optional[str]) -> bool:
    """
    Replace session report with the service's version.

    Args:
        session: InterviewSession (mutated)
        updated_report: Report text from the service, or None

    Returns:
        bool: True if the report changed
    """
    if not updated_report or updated_report == session.report:
        return False

    session.report = updated_report
    logger.debug(f"[{session.interview_id}] report replaced ({len(updated_report)} chars)")
    return True


def merge_differential(
    current: Optional[DiagnosisResult],
    updated_differential: Dict[str, Any],
    extractor: DiagnosisExtractor
) -> DiagnosisResult:
    """
    Overlay a refreshed differential on the stored diagnosis.

    Fields present in the update win. Candidates are re-extracted from
    the update; when the update carries neither candidates nor raw text
    the previous candidates are kept.

    Args:
        current: Stored diagnosis (may be None)
        updated_differential: 'updated_differential' payload from the service
        extractor: Extractor used to recover candidates from raw text

    Returns:
        DiagnosisResult: New merged diagnosis
    """
    base = current.to_json() if current else {}
    merged = {**base, **updated_differential}

    if updated_differential.get('differential_diagnoses') or updated_differential.get('raw_response'):
        merged['differential_diagnoses'] = extractor.extract(updated_differential)
    elif current is not None:
        merged['differential_diagnoses'] = list(current.candidates)

    result = DiagnosisResult.from_json(merged)
    logger.info(f"Differential refreshed: {len(result.candidates)} candidate(s)")
    return result
