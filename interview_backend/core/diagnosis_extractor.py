"""
Differential Diagnosis Extractor - Recover candidates from model output

Responsibilities:
- Prefer the structured candidate list when the service provides one
- Otherwise locate a fenced JSON block in the raw text
- Fall back to parsing the whole raw text as JSON
- Degrade to an empty list when nothing parses

Contract:
- extract() always returns a list (possibly empty)
- extract() never raises
- Raw text is preserved by build_result() regardless of parse outcome

Design principles:
- First success wins, strategies tried in fixed order
- Every failed strategy is logged, none is fatal
- The upstream generator is not trusted to emit clean JSON
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from interview_backend.contracts import DiagnosisResult

logger = logging.getLogger(__name__)

CANDIDATES_FIELD = "differential_diagnoses"
RAW_FIELD = "raw_response"

# Fence patterns, tried in order; first match wins
FENCE_PATTERNS = [
    ("json_fence_newline", re.compile(r"```json\s*\n([\s\S]*?)\n```")),
    ("plain_fence_newline", re.compile(r"```\s*\n([\s\S]*?)\n```")),
    ("json_fence_inline", re.compile(r"```json([\s\S]*?)```")),
]


class DiagnosisExtractor:
    """Extract differential diagnosis candidates from service responses"""

    def extract(self, response: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Extract candidate list from a diagnosis-shaped response.

        Strategy order:
        1. Non-empty structured 'differential_diagnoses' list -> verbatim
        2. Fenced block in 'raw_response' (3 fence variants) -> JSON parse
        3. Whole 'raw_response' -> JSON parse
        4. Nothing worked -> []

        Args:
            response: Mapping with 'differential_diagnoses' and/or
                'raw_response' (either may be missing)

        Returns:
            list: Candidate dicts, possibly empty

        Examples:
            >>> extractor.extract({'differential_diagnoses': [{'disease': 'Flu'}]})
            [{'disease': 'Flu'}]

            >>> extractor.extract({'raw_response': 'no json here'})
            []
        """
        if not isinstance(response, dict):
            logger.warning(f"Diagnosis response is not a dict: {type(response).__name__}")
            return []

        structured = response.get(CANDIDATES_FIELD)
        if isinstance(structured, list) and structured:
            logger.info(f"Using structured differential: {len(structured)} candidate(s)")
            return structured

        raw_text = response.get(RAW_FIELD)
        if not isinstance(raw_text, str) or not raw_text.strip():
            logger.info("No structured differential and no raw response")
            return []

        logger.debug(f"Parsing differential from raw response ({len(raw_text)} chars)")

        fenced = self._find_fenced_block(raw_text)
        if fenced is not None:
            candidates = self._parse_candidates(fenced, source="fenced block")
            if candidates is not None:
                return candidates

        candidates = self._parse_candidates(raw_text, source="raw response")
        if candidates is not None:
            return candidates

        logger.warning("Could not recover differential from raw response")
        return []

    def build_result(self, response: Dict[str, Any]) -> DiagnosisResult:
        """
        Build DiagnosisResult from a successful diagnosis response.

        Raw text and passthrough fields are kept even when extraction
        returned nothing.

        Args:
            response: Decoded response body

        Returns:
            DiagnosisResult
        """
        candidates = self.extract(response)
        payload = {
            k: v for k, v in (response or {}).items()
            if k not in (CANDIDATES_FIELD, RAW_FIELD, 'success', 'error')
        }
        raw_text = (response or {}).get(RAW_FIELD)
        if raw_text is not None and not isinstance(raw_text, str):
            # Structured raw output is passed through untouched
            payload[RAW_FIELD] = raw_text
            raw_text = None
        return DiagnosisResult(
            candidates=candidates,
            raw_text=raw_text,
            payload=payload
        )

    def _find_fenced_block(self, raw_text: str) -> Optional[str]:
        """Return inner text of the first matching fence variant"""
        for name, pattern in FENCE_PATTERNS:
            match = pattern.search(raw_text)
            if match and match.group(1):
                logger.debug(f"Fence matched: {name}")
                return match.group(1).strip()

        logger.debug("No fenced block in raw response")
        return None

    def _parse_candidates(self, text: str, source: str) -> Optional[List[Dict[str, Any]]]:
        """
        Parse JSON text and pull out the candidates field.

        Returns:
            list if the document parsed and carried a candidate list,
            None otherwise (caller falls through to the next strategy)
        """
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Invalid JSON in {source}: {e}")
            return None

        if not isinstance(parsed, dict):
            logger.warning(f"JSON in {source} is {type(parsed).__name__}, expected object")
            return None

        candidates = parsed.get(CANDIDATES_FIELD, [])
        if not isinstance(candidates, list):
            logger.warning(f"'{CANDIDATES_FIELD}' in {source} is not a list")
            return None

        logger.info(f"Parsed {len(candidates)} candidate(s) from {source}")
        return candidates
