"""
Exchange Client - HTTP façade over the conversational diagnostic service

Responsibilities:
- Build request bodies for the four interview endpoints
- POST/GET over HTTP with a fixed timeout
- Normalize responses into ExchangeSuccess / ExchangeFailure
- Resolve final report body synonyms at the boundary
- Roster and patient-detail reads for the patient directory

Design principles:
- Stateless: nothing retained between calls
- Conversation continuity only through echoed conversation_id values
- Never raises for network or service problems (tagged results instead)
- A success flag without a body is a failure, never a half-filled success
"""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from interview_backend.config import InterviewConfig
from interview_backend.core.report_accumulator import DEFAULT_REPORT
from interview_backend.results import (
    ExchangeSuccess, ExchangeFailure, ExchangeResult,
    FAILURE_TRANSPORT, FAILURE_SERVICE
)

logger = logging.getLogger(__name__)

# Final report body synonyms, in resolution order
REPORT_BODY_FIELDS = ("final_report", "report", "raw_response", "response")

UNKNOWN_PATIENT = "unknown"


class ExchangeClient:
    """Typed wrapper for the interview service endpoints"""

    def __init__(self, config: Optional[InterviewConfig] = None, session: Optional[requests.Session] = None) -> None:
        """
        Initialize client

        Args:
            config: Service URLs and timeout (defaults to InterviewConfig())
            session: Optional requests.Session (connection reuse, testing)
        """
        self.config = config or InterviewConfig()
        self.http = session or requests.Session()

        logger.info(f"Exchange client initialized: {self.config.api_base_url}")

    # ==================== INTERVIEW ENDPOINTS ====================

    def send_interview_message(
        self,
        patient_id: Optional[str],
        message: Optional[str] = None,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        conversation_id: Optional[str] = None,
        current_report: str = ""
    ) -> ExchangeResult:
        """
        Start or continue the primary interview.

        Args:
            patient_id: Patient identifier ('unknown' if missing)
            message: Patient message (None on the opening call)
            conversation_history: [{'role', 'content'}, ...]
            conversation_id: Primary conversation reference (None on first call)
            current_report: Current report text (default template if empty)

        Returns:
            ExchangeSuccess with message, conversation_id, updated_report
            ExchangeFailure otherwise
        """
        body = {
            'patient_id': patient_id or UNKNOWN_PATIENT,
            'current_report': current_report or DEFAULT_REPORT,
        }
        self._add_optional(body, message, conversation_history, conversation_id)

        data = self._post('interview', body)
        if isinstance(data, ExchangeFailure):
            return data

        return self._conversation_result(data)

    def send_second_interview_message(
        self,
        patient_id: str,
        message: Optional[str] = None,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        conversation_id: Optional[str] = None,
        current_report: str = "",
        differential_diagnoses: Optional[List[Dict[str, Any]]] = None
    ) -> ExchangeResult:
        """
        Start or continue the round-2 interview.

        Returns:
            ExchangeSuccess with message, conversation_id, updated_report,
            updated_differential; ExchangeFailure otherwise
        """
        body = {
            'patient_id': patient_id,
            'current_report': current_report,
            'differential_diagnoses': differential_diagnoses or [],
        }
        self._add_optional(body, message, conversation_history, conversation_id)

        data = self._post('second_interview', body)
        if isinstance(data, ExchangeFailure):
            return data

        return self._conversation_result(data)

    def generate_diagnosis(
        self,
        patient_id: str,
        conversation_history: List[Dict[str, str]],
        current_report: str
    ) -> ExchangeResult:
        """
        Generate differential diagnosis.

        Returns:
            ExchangeSuccess with differential_diagnoses and/or raw_response
            ExchangeFailure otherwise (including success without either)
        """
        body = {
            'patient_id': patient_id,
            'conversation_history': conversation_history,
            'current_report': current_report,
        }

        data = self._post('diagnosis', body)
        if isinstance(data, ExchangeFailure):
            return data

        if not data.get('success'):
            return self._service_failure(data, "Unknown error")

        candidates = data.get('differential_diagnoses')
        raw_response = data.get('raw_response')
        if not candidates and not raw_response:
            return ExchangeFailure(
                reason="Diagnosis response contained no differential",
                kind=FAILURE_SERVICE
            )

        return ExchangeSuccess(
            differential_diagnoses=candidates if isinstance(candidates, list) else None,
            raw_response=raw_response if isinstance(raw_response, str) else None,
            payload=data
        )

    def generate_final_report(
        self,
        patient_id: str,
        conversation_history: str,
        current_report: str,
        differential_diagnoses: Any
    ) -> ExchangeResult:
        """
        Generate final medical report.

        Args:
            patient_id: Patient identifier
            conversation_history: Flattened transcript text
            current_report: Current report text
            differential_diagnoses: Raw differential text or candidate list

        Returns:
            ExchangeSuccess with report_body (synonyms resolved)
            ExchangeFailure otherwise
        """
        body = {
            'patient_id': patient_id,
            'conversation_history': conversation_history,
            'current_report': current_report,
            'differential_diagnoses': differential_diagnoses,
        }

        logger.info(
            f"Final report request: patient={patient_id}, "
            f"transcript={len(conversation_history or '')} chars, "
            f"report={len(current_report or '')} chars"
        )

        data = self._post('final_report', body)
        if isinstance(data, ExchangeFailure):
            return data

        if not data.get('success'):
            return self._service_failure(data, "Unknown error")

        report_body = self.resolve_report_body(data)
        if not report_body:
            return ExchangeFailure(
                reason="Final report was generated but contains no content.",
                kind=FAILURE_SERVICE
            )

        return ExchangeSuccess(report_body=report_body, payload=data)

    # ==================== DIRECTORY ENDPOINTS ====================

    def fetch_patients(self) -> ExchangeResult:
        """
        Fetch patient roster.

        Returns:
            ExchangeSuccess with payload['patients']; ExchangeFailure otherwise
        """
        data = self._get('patients')
        if isinstance(data, ExchangeFailure):
            return data
        if not data.get('success'):
            return self._service_failure(data, "Failed to fetch patients")
        return ExchangeSuccess(payload=data)

    def fetch_patient_details(self, patient_id: str) -> ExchangeResult:
        """
        Fetch one patient record.

        Returns:
            ExchangeSuccess with payload['data']; ExchangeFailure otherwise
        """
        data = self._get('patient_detail', patient_id=patient_id)
        if isinstance(data, ExchangeFailure):
            return data
        if not data.get('success'):
            return self._service_failure(data, "Failed to fetch patient details")
        return ExchangeSuccess(payload=data)

    # ==================== NORMALIZATION ====================

    @staticmethod
    def resolve_report_body(data: Dict[str, Any]) -> Any:
        """
        Return the first non-empty report body synonym.

        Order: final_report, report, raw_response, response
        """
        for key in REPORT_BODY_FIELDS:
            value = data.get(key)
            if value:
                return value
        return None

    def _conversation_result(self, data: Dict[str, Any]) -> ExchangeResult:
        """Normalize interview/second-interview response"""
        if not data.get('success'):
            return self._service_failure(data, None)

        message = data.get('message')
        if not message:
            return ExchangeFailure(
                reason=data.get('error') or "Service returned no message",
                kind=FAILURE_SERVICE,
                service_error=data.get('error')
            )

        updated_differential = data.get('updated_differential')
        if updated_differential is not None and not isinstance(updated_differential, dict):
            logger.warning(
                f"Ignoring updated_differential of type {type(updated_differential).__name__}"
            )
            updated_differential = None

        return ExchangeSuccess(
            message=message,
            conversation_id=data.get('conversation_id'),
            updated_report=data.get('updated_report'),
            updated_differential=updated_differential,
            payload=data
        )

    @staticmethod
    def _service_failure(data: Dict[str, Any], default: Optional[str]) -> ExchangeFailure:
        reason = data.get('error') or default or "Service reported failure"
        logger.warning(f"Service reported failure: {reason}")
        return ExchangeFailure(reason=reason, kind=FAILURE_SERVICE, service_error=data.get('error'))

    @staticmethod
    def _add_optional(
        body: Dict[str, Any],
        message: Optional[str],
        conversation_history: Optional[List[Dict[str, str]]],
        conversation_id: Optional[str]
    ) -> None:
        """Only send optional fields that carry a value"""
        if message:
            body['message'] = message
        if conversation_history:
            body['conversation_history'] = conversation_history
        if conversation_id:
            body['conversation_id'] = conversation_id

    # ==================== TRANSPORT ====================

    def _post(self, endpoint: str, body: Dict[str, Any]):
        url = self.config.endpoint_url(endpoint)
        logger.debug(f"POST {url} ({len(json.dumps(body))} bytes)")
        return self._send('POST', url, json=body)

    def _get(self, endpoint: str, **params):
        url = self.config.endpoint_url(endpoint, **params)
        logger.debug(f"GET {url}")
        return self._send('GET', url)

    def _send(self, method: str, url: str, **kwargs):
        """
        Perform request and decode JSON body.

        Returns:
            dict: Decoded body
            ExchangeFailure: transport problem or HTTP error status
        """
        try:
            response = self.http.request(method, url, timeout=self.config.request_timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.error(f"Request timeout: {url} - {e}")
            return ExchangeFailure(reason=f"Network error: {e}", kind=FAILURE_TRANSPORT)
        except requests.exceptions.RequestException as e:
            logger.error(f"Connection error: {url} - {e}")
            return ExchangeFailure(reason=f"Network error: {e}", kind=FAILURE_TRANSPORT)

        if not response.ok:
            logger.error(f"HTTP {response.status_code} from {url}: {response.text[:200]}")
            try:
                data = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict) and data.get('error'):
                return ExchangeFailure(
                    reason=data['error'], kind=FAILURE_SERVICE, service_error=data['error']
                )
            return ExchangeFailure(
                reason=f"Server error: {response.status_code} - {response.text}",
                kind=FAILURE_SERVICE
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Undecodable response from {url}: {e}")
            return ExchangeFailure(reason=f"Invalid response: {e}", kind=FAILURE_TRANSPORT)

        if not isinstance(data, dict):
            logger.error(f"Unexpected response type from {url}: {type(data).__name__}")
            return ExchangeFailure(reason="Invalid response: expected JSON object", kind=FAILURE_TRANSPORT)

        return data
