"""
Tests for ExchangeClient request bodies and response normalization

HTTP is replaced by a small fake requests session.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import requests

from interview_backend.config import InterviewConfig
from interview_backend.core.report_accumulator import DEFAULT_REPORT
from interview_backend.results import ExchangeFailure, ExchangeSuccess, FAILURE_SERVICE, FAILURE_TRANSPORT
from interview_backend.utils.exchange_client import ExchangeClient


class FakeResponse:
    """Minimal requests.Response stand-in"""

    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else ("" if body is None else str(body))

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    """Records requests and replays canned responses"""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({'method': method, 'url': url, 'timeout': timeout, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response


def make_client(response=None, error=None):
    session = FakeSession(response=response, error=error)
    config = InterviewConfig(api_base_url="http://service:5000/", request_timeout=30)
    return ExchangeClient(config, session=session), session


# ========================
# Request bodies
# ========================

def test_opening_request_body():
    """Unknown patient and default report filled in, empty optionals omitted"""
    client, session = make_client(FakeResponse(body={'success': True, 'message': 'Hi'}))

    client.send_interview_message(None, message="Hello, I need medical consultation.")

    call = session.calls[0]
    assert call['method'] == 'POST'
    assert call['url'] == "http://service:5000/api/interview"
    assert call['timeout'] == 30
    assert call['json'] == {
        'patient_id': 'unknown',
        'current_report': DEFAULT_REPORT,
        'message': 'Hello, I need medical consultation.',
    }


def test_second_interview_request_body():
    client, session = make_client(FakeResponse(body={'success': True, 'message': 'Q'}))
    history = [{'role': 'assistant', 'content': 'Q1'}]

    client.send_second_interview_message(
        "P001", message="A", conversation_history=history,
        conversation_id="conv-2", current_report="R",
        differential_diagnoses=[{'disease': 'Migraine'}]
    )

    body = session.calls[0]['json']
    assert session.calls[0]['url'].endswith("/api/second-interview")
    assert body == {
        'patient_id': 'P001',
        'current_report': 'R',
        'differential_diagnoses': [{'disease': 'Migraine'}],
        'message': 'A',
        'conversation_history': history,
        'conversation_id': 'conv-2',
    }


def test_patient_detail_url():
    client, session = make_client(FakeResponse(body={'success': True, 'data': {'id': 'P001'}}))

    result = client.fetch_patient_details("P001")

    assert session.calls[0]['method'] == 'GET'
    assert session.calls[0]['url'] == "http://service:5000/api/patients/P001"
    assert result.payload['data'] == {'id': 'P001'}


# ========================
# Response normalization
# ========================

def test_interview_success():
    body = {'success': True, 'message': 'Where is the pain?', 'conversation_id': 'c1',
            'updated_report': 'R1'}
    client, _ = make_client(FakeResponse(body=body))

    result = client.send_interview_message("P001", message="Headache")

    assert isinstance(result, ExchangeSuccess)
    assert result.ok
    assert result.message == 'Where is the pain?'
    assert result.conversation_id == 'c1'
    assert result.updated_report == 'R1'


def test_success_without_message_is_service_failure():
    client, _ = make_client(FakeResponse(body={'success': True}))

    result = client.send_interview_message("P001", message="Headache")

    assert isinstance(result, ExchangeFailure)
    assert result.kind == FAILURE_SERVICE
    assert result.service_error is None


def test_service_error_text_kept():
    client, _ = make_client(FakeResponse(body={'success': False, 'error': 'Model overloaded'}))

    result = client.send_interview_message("P001", message="Headache")

    assert not result.ok
    assert result.reason == 'Model overloaded'
    assert result.service_error == 'Model overloaded'


def test_connection_error_is_transport_failure():
    client, _ = make_client(error=requests.exceptions.ConnectionError("refused"))

    result = client.send_interview_message("P001", message="Headache")

    assert result.kind == FAILURE_TRANSPORT
    assert result.is_transport


def test_timeout_is_transport_failure():
    client, _ = make_client(error=requests.exceptions.Timeout("read timed out"))

    result = client.generate_diagnosis("P001", [], "R")

    assert result.is_transport


def test_undecodable_body_is_transport_failure():
    client, _ = make_client(FakeResponse(status_code=200, body=None, text="<html>"))

    result = client.send_interview_message("P001", message="Headache")

    assert result.kind == FAILURE_TRANSPORT


def test_http_error_status():
    client, _ = make_client(FakeResponse(status_code=500, body=None, text="Internal Server Error"))

    result = client.generate_final_report("P001", "Doctor: Hi", "R", [])

    assert result.kind == FAILURE_SERVICE
    assert result.reason == "Server error: 500 - Internal Server Error"


def test_diagnosis_needs_candidates_or_raw_text():
    client, _ = make_client(FakeResponse(body={'success': True}))

    result = client.generate_diagnosis("P001", [], "R")

    assert not result.ok


def test_diagnosis_raw_only():
    client, _ = make_client(FakeResponse(body={'success': True, 'raw_response': 'text'}))

    result = client.generate_diagnosis("P001", [], "R")

    assert result.ok
    assert result.raw_response == 'text'
    assert result.differential_diagnoses is None
    assert result.payload['raw_response'] == 'text'


def test_final_report_synonyms():
    """final_report > report > raw_response > response"""
    for body, expected in [
        ({'success': True, 'final_report': 'A', 'report': 'B'}, 'A'),
        ({'success': True, 'report': 'B', 'raw_response': 'C'}, 'B'),
        ({'success': True, 'raw_response': 'C', 'response': 'D'}, 'C'),
        ({'success': True, 'response': 'D'}, 'D'),
    ]:
        client, _ = make_client(FakeResponse(body=body))
        result = client.generate_final_report("P001", "Doctor: Hi", "R", [])
        assert result.report_body == expected


def test_final_report_without_body():
    client, _ = make_client(FakeResponse(body={'success': True}))

    result = client.generate_final_report("P001", "Doctor: Hi", "R", [])

    assert not result.ok
    assert result.reason == "Final report was generated but contains no content."


def test_roster_failure():
    client, _ = make_client(FakeResponse(body={'success': False}))

    result = client.fetch_patients()

    assert not result.ok
    assert result.reason == "Failed to fetch patients"
