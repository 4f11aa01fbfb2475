"""
Runtime configuration for the interview orchestrator.

Values come from keyword arguments or, via from_env(), from environment
variables (a local .env file is loaded first when present).
"""

import os
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv


DEFAULT_API_BASE_URL = "http://127.0.0.1:5000"

# Service endpoint paths (relative to api_base_url)
DEFAULT_ENDPOINTS = {
    'patients': '/api/patients',
    'patient_detail': '/api/patients/{patient_id}',
    'interview': '/api/interview',
    'diagnosis': '/api/diagnosis',
    'second_interview': '/api/second-interview',
    'final_report': '/api/final-report',
}


@dataclass
class InterviewConfig:
    """Orchestrator configuration"""

    # Conversational service
    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout: float = 120.0
    endpoints: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))

    # Local persistence
    storage_dir: str = "outputs/interviews"
    cache_ttl_seconds: float = 5 * 60

    # Flask surface
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    def endpoint_url(self, name: str, **params) -> str:
        """
        Build absolute URL for a named endpoint.

        Raises:
            KeyError: If endpoint name is unknown
        """
        path = self.endpoints[name].format(**params)
        return f"{self.api_base_url.rstrip('/')}{path}"

    @classmethod
    def from_env(cls) -> "InterviewConfig":
        """Create configuration from environment variables"""
        load_dotenv()
        return cls(
            api_base_url=os.getenv("INTERVIEW_API_BASE_URL", DEFAULT_API_BASE_URL),
            request_timeout=float(os.getenv("INTERVIEW_REQUEST_TIMEOUT", "120")),
            storage_dir=os.getenv("INTERVIEW_STORAGE_DIR", "outputs/interviews"),
            cache_ttl_seconds=float(os.getenv("INTERVIEW_CACHE_TTL_SECONDS", "300")),
            host=os.getenv("INTERVIEW_HOST", "0.0.0.0"),
            port=int(os.getenv("INTERVIEW_PORT", "8000")),
            debug=os.getenv("INTERVIEW_DEBUG", "false").lower() == "true",
        )
