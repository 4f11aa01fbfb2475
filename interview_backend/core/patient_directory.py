"""
Patient Directory - Cached roster and patient-record reads

Serves the patient list and individual records from the TTL cache when
valid, otherwise fetches through the exchange client and caches the
successful result.
"""

import logging
from typing import Any, Dict, List, Optional

from interview_backend.results import ExchangeFailure

logger = logging.getLogger(__name__)


class PatientDirectory:
    """Read-through cache over the roster endpoints"""

    def __init__(self, client, session_store):
        """
        Args:
            client: ExchangeClient (fetch_patients, fetch_patient_details)
            session_store: InterviewSessionStore (cache read/write)
        """
        self.client = client
        self.store = session_store

    def list_patients(self, force_refresh: bool = False):
        """
        Patient roster.

        Args:
            force_refresh: Skip the cache and fetch

        Returns:
            list of patient dicts, or ExchangeFailure if the fetch failed
        """
        if not force_refresh:
            cached = self.store.load_patients_cache()
            if cached is not None:
                logger.info(f"Roster served from cache ({len(cached)} patients)")
                return cached

        response = self.client.fetch_patients()
        if not response.ok:
            logger.error(f"Roster fetch failed: {response.reason}")
            return response

        patients: List[Dict[str, Any]] = response.payload.get('patients') or []
        self.store.save_patients_cache(patients)
        logger.info(f"Roster fetched ({len(patients)} patients)")
        return patients

    def get_patient(self, patient_id: str, force_refresh: bool = False):
        """
        One patient record.

        Returns:
            patient dict, or ExchangeFailure if the fetch failed
        """
        if not force_refresh:
            cached = self.store.load_patient_detail_cache(patient_id)
            if cached is not None:
                logger.info(f"Patient {patient_id} served from cache")
                return cached

        response = self.client.fetch_patient_details(patient_id)
        if not response.ok:
            logger.error(f"Patient {patient_id} fetch failed: {response.reason}")
            return response

        detail: Optional[Dict[str, Any]] = response.payload.get('data')
        if detail is None:
            return ExchangeFailure(reason=f"No data for patient {patient_id}")

        self.store.save_patient_detail_cache(patient_id, detail)
        return detail
