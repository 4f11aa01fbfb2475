"""
Interview persistence.

Flat key-value JSON storage for session records and TTL caches.

Layout:
    outputs/interviews/
        interview_state_<id>.json
        patients_list.json
        patient_detail_<id>.json

Design:
- One file per key, full overwrite on every save
- Session records never expire
- Roster and patient-detail entries expire after the cache TTL
- Write failures are logged and swallowed
- Read failures are logged and treated as absent
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from interview_backend.contracts import CacheEntry
from interview_backend.core.session_state import InterviewSession
from interview_backend.utils.helpers import (
    interview_state_key, patient_detail_key,
    INTERVIEW_STATE_PREFIX, PATIENT_DETAIL_PREFIX, PATIENTS_LIST_KEY
)

logger = logging.getLogger(__name__)


class JsonFileStore:
    """
    Key-value store backed by one JSON file per key.

    Keys are used verbatim as file stems, so they must be filesystem-safe.
    """

    def __init__(self, base_dir: str = "outputs/interviews"):
        """
        Initialize store.

        Args:
            base_dir: Directory holding the <key>.json files
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"JsonFileStore initialized: {self.base_dir}")

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        """
        Read value for key.

        Returns:
            Decoded JSON value, or None if missing

        Raises:
            OSError, ValueError: On unreadable or corrupt files
        """
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def set(self, key: str, value: Any) -> None:
        """Write value for key (full overwrite)"""
        with open(self._path(key), 'w', encoding='utf-8') as f:
            json.dump(value, f, indent=2, ensure_ascii=False)

    def remove(self, key: str) -> None:
        """Delete key if present"""
        path = self._path(key)
        if path.exists():
            path.unlink()

    def keys(self) -> List[str]:
        return sorted(p.stem for p in self.base_dir.glob("*.json"))


class MemoryStore:
    """In-process key-value store (console harness, tests)"""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        # Serialize so stored values behave like the file store
        self._data[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._data)


class InterviewSessionStore:
    """
    Session records plus roster/detail caches over a key-value store.

    The clock is injectable so TTL and restore-notice behaviour can be
    tested without sleeping.
    """

    def __init__(
        self,
        store=None,
        cache_ttl_seconds: float = 5 * 60,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            store: JsonFileStore, MemoryStore or any get/set/remove/keys store
            cache_ttl_seconds: Roster and patient-detail cache lifetime
            clock: Returns current time in seconds
        """
        self.store = store if store is not None else MemoryStore()
        self.cache_ttl_seconds = cache_ttl_seconds
        self.clock = clock

    # ==================== SESSIONS ====================

    def save_session(self, session: InterviewSession) -> bool:
        """
        Persist full session snapshot.

        Pristine sessions are skipped.

        Returns:
            bool: True if a record was written
        """
        if session.is_pristine():
            logger.debug(f"Skipping save of pristine session {session.interview_id}")
            return False

        key = interview_state_key(session.interview_id)
        try:
            self.store.set(key, session.snapshot_state())
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save session {session.interview_id}: {e}")
            return False

        logger.debug(f"Saved session {session.interview_id} ({len(session.messages)} messages)")
        return True

    def load_session(self, interview_id: str) -> Optional[InterviewSession]:
        """
        Restore session from storage.

        Returns:
            InterviewSession stamped with restored_at, or None if the record
            is missing or unreadable
        """
        key = interview_state_key(interview_id)
        try:
            snapshot = self.store.get(key)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read session {interview_id}: {e}")
            return None

        if snapshot is None:
            return None

        try:
            session = InterviewSession.from_snapshot(snapshot)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Corrupt session record {interview_id}: {e}")
            return None

        session.restored_at = self.clock()
        logger.info(f"Restored session {interview_id}: {session!r}")
        return session

    def acquire(self, interview_id: str) -> Tuple[InterviewSession, bool]:
        """
        Restore the stored session or create a fresh one.

        Returns:
            (session, restored)
        """
        session = self.load_session(interview_id)
        if session is not None:
            return session, True
        return InterviewSession(interview_id), False

    def clear_session(self, interview_id: str) -> None:
        """Remove one persisted session"""
        self._remove(interview_state_key(interview_id))
        logger.info(f"Cleared session {interview_id}")

    def clear_all_interviews(self) -> int:
        """
        Remove every persisted session.

        Returns:
            int: Number of records removed
        """
        removed = self._remove_prefixed(INTERVIEW_STATE_PREFIX)
        logger.info(f"Cleared {removed} interview record(s)")
        return removed

    def clear_all_app_data(self) -> int:
        """
        Remove sessions, roster cache and patient-detail caches.

        Returns:
            int: Number of records removed
        """
        removed = self._remove_prefixed(INTERVIEW_STATE_PREFIX)
        removed += self._remove_prefixed(PATIENT_DETAIL_PREFIX)
        if self._read(PATIENTS_LIST_KEY) is not None:
            removed += 1
        self._remove(PATIENTS_LIST_KEY)
        logger.info(f"Cleared all app data ({removed} record(s))")
        return removed

    # ==================== CACHES ====================

    def save_patients_cache(self, patients: List[Dict[str, Any]]) -> None:
        self._write_cache(PATIENTS_LIST_KEY, patients)

    def load_patients_cache(self) -> Optional[List[Dict[str, Any]]]:
        """Cached roster, or None on miss/expiry"""
        return self._read_cache(PATIENTS_LIST_KEY)

    def save_patient_detail_cache(self, patient_id: str, detail: Dict[str, Any]) -> None:
        self._write_cache(patient_detail_key(patient_id), detail)

    def load_patient_detail_cache(self, patient_id: str) -> Optional[Dict[str, Any]]:
        """Cached patient record, or None on miss/expiry"""
        return self._read_cache(patient_detail_key(patient_id))

    def _write_cache(self, key: str, payload: Any) -> None:
        entry = CacheEntry(payload=payload, stored_at=self.clock())
        try:
            self.store.set(key, entry.to_json())
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write cache {key}: {e}")

    def _read_cache(self, key: str) -> Optional[Any]:
        data = self._read(key)
        if data is None:
            return None

        try:
            entry = CacheEntry.from_json(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Corrupt cache entry {key}: {e}")
            return None

        if entry.is_expired(self.clock(), self.cache_ttl_seconds):
            logger.info(f"Cache expired: {key}")
            return None

        return entry.payload

    # ==================== INTERNALS ====================

    def _read(self, key: str) -> Optional[Any]:
        try:
            return self.store.get(key)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read {key}: {e}")
            return None

    def _remove(self, key: str) -> None:
        try:
            self.store.remove(key)
        except OSError as e:
            logger.error(f"Failed to remove {key}: {e}")

    def _remove_prefixed(self, prefix: str) -> int:
        keys = [k for k in self.store.keys() if k.startswith(prefix)]
        for key in keys:
            self._remove(key)
        return len(keys)
