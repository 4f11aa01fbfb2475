"""
Phase Controller - Orchestrates the two-round diagnostic interview

Responsibilities:
- Open interviews (remote opener, local greeting for direct chat)
- Route patient messages to the round-1 or round-2 endpoint
- Count doctor questions and round-2 messages
- Run the round-2 transition at the question threshold
- Schedule the final report at the round-2 message threshold
- Persist the session after every mutation

Phases:
    INIT -> ROUND1_ACTIVE -> ROUND2_ACTIVE -> FINAL_REPORT_READY

Design principles:
- Commands in, result objects out (handle())
- One action at a time per interview (in-flight set)
- Exchange failures become doctor-role notices, never exceptions
- Automatic follow-ups are single-shot (guards stored on the session)
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

from interview_backend.commands import (
    StartInterview, PatientMessage, RetryRound2, RequestFinalReport, ClearInterview
)
from interview_backend.contracts import Message
from interview_backend.core.diagnosis_extractor import DiagnosisExtractor
from interview_backend.core.report_accumulator import apply_report_update, merge_differential
from interview_backend.core.session_state import InterviewSession
from interview_backend.results import (
    TurnResult, FinalReportResult, IllegalCommand, ExchangeFailure
)
from interview_backend.utils.helpers import DIRECT_CHAT_ID, flatten_transcript
from interview_backend.utils.interview_phases import InterviewPhase

logger = logging.getLogger(__name__)


class PhaseController:
    """
    Drives one interview at a time per identifier.

    Sessions are cached in memory after the first acquire and written
    through to the session store on every mutation.
    """

    # Phase thresholds
    ROUND2_TRIGGER_QUESTION_COUNT = 13
    FINAL_REPORT_TRIGGER_MESSAGE_COUNT = 10

    # Canned texts
    OPENING_MESSAGE = "Hello, I need medical consultation."
    LOCAL_GREETING = (
        "Hello! I'm MedGemma. How are you feeling today? "
        "Please describe any symptoms you're experiencing."
    )
    TRANSPORT_APOLOGY = (
        "I apologize, but I'm having trouble connecting to the system. "
        "Please ensure the backend is running and try again."
    )
    SERVICE_FALLBACK = (
        "I apologize, but I encountered an issue processing your message. "
        "Could you please try again?"
    )
    ROUND2_STARTED_NOTICE = "Round 2 Interview Started - Generating differential diagnosis..."
    ROUND2_FAILED_NOTICE = "Error starting Round 2. Please try again."
    ROUND2_OPENER_FAILED_NOTICE = "Error starting second interview. You can continue typing messages."

    def __init__(self, client, session_store, extractor=None, executor: Optional[Executor] = None):
        """
        Initialize controller

        Args:
            client: ExchangeClient (or any object with the same methods)
            session_store: InterviewSessionStore
            extractor: DiagnosisExtractor (default instance if None)
            executor: Runs scheduled final reports (thread pool if None)

        Raises:
            TypeError: If a collaborator is missing a required method
        """
        self._validate_modules(client, session_store)

        self.client = client
        self.store = session_store
        self.extractor = extractor or DiagnosisExtractor()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="final-report"
        )

        self._sessions: Dict[str, InterviewSession] = {}
        self._in_flight = set()
        self._lock = threading.Lock()

        logger.info("Phase Controller initialized")

    def _validate_modules(self, client, session_store):
        """Validate collaborator interfaces"""
        for name in ('send_interview_message', 'generate_diagnosis',
                     'send_second_interview_message', 'generate_final_report'):
            if not callable(getattr(client, name, None)):
                raise TypeError(f"client must have callable {name}() method")

        for name in ('acquire', 'save_session', 'clear_session'):
            if not callable(getattr(session_store, name, None)):
                raise TypeError(f"session_store must have callable {name}() method")

    # ========================
    # Public interface
    # ========================

    def handle(self, command):
        """
        Dispatch a command.

        Args:
            command: StartInterview, PatientMessage, RetryRound2,
                RequestFinalReport or ClearInterview

        Returns:
            TurnResult, FinalReportResult, IllegalCommand or None

        Raises:
            TypeError: If command type is unknown
        """
        if isinstance(command, StartInterview):
            return self.start_interview(command.interview_id)
        if isinstance(command, PatientMessage):
            return self.handle_patient_message(command.interview_id, command.text)
        if isinstance(command, RetryRound2):
            return self.retry_round2(command.interview_id)
        if isinstance(command, RequestFinalReport):
            return self.request_final_report(command.interview_id)
        if isinstance(command, ClearInterview):
            return self.clear_interview(command.interview_id)

        raise TypeError(f"Unknown command type: {type(command).__name__}")

    def get_session(self, interview_id: str) -> InterviewSession:
        """
        Current session for an interview (restored or fresh, never None).

        Read-only: a fresh session for an unknown interview is not cached.
        """
        session, _ = self._acquire(interview_id, cache_fresh=False)
        return session

    def is_busy(self, interview_id: str) -> bool:
        with self._lock:
            return interview_id in self._in_flight

    # ========================
    # Operations
    # ========================

    def start_interview(self, interview_id: str):
        """
        Open an interview.

        Restored or already-started sessions are returned unchanged.
        Direct chat gets a local greeting without a service call.
        Otherwise the opening exchange is issued; on failure the phase
        stays INIT and a doctor-role notice explains the problem.
        """
        illegal = self._claim(interview_id, 'StartInterview')
        if illegal:
            return illegal

        try:
            session, restored = self._acquire(interview_id)

            if restored or session.phase != InterviewPhase.INIT:
                logger.info(f"[{interview_id}] start: returning existing session ({session.phase.value})")
                return TurnResult(session=session, new_messages=[], restored=restored)

            new_messages: List[Message] = []

            if interview_id == DIRECT_CHAT_ID:
                new_messages.append(session.add_doctor_message(self.LOCAL_GREETING))
                session.phase = InterviewPhase.ROUND1_ACTIVE
                self._persist(session)
                logger.info(f"[{interview_id}] direct chat opened locally")
                return TurnResult(session=session, new_messages=new_messages)

            response = self.client.send_interview_message(
                patient_id=interview_id,
                message=self.OPENING_MESSAGE,
                conversation_history=[],
                conversation_id=None,
                current_report=session.report
            )

            if not response.ok:
                notice = self._failure_notice(response, fallback=self.LOCAL_GREETING)
                new_messages.append(session.add_doctor_notice(notice))
                self._persist(session)
                logger.warning(f"[{interview_id}] opening exchange failed: {response.reason}")
                return TurnResult(session=session, new_messages=new_messages, error=response.reason)

            new_messages.append(session.add_doctor_message(response.message))
            session.record_doctor_question()
            if response.conversation_id:
                session.conversation_id = response.conversation_id
            apply_report_update(session, response.updated_report)
            session.phase = InterviewPhase.ROUND1_ACTIVE
            self._persist(session)

            logger.info(f"[{interview_id}] interview opened: {session!r}")
            return TurnResult(session=session, new_messages=new_messages)
        finally:
            self._release(interview_id)

    def handle_patient_message(self, interview_id: str, text: str):
        """
        Process one patient message.

        Round 1 (and INIT): primary endpoint, round-2 transition when the
        doctor question count reaches the threshold.
        Round 2: secondary endpoint, final report scheduled when the
        round-2 message count reaches the threshold.
        """
        text = (text or "").strip()
        if not text:
            return IllegalCommand(reason="Message text must not be blank", command_type='PatientMessage')

        illegal = self._claim(interview_id, 'PatientMessage')
        if illegal:
            return illegal

        handed_off = False
        try:
            session, restored = self._acquire(interview_id)

            new_messages = [session.add_patient_message(text)]
            self._persist(session)

            task = None
            if session.phase.is_round2:
                error, schedule = self._process_round2_message(session, text, new_messages)
                if schedule:
                    task = self._schedule_final_report(session)
                    handed_off = task is not None
            else:
                error = self._process_round1_message(session, text, new_messages)

            logger.info(f"[{interview_id}] turn complete: {session!r}")
            return TurnResult(
                session=session,
                new_messages=new_messages,
                error=error,
                final_report_task=task,
                restored=restored
            )
        finally:
            if not handed_off:
                self._release(interview_id)

    def retry_round2(self, interview_id: str):
        """
        Re-run the round-2 transition after a failed diagnosis call.

        Only valid in ROUND1_ACTIVE with the round-2 guard set and no
        diagnosis stored.
        """
        illegal = self._claim(interview_id, 'RetryRound2')
        if illegal:
            return illegal

        try:
            session, restored = self._acquire(interview_id)

            if (session.phase != InterviewPhase.ROUND1_ACTIVE
                    or not session.round2_triggered
                    or session.diagnosis is not None):
                return IllegalCommand(
                    reason=f"Round 2 retry not available (phase={session.phase.value})",
                    command_type='RetryRound2'
                )

            new_messages: List[Message] = []
            error = self._run_round2_transition(session, new_messages)
            return TurnResult(session=session, new_messages=new_messages, error=error, restored=restored)
        finally:
            self._release(interview_id)

    def request_final_report(self, interview_id: str):
        """
        Return the stored final report, generating it synchronously if
        missing.

        Only available once a differential diagnosis exists.
        """
        illegal = self._claim(interview_id, 'RequestFinalReport')
        if illegal:
            return illegal

        try:
            session, _ = self._acquire(interview_id)

            if session.final_report is not None:
                return FinalReportResult(
                    success=True,
                    report=session.final_report.get('final_report'),
                    generated=False
                )

            if session.diagnosis is None:
                return IllegalCommand(
                    reason="Final report requires a differential diagnosis",
                    command_type='RequestFinalReport'
                )

            return self._generate_final_report(session)
        finally:
            self._release(interview_id)

    def clear_interview(self, interview_id: str):
        """Forget an interview (memory cache and persisted record)"""
        illegal = self._claim(interview_id, 'ClearInterview')
        if illegal:
            return illegal

        try:
            with self._lock:
                self._sessions.pop(interview_id, None)
            self.store.clear_session(interview_id)
            logger.info(f"[{interview_id}] interview cleared")
            return None
        finally:
            self._release(interview_id)

    # ========================
    # Round 1
    # ========================

    def _process_round1_message(self, session: InterviewSession, text: str,
                                new_messages: List[Message]) -> Optional[str]:
        """
        Primary endpoint exchange.

        Returns:
            Failure reason (exchange or round-2 diagnosis), or None on success
        """
        response = self.client.send_interview_message(
            patient_id=self._patient_id(session),
            message=text,
            conversation_history=session.conversation_history(),
            conversation_id=session.conversation_id,
            current_report=session.report
        )

        if not response.ok:
            new_messages.append(session.add_doctor_notice(self._failure_notice(response)))
            self._persist(session)
            logger.warning(f"[{session.interview_id}] round 1 exchange failed: {response.reason}")
            return response.reason

        new_messages.append(session.add_doctor_message(response.message))
        count = session.record_doctor_question()
        if response.conversation_id and response.conversation_id != session.conversation_id:
            session.conversation_id = response.conversation_id
        apply_report_update(session, response.updated_report)
        session.phase = InterviewPhase.ROUND1_ACTIVE
        self._persist(session)

        logger.debug(f"[{session.interview_id}] doctor questions: {count}")

        if count == self.ROUND2_TRIGGER_QUESTION_COUNT and not session.round2_triggered:
            return self._run_round2_transition(session, new_messages)

        return None

    # ========================
    # Round-2 transition
    # ========================

    def _run_round2_transition(self, session: InterviewSession,
                               new_messages: List[Message]) -> Optional[str]:
        """
        Diagnosis call, then the round-2 opener.

        Counters are never rolled back. A failed diagnosis leaves the
        session in ROUND1_ACTIVE with the guard set (see retry_round2).

        Returns:
            Diagnosis failure reason, or None
        """
        interview_id = session.interview_id
        session.round2_triggered = True
        new_messages.append(session.add_system_message(self.ROUND2_STARTED_NOTICE))
        self._persist(session)

        logger.info(f"[{interview_id}] round 2 transition started")

        history = session.conversation_history()
        diagnosis = self.client.generate_diagnosis(
            patient_id=self._patient_id(session),
            conversation_history=history,
            current_report=session.report
        )

        if not diagnosis.ok:
            if diagnosis.is_transport:
                notice = self.ROUND2_FAILED_NOTICE
            else:
                notice = f"Error generating diagnosis: {diagnosis.reason}"
            new_messages.append(session.add_system_message(notice))
            self._persist(session)
            logger.error(f"[{interview_id}] diagnosis failed: {diagnosis.reason}")
            return diagnosis.reason

        session.diagnosis = self.extractor.build_result(diagnosis.payload)
        session.phase = InterviewPhase.ROUND2_ACTIVE

        count = len(session.candidates)
        noun = "diagnosis" if count == 1 else "diagnoses"
        new_messages.append(session.add_system_message(
            f"Round 2 Interview has started.\n\n{count} differential {noun} generated."
        ))
        self._persist(session)

        logger.info(f"[{interview_id}] round 2 active with {count} candidate(s)")

        opener = self.client.send_second_interview_message(
            patient_id=self._patient_id(session),
            message=None,
            conversation_history=history,
            conversation_id=None,
            current_report=session.report,
            differential_diagnoses=session.candidates
        )

        if opener.ok:
            new_messages.append(session.add_doctor_message(opener.message))
            if opener.conversation_id:
                session.second_interview_conversation_id = opener.conversation_id
            apply_report_update(session, opener.updated_report)
            if opener.updated_differential:
                session.diagnosis = merge_differential(
                    session.diagnosis, opener.updated_differential, self.extractor
                )
        else:
            new_messages.append(session.add_system_message(self.ROUND2_OPENER_FAILED_NOTICE))
            logger.error(f"[{interview_id}] second interview opener failed: {opener.reason}")

        self._persist(session)
        return None

    # ========================
    # Round 2
    # ========================

    def _process_round2_message(self, session: InterviewSession, text: str,
                                new_messages: List[Message]) -> Tuple[Optional[str], bool]:
        """
        Secondary endpoint exchange.

        Returns:
            (failure reason or None, whether to schedule the final report)
        """
        response = self.client.send_second_interview_message(
            patient_id=self._patient_id(session),
            message=text,
            conversation_history=session.conversation_history(),
            conversation_id=session.second_interview_conversation_id,
            current_report=session.report,
            differential_diagnoses=session.candidates
        )

        if not response.ok:
            new_messages.append(session.add_doctor_notice(self._failure_notice(response)))
            self._persist(session)
            logger.warning(f"[{session.interview_id}] round 2 exchange failed: {response.reason}")
            return response.reason, False

        new_messages.append(session.add_doctor_message(response.message))
        session.record_doctor_question()
        round2_count = session.record_round2_message()

        if (response.conversation_id
                and response.conversation_id != session.second_interview_conversation_id):
            session.second_interview_conversation_id = response.conversation_id
        if response.updated_differential:
            session.diagnosis = merge_differential(
                session.diagnosis, response.updated_differential, self.extractor
            )
        apply_report_update(session, response.updated_report)
        self._persist(session)

        logger.debug(f"[{session.interview_id}] round 2 messages: {round2_count}")

        schedule = (
            round2_count == self.FINAL_REPORT_TRIGGER_MESSAGE_COUNT
            and session.final_report is None
            and not session.final_report_triggered
        )
        return None, schedule

    # ========================
    # Final report
    # ========================

    def _schedule_final_report(self, session: InterviewSession) -> Optional["Future[FinalReportResult]"]:
        """
        Submit final report generation (fire-and-forget).

        The task takes over the interview's in-flight slot and releases
        it when done.

        Returns:
            Future, or None if the executor refused the task
        """
        session.final_report_triggered = True
        self._persist(session)

        try:
            future = self.executor.submit(self._final_report_task, session)
        except RuntimeError as e:
            logger.error(f"[{session.interview_id}] could not schedule final report: {e}")
            return None

        logger.info(f"[{session.interview_id}] final report scheduled")
        return future

    def _final_report_task(self, session: InterviewSession) -> FinalReportResult:
        try:
            return self._generate_final_report(session)
        finally:
            self._release(session.interview_id)

    def _generate_final_report(self, session: InterviewSession) -> FinalReportResult:
        """
        Call the final report endpoint.

        Failure leaves the session untouched.
        """
        differential = session.diagnosis.best_available if session.diagnosis else []

        response = self.client.generate_final_report(
            patient_id=session.interview_id,
            conversation_history=flatten_transcript(session.messages),
            current_report=session.report,
            differential_diagnoses=differential
        )

        if not response.ok:
            logger.error(f"[{session.interview_id}] final report failed: {response.reason}")
            return FinalReportResult(success=False, error=response.reason)

        final_report = dict(response.payload)
        final_report['final_report'] = response.report_body
        session.final_report = final_report
        session.final_report_triggered = True
        session.phase = InterviewPhase.FINAL_REPORT_READY
        self._persist(session)

        logger.info(f"[{session.interview_id}] final report ready")
        return FinalReportResult(success=True, report=response.report_body, generated=True)

    # ========================
    # Helpers
    # ========================

    def _acquire(self, interview_id: str, cache_fresh: bool = True) -> Tuple[InterviewSession, bool]:
        """
        Cached session, else restored or fresh session from the store.

        The store is read outside the lock. If another caller cached the
        same interview meanwhile, its session wins.

        Args:
            interview_id: Interview identifier
            cache_fresh: Cache a fresh session when nothing is stored

        Returns:
            (session, restored) - restored is True only on the call that
            loaded the record from storage
        """
        with self._lock:
            session = self._sessions.get(interview_id)
        if session is not None:
            return session, False

        loaded, restored = self.store.acquire(interview_id)
        if not restored and not cache_fresh:
            return loaded, False

        with self._lock:
            session = self._sessions.setdefault(interview_id, loaded)
        if session is not loaded:
            return session, False
        return session, restored

    def _claim(self, interview_id: str, command_type: str) -> Optional[IllegalCommand]:
        """Mark interview in flight, or reject if it already is"""
        with self._lock:
            if interview_id in self._in_flight:
                logger.warning(f"[{interview_id}] {command_type} rejected: exchange in flight")
                return IllegalCommand(
                    reason=f"Interview {interview_id} has an exchange in flight",
                    command_type=command_type
                )
            self._in_flight.add(interview_id)
        return None

    def _release(self, interview_id: str) -> None:
        """Clear the in-flight mark and drop a cached session nothing touched"""
        with self._lock:
            self._in_flight.discard(interview_id)
            session = self._sessions.get(interview_id)
            if session is not None and session.is_pristine():
                del self._sessions[interview_id]

    def _persist(self, session: InterviewSession) -> None:
        self.store.save_session(session)

    def _failure_notice(self, failure: ExchangeFailure, fallback: Optional[str] = None) -> str:
        """Doctor-role text shown for a failed exchange"""
        if failure.is_transport:
            return self.TRANSPORT_APOLOGY
        return failure.service_error or fallback or self.SERVICE_FALLBACK

    @staticmethod
    def _patient_id(session: InterviewSession) -> Optional[str]:
        """Direct chat has no patient record"""
        if session.interview_id == DIRECT_CHAT_ID:
            return None
        return session.interview_id
