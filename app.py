"""
Flask Web Application for the Interview Orchestrator

JSON API over PhaseController and PatientDirectory.
"""

from flask import Flask, request, jsonify
import logging
import time

from interview_backend.commands import (
    StartInterview, PatientMessage, RetryRound2, RequestFinalReport, ClearInterview
)
from interview_backend.config import InterviewConfig
from interview_backend.core.patient_directory import PatientDirectory
from interview_backend.core.phase_controller import PhaseController
from interview_backend.persistence import InterviewSessionStore, JsonFileStore
from interview_backend.results import ExchangeFailure, IllegalCommand
from interview_backend.utils.exchange_client import ExchangeClient

logger = logging.getLogger(__name__)


def session_view(session, now=None):
    """JSON view of a session for API responses"""
    now = time.time() if now is None else now
    view = session.snapshot_state()
    view['stats'] = session.get_summary_stats()
    view['restore_notice'] = session.restore_notice_visible(now)
    return view


def illegal_response(result: IllegalCommand):
    return jsonify({
        'success': False,
        'error': result.reason,
        'command': result.command_type
    }), 409


def turn_response(result):
    """Serialize TurnResult"""
    return jsonify({
        'success': result.error is None,
        'error': result.error,
        'restored': result.restored,
        'new_messages': [m.to_json() for m in result.new_messages],
        'final_report_scheduled': result.final_report_task is not None,
        'session': session_view(result.session)
    })


def create_app(config=None, controller=None, directory=None):
    """
    Build the Flask app.

    Args:
        config: InterviewConfig (from environment if None)
        controller: PhaseController (built from config if None)
        directory: PatientDirectory (built from config if None)

    Returns:
        Flask
    """
    config = config or InterviewConfig.from_env()

    if controller is None or directory is None:
        client = ExchangeClient(config)
        store = InterviewSessionStore(
            JsonFileStore(config.storage_dir),
            cache_ttl_seconds=config.cache_ttl_seconds
        )
        controller = controller or PhaseController(client, store)
        directory = directory or PatientDirectory(client, store)

    app = Flask(__name__)
    app.config['INTERVIEW_CONFIG'] = config
    app.extensions['phase_controller'] = controller
    app.extensions['patient_directory'] = directory

    @app.route('/interviews/<interview_id>/start', methods=['POST'])
    def start_interview(interview_id):
        """Open or restore an interview"""
        try:
            result = controller.handle(StartInterview(interview_id))
            if isinstance(result, IllegalCommand):
                return illegal_response(result)
            return turn_response(result)

        except Exception as e:
            logger.error(f"Error starting interview {interview_id}: {e}")
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/interviews/<interview_id>/messages', methods=['POST'])
    def post_message(interview_id):
        """Submit patient message"""
        try:
            data = request.get_json(silent=True) or {}
            text = data.get('message', '')

            result = controller.handle(PatientMessage(interview_id, text))
            if isinstance(result, IllegalCommand):
                return illegal_response(result)
            return turn_response(result)

        except Exception as e:
            logger.error(f"Error processing message for {interview_id}: {e}")
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/interviews/<interview_id>/round2/retry', methods=['POST'])
    def retry_round2(interview_id):
        """Re-run a failed round-2 transition"""
        try:
            result = controller.handle(RetryRound2(interview_id))
            if isinstance(result, IllegalCommand):
                return illegal_response(result)
            return turn_response(result)

        except Exception as e:
            logger.error(f"Error retrying round 2 for {interview_id}: {e}")
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/interviews/<interview_id>/final-report', methods=['POST'])
    def final_report(interview_id):
        """Return or generate final report"""
        try:
            result = controller.handle(RequestFinalReport(interview_id))
            if isinstance(result, IllegalCommand):
                return illegal_response(result)

            if not result.success:
                return jsonify({'success': False, 'error': result.error}), 502

            return jsonify({
                'success': True,
                'generated': result.generated,
                'final_report': result.report
            })

        except Exception as e:
            logger.error(f"Error generating final report for {interview_id}: {e}")
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/interviews/<interview_id>', methods=['GET'])
    def get_interview(interview_id):
        """Current interview state"""
        session = controller.get_session(interview_id)
        return jsonify({
            'success': True,
            'busy': controller.is_busy(interview_id),
            'session': session_view(session)
        })

    @app.route('/interviews/<interview_id>', methods=['DELETE'])
    def delete_interview(interview_id):
        """Forget interview"""
        result = controller.handle(ClearInterview(interview_id))
        if isinstance(result, IllegalCommand):
            return illegal_response(result)
        return jsonify({'success': True})

    @app.route('/patients', methods=['GET'])
    def list_patients():
        """Patient roster (cached)"""
        force_refresh = request.args.get('refresh', 'false').lower() == 'true'
        result = directory.list_patients(force_refresh=force_refresh)
        if isinstance(result, ExchangeFailure):
            return jsonify({'success': False, 'error': result.reason}), 502
        return jsonify({'success': True, 'patients': result})

    @app.route('/patients/<patient_id>', methods=['GET'])
    def get_patient(patient_id):
        """One patient record (cached)"""
        force_refresh = request.args.get('refresh', 'false').lower() == 'true'
        result = directory.get_patient(patient_id, force_refresh=force_refresh)
        if isinstance(result, ExchangeFailure):
            return jsonify({'success': False, 'error': result.reason}), 502
        return jsonify({'success': True, 'data': result})

    return app


if __name__ == '__main__':
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = InterviewConfig.from_env()
    app = create_app(config)

    print("\n" + "=" * 60)
    print("INTERVIEW ORCHESTRATOR - WEB API")
    print("=" * 60)
    print(f"\nDiagnostic service: {config.api_base_url}")
    print(f"Listening on: http://{config.host}:{config.port}")
    print("\nPress Ctrl+C to stop the server")
    print("=" * 60 + "\n")

    app.run(host=config.host, port=config.port, debug=config.debug)
