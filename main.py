"""
Console Test Harness for PhaseController

Simple console loop to drive an interview against a running diagnostic
service before going through the Flask API.
"""

import logging
import os
import sys

from interview_backend.commands import (
    StartInterview, PatientMessage, RetryRound2, RequestFinalReport, ClearInterview
)
from interview_backend.config import InterviewConfig
from interview_backend.core.phase_controller import PhaseController
from interview_backend.persistence import InterviewSessionStore, JsonFileStore
from interview_backend.results import IllegalCommand
from interview_backend.utils.exchange_client import ExchangeClient
from interview_backend.utils.helpers import DIRECT_CHAT_ID, generate_report_filename

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Console commands
EXIT_COMMANDS = {"quit", "exit", "stop"}
REPORT_COMMAND = "/report"
RETRY_COMMAND = "/retry"
CLEAR_COMMAND = "/clear"


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def print_messages(messages):
    """Print transcript messages"""
    for message in messages:
        if message.sender == "system":
            print(f"\n[{message.text}]")
        else:
            label = "Doctor" if message.sender == "doctor" else "Patient"
            print(f"\n{label}: {message.text}")
    print()


def save_report(report, output_dir):
    """Write final report to a timestamped markdown file"""
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, generate_report_filename())
    with open(path, 'w', encoding='utf-8') as f:
        f.write(report if isinstance(report, str) else str(report))
    return path


def main():
    """Run console interview"""
    interview_id = sys.argv[1] if len(sys.argv) > 1 else DIRECT_CHAT_ID

    print_separator()
    print("INTERVIEW ORCHESTRATOR - CONSOLE TEST")
    print_separator()

    config = InterviewConfig.from_env()
    store = InterviewSessionStore(
        JsonFileStore(config.storage_dir),
        cache_ttl_seconds=config.cache_ttl_seconds
    )
    controller = PhaseController(ExchangeClient(config), store)

    print(f"\nService: {config.api_base_url}")
    print(f"Interview: {interview_id}")
    print(f"Commands: {REPORT_COMMAND}, {RETRY_COMMAND}, {CLEAR_COMMAND}, quit\n")

    result = controller.handle(StartInterview(interview_id))
    if result.restored:
        print("(Interview restored from cache)")
        print_messages(result.session.messages)
    else:
        print_messages(result.new_messages)

    while True:
        try:
            user_input = input("> ").strip()

            if not user_input:
                print("Please enter a response.\n")
                continue

            if user_input.lower() in EXIT_COMMANDS:
                break

            if user_input == CLEAR_COMMAND:
                controller.handle(ClearInterview(interview_id))
                print("Interview cleared.\n")
                break

            if user_input == RETRY_COMMAND:
                command = RetryRound2(interview_id)
            elif user_input == REPORT_COMMAND:
                command = RequestFinalReport(interview_id)
            else:
                command = PatientMessage(interview_id, user_input)

            result = controller.handle(command)

            if isinstance(result, IllegalCommand):
                print(f"\n(Not allowed: {result.reason})\n")
                continue

            if isinstance(command, RequestFinalReport):
                if result.success:
                    path = save_report(result.report, config.storage_dir)
                    print(f"\nFinal report saved: {path}\n")
                else:
                    print(f"\nError generating final report: {result.error}\n")
                continue

            print_messages(result.new_messages)

            session = result.session
            print(f"[{session.phase.value}, questions={session.doctor_question_count}, "
                  f"round2={session.round2_message_count}]")

            if result.final_report_task is not None:
                print("\nGenerating final report...")
                report_result = result.final_report_task.result()
                if report_result.success:
                    path = save_report(report_result.report, config.storage_dir)
                    print(f"Final report saved: {path}\n")
                else:
                    print(f"Error generating final report: {report_result.error}\n")

        except KeyboardInterrupt:
            print("\n\nInterview interrupted by user (Ctrl+C)")
            break

    print_separator()
    print("Console test complete")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
