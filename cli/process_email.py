"""
CLI tool for processing booking emails.
Usage: python -m cli.process_email <email_file>
"""

import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from booking_intake.pipeline.orchestrator import BookingPipeline, TOTAL_STEPS


# ANSI color codes for terminal output
class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def print_step(step_num: int, name: str, status: str):
    """Print step progress."""
    if status == "running":
        icon = "..."
        color = Colors.YELLOW
    elif status == "complete":
        icon = "done"
        color = Colors.GREEN
    else:
        icon = "!"
        color = Colors.RED

    print(f"  [{step_num}/{TOTAL_STEPS}] {name:<22} {color}{icon}{Colors.ENDC}")


def print_record(record):
    """Print the extracted booking record."""
    print(f"\n{Colors.BOLD}Job:{Colors.ENDC} {record.job_number or '-'}")
    print(f"{Colors.BOLD}When:{Colors.ENDC} {record.date or '?'} {record.time or '?'}")
    for key, address, note in record.stops():
        label = key.capitalize()
        print(f"  {Colors.CYAN}{label:<12}{Colors.ENDC} {address}")
        if note:
            print(f"  {'':<12} {note}")
    print(f"{Colors.BOLD}Customer:{Colors.ENDC} {record.customer_name or '-'} {record.customer_phone or ''}")
    print(f"{Colors.BOLD}Passengers:{Colors.ENDC} {record.passengers or '-'}  "
          f"{Colors.BOLD}Luggage:{Colors.ENDC} {record.luggage if record.luggage is not None else '-'}  "
          f"{Colors.BOLD}Vehicle:{Colors.ENDC} {record.effective_vehicle_type}")
    if record.price:
        print(f"{Colors.BOLD}Price:{Colors.ENDC} £{record.price}")
    if record.driver_notes:
        print(f"{Colors.BOLD}Driver notes:{Colors.ENDC} {record.driver_notes}")

    if record.warnings:
        print(f"\n{Colors.YELLOW}{Colors.BOLD}Warnings:{Colors.ENDC}")
        for warning in record.warnings:
            print(f"  - {warning}")


def print_result(result):
    """Print the pipeline result in a formatted way."""
    if result.extracted:
        print_record(result.extracted)

    outcome = result.submission_result
    if not result.success:
        print(f"\n{Colors.RED}Booking was not created!{Colors.ENDC}")
        for error in result.errors:
            print(f"  Error: {error}")
        if outcome and outcome.error_body:
            print(f"  Response: {outcome.error_body}")
        return

    print("\n" + "=" * 60)
    print(f"{Colors.BOLD}{Colors.GREEN}        {outcome.message}{Colors.ENDC}")
    print("=" * 60)

    if outcome.booking_id_changed:
        print(f"{Colors.YELLOW}Booking id changed: {outcome.original_booking_id} -> {outcome.booking_id}{Colors.ENDC}")
    if len(outcome.group_results) > 1:
        print(f"\n{Colors.BOLD}Passenger groups:{Colors.ENDC}")
        for group in outcome.group_results:
            state = f"{Colors.GREEN}{group.booking_id}{Colors.ENDC}" if group.success else f"{Colors.RED}HTTP {group.http_status}{Colors.ENDC}"
            print(f"  - {group.passengers} passenger(s): {state}")

    if result.metrics:
        print(f"\n{Colors.BOLD}Processing time:{Colors.ENDC} {result.metrics.total_duration_seconds:.1f} seconds")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Extract taxi bookings from account-job emails and optionally book them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cli.process_email job_4471203.txt
  python -m cli.process_email --text "JOB NUMBER: 4471203 ..."
  python -m cli.process_email job_4471203.txt --submit --admin
  python -m cli.process_email job_4471203.txt --json
        """
    )

    parser.add_argument(
        "file",
        nargs="?",
        help="Path to email file (.txt or .eml)"
    )
    parser.add_argument(
        "--text", "-t",
        help="Email content as text (alternative to file)"
    )
    parser.add_argument(
        "--submit", "-s",
        action="store_true",
        help="Send the booking to the dispatch system"
    )
    parser.add_argument(
        "--admin", "-a",
        action="store_true",
        help="Send the extracted price as a manual override"
    )
    parser.add_argument(
        "--existing-id",
        help="Update this dispatch booking instead of creating one"
    )
    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output result as JSON only"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress progress output"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING if (args.quiet or args.json) else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Get email content
    email_content = None

    if args.text:
        email_content = args.text
    elif args.file:
        file_path = Path(args.file)
        if not file_path.exists():
            print(f"{Colors.RED}Error: File not found: {args.file}{Colors.ENDC}")
            sys.exit(1)
        email_content = file_path.read_text()
    else:
        if not sys.stdin.isatty():
            email_content = sys.stdin.read()
        else:
            parser.print_help()
            sys.exit(1)

    if not email_content or not email_content.strip():
        print(f"{Colors.RED}Error: Email content is empty{Colors.ENDC}")
        sys.exit(1)

    def progress_callback(step: int, name: str, status: str):
        if not args.quiet and not args.json:
            print_step(step, name, status)

    try:
        pipeline = BookingPipeline(progress_callback=progress_callback)

        if not args.submit:
            record = pipeline.extract(email_content)
            if args.json:
                print(json.dumps(record.model_dump(by_alias=True, mode="json"), indent=2))
            else:
                print_record(record)
            sys.exit(0)

        if not args.quiet and not args.json:
            print(f"\n{Colors.BOLD}Booking Email Processing{Colors.ENDC}")
            print("-" * 40)

        result = asyncio.run(pipeline.process_email(
            email_content,
            admin_mode=args.admin,
            existing_id=args.existing_id,
        ))

        if args.json:
            print(json.dumps(result.model_dump(by_alias=True, mode="json"), indent=2))
        else:
            print_result(result)

        sys.exit(0 if result.success else 1)

    except Exception as e:
        if args.json:
            print(json.dumps({"success": False, "error": str(e)}))
        else:
            print(f"\n{Colors.RED}Error: {e}{Colors.ENDC}")
        sys.exit(1)


if __name__ == "__main__":
    main()
