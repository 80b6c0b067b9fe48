"""
Emergency Escalation Test Trigger
=================================

Runs the operator test trigger end to end:
1. Synthetic high-risk answers for the test subject
2. Every channel (SMS, email, WhatsApp, device-local)
3. Record appended to the ledger
4. Operator summary printed

Usage:
    python scripts/send_test_alert.py

    # One channel only, nothing recorded:
    python scripts/send_test_alert.py --channel short_message

    # In-memory ledger, no browser / dialer links opened:
    python scripts/send_test_alert.py --dry-run
"""

import argparse
import asyncio
import sys

from nivaran.alerting.notifier import CollectingOperatorNotifier
from nivaran.alerting.providers.device import LocalDeviceHost
from nivaran.alerting.schemas import Channel, ChannelAttempt
from nivaran.config import get_settings
from nivaran.container import build_container
from nivaran.logging import configure_logging


class C:
    GREEN = "\033[92m"
    RED = "\033[91m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    END = "\033[0m"


def header(msg: str):
    print(f"\n{C.BOLD}{C.CYAN}{'=' * 60}{C.END}")
    print(f"{C.BOLD}{C.CYAN}  {msg}{C.END}")
    print(f"{C.BOLD}{C.CYAN}{'=' * 60}{C.END}")


def print_attempt(attempt: ChannelAttempt):
    colour = C.GREEN if attempt.succeeded else C.RED
    print(f"  {colour}{attempt.channel.value:<14}{C.END} {attempt.outcome.value:<8} "
          f"{attempt.provider}: {attempt.detail}")
    for step in attempt.provider_trail:
        target = f" [{step.contact_label}]" if step.contact_label else ""
        print(f"      - {step.provider}{target}: {step.outcome.value} {step.detail}")


async def main() -> int:
    parser = argparse.ArgumentParser(description="Send a test emergency escalation")
    parser.add_argument(
        "--channel",
        choices=[c.value for c in Channel],
        help="Test a single channel instead of a full escalation",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Keep the ledger in memory and do not open local links",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings)

    notifier = CollectingOperatorNotifier()
    device_host = None
    if args.dry_run:
        device_host = LocalDeviceHost(export_dir=settings.export_dir, open_links=False)

    container = build_container(
        settings,
        device_host=device_host,
        notifier=notifier,
        durable=not args.dry_run,
    )
    await container.start()

    try:
        if args.channel:
            header(f"Channel test: {args.channel}")
            attempt = await container.orchestrator.test_channel(Channel(args.channel))
            print_attempt(attempt)
            return 0 if attempt.succeeded else 1

        header("Full test escalation")
        record = await container.orchestrator.send_test_alert()
        print(f"  id:      {record.id}")
        print(f"  status:  {record.status.value}")
        print(f"  factors: {len(record.risk_factors)}")
        for attempt in record.attempts:
            print_attempt(attempt)

        header("Operator summary")
        for _, summary in notifier.sent + notifier.failed:
            print(summary)
        return 0 if record.status.value == "sent" else 1
    finally:
        await container.aclose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
