"""
TempMailHub demo.

Creates a temporary address on the first available provider, waits for a
message and prints provider health and statistics.

Usage:
    python main.py [provider] [timeout_seconds]
"""

import json
import sys

from mail_service import mail_service
from models import CreateEmailRequest
from utils import logger


def main() -> int:
    provider = sys.argv[1] if len(sys.argv) > 1 else None
    timeout = int(sys.argv[2]) if len(sys.argv) > 2 else 120

    created = mail_service.create_email(CreateEmailRequest(provider=provider))
    if not created.success:
        logger(f"✗ Could not create an address: {created.error.message}")
        return 1

    mailbox = created.data
    print(f"\n📧 Your temporary email: {mailbox.address} ({mailbox.provider})")

    message = mail_service.wait_for_email(
        mailbox.address,
        timeout=timeout,
        provider=mailbox.provider,
        access_token=mailbox.access_token
    )
    if message.success:
        content = mail_service.get_email_content(
            mailbox.address,
            message.data.id,
            provider=mailbox.provider,
            access_token=mailbox.access_token
        )
        if content.success:
            print(f"\nFrom: {content.data.sender.email}")
            print(f"Subject: {content.data.subject}")
            print(f"\n{content.data.text_content}")

    print("\nProvider health:")
    print(json.dumps(mail_service.get_providers_health().to_dict()["data"], indent=2))
    print("\nProvider stats:")
    print(json.dumps(mail_service.get_providers_stats().to_dict()["data"], indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
