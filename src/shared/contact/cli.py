#!/usr/bin/env python3
"""
Submit one contact message from the shell through the regular pipeline.

Useful for resending a message from the failure store or checking the SMTP
setup. Exit status: 0 delivered, 1 rejected, 2 delivery failed.

    python -m src.shared.contact.cli --name "Jane Doe" --email jane@example.com \
        --subject "Hello" --message "Resent from the failure log." [--logo logo.png]
"""

import argparse
import logging
import mimetypes
import secrets
import sys
from pathlib import Path

from src.app import build_rate_limit_store
from src.shared.contact.config import ContactSettings
from src.shared.contact.email_utils import SmtpMailer
from src.shared.contact.pipeline import SubmissionPipeline
from src.shared.contact.rate_limiting import RateLimiter
from src.shared.contact.schemas import RawFile, SubmissionRequest, SubmissionState

EXIT_DELIVERED = 0
EXIT_REJECTED = 1
EXIT_DELIVERY_FAILED = 2


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Relay a contact form message via SMTP.")
    parser.add_argument("--name", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--subject", required=True)
    parser.add_argument("--message", required=True)
    parser.add_argument("--logo", type=Path, help="optional PNG/JPG/SVG attachment")
    parser.add_argument("--client", default="cli", help="identifier used for rate limiting and audit")
    return parser.parse_args(argv)


def build_request(args) -> SubmissionRequest:
    attachment = None
    if args.logo is not None:
        try:
            attachment = RawFile(
                filename=args.logo.name,
                content_type=mimetypes.guess_type(args.logo.name)[0],
                data=args.logo.read_bytes(),
            )
        except OSError as e:
            attachment = RawFile(filename=args.logo.name, error=str(e))

    # A local operator is trusted: the token pair is generated here
    token = secrets.token_hex(32)
    return SubmissionRequest(
        method="POST",
        client_identifier=args.client,
        name=args.name,
        email=args.email,
        subject=args.subject,
        message=args.message,
        csrf_token=token,
        session_csrf_token=token,
        attachment=attachment,
    )


def main(argv=None, pipeline: SubmissionPipeline = None) -> int:
    args = parse_args(argv)

    if pipeline is None:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
        settings = ContactSettings.from_env()
        rate_limiter = RateLimiter(
            build_rate_limit_store(settings),
            max_attempts=settings.max_attempts,
            period=settings.rate_limit_period,
        )
        pipeline = SubmissionPipeline.build(settings, rate_limiter, SmtpMailer.from_settings(settings))

    result = pipeline.run(build_request(args))
    print(result.message)

    if result.state == SubmissionState.DELIVERED:
        return EXIT_DELIVERED
    if result.state == SubmissionState.DELIVERY_FAILED:
        return EXIT_DELIVERY_FAILED
    return EXIT_REJECTED


if __name__ == "__main__":
    sys.exit(main())
