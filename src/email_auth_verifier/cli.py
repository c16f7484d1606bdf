import argparse
import asyncio
import json
import sys

import structlog

from .config import settings
from .core import InvalidRequestError, build_request, human_report, verify
from .logging import configure_logging

logger = structlog.get_logger()


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Email auth (SPF/DKIM/DMARC) and blacklist reputation checker"
    )
    parser.add_argument("domain", help="domain to check (e.g. example.com)")
    parser.add_argument(
        "--selectors",
        default="",
        help="Comma-separated DKIM selectors (default: %s)"
        % ",".join(settings.default_dkim_selectors),
    )
    parser.add_argument("--ip", help="Sending IPv4 address to check against IP blacklists")
    parser.add_argument(
        "--no-domain-blacklists",
        action="store_true",
        help="Skip domain-based blacklist checks",
    )
    parser.add_argument("--json-out", help="Write JSON summary to this file")
    parser.add_argument("--quiet", action="store_true", help="Only output JSON or minimal info")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    configure_logging(
        {"root": {"level": settings.log_level}},
        debug=args.debug,
        formatter=settings.log_format,
    )

    try:
        request = build_request(
            domain=args.domain,
            dkim_selectors=args.selectors,
            ip=args.ip,
            check_domain_blacklists=not args.no_domain_blacklists,
        )
    except InvalidRequestError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        report = asyncio.run(verify(request))
    except Exception as e:
        logger.exception("Verification failed", domain=request.domain)
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(2)

    result = report.model_dump(mode="json", by_alias=True)
    if args.json_out:
        with open(args.json_out, "w", encoding="utf-8") as f:
            json.dump(result, f, indent=2)
        if not args.quiet:
            print(f"Wrote JSON summary to {args.json_out}")

    if not args.quiet:
        print(human_report(report))
    else:
        print(json.dumps(result))


if __name__ == "__main__":
    main()
