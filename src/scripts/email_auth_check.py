#!/usr/bin/env python3
"""
email_auth_check.py

Entry point for running the email authentication check from a source checkout.
It verifies the SPF, DKIM and DMARC records of a domain, probes the domain
(and optionally a sending IP) against DNS blacklists and prints the scored
report.

Usage:
    python email_auth_check.py example.com --selectors google,selector1 --ip 192.0.2.10
"""

from email_auth_verifier.cli import main

if __name__ == "__main__":
    main()
